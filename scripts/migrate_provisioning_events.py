"""
Create provisioning_events table (webhook idempotency ledger) and the unique index on
teams.stripe_checkout_session_id if the teams table predates it.
For a NEW database: not needed; both are in create_all.
Run once on an EXISTING DB: python scripts/migrate_provisioning_events.py (from project root)
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy import inspect, text
from trackroster.database import engine
from trackroster.models.provisioning_event import ProvisioningEvent


def main():
    insp = inspect(engine)
    tables = insp.get_table_names()
    if "provisioning_events" in tables:
        print("  skip (exists): provisioning_events")
    else:
        ProvisioningEvent.__table__.create(engine)
        print("  created: provisioning_events")

    if "teams" in tables:
        columns = {c["name"] for c in insp.get_columns("teams")}
        with engine.begin() as conn:
            if "stripe_checkout_session_id" not in columns:
                conn.execute(text("ALTER TABLE teams ADD COLUMN stripe_checkout_session_id VARCHAR(255)"))
                print("  added: teams.stripe_checkout_session_id")
            conn.execute(
                text(
                    "CREATE UNIQUE INDEX IF NOT EXISTS uq_teams_stripe_checkout_session_id "
                    "ON teams (stripe_checkout_session_id)"
                )
            )
            print("  ensured: uq_teams_stripe_checkout_session_id")
    print("Done.")


if __name__ == "__main__":
    main()
