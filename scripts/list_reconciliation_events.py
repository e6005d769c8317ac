"""
List paid checkouts that could not be provisioned (e.g. the slug was taken by a concurrent
checkout), or mark one resolved after handling it with the customer (refund, rename, ...).
Usage:
  python scripts/list_reconciliation_events.py
  python scripts/list_reconciliation_events.py --resolve <checkout_session_id>
"""
import argparse
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from trackroster.database import SessionLocal
from trackroster.models.provisioning_event import ProvisioningEvent, ProvisioningStatus
from trackroster.services.audit_log import create_log, CATEGORY_RECONCILIATION


def _list(db) -> int:
    rows = (
        db.query(ProvisioningEvent)
        .filter(
            ProvisioningEvent.status == ProvisioningStatus.needs_reconciliation,
            ProvisioningEvent.resolved_at.is_(None),
        )
        .order_by(ProvisioningEvent.created_at.asc())
        .all()
    )
    if not rows:
        print("No unresolved reconciliation cases.")
        return 0
    for ev in rows:
        print(f"{ev.created_at}  {ev.checkout_session_id}  mode={ev.mode}  event={ev.stripe_event_id}  {ev.detail}")
    print(f"{len(rows)} unresolved case(s).")
    return 0


def _resolve(db, session_id: str) -> int:
    ev = db.query(ProvisioningEvent).filter(ProvisioningEvent.checkout_session_id == session_id).first()
    if not ev or ev.status != ProvisioningStatus.needs_reconciliation:
        print(f"No reconciliation case for checkout session: {session_id}")
        return 1
    if ev.resolved_at:
        print(f"Already resolved at {ev.resolved_at}")
        return 0
    ev.resolved_at = datetime.now(timezone.utc)
    create_log(
        db,
        CATEGORY_RECONCILIATION,
        "Reconciliation resolved",
        f"Checkout {session_id} marked resolved by operator.",
        meta={"checkout_session_id": session_id},
    )
    db.commit()
    print(f"Resolved: {session_id}")
    return 0


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--resolve", metavar="CHECKOUT_SESSION_ID")
    args = parser.parse_args()

    db = SessionLocal()
    try:
        if args.resolve:
            return _resolve(db, args.resolve.strip())
        return _list(db)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
