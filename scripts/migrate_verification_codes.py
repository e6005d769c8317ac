"""
Create verification_codes table (one live signup code per email).
For a NEW database: not needed; trackroster.models.verification_code.VerificationCode is in create_all.
Run once on an EXISTING DB: python scripts/migrate_verification_codes.py (from project root)
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy import inspect
from trackroster.database import engine
from trackroster.models.verification_code import VerificationCode


def main():
    insp = inspect(engine)
    if "verification_codes" in insp.get_table_names():
        print("  skip (exists): verification_codes")
    else:
        VerificationCode.__table__.create(engine)
        print("  created: verification_codes")
    print("Done.")


if __name__ == "__main__":
    main()
