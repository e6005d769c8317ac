"""
Delete the account with the given email, its pending verification code and team memberships.
Teams the user created are kept (created_by is cleared).
Usage: python scripts/delete_users_by_email.py <email>
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy.exc import SQLAlchemyError

from trackroster.database import SessionLocal
from trackroster.models.team import Team, TeamMember
from trackroster.models.user import User
from trackroster.models.verification_code import VerificationCode


def main():
    email = (sys.argv[1] if len(sys.argv) > 1 else "").strip().lower()
    if not email:
        print("Usage: python scripts/delete_users_by_email.py <email>")
        sys.exit(1)

    db = SessionLocal()
    try:
        codes = db.query(VerificationCode).filter(VerificationCode.email == email).delete(synchronize_session=False)
        user = db.query(User).filter(User.email == email).first()
        if not user:
            db.commit()
            print(f"No user found with email: {email} (removed {codes} pending code(s))")
            return

        uid = user.id
        memberships = db.query(TeamMember).filter(TeamMember.user_id == uid).delete(synchronize_session=False)
        db.query(Team).filter(Team.created_by == uid).update({Team.created_by: None}, synchronize_session=False)
        db.delete(user)
        db.commit()
        print(f"Deleted user: {email} (id={uid}, memberships={memberships}, pending codes={codes})")
    except SQLAlchemyError as e:
        db.rollback()
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
