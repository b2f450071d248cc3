"""
Create the society administrator account.
Usage: python scripts/create_admin.py --username admin --password <secret>
"""
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from app.core.security import get_password_hash
from app.db.base import SessionLocal
from app.models.user import UserAccount, UserRoleEnum


def create_admin(username: str = "admin", password: str = "admin123"):
    """Create an admin account unless the username is taken."""
    db = SessionLocal()
    try:
        existing = db.query(UserAccount).filter(UserAccount.username == username).first()
        if existing:
            print(f"Account {username} already exists!")
            return

        db.add(UserAccount(
            username=username,
            password_hash=get_password_hash(password),
            role=UserRoleEnum.ADMIN,
            must_change_password=False,
        ))
        db.commit()
        print(f"Admin account {username} created")
    finally:
        db.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Create the administrator account")
    parser.add_argument("--username", default="admin", help="Admin username")
    parser.add_argument("--password", default="admin123", help="Admin password")

    args = parser.parse_args()

    create_admin(username=args.username, password=args.password)
