#!/usr/bin/env python3
"""
Console User Seed Script
Creates a console user with one or more reviewer roles.

Usage:
    python -m scripts.seed_users <email> <username> <password> <roles>

Roles are comma-separated: dev, qc, cto, ceo, admin.

Example:
    python -m scripts.seed_users qc@studio.dev qc-lead securepassword123 qc
    python -m scripts.seed_users boss@studio.dev boss securepassword123 cto,admin
"""
import sys
from typing import List
from uuid import uuid4

from sqlalchemy.orm import Session
from qc_console.database import SessionLocal, init_db
from qc_console.models.db_models import UserDB
from qc_console.auth import ROLE_PERMISSIONS, hash_password


def seed_user(email: str, username: str, password: str, roles: List[str]) -> bool:
    """Create a user with `roles`, or grant `roles` to an existing user with this email."""
    # Ensure tables exist
    init_db()

    db: Session = SessionLocal()
    try:
        existing = db.query(UserDB).filter(
            (UserDB.email == email) | (UserDB.username == username)
        ).first()

        if existing:
            if existing.email != email:
                print(f"Error: Username '{username}' already exists.")
                return False
            merged = sorted(set(existing.roles or []) | set(roles))
            if merged == sorted(existing.roles or []):
                print(f"User '{email}' already has roles: {', '.join(merged)}")
                return True
            existing.roles = merged
            db.commit()
            print(f"Granted roles to existing user '{email}': {', '.join(merged)}")
            return True

        user = UserDB(
            id=str(uuid4()),
            email=email,
            username=username,
            password_hash=hash_password(password),
            roles=roles,
        )

        db.add(user)
        db.commit()

        print("User created successfully!")
        print(f"  Email: {email}")
        print(f"  Username: {username}")
        print(f"  Roles: {', '.join(roles)}")
        return True

    except Exception as e:
        print(f"Error creating user: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) != 5:
        print(__doc__)
        sys.exit(1)

    email, username, password, role_arg = sys.argv[1:5]
    roles = [r.strip() for r in role_arg.split(",") if r.strip()]

    # Basic validation
    if len(password) < 8:
        print("Error: Password must be at least 8 characters.")
        sys.exit(1)

    if "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    unknown = [r for r in roles if r not in ROLE_PERMISSIONS]
    if not roles or unknown:
        print(f"Error: Roles must be from: {', '.join(ROLE_PERMISSIONS)}")
        sys.exit(1)

    success = seed_user(email, username, password, roles)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
