#!/usr/bin/env python3
"""
Create (or reset) an owner user and print an access token for the API.
Run inside the backend container: docker-compose exec backend python create_owner.py
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from cashledger.core.database import SessionLocal, init_db
from cashledger.core.roles import Role
from cashledger.core.security import create_token, hash_password
from cashledger.models.user import User


def create_owner(email: str, name: str, password: str) -> None:
    init_db()
    db = SessionLocal()
    try:
        owner = db.query(User).filter(User.email == email).first()
        if owner:
            owner.role = Role.owner.value
            owner.is_active = True
            owner.hashed_password = hash_password(password)
            action = "updated"
        else:
            owner = User(email=email, name=name, hashed_password=hash_password(password), role=Role.owner.value)
            db.add(owner)
            action = "created"
        db.commit()
        db.refresh(owner)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    print(f"\n✓ Owner user {action}")
    print(f"\n{'='*50}")
    print("CREDENTIALS:")
    print(f"{'='*50}")
    print(f"Email: {owner.email}")
    print(f"Password: {password}")
    print(f"Role: {owner.role}")
    print(f"Access token: {create_token(str(owner.id))}")
    print(f"{'='*50}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", default="owner@demo.com")
    parser.add_argument("--name", default="Owner")
    parser.add_argument("--password", default="admin123")
    args = parser.parse_args()
    create_owner(args.email, args.name, args.password)
