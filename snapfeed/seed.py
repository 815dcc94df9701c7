"""
Role and demo data seeder for SnapFeed

Creates:
- the default role hierarchy (user < moderator < admin), idempotently
- one admin and two regular demo accounts, each with a quota ledger

Run with ``python -m snapfeed.seed`` against a migrated database.
"""
import os
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from snapfeed.config import settings
from snapfeed.database import SessionLocal, transaction
from snapfeed.models.role import Role
from snapfeed.models.user import User
from snapfeed.utils.logger import logger
from snapfeed.utils.passwords import hash_password
from snapfeed.utils.quota import create_ledger, initial_quota

# name, level, description
DEFAULT_ROLES = [
    ("user", 1, "A user can create posts, comments and likes"),
    ("moderator", 2, "A moderator can edit other users' posts and manage tags"),
    ("admin", 3, "An admin can delete any content and assign roles"),
]

# name, display name, email, role
DEMO_USERS = [
    ("admin", "Admin", "admin@snapfeed.local", "admin"),
    ("alice", "Alice", "alice@snapfeed.local", "user"),
    ("bob", "Bob", "bob@snapfeed.local", "user"),
]


def ensure_default_roles(db: Session) -> int:
    """Insert any missing default role. Returns how many were created."""
    existing = {name for (name,) in db.query(Role.name).all()}
    missing = [r for r in DEFAULT_ROLES if r[0] not in existing]
    if not missing:
        return 0

    with transaction(db):
        for name, level, description in missing:
            db.add(Role(name=name, level=level, description=description))

    logger.info(f"Seeded roles: {', '.join(r[0] for r in missing)}", extra={"action": "seed_roles"})
    return len(missing)


def seed_demo_users(db: Session, password: str) -> List[User]:
    """Create the demo accounts that do not exist yet"""
    roles = {role.name: role for role in db.query(Role).all()}
    created = []

    for name, display_name, email, role_name in DEMO_USERS:
        if db.query(User).filter(User.email == email).first():
            continue
        with transaction(db):
            user = User(
                name=name,
                display_name=display_name,
                email=email,
                password_hash=hash_password(password),
                role_id=roles[role_name].id,
                activated_at=datetime.utcnow(),
            )
            db.add(user)
            db.flush()
            create_ledger(db, user.id, initial_quota(settings))
        created.append(user)

    return created


def main():
    password = os.getenv("SNAPFEED_DEMO_PASSWORD", "snapfeed-demo")

    db = SessionLocal()
    try:
        ensure_default_roles(db)
        users = seed_demo_users(db, password)
    finally:
        db.close()

    print("=" * 60)
    print("SnapFeed demo data")
    print("=" * 60)
    for name, _, email, role_name in DEMO_USERS:
        print(f"  {name:<8} {email:<28} role={role_name}")
    print(f"\nCreated {len(users)} new account(s). Password: {password}")


if __name__ == "__main__":
    main()
