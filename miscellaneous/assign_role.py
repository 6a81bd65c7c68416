#!/usr/bin/env python3
"""
Script to assign a role to a profile and issue a development token for it.

Profiles normally appear on first login through the identity provider; this
creates one if needed so organizers and admins can be set up locally.
"""

import argparse
import asyncio
import sys
import os
from datetime import timedelta
from uuid import uuid4

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from evently_ticketing.database import init_database, close_database, get_db_session
from evently_ticketing.models.user import User, UserRole
from evently_ticketing.utils.auth import create_access_token


async def assign_role(email: str, role: UserRole, full_name: str, issue_token: bool):
    """Create or update the profile for ``email`` with ``role``."""
    await init_database()
    try:
        async with get_db_session() as db:
            result = await db.execute(select(User).where(User.email == email))
            user = result.scalar_one_or_none()

            if user is None:
                user = User(id=uuid4(), email=email, full_name=full_name or email.split("@")[0], role=role)
                db.add(user)
                print(f"✅ Created profile {email} with role {role.value}")
            else:
                user.role = role
                print(f"✅ {email} is now {role.value}")
            await db.flush()
            user_id = str(user.id)
    finally:
        await close_database()

    print(f"   ID: {user_id}")
    if issue_token:
        token = create_access_token(
            {"sub": user_id, "email": email},
            expires_delta=timedelta(days=7)
        )
        print(f"\n🔑 Development token (7 days):\n{token}")


def main():
    parser = argparse.ArgumentParser(description="Assign a role to an Evently profile")
    parser.add_argument("email")
    parser.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.ORGANIZER.value)
    parser.add_argument("--name", default="", help="Display name for a new profile")
    parser.add_argument("--token", action="store_true", help="Print a signed development token")
    args = parser.parse_args()

    asyncio.run(assign_role(args.email.strip().lower(), UserRole(args.role), args.name, args.token))


if __name__ == "__main__":
    main()
