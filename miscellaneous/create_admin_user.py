#!/usr/bin/env python3
"""
Create or promote a Parlomo admin user.

Usage:
    python miscellaneous/create_admin_user.py        # create an admin
    python miscellaneous/create_admin_user.py list   # list admins
"""

import asyncio
import sys
from getpass import getpass

from sqlalchemy import select

from parlomo_platform.database import init_database, close_database, get_db_session
from parlomo_platform.models import User, UserRole


async def create_admin_user():
    print("Parlomo - admin user creation")
    print("=" * 40)

    email = input("Email: ").strip().lower()
    first_name = input("First name: ").strip()
    last_name = input("Last name: ").strip()
    if not (email and first_name and last_name):
        print("Email, first name and last name are required")
        return

    password = getpass("Password: ").strip()
    if len(password) < 8:
        print("Password must be at least 8 characters")
        return
    if password != getpass("Confirm password: ").strip():
        print("Passwords do not match")
        return

    await init_database()
    try:
        async with get_db_session() as db:
            result = await db.execute(select(User).where(User.email == email))
            existing = result.scalar_one_or_none()

            if existing:
                if input(f"{email} already exists. Make it an admin? (y/N): ").strip().lower() == "y":
                    existing.role = UserRole.ADMIN
                    print(f"{email} is now an admin")
                return

            admin = User(
                email=email,
                first_name=first_name,
                last_name=last_name,
                role=UserRole.ADMIN,
                is_active=True,
            )
            admin.set_password(password)
            db.add(admin)
            await db.flush()
            print(f"Admin user created: {admin.email} ({admin.id})")
    finally:
        await close_database()


async def list_admin_users():
    await init_database()
    try:
        async with get_db_session() as db:
            result = await db.execute(select(User).where(User.role == UserRole.ADMIN).order_by(User.email))
            admins = result.scalars().all()
            if not admins:
                print("No admin users found")
            for user in admins:
                state = "active" if user.is_active else "inactive"
                print(f"{user.email}  {user.full_name}  {state}  {user.id}")
    finally:
        await close_database()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "list":
        asyncio.run(list_admin_users())
    else:
        asyncio.run(create_admin_user())
