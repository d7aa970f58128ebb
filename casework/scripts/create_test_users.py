import asyncio

from sqlalchemy import select

from casework.database import AsyncSessionLocal
from casework.auth.models import User, UserRole
from casework.auth.security import create_access_token

TEST_USERS = [
    ("editor@casework.local", "Test Editor", UserRole.EDITOR, False),
    ("analyst1@casework.local", "First Analyst", UserRole.ANALYST, False),
    ("analyst2@casework.local", "Second Analyst", UserRole.ANALYST, False),
    ("verifier@casework.local", "Independent Verifier", UserRole.VIEWER, True),
    ("admin@casework.local", "Administrator", UserRole.ADMIN, True),
]

async def create_test_users():
    async with AsyncSessionLocal() as session:
        for email, full_name, role, is_verifier in TEST_USERS:
            result = await session.execute(select(User).where(User.email == email))
            user = result.scalars().first()
            if not user:
                user = User(email=email, full_name=full_name, role=role, is_verifier=is_verifier)
                session.add(user)
                print(f"Created User: {email} ({role.value})")
            else:
                print(f"User exists: {email}")
        await session.commit()

        # Bearer tokens for local testing; issuing tokens is owned upstream
        for email, *_ in TEST_USERS:
            print(f"{email}: {create_access_token({'sub': email})}")

if __name__ == "__main__":
    asyncio.run(create_test_users())
