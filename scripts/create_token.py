"""
Issue a bearer token for an existing user.
Usage: python scripts/create_token.py user@example.com
"""
import asyncio
import sys

from sqlalchemy import select

from muattrans.api.auth import create_access_token
from muattrans.database import AsyncSessionLocal, engine
from muattrans.models.user import User


async def issue(email: str) -> int:
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

    await engine.dispose()

    if not user:
        print(f"No user with email {email}")
        return 1

    print(create_access_token(data={"sub": user.id}))
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__.strip())
        sys.exit(2)
    sys.exit(asyncio.run(issue(sys.argv[1])))
