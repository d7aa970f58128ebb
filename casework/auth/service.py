from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from casework.auth import models, schemas
from casework.shared.errors import NotFoundError


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[models.User]:
        result = await self.db.execute(select(models.User).where(models.User.email == email))
        return result.scalars().first()

    async def get_user(self, user_id: UUID) -> models.User:
        user = await self.db.get(models.User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def create_user(self, user_create: schemas.UserCreate) -> models.User:
        db_user = models.User(
            email=user_create.email,
            full_name=user_create.full_name,
            role=user_create.role,
            is_verifier=user_create.is_verifier,
        )
        if user_create.verifier_max_concurrent is not None:
            db_user.verifier_max_concurrent = user_create.verifier_max_concurrent
        self.db.add(db_user)
        await self.db.commit()
        await self.db.refresh(db_user)
        return db_user
