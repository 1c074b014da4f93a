from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from redis import asyncio as aioredis
from datetime import datetime
from typing import Optional, List
import logging

from app.core.config import settings
from app.core.security import get_password_hash, verify_password, create_access_token
from app.modules.users.models import User, UserRole
from app.modules.users.schemas import UserCreateRequest, UserUpdateRequest

logger = logging.getLogger(__name__)


class UserService:
    """Service for staff accounts and sessions"""

    @staticmethod
    async def create_user(db: AsyncSession, data: UserCreateRequest) -> User:
        """Create a staff account"""
        existing = await db.execute(
            select(User).where(or_(User.username == data.username, User.email == data.email))
        )
        if existing.scalar_one_or_none():
            raise ValueError("Username or email already registered")

        user = User(
            username=data.username,
            email=data.email,
            hashed_password=get_password_hash(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone_number=data.phone_number,
            role=UserRole(data.role.value)
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        logger.info(f"Created {user.role.value} account {user.username}")
        return user

    @staticmethod
    async def get_user(db: AsyncSession, user_id: int) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_users(db: AsyncSession) -> List[User]:
        result = await db.execute(select(User).order_by(User.username))
        return list(result.scalars().all())

    @staticmethod
    async def update_user(db: AsyncSession, user_id: int, data: UserUpdateRequest) -> Optional[User]:
        user = await UserService.get_user(db, user_id)
        if not user:
            return None

        update_data = data.model_dump(exclude_unset=True)
        if "role" in update_data and update_data["role"] is not None:
            update_data["role"] = UserRole(update_data["role"])
        for field, value in update_data.items():
            setattr(user, field, value)

        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def authenticate_user(db: AsyncSession, username: str, password: str) -> Optional[User]:
        """Authenticate by username or email and password"""
        result = await db.execute(
            select(User).where(
                or_(
                    User.username == username.lower(),
                    User.email == username.lower()
                )
            )
        )
        user = result.scalar_one_or_none()

        if not user or not user.is_active:
            return None

        if not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login for {user.username}")
            return None

        user.last_login_at = datetime.utcnow()
        await db.commit()
        return user

    @staticmethod
    def create_token(user_id: int) -> dict:
        """Create an access token for the user"""
        return {
            "access_token": create_access_token(data={"sub": str(user_id)}),
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        }

    @staticmethod
    async def logout_user(redis: aioredis.Redis, token: str):
        """Logout user by blacklisting token"""
        await redis.setex(
            f"blacklist:{token}",
            settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "1"
        )

    @staticmethod
    async def ensure_first_admin(db: AsyncSession) -> Optional[User]:
        """Create the bootstrap admin when no users exist yet"""
        count = await db.execute(select(func.count(User.id)))
        if count.scalar():
            return None

        admin = User(
            username=settings.FIRST_ADMIN_USERNAME.lower(),
            email=settings.FIRST_ADMIN_EMAIL,
            hashed_password=get_password_hash(settings.FIRST_ADMIN_PASSWORD),
            first_name="System",
            last_name="Administrator",
            role=UserRole.ADMIN
        )
        db.add(admin)
        await db.commit()
        logger.info(f"Bootstrapped admin account {admin.username}")
        return admin
