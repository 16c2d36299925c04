import logging

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from tasklist.core.config import Settings
from tasklist.core.errors import UsernameTaken
from tasklist.core.security import hash_password, verify_password
from tasklist.models import User

logger = logging.getLogger(__name__)


class UserService:
    @staticmethod
    async def find_by_username(username: str, db: AsyncSession) -> User | None:
        result = await db.exec(select(User).where(User.username == username))
        return result.first()

    @staticmethod
    async def create_user(
        username: str,
        password: str,
        db: AsyncSession,
        settings: Settings,
        roles: list[str] | None = None,
    ) -> User:
        """Create a user with a hashed password. Raises UsernameTaken."""
        if await UserService.find_by_username(username, db):
            raise UsernameTaken(f"username {username!r} exists")

        password_hash = await run_in_threadpool(
            hash_password, password, settings.bcrypt_rounds
        )
        user = User(
            username=username,
            password_hash=password_hash,
            roles=roles or ["user"],
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError as e:
            # lost a race against a concurrent registration
            await db.rollback()
            raise UsernameTaken(f"username {username!r} exists") from e
        await db.refresh(user)
        logger.info("Registered user %s", user.id)
        return user

    @staticmethod
    async def authenticate(
        username: str, password: str, db: AsyncSession
    ) -> User | None:
        """
        Return the user when the password matches, otherwise None.

        Unknown usernames and wrong passwords both give None; a broken stored
        hash raises InternalFailure.
        """
        user = await UserService.find_by_username(username, db)
        if not user:
            return None

        if not await run_in_threadpool(verify_password, password, user.password_hash):
            return None
        return user

    @staticmethod
    async def ensure_demo_user(db: AsyncSession, settings: Settings) -> User | None:
        """Make sure the demo account exists. Never runs in production."""
        if settings.is_production or not settings.seed_demo_user:
            return None

        existing = await UserService.find_by_username(settings.demo_username, db)
        if existing:
            return existing
        try:
            return await UserService.create_user(
                settings.demo_username, settings.demo_password, db, settings
            )
        except UsernameTaken:
            return await UserService.find_by_username(settings.demo_username, db)
