from typing import List

from sqlalchemy import select

from core.errors import ConflictingStateError, ValidationError
from db.users import User
from .transaction import TransactionalService


class UserService(TransactionalService):

    async def create_user(self, username: str) -> User:
        username = (username or "").strip()
        if not username:
            raise ValidationError("MISSING_USERNAME", "username is required")

        async with self.transaction("create_user") as session:
            res = await session.execute(select(User.id).where(User.username == username))
            if res.scalar_one_or_none() is not None:
                raise ConflictingStateError("USERNAME_TAKEN", f"Username {username!r} already exists")
            user = User(username=username)
            session.add(user)
            await session.flush()

        self.logger.info("user_created", user_id=user.id, username=username)
        return user

    async def list_users(self) -> List[User]:
        async with self.transaction("list_users") as session:
            res = await session.execute(select(User).order_by(User.id))
            return list(res.scalars().all())

    async def get_user(self, user_id: int) -> User:
        async with self.transaction("get_user") as session:
            return await self._get(session, User, user_id)
