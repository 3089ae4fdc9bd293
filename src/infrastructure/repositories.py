"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Rides and notifications are always looked up
together with their owner so that one rider can never read or touch
another rider's rows.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import AuthSessionModel, NotificationModel, RideModel, UserModel
from src.domain.enums import RideStatus


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        email: str,
        password_hash: str,
        full_name: str,
        phone: str | None = None,
        is_admin: bool = False,
    ) -> UserModel:
        user = UserModel(
            email=email.lower(),
            password_hash=password_hash,
            full_name=full_name,
            phone=phone,
            is_admin=is_admin,
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email.lower())
        )
        return result.scalar_one_or_none()


class AuthSessionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self, *, token: str, user_id: str, expires_at: datetime
    ) -> AuthSessionModel:
        auth = AuthSessionModel(token=token, user_id=user_id, expires_at=expires_at)
        self.session.add(auth)
        await self.session.flush()
        return auth

    async def get(self, token: str) -> Optional[AuthSessionModel]:
        return await self.session.get(AuthSessionModel, token)

    async def revoke(self, token: str) -> None:
        await self.session.execute(
            delete(AuthSessionModel).where(AuthSessionModel.token == token)
        )


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, ride: RideModel) -> RideModel:
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: str) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def get_owned(self, ride_id: str, user_id: str) -> Optional[RideModel]:
        result = await self.session.execute(
            select(RideModel).where(
                RideModel.id == ride_id, RideModel.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self, user_id: str, status: RideStatus | None = None
    ) -> list[RideModel]:
        query = select(RideModel).where(RideModel.user_id == user_id)
        if status is not None:
            query = query.where(RideModel.status == status)
        result = await self.session.execute(
            query.order_by(RideModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_all(
        self, status: RideStatus | None = None, limit: int = 100, offset: int = 0
    ) -> list[RideModel]:
        query = select(RideModel)
        if status is not None:
            query = query.where(RideModel.status == status)
        result = await self.session.execute(
            query.order_by(RideModel.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        user_id: str,
        title: str,
        message: str,
        type: str,
        related_ride_id: str | None = None,
    ) -> NotificationModel:
        note = NotificationModel(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            related_ride_id=related_ride_id,
        )
        self.session.add(note)
        await self.session.flush()
        return note

    async def get_owned(
        self, notification_id: str, user_id: str
    ) -> Optional[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.id == notification_id,
                NotificationModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def latest_for_user(
        self, user_id: str, limit: int = 10
    ) -> list[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel)
            .where(NotificationModel.user_id == user_id)
            .order_by(NotificationModel.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_unread(self, user_id: str) -> list[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel).where(
                NotificationModel.user_id == user_id,
                NotificationModel.read.is_(False),
            )
        )
        return list(result.scalars().all())
