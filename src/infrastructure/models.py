"""
SQLAlchemy ORM models.

Tables
------
* ``users``          -- riders and admins (profile fields inline)
* ``auth_sessions``  -- opaque bearer tokens issued at sign-in
* ``rides``          -- one row per booking request
* ``notifications``  -- user-facing events ("ride confirmed", ...)

Indexes
-------
* **B-Tree** on ``rides.user_id``, ``rides.status``, ``rides.created_at``
  and ``notifications.user_id`` for the owner-scoped, newest-first queries
  used by the history and notification views.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)

from .database import Base
from src.domain.enums import RideStatus


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(120), nullable=False, default="")
    phone = Column(String(32), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class AuthSessionModel(Base):
    __tablename__ = "auth_sessions"

    token = Column(String(128), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_auth_sessions_user", "user_id"),)


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)

    pickup_location = Column(Text, nullable=False)
    drop_location = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    vehicle_type = Column(String(20), nullable=False, default="sedan")
    passengers = Column(Integer, nullable=False, default=1)

    status = Column(
        Enum(
            RideStatus,
            name="ridestatus",
            values_callable=lambda enum_cls: [m.value for m in enum_cls],
        ),
        default=RideStatus.UPCOMING,
        nullable=False,
    )
    amount = Column(Float, nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    payment_intent_id = Column(String(255), nullable=True)

    driver_name = Column(String(120), nullable=True)
    driver_rating = Column(Float, nullable=True)
    vehicle_number = Column(String(32), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_rides_user", "user_id"),
        Index("idx_rides_status", "status"),
        Index("idx_rides_created", "created_at"),
        Index("idx_rides_payment_intent", "payment_intent_id"),
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(40), nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    related_ride_id = Column(String(36), ForeignKey("rides.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_notifications_user", "user_id"),
        Index("idx_notifications_created", "created_at"),
    )
