"""Explicit auth session shared by the client flows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from src.domain.errors import CabBookingError, Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserInfo:
    id: str
    email: str
    full_name: str = ""
    phone: Optional[str] = None
    is_admin: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserInfo:
        return cls(
            id=data["id"],
            email=data["email"],
            full_name=data.get("full_name") or "",
            phone=data.get("phone"),
            is_admin=bool(data.get("is_admin")),
        )


@dataclass(frozen=True)
class Session:
    access_token: str
    expires_at: datetime
    user: UserInfo

    @classmethod
    def from_auth_response(cls, data: dict[str, Any]) -> Session:
        return cls(
            access_token=data["access_token"],
            expires_at=datetime.fromisoformat(
                str(data["expires_at"]).replace("Z", "+00:00")
            ),
            user=UserInfo.from_dict(data["user"]),
        )


Listener = Callable[[Optional[Session]], None]


class SessionContext:
    """
    Holds the signed-in user for one client.

    Created once per client and passed to the flows that need it.
    Listeners are called with the new session (or ``None``) on every change.
    """

    def __init__(self, api):
        self.api = api
        self._session: Optional[Session] = None
        self._listeners: list[Listener] = []

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user(self) -> Optional[UserInfo]:
        return self._session.user if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, session: Optional[Session]) -> None:
        self._session = session
        self.api.token = session.access_token if session else None
        for listener in list(self._listeners):
            listener(session)

    def require_user(self) -> UserInfo:
        if self._session is None:
            raise Unauthenticated("No active session")
        return self._session.user

    async def restore(self, token: str) -> Optional[Session]:
        """Resume a stored token; an expired or unknown one leaves us signed out."""
        self.api.token = token
        try:
            data = await self.api.get_session()
        except Unauthenticated as e:
            logger.info("Stored session rejected: %s", e)
            self._set(None)
            return None
        except CabBookingError as e:
            logger.error("Could not restore session: %s", e)
            self._set(None)
            return None
        self._set(Session.from_auth_response(data))
        return self._session

    async def sign_in(self, email: str, password: str) -> Session:
        data = await self.api.sign_in(email, password)
        self._set(Session.from_auth_response(data))
        logger.info("Signed in as %s", self._session.user.email)
        return self._session

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: str,
        phone: Optional[str] = None,
    ) -> Session:
        data = await self.api.sign_up(email, password, full_name, phone)
        self._set(Session.from_auth_response(data))
        logger.info("Signed up as %s", self._session.user.email)
        return self._session

    async def sign_out(self) -> None:
        try:
            await self.api.sign_out()
        except CabBookingError as e:
            logger.error("Sign-out request failed: %s", e)
        finally:
            self._set(None)
