"""Tests for the client session context."""

import httpx
import pytest

from src.client.api import CabApiClient
from src.client.session import SessionContext
from src.domain.errors import InvalidRequest, Unauthenticated, Unauthorized


class TestSessionContext:
    @pytest.mark.asyncio
    async def test_sign_up_notifies_listeners(self, api):
        session = SessionContext(api)
        seen = []
        session.subscribe(seen.append)

        await session.sign_up("rider@example.com", "secret123", "Riley Rider", "+1555")

        assert session.is_authenticated
        assert session.require_user().full_name == "Riley Rider"
        assert session.user.phone == "+1555"
        assert seen == [session.session]
        assert api.token == session.session.access_token

    @pytest.mark.asyncio
    async def test_sign_out_tears_down(self, api):
        session = SessionContext(api)
        seen = []
        await session.sign_up("rider@example.com", "secret123", "Riley Rider")
        unsubscribe = session.subscribe(seen.append)

        await session.sign_out()

        assert seen == [None]
        assert api.token is None
        with pytest.raises(Unauthenticated):
            session.require_user()

        unsubscribe()
        await session.sign_in("rider@example.com", "secret123")
        assert seen == [None]

    @pytest.mark.asyncio
    async def test_restore_valid_token(self, client, api):
        await SessionContext(api).sign_up("rider@example.com", "secret123", "Riley Rider")
        token = api.token

        fresh = SessionContext(CabApiClient(client))
        restored = await fresh.restore(token)
        assert restored is not None
        assert fresh.user.email == "rider@example.com"

    @pytest.mark.asyncio
    async def test_restore_unknown_token_signs_out(self, client):
        fresh = SessionContext(CabApiClient(client))
        assert await fresh.restore("not-a-token") is None
        assert not fresh.is_authenticated
        assert fresh.api.token is None

    @pytest.mark.asyncio
    async def test_restore_while_offline_stays_signed_out(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url="http://test"
        ) as http:
            fresh = SessionContext(CabApiClient(http))
            seen = []
            fresh.subscribe(seen.append)
            assert await fresh.restore("stored-token") is None

        assert not fresh.is_authenticated
        assert seen == [None]

    @pytest.mark.asyncio
    async def test_bad_credentials(self, api):
        session = SessionContext(api)
        await session.sign_up("rider@example.com", "secret123", "Riley Rider")
        await session.sign_out()
        with pytest.raises(Unauthenticated):
            await session.sign_in("rider@example.com", "wrong-password")
        assert not session.is_authenticated


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_conflict_and_validation(self, api):
        session = SessionContext(api)
        await session.sign_up("rider@example.com", "secret123", "Riley Rider")
        with pytest.raises(Unauthorized):
            await api.sign_up("rider@example.com", "secret123", "Again")
        with pytest.raises(InvalidRequest):
            await api.sign_up("not-an-email", "secret123", "Again")

    @pytest.mark.asyncio
    async def test_foreign_ride_is_unauthorized(self, api):
        await SessionContext(api).sign_up("rider@example.com", "secret123", "Riley Rider")
        with pytest.raises(Unauthorized):
            await api.get_ride("no-such-ride")
