"""
Unit tests for the MongoDB client lifecycle in dependencies.

Tests cover:
- Client kept after a successful ping
- Client closed and not kept when the startup ping fails
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from api.src import dependencies


@pytest.fixture(autouse=True)
def no_client(monkeypatch):
    monkeypatch.setattr(dependencies, "_client", None)


def fake_client(ping_error=None):
    client = MagicMock()
    client.admin.command = AsyncMock(side_effect=ping_error)
    client.close = AsyncMock()
    return client


class TestInitMongo:
    @pytest.mark.asyncio
    async def test_client_kept_after_ping(self):
        client = fake_client()

        with patch("api.src.dependencies.AsyncMongoClient", return_value=client):
            result = await dependencies.init_mongo()

        assert result is client
        assert dependencies.is_database_ready()
        client.admin.command.assert_awaited_once_with("ping")
        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_ping_closes_client(self):
        client = fake_client(ServerSelectionTimeoutError("no servers"))

        with patch("api.src.dependencies.AsyncMongoClient", return_value=client):
            with pytest.raises(ServerSelectionTimeoutError):
                await dependencies.init_mongo()

        client.close.assert_awaited_once()
        assert not dependencies.is_database_ready()
