"""Tests for identity providers."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import httpx
import pytest

from forumkit.identity import HttpUserProvider, StaticUserProvider, User, XPRank
from forumkit.settings import Settings

ALICE = {"id": 1, "display_name": "Alice", "profile_picture_url": None, "created_at": "2023-01-15T00:00:00"}


def _provider(handler) -> tuple[HttpUserProvider, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = httpx.Client(base_url="https://identity.example.com", transport=httpx.MockTransport(record))
    return HttpUserProvider(client, MagicMock()), requests


class TestHttpUserProvider:
    def test_get_user(self):
        provider, requests = _provider(lambda r: httpx.Response(200, json=ALICE))

        user = provider.get_user(1)

        assert user == User(id=1, display_name="Alice", created_at=datetime(2023, 1, 15))
        assert requests[0].url.path == "/users/1"

    def test_get_user_not_found(self):
        provider, _ = _provider(lambda r: httpx.Response(404))
        assert provider.get_user(99) is None

    def test_get_users_by_ids_single_request(self):
        bob = {**ALICE, "id": 2, "display_name": "Bob"}
        provider, requests = _provider(lambda r: httpx.Response(200, json={"data": [ALICE, bob]}))

        users = provider.get_users_by_ids([2, 1, 2])

        assert sorted(users) == [1, 2]
        assert users[2].display_name == "Bob"
        assert len(requests) == 1
        assert requests[0].url.params["ids"] == "1,2"

    def test_empty_ids_skip_request(self):
        provider, requests = _provider(lambda r: httpx.Response(500))

        assert provider.get_users_by_ids([]) == {}
        assert provider.get_users_access_level([]) == {}
        assert provider.get_users_xp_and_rank([]) == {}
        assert requests == []

    def test_access_levels(self):
        provider, requests = _provider(lambda r: httpx.Response(200, json={"1": "pack", "2": None}))

        assert provider.get_users_access_level([1, 2]) == {1: "pack"}
        assert requests[0].url.path == "/users/access-levels"

    def test_single_access_level(self):
        provider, _ = _provider(lambda r: httpx.Response(200, json={"3": "edge"}))
        assert provider.get_user_access_level(3) == "edge"

    def test_xp_and_rank(self):
        provider, _ = _provider(lambda r: httpx.Response(200, json={"1": {"xp": 10, "xp_rank": "Novice"}}))
        assert provider.get_users_xp_and_rank([1]) == {1: XPRank(xp=10, xp_rank="Novice")}

    def test_current_id(self):
        provider, requests = _provider(lambda r: httpx.Response(200, json={"id": 42}))

        assert provider.get_current_id() == 42
        assert requests[0].url.path == "/users/me"

    def test_server_error_propagates(self):
        provider, requests = _provider(lambda r: httpx.Response(500, text="boom"))

        with pytest.raises(httpx.HTTPStatusError):
            provider.get_users_by_ids([1])
        assert len(requests) == 1

    def test_throttled_request_retried(self):
        responses = iter([httpx.Response(429), httpx.Response(200, json={"1": "pack"})])
        provider, requests = _provider(lambda r: next(responses))

        assert provider.get_users_access_level([1]) == {1: "pack"}
        assert len(requests) == 2

    def test_persistent_throttling_gives_up(self):
        provider, requests = _provider(lambda r: httpx.Response(503))

        with pytest.raises(httpx.HTTPStatusError):
            provider.get_current_id()
        assert len(requests) == 3

    def test_from_settings_sends_bearer_token(self):
        settings = Settings(identity_base_url="https://identity.example.com", identity_api_token="s3cret")

        provider = HttpUserProvider.from_settings(settings, MagicMock())

        assert provider.client.headers["Authorization"] == "Bearer s3cret"
        assert provider.client.base_url.host == "identity.example.com"
        provider.close()


class TestStaticUserProvider:
    def test_lookups(self):
        provider = StaticUserProvider(
            [User(id=1, display_name="Alice", created_at=datetime(2023, 1, 1))],
            access_levels={1: "admin"},
            current_id=1,
        )

        assert provider.get_user(1).display_name == "Alice"
        assert provider.get_user(2) is None
        assert provider.get_users_by_ids([1, 2]) == {1: provider.get_user(1)}
        assert provider.get_user_access_level(1) == "admin"
        assert provider.get_users_xp_and_rank([1]) == {}
        assert provider.get_current_id() == 1
