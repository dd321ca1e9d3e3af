"""Identity provider contract and implementations.

The forum never owns user profiles; it asks a provider, always in batches
when decorating collections.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Protocol

import httpx
import structlog
from pydantic import BaseModel
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
)

from forumkit.settings import Settings
from forumkit.utils.http import create_http_client


class User(BaseModel):
    id: int
    display_name: str
    profile_picture_url: str | None = None
    created_at: datetime


class XPRank(BaseModel):
    xp: int = 0
    xp_rank: str | None = None


class UserProvider(Protocol):
    def get_user(self, user_id: int) -> User | None: ...

    def get_users_by_ids(self, user_ids: Iterable[int]) -> dict[int, User]: ...

    def get_user_access_level(self, user_id: int) -> str | None: ...

    def get_users_access_level(self, user_ids: Iterable[int]) -> dict[int, str]: ...

    def get_users_xp_and_rank(self, user_ids: Iterable[int]) -> dict[int, XPRank]: ...

    def get_current_id(self) -> int | None: ...


class StaticUserProvider:
    """Provider over in-memory mappings (fixtures, local runs)."""

    def __init__(
        self,
        users: Iterable[User] = (),
        *,
        access_levels: Mapping[int, str] | None = None,
        xp: Mapping[int, XPRank] | None = None,
        current_id: int | None = None,
    ) -> None:
        self.users = {u.id: u for u in users}
        self.access_levels = dict(access_levels or {})
        self.xp = dict(xp or {})
        self.current_id = current_id

    def get_user(self, user_id: int) -> User | None:
        return self.users.get(user_id)

    def get_users_by_ids(self, user_ids: Iterable[int]) -> dict[int, User]:
        return {i: self.users[i] for i in user_ids if i in self.users}

    def get_user_access_level(self, user_id: int) -> str | None:
        return self.access_levels.get(user_id)

    def get_users_access_level(self, user_ids: Iterable[int]) -> dict[int, str]:
        return {i: self.access_levels[i] for i in user_ids if i in self.access_levels}

    def get_users_xp_and_rank(self, user_ids: Iterable[int]) -> dict[int, XPRank]:
        return {i: self.xp[i] for i in user_ids if i in self.xp}

    def get_current_id(self) -> int | None:
        return self.current_id


def _ids_param(user_ids: Iterable[int]) -> str:
    return ",".join(str(i) for i in sorted(set(user_ids)))


def _should_retry(retry_state) -> bool:
    exc = retry_state.outcome.exception()
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (429, 503)


@retry(
    retry=_should_retry,
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    reraise=True,
)
def _fetch(client: httpx.Client, path: str, params: dict | None, log: structlog.stdlib.BoundLogger) -> httpx.Response:
    resp = client.get(path, params=params)
    if resp.status_code in (429, 503):
        log.warning("identity.throttled", path=path, status=resp.status_code)
    resp.raise_for_status()
    return resp


class HttpUserProvider:
    """Provider backed by the identity service's REST API.

    Endpoints::

        GET /users/{id}                  -> user
        GET /users?ids=1,2               -> {"data": [user, ...]}
        GET /users/access-levels?ids=1,2 -> {"1": "pack", ...}
        GET /users/xp?ids=1,2            -> {"1": {"xp": 10, "xp_rank": "Novice"}, ...}
        GET /users/me                    -> {"id": 1}

    Throttled requests (429, 503) are retried briefly; every other HTTP failure
    propagates as ``httpx.HTTPError``.
    """

    def __init__(self, client: httpx.Client, log: structlog.stdlib.BoundLogger) -> None:
        self.client = client
        self.log = log

    @classmethod
    def from_settings(cls, settings: Settings, log: structlog.stdlib.BoundLogger) -> HttpUserProvider:
        client = create_http_client(
            base_url=settings.identity_base_url,
            api_token=settings.identity_api_token or None,
            timeout=settings.identity_timeout,
        )
        return cls(client, log)

    def close(self) -> None:
        self.client.close()

    def _get_json(self, path: str, **params) -> object:
        return _fetch(self.client, path, params or None, self.log).json()

    def get_user(self, user_id: int) -> User | None:
        try:
            resp = _fetch(self.client, f"/users/{user_id}", None, self.log)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return None
            raise
        return User.model_validate(resp.json())

    def get_users_by_ids(self, user_ids: Iterable[int]) -> dict[int, User]:
        ids = _ids_param(user_ids)
        if not ids:
            return {}
        data = self._get_json("/users", ids=ids)
        users = [User.model_validate(item) for item in data.get("data", [])]
        self.log.debug("identity.users_fetched", requested=ids.count(",") + 1, found=len(users))
        return {u.id: u for u in users}

    def get_user_access_level(self, user_id: int) -> str | None:
        return self.get_users_access_level([user_id]).get(user_id)

    def get_users_access_level(self, user_ids: Iterable[int]) -> dict[int, str]:
        ids = _ids_param(user_ids)
        if not ids:
            return {}
        data = self._get_json("/users/access-levels", ids=ids)
        return {int(k): v for k, v in data.items() if v is not None}

    def get_users_xp_and_rank(self, user_ids: Iterable[int]) -> dict[int, XPRank]:
        ids = _ids_param(user_ids)
        if not ids:
            return {}
        data = self._get_json("/users/xp", ids=ids)
        return {int(k): XPRank.model_validate(v) for k, v in data.items()}

    def get_current_id(self) -> int | None:
        data = self._get_json("/users/me")
        return data.get("id")
