"""Read-only lookup of display identity for leaderboards and certificates.

Profiles live in another service. ``HttpUserDirectory`` asks it over HTTP; when
no URL is configured (local dev, tests) ``StaticUserDirectory`` projects the
bare user id.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel

from app.Core.config import get_settings

logger = logging.getLogger("integrations.user_directory")


class UserSummary(BaseModel):
    id: str
    username: Optional[str] = None
    display_name: str
    avatar_url: Optional[str] = None


class UserDirectory:
    def resolve(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        raise NotImplementedError

    def get(self, user_id: str) -> UserSummary:
        return self.resolve([user_id])[user_id]

    @staticmethod
    def fallback(user_id: str) -> UserSummary:
        return UserSummary(id=user_id, username=user_id, display_name=user_id)


class StaticUserDirectory(UserDirectory):
    def __init__(self, known: Optional[Dict[str, UserSummary]] = None) -> None:
        self._known = dict(known or {})

    def add(self, summary: UserSummary) -> None:
        self._known[summary.id] = summary

    def resolve(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        return {uid: self._known.get(uid) or self.fallback(uid) for uid in user_ids}


class HttpUserDirectory(UserDirectory):
    """Batch lookup against ``GET {base}/users?ids=a,b,c``."""

    def __init__(self, base_url: str, timeout: float = 3.0, client: Optional[httpx.Client] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def _shape(self, row: dict) -> UserSummary:
        uid = str(row.get("id"))
        first = (row.get("first_name") or "").strip()
        last = (row.get("last_name") or "").strip()
        name = row.get("display_name") or row.get("full_name") or f"{first} {last}".strip() or row.get("username") or uid
        return UserSummary(
            id=uid,
            username=row.get("username"),
            display_name=name,
            avatar_url=row.get("avatar_url") or row.get("avatar"),
        )

    def resolve(self, user_ids: Iterable[str]) -> Dict[str, UserSummary]:
        ids: List[str] = list(dict.fromkeys(str(u) for u in user_ids))
        if not ids:
            return {}
        found: Dict[str, UserSummary] = {}
        try:
            resp = self._client.get(f"{self.base_url}/users", params={"ids": ",".join(ids)})
            resp.raise_for_status()
            payload = resp.json()
            rows = payload.get("items", payload) if isinstance(payload, dict) else payload
            for row in rows or []:
                summary = self._shape(row)
                found[summary.id] = summary
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("user_directory_lookup_failed ids=%d error=%s", len(ids), exc)
        return {uid: found.get(uid) or self.fallback(uid) for uid in ids}


_directory: Optional[UserDirectory] = None


def get_user_directory() -> UserDirectory:
    global _directory
    if _directory is None:
        settings = get_settings()
        if settings.user_directory_url:
            _directory = HttpUserDirectory(settings.user_directory_url, timeout=settings.user_directory_timeout)
        else:
            _directory = StaticUserDirectory()
    return _directory


__all__ = [
    "UserSummary",
    "UserDirectory",
    "StaticUserDirectory",
    "HttpUserDirectory",
    "get_user_directory",
]
