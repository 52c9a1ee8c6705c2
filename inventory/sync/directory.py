"""Directory lookups: resolve usernames and display names to stable identities."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

_USER_FIELDS = "id,displayName,userPrincipalName,mail,officeLocation"


@dataclass(frozen=True)
class DirectoryUser:
    id: str
    display_name: str
    office_location: str | None = None
    email: str | None = None

    @classmethod
    def from_api(cls, data: dict) -> DirectoryUser:
        return cls(
            id=str(data["id"]),
            display_name=data.get("displayName") or "",
            office_location=data.get("officeLocation") or None,
            email=data.get("mail") or data.get("userPrincipalName") or None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "office_location": self.office_location,
            "email": self.email,
        }


def looks_like_display_name(name: str) -> bool:
    """``"Jane Doe"`` is a display name; ``"jdoe"`` is an account name."""
    return " " in name.strip()


class DirectoryService(ABC):
    """Best-effort batch lookups; unresolved names map to None."""

    @abstractmethod
    async def resolve_by_sam_account(self, names: list[str]) -> dict[str, DirectoryUser | None]:
        ...

    @abstractmethod
    async def resolve_by_display_name(self, names: list[str]) -> dict[str, DirectoryUser | None]:
        ...

    async def aclose(self) -> None:
        return None


class NullDirectoryService(DirectoryService):
    """Used when no directory is configured: nothing resolves."""

    async def resolve_by_sam_account(self, names):
        return {name: None for name in names}

    async def resolve_by_display_name(self, names):
        return {name: None for name in names}


class HttpDirectoryService(DirectoryService):
    """Graph-style ``/users`` API client.

    Account names are tried as ``name@<corporate domain>`` first, then by
    on-premises account name, then by UPN prefix. Display names are tried
    exactly, then by prefix. Lookups are best-effort: a transport or
    server error is logged and the name maps to None, like a name that
    simply is not found.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        email_domains: list[str] | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
    ):
        self.email_domains = email_domains if email_domains is not None else settings.email_domains
        self._owns_client = client is None
        headers = {"Accept": "application/json"}
        token = token if token is not None else settings.directory_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = client or httpx.AsyncClient(
            base_url=base_url or settings.directory_base_url or "",
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds or settings.directory_timeout_seconds),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _query(self, filter_expr: str, top: int | None = None) -> list[dict]:
        params = {"$filter": filter_expr, "$select": _USER_FIELDS}
        if top:
            params["$top"] = str(top)
        resp = await self.client.get("/users", params=params)
        resp.raise_for_status()
        return list(resp.json().get("value", []))

    def _prefer_corporate(self, users: list[dict]) -> dict | None:
        for user in users:
            mail = (user.get("mail") or user.get("userPrincipalName") or "").lower()
            if any(mail.endswith("@" + d.lower()) for d in self.email_domains):
                return user
        return users[0] if users else None

    async def _find_account(self, name: str) -> DirectoryUser | None:
        try:
            return await self._lookup_account(name)
        except httpx.HTTPError as exc:
            logger.warning("Directory lookup for account %r failed: %s", name, exc)
            return None

    async def _find_display_name(self, name: str) -> DirectoryUser | None:
        try:
            return await self._lookup_display_name(name)
        except httpx.HTTPError as exc:
            logger.warning("Directory lookup for display name %r failed: %s", name, exc)
            return None

    async def _lookup_account(self, name: str) -> DirectoryUser | None:
        uname = _escape(name)
        for domain in self.email_domains:
            email = f"{uname}@{domain}".lower()
            users = await self._query(f"userPrincipalName eq '{email}' or mail eq '{email}'")
            if users:
                return DirectoryUser.from_api(users[0])

        users = await self._query(f"onPremisesSamAccountName eq '{uname}'")
        if users:
            return DirectoryUser.from_api(users[0])

        users = await self._query(f"startswith(userPrincipalName,'{uname}')", top=5)
        chosen = self._prefer_corporate(users)
        return DirectoryUser.from_api(chosen) if chosen else None

    async def _lookup_display_name(self, name: str) -> DirectoryUser | None:
        escaped = _escape(name)
        users = await self._query(f"displayName eq '{escaped}'")
        if not users:
            users = await self._query(f"startswith(displayName,'{escaped}')", top=5)
            exact = [u for u in users if (u.get("displayName") or "").lower() == name.lower()]
            users = exact or users
        chosen = self._prefer_corporate(users)
        return DirectoryUser.from_api(chosen) if chosen else None

    async def resolve_by_sam_account(self, names):
        found = await asyncio.gather(*(self._find_account(n) for n in names))
        return dict(zip(names, found))

    async def resolve_by_display_name(self, names):
        found = await asyncio.gather(*(self._find_display_name(n) for n in names))
        return dict(zip(names, found))


def _escape(value: str) -> str:
    return value.strip().replace("'", "''")


class CachedDirectory:
    """TTL cache in front of a DirectoryService with in-flight de-duplication.

    Names are routed by :func:`looks_like_display_name`. Concurrent callers
    asking for the same name share one pending lookup.
    """

    def __init__(self, service: DirectoryService, ttl_seconds: float | None = None):
        self.service = service
        self.ttl_seconds = settings.directory_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries: dict[str, tuple[float, DirectoryUser | None]] = {}
        self._pending: dict[str, asyncio.Future] = {}

    def _cached(self, key: str, now: float) -> tuple[bool, DirectoryUser | None]:
        entry = self._entries.get(key)
        if entry is None:
            return False, None
        expires_at, user = entry
        if now >= expires_at:
            del self._entries[key]
            return False, None
        return True, user

    async def resolve(self, names: Iterable[str]) -> dict[str, DirectoryUser | None]:
        now = time.monotonic()
        result: dict[str, DirectoryUser | None] = {}
        waiting: dict[str, asyncio.Future] = {}
        to_fetch: dict[str, str] = {}

        for raw in names:
            name = raw.strip()
            if not name or name in result or name in waiting or name in to_fetch.values():
                continue
            key = name.lower()
            hit, user = self._cached(key, now)
            if hit:
                result[name] = user
            elif key in self._pending:
                waiting[name] = self._pending[key]
            else:
                to_fetch[key] = name

        if to_fetch:
            loop = asyncio.get_running_loop()
            futures = {key: loop.create_future() for key in to_fetch}
            self._pending.update(futures)
            try:
                fetched = await self._fetch(list(to_fetch.values()))
            except BaseException as exc:
                for key, fut in futures.items():
                    self._pending.pop(key, None)
                    if not fut.done():
                        fut.set_exception(exc)
                        # Retrieved here so an unobserved failure is not reported twice.
                        fut.exception()
                raise
            expires_at = time.monotonic() + self.ttl_seconds
            for key, name in to_fetch.items():
                user = fetched.get(name)
                self._entries[key] = (expires_at, user)
                self._pending.pop(key, None)
                futures[key].set_result(user)
                result[name] = user

        for name, fut in waiting.items():
            result[name] = await fut
        return result

    async def _fetch(self, names: list[str]) -> dict[str, DirectoryUser | None]:
        display = [n for n in names if looks_like_display_name(n)]
        accounts = [n for n in names if not looks_like_display_name(n)]
        found: dict[str, DirectoryUser | None] = {}
        if accounts:
            found.update(await self.service.resolve_by_sam_account(accounts))
        if display:
            found.update(await self.service.resolve_by_display_name(display))
        unresolved = [n for n in names if found.get(n) is None]
        if unresolved:
            logger.warning("Directory could not resolve %d of %d names: %s",
                           len(unresolved), len(names), ", ".join(unresolved[:10]))
        return found

    def clear(self) -> None:
        self._entries.clear()


def build_directory_service() -> DirectoryService:
    if settings.directory_configured:
        return HttpDirectoryService()
    return NullDirectoryService()


_directory: CachedDirectory | None = None


def get_directory() -> CachedDirectory:
    """Process-wide cached directory (FastAPI dependency)."""
    global _directory
    if _directory is None:
        _directory = CachedDirectory(build_directory_service())
    return _directory


async def close_directory() -> None:
    global _directory
    if _directory is not None:
        await _directory.service.aclose()
        _directory = None
