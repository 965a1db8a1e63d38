"""Presence Publisher — the network boundary for gated presence updates.

Validates the payload locally, then POSTs it to the presence endpoint.
Outcomes:

- 2xx                → PublishResult(ok=True)
- 429                → PublishResult(ok=False, reason="rate_limit",
                        retry_after_sec from Retry-After); callers back off
- other 4xx          → PublishResult(ok=False, reason="rejected")
- 5xx / transport    → NetworkFailure (logged, then raised)

Nothing here checks privacy policy. Callers reach this only through
with_gate, and degrade_presence() applies the gate's fidelity level.
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from vibecore.config.settings import (
    PRESENCE_API_KEY,
    PRESENCE_BACKOFF_SECONDS,
    PRESENCE_CATEGORY_GRID_DEG,
    PRESENCE_MAX_ATTEMPTS,
    PRESENCE_MAX_RETRY_AFTER_SECONDS,
    PRESENCE_TIMEOUT_SECONDS,
    PRESENCE_URL,
)
from vibecore.models.errors import NetworkFailure, PayloadValidationError
from vibecore.models.vibe import VIBES, DegradeLevel

logger = logging.getLogger(__name__)

VISIBILITIES = ("public", "friends")


@dataclass(frozen=True)
class PresencePayload:
    lat: float
    lng: float
    vibe: str
    visibility: str = "public"
    venue_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "vibe": self.vibe,
            "visibility": self.visibility,
            "venue_id": self.venue_id,
        }


@dataclass(frozen=True)
class PublishResult:
    ok: bool
    reason: Optional[str] = None
    retry_after_sec: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"ok": self.ok}
        if self.reason:
            d["reason"] = self.reason
        if self.retry_after_sec is not None:
            d["retry_after_sec"] = self.retry_after_sec
        return d


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool) and math.isfinite(x)


def validate_presence(payload: PresencePayload) -> None:
    """Raise PayloadValidationError for anything the server would reject."""
    if not _is_number(payload.lat) or not -90.0 <= payload.lat <= 90.0:
        raise PayloadValidationError(f"lat out of range: {payload.lat!r}")
    if not _is_number(payload.lng) or not -180.0 <= payload.lng <= 180.0:
        raise PayloadValidationError(f"lng out of range: {payload.lng!r}")
    if payload.vibe not in VIBES:
        raise PayloadValidationError(f"unknown vibe: {payload.vibe!r}")
    if payload.visibility not in VISIBILITIES:
        raise PayloadValidationError(f"unknown visibility: {payload.visibility!r}")
    if payload.venue_id is not None:
        try:
            uuid.UUID(str(payload.venue_id))
        except ValueError:
            raise PayloadValidationError(f"venue_id is not a uuid: {payload.venue_id!r}")


def degrade_presence(payload: PresencePayload, degrade: str) -> PresencePayload:
    """Apply gate fidelity. Only full and category are publishable."""
    level = DegradeLevel.from_label(degrade)
    if level == DegradeLevel.FULL:
        return payload
    if level == DegradeLevel.CATEGORY:
        grid = PRESENCE_CATEGORY_GRID_DEG
        return PresencePayload(
            lat=round(round(payload.lat / grid) * grid, 6),
            lng=round(round(payload.lng / grid) * grid, 6),
            vibe=payload.vibe,
            visibility=payload.visibility,
            venue_id=None,
        )
    raise ValueError(f"Presence cannot be published at '{degrade}' fidelity")


def _retry_after(resp: httpx.Response) -> Optional[int]:
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        seconds = float(raw)
    except ValueError:
        # HTTP-date form or garbage
        return None
    if math.isnan(seconds):
        return None
    return int(min(max(seconds, 0.0), PRESENCE_MAX_RETRY_AFTER_SECONDS))


class PresencePublisher:
    """Async HTTP client for the presence endpoint."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = PRESENCE_TIMEOUT_SECONDS,
    ):
        self.url = url or PRESENCE_URL
        self.api_key = api_key if api_key is not None else PRESENCE_API_KEY
        self._client = client
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def publish(self, payload: PresencePayload) -> PublishResult:
        validate_presence(payload)
        try:
            if self._client is not None:
                resp = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await self._post(client, payload)
        except httpx.HTTPError as exc:
            logger.warning(f"Presence publish transport error: {exc}")
            raise NetworkFailure(str(exc)) from exc

        if resp.status_code == 429:
            retry_after = _retry_after(resp)
            logger.info(f"Presence publish rate limited, retry after {retry_after}s")
            return PublishResult(ok=False, reason="rate_limit", retry_after_sec=retry_after)
        if resp.status_code >= 500:
            logger.warning(f"Presence endpoint returned {resp.status_code}")
            raise NetworkFailure(f"presence endpoint returned {resp.status_code}", resp.status_code)
        if resp.status_code >= 400:
            logger.warning(f"Presence publish rejected: {resp.status_code} {resp.text[:200]}")
            return PublishResult(ok=False, reason="rejected")
        return PublishResult(ok=True)

    async def _post(self, client: httpx.AsyncClient, payload: PresencePayload) -> httpx.Response:
        return await client.post(
            self.url,
            json=payload.to_dict(),
            headers=self._headers(),
            timeout=self._timeout,
        )


async def publish_with_retry(
    publisher: PresencePublisher,
    payload: PresencePayload,
    max_attempts: int = PRESENCE_MAX_ATTEMPTS,
    backoff_seconds: float = PRESENCE_BACKOFF_SECONDS,
) -> PublishResult:
    """Retry rate limits and network failures with exponential backoff.

    Validation errors are not retried. After the last attempt a rate-limit
    result is returned as-is and a NetworkFailure is re-raised.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
    for attempt in range(1, max_attempts + 1):
        try:
            result = await publisher.publish(payload)
        except NetworkFailure:
            if attempt == max_attempts:
                raise
            delay = backoff_seconds * 2 ** (attempt - 1)
        else:
            if result.ok or result.reason != "rate_limit" or attempt == max_attempts:
                return result
            delay = result.retry_after_sec if result.retry_after_sec is not None \
                else backoff_seconds * 2 ** (attempt - 1)
        logger.info(f"Presence publish attempt {attempt} failed, retrying in {delay}s")
        await asyncio.sleep(delay)
    raise AssertionError("unreachable")
