"""
External source adapter for the authoritative regional list.

Uses httpx directly with a bounded timeout. Any failure (network, timeout,
non-2xx, unparsable payload) raises `SourceUnavailable`; it never degrades
to an empty list, since an empty list means "everything was removed".
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import httpx

from artists_api.core.config import Settings, get_settings
from artists_api.services.reconciler import RegionalRecord, RegionalSyncError

logger = logging.getLogger(__name__)


class SourceUnavailable(RegionalSyncError):
    """The external regional list could not be fetched this cycle."""


def parse_record(item: Any) -> RegionalRecord:
    """
    Build a RegionalRecord from one JSON object of the feed.

    The upstream publishes `{"id": 1, "nome": "..."}`; `name` is accepted too.
    """
    if not isinstance(item, dict):
        raise SourceUnavailable(f"Malformed regional item: {item!r}")

    raw_id = item.get("id")
    name = item.get("name", item.get("nome"))
    if raw_id is None or isinstance(raw_id, bool) or not isinstance(name, str):
        raise SourceUnavailable(f"Malformed regional item: {item!r}")

    external_id = str(raw_id)
    if not external_id.strip():
        raise SourceUnavailable(f"Malformed regional item: {item!r}")

    # Mirrored attributes are kept verbatim, whitespace included
    return RegionalRecord(external_id=external_id, name=name)


class RegionalSource:
    """Fetches the regional list over HTTP."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        token: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.token = token
        # Injected in tests (httpx.MockTransport)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RegionalSource":
        settings = settings or get_settings()
        return cls(
            settings.REGIONAL_SOURCE_URL,
            timeout=settings.REGIONAL_SOURCE_TIMEOUT_SECONDS,
            token=settings.REGIONAL_SOURCE_TOKEN,
        )

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def fetch_all(self) -> List[RegionalRecord]:
        """
        Return every regional currently published upstream.

        Raises:
            SourceUnavailable: on any transport, status or payload error.
        """
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.get(self.url, headers=self._headers())
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise SourceUnavailable(
                f"Regional source returned HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise SourceUnavailable(f"Failed to reach regional source: {e}") from e
        except ValueError as e:
            raise SourceUnavailable("Regional source returned invalid JSON") from e

        if not isinstance(payload, list):
            raise SourceUnavailable(
                f"Regional source returned {type(payload).__name__}, expected a list"
            )

        records = [parse_record(item) for item in payload]
        logger.info("Fetched %d regionals from %s", len(records), self.url)
        return records
