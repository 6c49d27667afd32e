"""
actions/http.py — HTTP GET actions

The scheduler fires these and ignores whatever they return. Each call:
  - sends GET with Accept: application/json and Cache-Control: no-store
  - raises ActionFailedError on a non-2xx status (status, reason and the
    first part of the body are kept for the log line)
  - reads the JSON body and discards it; an undecodable body is not an error

Transport errors (DNS, connect, timeout) propagate as httpx exceptions; the
firing handlers log them and still count the firing.
"""

from __future__ import annotations

from typing import Optional

import httpx

from exceptions import ActionFailedError
from observability.logger import get_logger
from scheduler.types import CYCLE_ID, Action

log = get_logger(__name__)

_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-store",
    "User-Agent": "SlotKeeper/1.0",
}
_DEFAULT_TIMEOUT = 20.0
_MAX_ERROR_BODY = 500


class HttpGetAction:
    """Awaitable zero-argument action that GETs one URL."""

    def __init__(
        self,
        url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def __call__(self) -> None:
        async with httpx.AsyncClient(
            headers=_HEADERS,
            timeout=self.timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            response = await client.get(self.url)

            if not response.is_success:
                body = response.text[:_MAX_ERROR_BODY]
                raise ActionFailedError(
                    self.url, response.status_code, response.reason_phrase, body,
                )

            # Payload intentionally ignored
            try:
                response.json()
            except ValueError:
                pass

        log.debug("action.http.ok", url=self.url, status=response.status_code)

    def __repr__(self) -> str:
        return f"HttpGetAction({self.url!r})"


def actions_from_settings(
    settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, Action]:
    """
    Build the action map: CYCLE_ID → refresh API, each slot id → data API
    (or the slot's own url override).
    """
    timeout = settings.actions.timeout_seconds
    actions: dict[str, Action] = {
        CYCLE_ID: HttpGetAction(settings.refresh_api_url, timeout, transport),
    }
    for slot in settings.daily.slots:
        actions[slot.id] = HttpGetAction(settings.url_for_slot(slot.id), timeout, transport)
    return actions
