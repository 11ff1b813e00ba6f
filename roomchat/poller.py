"""
Client-side polling of a room's messages.

MessagePoller keeps the message list a client renders for one room and
refreshes it by repeatedly asking the server for anything newer than the
last message it has seen.

Behavior:
    - Without a cursor the default page (newest 50) is loaded.
    - With a cursor an incremental ``since`` fetch is issued; an empty
      answer changes nothing, a non-empty one triggers a reload of the
      default page.
    - An incremental answer that hit the server cap means messages may be
      missing between the old cursor and the reloaded page, so older pages
      are walked until the old cursor is reached.
    - Every request is numbered and a response older than the last applied
      one is dropped, so a slow request never overwrites newer state.

Usage:
    async with httpx.AsyncClient(base_url="http://localhost:8000") as client:
        await client.post("/api/auth/login", json={"id": "u-1"})
        poller = MessagePoller(client, room_id=1, on_update=render)
        await poller.run()
"""

import asyncio
import datetime
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 3.0
# Mirror the server's paging: default page size and the cap on "since" answers
DEFAULT_PAGE_SIZE = 50
SINCE_PAGE_CAP = 50


class AuthenticationRequired(Exception):
    """The server rejected the session; the user has to log in again."""


def parse_timestamp(value: str) -> datetime.datetime:
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return parsed


class MessagePoller:
    def __init__(
        self,
        client: httpx.AsyncClient,
        room_id: int,
        interval: float = POLL_INTERVAL_SECONDS,
        on_update: Optional[Callable[[List[Dict[str, Any]]], None]] = None,
    ) -> None:
        self.client = client
        self.room_id = room_id
        self.interval = interval
        self.on_update = on_update
        self.messages: List[Dict[str, Any]] = []
        self._issued = 0
        self._applied = 0
        self._stopped = asyncio.Event()

    @property
    def url(self) -> str:
        return f"/api/rooms/{self.room_id}/messages"

    @property
    def cursor(self) -> Optional[str]:
        """Creation time of the newest rendered message."""
        if not self.messages:
            return None
        return self.messages[-1]["createdAt"]

    async def _fetch(self, params: Dict[str, Any]) -> Tuple[int, List[Dict[str, Any]]]:
        self._issued += 1
        seq = self._issued
        response = await self.client.get(self.url, params=params)
        if response.status_code == 401:
            raise AuthenticationRequired(response.text)
        response.raise_for_status()
        return seq, response.json()

    def _apply(self, seq: int, messages: List[Dict[str, Any]]) -> bool:
        if seq < self._applied:
            logger.debug("Dropping stale response %s for room %s (applied %s)", seq, self.room_id, self._applied)
            return False
        self._applied = seq
        self.messages = messages
        if self.on_update is not None:
            self.on_update(messages)
        return True

    async def _backfill(self, page: List[Dict[str, Any]], previous_cursor: str) -> List[Dict[str, Any]]:
        boundary = parse_timestamp(previous_cursor)
        offset = len(page)
        exhausted = len(page) < DEFAULT_PAGE_SIZE
        while not exhausted and page and parse_timestamp(page[0]["createdAt"]) > boundary:
            _, older = await self._fetch({"limit": DEFAULT_PAGE_SIZE, "offset": offset})
            offset += len(older)
            exhausted = len(older) < DEFAULT_PAGE_SIZE
            # Messages arriving meanwhile shift the window, so pages can overlap
            known = {message["id"] for message in page}
            page = [message for message in older if message["id"] not in known] + page
        return page

    async def refresh(self, previous_cursor: Optional[str] = None) -> bool:
        """Reload the default page; returns False when the result was stale."""
        seq, page = await self._fetch({"limit": DEFAULT_PAGE_SIZE})
        if previous_cursor is not None:
            page = await self._backfill(page, previous_cursor)
        return self._apply(seq, page)

    async def poll_once(self) -> bool:
        """One polling round; returns True when the rendered list changed."""
        cursor = self.cursor
        if cursor is None:
            return await self.refresh()

        seq, fresh = await self._fetch({"since": cursor})
        if seq < self._applied or not fresh:
            return False
        capped = len(fresh) >= SINCE_PAGE_CAP
        return await self.refresh(previous_cursor=cursor if capped else None)

    async def send(self, content: str) -> Dict[str, Any]:
        response = await self.client.post(self.url, json={"content": content})
        if response.status_code == 401:
            raise AuthenticationRequired(response.text)
        response.raise_for_status()
        await self.refresh()
        return response.json()

    def stop(self) -> None:
        self._stopped.set()

    async def run(self) -> None:
        """Poll every ``interval`` seconds until stop() is called."""
        self._stopped.clear()
        while not self._stopped.is_set():
            try:
                await self.poll_once()
            except httpx.HTTPError as exc:
                # The next round retries
                logger.warning("Polling room %s failed: %s", self.room_id, exc)
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
