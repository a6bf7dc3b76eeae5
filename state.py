"""Application state — in-memory snapshots kept current by change notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

import db
from models import Change, Event, Registration

if TYPE_CHECKING:
    from wizard import RegistrationWizard

logger = logging.getLogger(__name__)


class AppState:
    """Owned by the Application (``bot_data["state"]``), never persisted."""

    def __init__(self) -> None:
        self.events: dict[int, Event] = {}
        self.registrations: dict[int, Registration] = {}
        # Live wizards per Telegram user; rebuilt from the draft when missing
        self.wizards: dict[int, RegistrationWizard] = {}
        # Applied one at a time, in arrival order
        self._changes: asyncio.Queue[Change] = asyncio.Queue()
        self._consumer: Optional[asyncio.Task] = None

    async def load(self) -> None:
        self.events = {e.id: e for e in await db.list_events()}
        self.registrations = {r.id: r for r in await db.list_registrations()}
        logger.info(
            "Loaded %d events, %d registrations",
            len(self.events), len(self.registrations),
        )

    async def apply(self, change: Change) -> None:
        """Merge one change message by re-reading the affected record."""
        if change.table == "events":
            target, fetch = self.events, db.get_event
        elif change.table == "registrations":
            target, fetch = self.registrations, db.get_registration
        else:
            return

        if change.op == "DELETE":
            target.pop(change.id, None)
            return
        record = await fetch(change.id)
        if record is None:
            target.pop(change.id, None)
        else:
            target[change.id] = record

    def dispatch(self, change: Change) -> None:
        """Sync entry point for the LISTEN callback."""
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.get_running_loop().create_task(self._consume())
        self._changes.put_nowait(change)

    async def _consume(self) -> None:
        while True:
            change = await self._changes.get()
            try:
                await self.apply(change)
            except Exception:
                logger.exception("Failed to apply %s", change)
            finally:
                self._changes.task_done()

    async def settle(self) -> None:
        """Wait until every dispatched change has been applied."""
        await self._changes.join()

    async def close(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

    # -- read helpers -------------------------------------------------------

    def sorted_events(self) -> list[Event]:
        return sorted(self.events.values(), key=lambda e: (e.date, e.id))

    def open_events(self) -> list[Event]:
        return [e for e in self.sorted_events() if e.is_open]

    def event(self, event_id: int) -> Optional[Event]:
        return self.events.get(event_id)

    def registrations_for(self, event_id: int) -> list[Registration]:
        regs = [r for r in self.registrations.values() if r.event_id == event_id]
        return sorted(regs, key=lambda r: r.id)

    def all_registrations(self) -> list[Registration]:
        return sorted(self.registrations.values(), key=lambda r: r.id)
