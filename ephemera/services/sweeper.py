"""Retention sweeper removing expired conversations and rooms."""

import asyncio
import logging

from dataclasses import dataclass, asdict
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ephemera.app import Application

from ephemera.config import settings


@dataclass
class SweepReport:
    """Counts of what a single sweep removed."""

    conversations_deleted: int = 0
    rooms_deleted: int = 0
    room_messages_trimmed: int = 0
    rooms_archived: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @property
    def is_empty(self) -> bool:
        return not any(asdict(self).values())


class RetentionSweeper:
    """Periodic cleanup. Every step isolates its own failures."""

    def __init__(self, app: "Application"):
        self.app = app
        self.logger = logging.getLogger("retention-sweeper")
        self.logger.setLevel(settings.logging_level)

        self._task: asyncio.Task | None = None

    async def sweep(self) -> SweepReport:
        """Run one sweep: conversations, marked rooms, trimming, archiving."""

        report = SweepReport()
        steps = (
            ("conversations_deleted", self.app.conversation_service.sweep_expired),
            ("rooms_deleted", self.app.room_service.sweep_marked),
            ("room_messages_trimmed", self.app.room_service.trim_all),
            ("rooms_archived", self.app.room_service.archive_stale_completed),
        )

        for field_name, step in steps:
            try:
                setattr(report, field_name, await step())
            except Exception as e:
                self.logger.error(f"Sweep step '{field_name}' failed: {type(e).__name__}: {e}")

        if not report.is_empty:
            self.logger.info(f"Sweep finished: {report.to_dict()}")

        return report

    async def run_forever(self) -> None:
        """Sweep every sweep_interval_seconds until cancelled."""

        self.logger.info(f"Retention sweeper started (every {settings.sweep_interval_seconds}s)")

        while True:
            await self.sweep()
            await asyncio.sleep(settings.sweep_interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="retention-sweeper")

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

        self._task = None
        self.logger.info("Retention sweeper stopped")
