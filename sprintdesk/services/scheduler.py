"""
Daily sprint rollover.

Once a day every started team is swept: any project whose current sprint
ends exactly today moves to its next sprint, even with open tasks. Each
team is handled under its own write lock, so the sweep serializes with
interactive requests. A failing team is logged and skipped; an unavailable
store aborts the whole sweep.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field

from ..core.clock import Clock
from ..core.errors import SprintDeskError, StoreUnavailableError
from .sprint_service import SprintLifecycleService

ROLLOVER_JOB_ID = "daily_sprint_rollover"


class SweepFailure(BaseModel):
    team: str
    kind: str
    message: str


class SweepReport(BaseModel):
    day: date
    advanced: List[Tuple[str, str, int]] = Field(default_factory=list)  # (team, project, new sprint)
    failed: List[SweepFailure] = Field(default_factory=list)


class SprintScheduler:
    def __init__(
        self,
        lifecycle: SprintLifecycleService,
        clock: Clock,
        rollover_time: Tuple[int, int] = (0, 0),
        timezone: str = "UTC",
    ) -> None:
        self.lifecycle = lifecycle
        self.clock = clock
        self.rollover_time = rollover_time
        self.timezone = timezone
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._logger = logging.getLogger(__name__)

    async def run_daily_sweep(self, today: Optional[date] = None) -> SweepReport:
        today = today or self.clock.today()
        report = SweepReport(day=today)
        repository = self.lifecycle.repository

        team_ids = await repository.list_team_ids()
        self._logger.info("Sprint rollover sweep for %s over %d teams", today.isoformat(), len(team_ids))

        for team_id in team_ids:
            try:
                moved = await self.lifecycle.rollover_due_sprints(team_id, today)
            except StoreUnavailableError:
                self._logger.error("Store unavailable, aborting rollover sweep at team %s", team_id)
                raise
            except SprintDeskError as e:
                self._logger.exception("Rollover failed for team %s", team_id)
                report.failed.append(SweepFailure(team=team_id, kind=e.kind.value, message=e.message))
                continue

            report.advanced.extend((team_id, project, number) for project, number in moved)

        self._logger.info(
            "Rollover sweep done: %d sprints advanced, %d teams failed",
            len(report.advanced), len(report.failed)
        )
        return report

    async def _scheduled_sweep(self) -> None:
        try:
            await self.run_daily_sweep()
        except StoreUnavailableError:
            # Next run retries the whole sweep
            self._logger.exception("Scheduled rollover sweep aborted")

    def start(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            return

        hour, minute = self.rollover_time
        self._scheduler = AsyncIOScheduler(timezone=self.timezone)
        self._scheduler.add_job(
            self._scheduled_sweep,
            trigger=CronTrigger(hour=hour, minute=minute, timezone=self.timezone),
            id=ROLLOVER_JOB_ID,
            name="Advance sprints that end today",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        self._logger.info("Sprint rollover scheduled daily at %02d:%02d %s", hour, minute, self.timezone)

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            self._logger.info("Sprint rollover scheduler stopped")
        self._scheduler = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running
