"""
Background expiry sweeps for the token and session stores.

One APScheduler ``BackgroundScheduler`` per app runs an interval job per
store. Each job calls the guard's ``sweep()``, which takes the store lock
itself, so sweeps follow the same locking as the request path.

The scheduler thread does not survive ``fork()``. A single process-wide
``os.register_at_fork`` hook rebuilds the scheduler in the child for every
sweeper that is still running; stopped sweepers are forgotten.
"""
from __future__ import annotations

import logging
import os
import weakref
from collections.abc import Callable
from dataclasses import dataclass

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)

_running_sweepers: "weakref.WeakSet[Sweeper]" = weakref.WeakSet()
_fork_hook_registered = False


def _restart_running_sweepers() -> None:
    for sweeper in list(_running_sweepers):
        sweeper.restart_after_fork()


def _register_fork_hook() -> None:
    global _fork_hook_registered
    if _fork_hook_registered or not hasattr(os, "register_at_fork"):
        return
    os.register_at_fork(after_in_child=_restart_running_sweepers)
    _fork_hook_registered = True


@dataclass
class SweepJob:
    name: str
    interval_seconds: float
    sweep: Callable[[], int]
    stats: Callable[[], dict[str, int]] | None = None

    def run_once(self) -> int:
        try:
            removed = self.sweep()
        except Exception:
            logger.exception("Sweep %s failed", self.name)
            return 0
        if self.stats is not None:
            logger.debug("Sweep %s: removed=%d stats=%s", self.name, removed, self.stats())
        return removed


class Sweeper:
    def __init__(self) -> None:
        self.jobs: list[SweepJob] = []
        self._scheduler: BackgroundScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def add(
        self,
        name: str,
        interval_seconds: float,
        sweep: Callable[[], int],
        *,
        stats: Callable[[], dict[str, int]] | None = None,
    ) -> SweepJob:
        job = SweepJob(name=name, interval_seconds=interval_seconds, sweep=sweep, stats=stats)
        self.jobs.append(job)
        if self._scheduler is not None:
            self._schedule(self._scheduler, job)
        return job

    def _schedule(self, scheduler: BackgroundScheduler, job: SweepJob) -> None:
        scheduler.add_job(
            job.run_once,
            "interval",
            seconds=job.interval_seconds,
            id=f"sweep-{job.name}",
            name=f"sweep-{job.name}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def start(self) -> None:
        if self.running:
            return
        scheduler = BackgroundScheduler(daemon=True)
        for job in self.jobs:
            self._schedule(scheduler, job)
        scheduler.start()
        self._scheduler = scheduler
        _running_sweepers.add(self)
        _register_fork_hook()
        logger.info(
            "Sweeper started: %s",
            ", ".join(f"{j.name} every {j.interval_seconds}s" for j in self.jobs),
        )

    def stop(self, wait: bool = True) -> None:
        _running_sweepers.discard(self)
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=wait)

    def restart_after_fork(self) -> None:
        # The parent's scheduler object is unusable here; drop it without shutdown.
        self._scheduler = None
        self.start()
        logger.info("Sweeper restarted after fork (pid=%s)", os.getpid())

    def run_once(self) -> int:
        """Run every job once in the calling thread. Returns records removed."""
        return sum(job.run_once() for job in self.jobs)
