"""Fleet analysis: run the per-trip check for every monitored trip.

Each cycle reads all monitored trip ids in one go (ids only; trip data is
loaded by the worker that analyzes it), feeds them through a bounded queue
to a fixed pool of worker threads, and waits until the queue is empty and
every worker is idle.  The bounded queue is the only throttle: the producer
blocks instead of buffering ids without limit.

A cycle that cannot enqueue an id within ``queue_insert_timeout`` or does
not drain within ``drain_timeout`` is abandoned.  Workers outlive cycles
and carry nothing from one trip to the next.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from triptracker.config import MONITOR_INTERVAL_SECONDS, TrackerConfig
from triptracker.errors import CycleAborted, DrainTimeout, QueueTimeout
from triptracker.monitor.trip_check import TripSource

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    """Outcome of one fleet analysis cycle."""
    enumerated: int = 0
    processed: int = 0
    failed: int = 0
    aborted: bool = False
    error: Optional[str] = None
    elapsed_seconds: float = 0.0


class _Cycle:
    """Queue and per-worker flags for a single cycle."""

    def __init__(self, capacity: int, n_workers: int) -> None:
        self.queue: queue.Queue[str] = queue.Queue(maxsize=capacity)
        self.cancelled = threading.Event()
        # One slot per worker; each worker is the only writer of its slot.
        self.idle = [threading.Event() for _ in range(n_workers)]
        for flag in self.idle:
            flag.set()
        self.processed = [0] * n_workers
        self.failed = [0] * n_workers

    def busy_count(self) -> int:
        return sum(1 for flag in self.idle if not flag.is_set())


class _TripAnalyzer(threading.Thread):
    """Worker that drains the current cycle's queue."""

    def __init__(self, index: int, scheduler: FleetAnalysisScheduler) -> None:
        super().__init__(name=f"trip-analyzer-{index}", daemon=True)
        self._index = index
        self._scheduler = scheduler

    def run(self) -> None:
        scheduler = self._scheduler
        poll = scheduler.config.drain_poll_interval
        while not scheduler.stopped.is_set():
            cycle = scheduler.current_cycle
            if cycle is None:
                scheduler.stopped.wait(poll)
                continue
            try:
                trip_id = cycle.queue.get(timeout=poll)
            except queue.Empty:
                cycle.idle[self._index].set()
                continue

            cycle.idle[self._index].clear()
            try:
                if not cycle.cancelled.is_set():
                    scheduler.analyze(trip_id)
            except Exception:
                cycle.failed[self._index] += 1
                logger.exception("Analysis of trip %s failed; skipping it this cycle", trip_id)
            finally:
                cycle.processed[self._index] += 1
                cycle.idle[self._index].set()


class FleetAnalysisScheduler:
    """Bounded-concurrency fan-out of trip analysis across all monitored trips."""

    def __init__(
        self,
        source: TripSource,
        analyze: Callable[[str], object],
        config: Optional[TrackerConfig] = None,
    ) -> None:
        self.source = source
        self.analyze = analyze
        self.config = config or TrackerConfig()
        self.stopped = threading.Event()
        self.current_cycle: Optional[_Cycle] = None
        self._workers: list[_TripAnalyzer] = []
        self._cycle_lock = threading.Lock()

    def _ensure_workers(self) -> None:
        if self._workers:
            return
        for i in range(self.config.worker_count):
            worker = _TripAnalyzer(i, self)
            worker.start()
            self._workers.append(worker)
        logger.info("Started %d trip analyzers", len(self._workers))

    def run_cycle(self) -> CycleReport:
        """Analyze every monitored trip once.

        Cycle-level failures are logged and reported in the returned
        ``CycleReport``; they are not raised.  Raises ``RuntimeError`` once
        the scheduler has been shut down.
        """
        if self.stopped.is_set():
            raise RuntimeError("Fleet analysis scheduler has been shut down")
        with self._cycle_lock:
            return self._run_cycle()

    def _run_cycle(self) -> CycleReport:
        start = time.monotonic()
        logger.info("Fleet analysis cycle started")
        self._ensure_workers()

        trip_ids = list(self.source.monitored_trip_ids())
        report = CycleReport(enumerated=len(trip_ids))
        cycle = _Cycle(self.config.queue_capacity, len(self._workers))
        self.current_cycle = cycle

        try:
            for trip_id in trip_ids:
                try:
                    cycle.queue.put(trip_id, timeout=self.config.queue_insert_timeout)
                except queue.Full:
                    raise QueueTimeout(
                        f"could not queue trip {trip_id} within "
                        f"{self.config.queue_insert_timeout:g} sec"
                    ) from None
            self._wait_for_drain(cycle, len(trip_ids))
        except CycleAborted as e:
            cycle.cancelled.set()
            report.aborted = True
            report.error = str(e)
            logger.error("Fleet analysis cycle aborted: %s", e)
        finally:
            self.current_cycle = None
            report.elapsed_seconds = time.monotonic() - start

        if not report.aborted:
            report.processed = sum(cycle.processed)
            report.failed = sum(cycle.failed)
            logger.info(
                "Analysis of %d monitored trips completed in %.1f sec (%d failed)",
                report.processed,
                report.elapsed_seconds,
                report.failed,
            )
        return report

    def _wait_for_drain(self, cycle: _Cycle, total: int) -> None:
        """Poll until the queue is empty, all workers are idle and every id is done."""
        waited_from = time.monotonic()
        deadline = waited_from + self.config.drain_timeout
        next_report = waited_from + self.config.progress_log_interval

        while True:
            queued = cycle.queue.qsize()
            busy = cycle.busy_count()
            if queued == 0 and busy == 0 and sum(cycle.processed) >= total:
                return

            now = time.monotonic()
            if now >= deadline:
                raise DrainTimeout(
                    f"{queued} queued and {busy} analyzers not idle after "
                    f"{now - waited_from:.0f} sec"
                )
            if now >= next_report:
                logger.info(
                    "There are %d queued and %d analyzers not idle after %d sec.",
                    queued,
                    busy,
                    int(now - waited_from),
                )
                next_report += self.config.progress_log_interval
            time.sleep(self.config.drain_poll_interval)

    def run_forever(
        self,
        interval_seconds: float = MONITOR_INTERVAL_SECONDS,
        stop_event: Optional[threading.Event] = None,
        max_cycles: Optional[int] = None,
        on_report: Optional[Callable[[CycleReport], None]] = None,
    ) -> list[CycleReport]:
        """Run a cycle every *interval_seconds* until stopped.

        Stops when *stop_event* is set or after *max_cycles* cycles.
        *on_report* is called with each cycle's report as it completes.
        """
        stop = stop_event or threading.Event()
        reports: list[CycleReport] = []
        while not stop.is_set():
            started = time.monotonic()
            report = self.run_cycle()
            reports.append(report)
            if on_report is not None:
                on_report(report)
            if max_cycles is not None and len(reports) >= max_cycles:
                break
            stop.wait(max(0.0, interval_seconds - (time.monotonic() - started)))
        return reports

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the worker threads."""
        self.stopped.set()
        for worker in self._workers:
            worker.join(timeout)
        self._workers.clear()

    def __enter__(self) -> FleetAnalysisScheduler:
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
