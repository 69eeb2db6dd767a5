import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

logger: logging.Logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _ScheduledJob:
    def __init__(
        self,
        name: str,
        runner: Callable[[], None],
        interval: timedelta,
        initial_delay: Optional[timedelta] = None,
        *,
        one_shot: bool = False,
        now: Optional[datetime] = None,
    ) -> None:
        self.name = name
        self.runner = runner
        self.interval = interval
        delay = initial_delay or timedelta(0)
        self.next_run = (now or _utc_now()) + delay
        self._lock = threading.Lock()
        self.one_shot = one_shot

    def due(self, moment: datetime) -> bool:
        with self._lock:
            return moment >= self.next_run

    def mark_executed(self, executed_at: datetime) -> None:
        with self._lock:
            self.next_run = executed_at + self.interval


class BackendScheduler:
    """In-process timer service for delayed and recurring background work.

    A daemon loop thread sleeps until the earliest job is due (or a new job
    is registered) and hands each due job to a thread pool, so one slow job
    never holds back another.  One-shot jobs are removed once they have been
    claimed; a job that raises is logged and not retried.
    """

    _poll_seconds: float = 0.5

    def __init__(
        self,
        settings=None,
        *,
        clock: Optional[Clock] = None,
        autostart: bool = True,
    ) -> None:
        self.settings = settings
        self._clock: Clock = clock or _utc_now
        self._poll_seconds = float(
            getattr(settings, "scheduler_poll_seconds", self._poll_seconds)
        )
        self._max_workers = int(getattr(settings, "scheduler_max_workers", 8) or 8)
        self._jobs: Dict[str, _ScheduledJob] = {}
        self._lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        if autostart:
            self.start()

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop_event.clear()
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="hexa-scheduler-worker",
                )
            self._thread = threading.Thread(
                target=self._run_loop,
                name="hexa-backend-scheduler",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            self._wakeup.notify_all()
            thread = self._thread
            executor = self._executor
            self._executor = None
        if thread and thread.is_alive():
            thread.join(timeout=2)
        if executor is not None:
            executor.shutdown(wait=False)

    @property
    def running(self) -> bool:
        thread = self._thread
        return bool(thread and thread.is_alive() and not self._stop_event.is_set())

    def register_job(
        self,
        name: str,
        runner: Callable[[], None],
        interval: timedelta,
        initial_delay: Optional[timedelta] = None,
        *,
        one_shot: bool = False,
    ) -> None:
        job = _ScheduledJob(
            name,
            runner,
            interval,
            initial_delay,
            one_shot=one_shot,
            now=self._clock(),
        )
        with self._lock:
            if name in self._jobs:
                logger.debug("Replacing scheduled job %s", name)
            self._jobs[name] = job
            self._wakeup.notify_all()

    def submit_once(
        self,
        name: str,
        runner: Callable[[], None],
        *,
        initial_delay: Optional[timedelta] = None,
    ) -> None:
        """Schedule ``runner`` to execute once in the background."""

        self.register_job(
            name,
            runner,
            interval=timedelta(days=365 * 100),
            initial_delay=initial_delay,
            one_shot=True,
        )

    def cancel(self, name: str) -> bool:
        with self._lock:
            return self._jobs.pop(name, None) is not None

    def pending_jobs(self) -> List[str]:
        with self._lock:
            return sorted(self._jobs, key=lambda key: self._jobs[key].next_run)

    def run_pending(self, now: Optional[datetime] = None) -> int:
        """Run every job due at ``now`` on the calling thread.

        Returns the number of jobs executed.
        """

        moment = now or self._clock()
        jobs = self._claim_due_jobs(moment)
        for job in jobs:
            self._execute_job(job)
        return len(jobs)

    def _claim_due_jobs(self, moment: datetime) -> List[_ScheduledJob]:
        claimed: List[_ScheduledJob] = []
        with self._lock:
            for name, job in list(self._jobs.items()):
                if not job.due(moment):
                    continue
                if job.one_shot:
                    self._jobs.pop(name, None)
                else:
                    job.mark_executed(moment)
                claimed.append(job)
        return claimed

    def _seconds_until_next_job(self) -> float:
        # Called with ``self._lock`` held.
        if not self._jobs:
            return self._poll_seconds
        earliest = min(job.next_run for job in self._jobs.values())
        remaining = (earliest - self._clock()).total_seconds()
        return max(0.0, min(self._poll_seconds, remaining))

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            with self._lock:
                timeout = self._seconds_until_next_job()
                if timeout > 0:
                    self._wakeup.wait(timeout)
            if self._stop_event.is_set():
                break
            for job in self._claim_due_jobs(self._clock()):
                executor = self._executor
                if executor is None:
                    self._execute_job(job)
                    continue
                try:
                    executor.submit(self._execute_job, job)
                except RuntimeError:
                    logger.warning(
                        "Scheduler executor unavailable; running job %s inline", job.name
                    )
                    self._execute_job(job)

    def _deregister_job(self, job: _ScheduledJob) -> None:
        with self._lock:
            if self._jobs.get(job.name) is job:
                self._jobs.pop(job.name, None)

    def _execute_job(self, job: _ScheduledJob) -> None:
        try:
            job.runner()
        except Exception:
            logger.exception("Backend job %s failed", job.name)
        finally:
            if job.one_shot:
                self._deregister_job(job)
