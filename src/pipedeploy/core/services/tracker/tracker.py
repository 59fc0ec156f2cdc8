import asyncio
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel

from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import BuildStatus
from pipedeploy.exception import RemoteCallError

logger = get_logger(__name__)

StatusCallback = Callable[[str, BuildStatus, Optional[int]], Awaitable[object]]
Sleep = Callable[[float], Awaitable[object]]


class TrackingOutcome(str, Enum):
    COMPLETED = "completed"
    # потолок опросов исчерпан: сборка не провалена, просто статус неизвестен
    TIMED_OUT = "timed-out"
    POLL_FAILED = "poll-failed"
    CANCELLED = "cancelled"


class TrackingResult(BaseModel):
    job_name: str
    job_id: str
    outcome: TrackingOutcome
    status: BuildStatus
    build_number: Optional[int] = None
    polls: int = 0
    last_error: Optional[str] = None


class TrackingHandle:
    """
    Ручка отслеживания одной сборки: можно отменить или дождаться итога.
    """

    def __init__(self, job_name: str, job_id: str, task: "asyncio.Task[TrackingResult]") -> None:
        self.job_name = job_name
        self.job_id = job_id
        self._task = task

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        self._task.cancel()

    async def wait(self) -> TrackingResult:
        try:
            return await self._task
        except asyncio.CancelledError:
            # задачу отменили до первого шага: итог собираем здесь
            if not self._task.cancelled():
                raise
            return TrackingResult(
                job_name=self.job_name,
                job_id=self.job_id,
                outcome=TrackingOutcome.CANCELLED,
                status=BuildStatus.UNKNOWN,
            )


class BuildTracker:
    """
    Опрос статуса сборки после запуска: пауза, опрос, и так до терминального
    статуса или до max_polls опросов. Каждая сборка отслеживается отдельной
    asyncio-задачей.

    Одиночная ошибка опроса не прерывает отслеживание, max_poll_errors
    ошибок подряд завершают его со статусом unknown. Сборки с номером
    не больше baseline_number считаются ещё не начавшимися (queued).
    """

    def __init__(
        self,
        build_server,
        interval: float = 5.0,
        max_polls: int = 60,
        max_poll_errors: int = 3,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.build_server = build_server
        self.interval = interval
        self.max_polls = max_polls
        self.max_poll_errors = max_poll_errors
        self._sleep = sleep
        self._handles: Dict[str, TrackingHandle] = {}

    def track(
        self,
        job_name: str,
        job_id: str,
        baseline_number: Optional[int] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> TrackingHandle:
        previous = self._handles.get(job_name)
        if previous is not None and not previous.done:
            previous.cancel()

        task = asyncio.create_task(
            self._run(job_name, job_id, baseline_number, on_status),
            name=f"track-{job_name}",
        )
        handle = TrackingHandle(job_name, job_id, task)
        self._handles[job_name] = handle
        task.add_done_callback(lambda _task: self._forget(job_name, handle))
        logger.info("tracking_started", job=job_name, baseline=baseline_number)
        return handle

    def _forget(self, job_name: str, handle: TrackingHandle) -> None:
        if self._handles.get(job_name) is handle:
            del self._handles[job_name]

    def handle(self, job_name: str) -> Optional[TrackingHandle]:
        return self._handles.get(job_name)

    def is_tracking(self, job_name: str) -> bool:
        handle = self._handles.get(job_name)
        return handle is not None and not handle.done

    async def cancel(self, job_name: str) -> Optional[TrackingResult]:
        handle = self._handles.get(job_name)
        if handle is None:
            return None
        handle.cancel()
        return await handle.wait()

    async def shutdown(self) -> None:
        handles: List[TrackingHandle] = list(self._handles.values())
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*(handle.wait() for handle in handles), return_exceptions=True)

    async def _run(
        self,
        job_name: str,
        job_id: str,
        baseline_number: Optional[int],
        on_status: Optional[StatusCallback],
    ) -> TrackingResult:
        polls = 0
        errors = 0
        status = BuildStatus.QUEUED
        number: Optional[int] = None
        last_error: Optional[str] = None

        async def report(new_status: BuildStatus) -> None:
            if on_status is not None:
                await on_status(job_name, new_status, number)

        def result(outcome: TrackingOutcome, final: BuildStatus) -> TrackingResult:
            logger.info(
                "tracking_finished",
                job=job_name,
                outcome=outcome.value,
                status=final.value,
                build=number,
                polls=polls,
            )
            return TrackingResult(
                job_name=job_name,
                job_id=job_id,
                outcome=outcome,
                status=final,
                build_number=number,
                polls=polls,
                last_error=last_error,
            )

        try:
            while polls < self.max_polls:
                await self._sleep(self.interval)
                polls += 1
                try:
                    build = await self.build_server.get_latest_build(job_id)
                except RemoteCallError as e:
                    errors += 1
                    last_error = str(e)
                    logger.warning("tracking_poll_failed", job=job_name, errors=errors, error=last_error)
                    if errors >= self.max_poll_errors:
                        await report(BuildStatus.UNKNOWN)
                        return result(TrackingOutcome.POLL_FAILED, BuildStatus.UNKNOWN)
                    continue
                errors = 0

                if build is None or (baseline_number is not None and build.number <= baseline_number):
                    current = BuildStatus.QUEUED
                else:
                    current = build.status
                    number = build.number

                if current != status:
                    status = current
                    await report(status)
                # продолжаем опрос только для queued и in-progress
                if not status.is_active:
                    return result(TrackingOutcome.COMPLETED, status)

            await report(BuildStatus.UNKNOWN)
            return result(TrackingOutcome.TIMED_OUT, BuildStatus.UNKNOWN)
        except asyncio.CancelledError:
            return result(TrackingOutcome.CANCELLED, status)
