from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from pipedeploy.core.config import Settings
from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import BuildRecord, BuildStatus, JobInfo, TriggerResult
from pipedeploy.utils import remote_retrying

from .base import BuildServer
from .exceptions import BuildServerError

logger = get_logger(__name__)

BUILD_TREE = "number,result,building,timestamp,duration,url"
JOB_TREE = "name,url,color,inQueue,buildable,lastBuild[number]"

# result из JSON сборки Jenkins
_RESULT_STATUSES = {
    "SUCCESS": BuildStatus.SUCCESS,
    "FAILURE": BuildStatus.FAILURE,
    "UNSTABLE": BuildStatus.FAILURE,
    "ABORTED": BuildStatus.ABORTED,
    "NOT_BUILT": BuildStatus.UNKNOWN,
}

# color из списка джобов; суффикс _anime означает «идёт сборка»
_COLOR_STATUSES = {
    "blue": BuildStatus.SUCCESS,
    "green": BuildStatus.SUCCESS,
    "red": BuildStatus.FAILURE,
    "yellow": BuildStatus.FAILURE,
    "aborted": BuildStatus.ABORTED,
    "notbuilt": BuildStatus.UNKNOWN,
    "disabled": BuildStatus.UNKNOWN,
    "grey": BuildStatus.UNKNOWN,
}


def normalize_build_status(result: Optional[str], building: bool = False) -> BuildStatus:
    if building:
        return BuildStatus.IN_PROGRESS
    if not result:
        return BuildStatus.UNKNOWN
    return _RESULT_STATUSES.get(result.upper(), BuildStatus.UNKNOWN)


def normalize_color(color: Optional[str], in_queue: bool = False) -> BuildStatus:
    if color and color.endswith("_anime"):
        return BuildStatus.IN_PROGRESS
    if in_queue:
        return BuildStatus.QUEUED
    if not color:
        return BuildStatus.UNKNOWN
    return _COLOR_STATUSES.get(color, BuildStatus.UNKNOWN)


def _from_millis(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, BuildServerError) and exc.transient


def _error_detail(response: httpx.Response) -> str:
    # Jenkins отдаёт HTML-страницы ошибок; в сообщение берём только начало
    text = (response.text or "").strip()
    if not text:
        return response.reason_phrase or "remote rejected the request"
    first_line = text.splitlines()[0]
    return first_line[:200]


class JenkinsClient(BuildServer):
    """
    Клиент Jenkins REST API поверх httpx.AsyncClient.

    Аутентификация по API-токену (basic auth user:token), поэтому crumb
    не нужен. Идемпотентные вызовы повторяются при сетевых ошибках и 5xx
    с экспоненциальной паузой (tenacity).
    """

    def __init__(
        self,
        base_url: str,
        user: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 10.0,
        retries: int = 3,
        retry_wait: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        auth = (user, token) if user and token else None
        self.base_url = base_url.rstrip("/")
        self.retries = retries
        self.retry_wait = retry_wait
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "JenkinsClient":
        token = settings.jenkins_token.get_secret_value() if settings.jenkins_token else None
        return cls(
            base_url=settings.jenkins_url,
            user=settings.jenkins_user,
            token=token,
            timeout=settings.jenkins_timeout,
            retries=settings.jenkins_retries,
            retry_wait=settings.jenkins_retry_wait,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "JenkinsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ---------- транспорт ----------

    @staticmethod
    def job_path(job_id: str) -> str:
        return f"/job/{quote(job_id, safe='')}"

    async def _send(
        self,
        method: str,
        path: str,
        resource_kind: str,
        operation: str,
        missing_ok: bool,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise BuildServerError(
                resource_kind,
                operation,
                str(e) or e.__class__.__name__,
                transient=True,
            ) from e

        if response.status_code == 404 and missing_ok:
            return response
        if response.status_code >= 400:
            raise BuildServerError(
                resource_kind,
                operation,
                _error_detail(response),
                status_code=response.status_code,
                transient=response.status_code >= 500,
            )
        return response

    async def request(
        self,
        method: str,
        path: str,
        resource_kind: str,
        operation: str,
        retry: bool = True,
        missing_ok: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Один вызов Jenkins. retry=False для неидемпотентных операций.
        При missing_ok=True ответ 404 возвращается вызывающему, а не бросается.
        """
        attempts = self.retries if retry else 1
        async for attempt in remote_retrying(attempts, _is_transient, min_wait=self.retry_wait):
            with attempt:
                response = await self._send(method, path, resource_kind, operation, missing_ok, **kwargs)
        logger.debug(
            "jenkins_call",
            method=method,
            path=path,
            status=response.status_code,
        )
        return response

    # ---------- джобы ----------

    @staticmethod
    def _job_info(data: Dict[str, Any]) -> JobInfo:
        last_build = data.get("lastBuild") or {}
        in_queue = bool(data.get("inQueue"))
        return JobInfo(
            name=data["name"],
            url=data.get("url"),
            status=normalize_color(data.get("color"), in_queue),
            in_queue=in_queue,
            buildable=data.get("buildable", True),
            last_build_number=last_build.get("number"),
        )

    async def list_jobs(self, name_filter: Optional[str] = None) -> List[JobInfo]:
        response = await self.request(
            "GET", "/api/json", "job", "list",
            params={"tree": f"jobs[{JOB_TREE}]"},
        )
        jobs = [self._job_info(item) for item in response.json().get("jobs", [])]
        if name_filter:
            jobs = [job for job in jobs if name_filter in job.name]
        return jobs

    async def get_job(self, job_id: str) -> Optional[JobInfo]:
        response = await self.request(
            "GET", f"{self.job_path(job_id)}/api/json", "job", "get",
            missing_ok=True,
            params={"tree": JOB_TREE},
        )
        if response.status_code == 404:
            return None
        return self._job_info(response.json())

    async def get_job_config(self, job_id: str) -> Optional[str]:
        response = await self.request(
            "GET", f"{self.job_path(job_id)}/config.xml", "job", "get-config",
            missing_ok=True,
        )
        if response.status_code == 404:
            return None
        return response.text

    async def create_job(self, name: str, document: str) -> str:
        await self.request(
            "POST", "/createItem", "job", "create",
            retry=False,
            params={"name": name},
            content=document.encode("utf-8"),
            headers={"Content-Type": "application/xml"},
        )
        logger.info("jenkins_job_created", job=name)
        return name

    async def update_job(self, job_id: str, document: str) -> None:
        await self.request(
            "POST", f"{self.job_path(job_id)}/config.xml", "job", "update",
            content=document.encode("utf-8"),
            headers={"Content-Type": "application/xml"},
        )
        logger.info("jenkins_job_updated", job=job_id)

    async def delete_job(self, job_id: str) -> bool:
        response = await self.request(
            "POST", f"{self.job_path(job_id)}/doDelete", "job", "delete",
            missing_ok=True,
        )
        if response.status_code == 404:
            logger.info("jenkins_job_already_absent", job=job_id)
            return False
        logger.info("jenkins_job_deleted", job=job_id)
        return True

    # ---------- сборки ----------

    async def trigger_build(
        self,
        job_id: str,
        last_known_status: BuildStatus = BuildStatus.UNKNOWN,
    ) -> TriggerResult:
        """
        Ставит сборку в очередь. Если по последнему известному статусу сборка
        уже идёт или стоит в очереди, запрос в Jenkins не отправляется.
        Устаревший статус страхует disableConcurrentBuilds() в самом джобе.
        """
        if last_known_status.is_active:
            logger.info("jenkins_trigger_rejected", job=job_id, last_known=last_known_status.value)
            return TriggerResult(
                job_id=job_id,
                accepted=False,
                reason=f"build is already {last_known_status.value}",
            )

        job = await self.get_job(job_id)
        if job is None:
            raise BuildServerError("job", "trigger", f"job {job_id!r} does not exist", status_code=404)

        response = await self.request(
            "POST", f"{self.job_path(job_id)}/build", "build", "trigger",
            retry=False,
        )
        logger.info("jenkins_build_triggered", job=job_id, baseline=job.last_build_number)
        return TriggerResult(
            job_id=job_id,
            accepted=True,
            queue_url=response.headers.get("Location"),
            baseline_number=job.last_build_number,
        )

    @staticmethod
    def _build_record(job_id: str, data: Dict[str, Any]) -> BuildRecord:
        duration = data.get("duration")
        return BuildRecord(
            job_id=job_id,
            number=data["number"],
            status=normalize_build_status(data.get("result"), bool(data.get("building"))),
            started_at=_from_millis(data.get("timestamp")),
            duration=duration / 1000 if duration else None,
            url=data.get("url"),
        )

    async def get_latest_build(self, job_id: str) -> Optional[BuildRecord]:
        response = await self.request(
            "GET", f"{self.job_path(job_id)}/lastBuild/api/json", "build", "get-latest",
            missing_ok=True,
            params={"tree": BUILD_TREE},
        )
        if response.status_code == 404:
            return None
        return self._build_record(job_id, response.json())

    async def list_builds(self, job_id: str) -> List[BuildRecord]:
        response = await self.request(
            "GET", f"{self.job_path(job_id)}/api/json", "build", "list",
            params={"tree": f"builds[{BUILD_TREE}]"},
        )
        builds = [self._build_record(job_id, item) for item in response.json().get("builds", [])]
        return sorted(builds, key=lambda build: build.number, reverse=True)

    async def get_build(self, job_id: str, number: int) -> Optional[BuildRecord]:
        response = await self.request(
            "GET", f"{self.job_path(job_id)}/{number}/api/json", "build", "get",
            missing_ok=True,
            params={"tree": BUILD_TREE},
        )
        if response.status_code == 404:
            return None
        return self._build_record(job_id, response.json())

    async def get_build_log(self, job_id: str, number: int) -> str:
        response = await self.request(
            "GET", f"{self.job_path(job_id)}/{number}/consoleText", "build-log", "get",
        )
        return response.text
