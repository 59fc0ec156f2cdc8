from abc import ABC, abstractmethod
from typing import List, Optional

from pipedeploy.core.models import BuildRecord, BuildStatus, JobInfo, TriggerResult


class BuildServer(ABC):
    """
    Контракт клиента сборочного сервера.

    Не идемпотентны: create_job (повтор создаст конфликт имени) и
    trigger_build (повтор поставит вторую сборку). Остальные операции
    безопасно повторять.
    """

    @abstractmethod
    async def list_jobs(self, name_filter: Optional[str] = None) -> List[JobInfo]:
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[JobInfo]:
        ...

    @abstractmethod
    async def get_job_config(self, job_id: str) -> Optional[str]:
        ...

    @abstractmethod
    async def create_job(self, name: str, document: str) -> str:
        ...

    @abstractmethod
    async def update_job(self, job_id: str, document: str) -> None:
        ...

    @abstractmethod
    async def delete_job(self, job_id: str) -> bool:
        """True, если джоб удалён; False, если его уже не было."""

    @abstractmethod
    async def trigger_build(
        self,
        job_id: str,
        last_known_status: BuildStatus = BuildStatus.UNKNOWN,
    ) -> TriggerResult:
        ...

    @abstractmethod
    async def get_latest_build(self, job_id: str) -> Optional[BuildRecord]:
        ...

    async def get_latest_build_status(self, job_id: str) -> BuildStatus:
        build = await self.get_latest_build(job_id)
        if build is None:
            return BuildStatus.UNKNOWN
        return build.status

    @abstractmethod
    async def list_builds(self, job_id: str) -> List[BuildRecord]:
        """Сборки по убыванию номера."""

    @abstractmethod
    async def get_build(self, job_id: str, number: int) -> Optional[BuildRecord]:
        ...

    @abstractmethod
    async def get_build_log(self, job_id: str, number: int) -> str:
        ...

    async def aclose(self) -> None:
        return None
