from abc import ABC, abstractmethod
from typing import List, Optional

from pipedeploy.core.models import ResourceKind, ResourceState

from .specs import ResourceSpec


class Orchestrator(ABC):
    """
    Контракт клиента оркестратора для ресурсов, которыми управляет pipedeploy.

    create_or_update можно вызывать безусловно при каждой реконсиляции:
    повторный вызов с тем же spec оставляет кластер в том же состоянии.
    """

    @abstractmethod
    async def get(self, kind: ResourceKind, job_name: str) -> Optional[ResourceState]:
        ...

    @abstractmethod
    async def create_or_update(
        self,
        kind: ResourceKind,
        job_name: str,
        spec: ResourceSpec,
    ) -> ResourceState:
        ...

    @abstractmethod
    async def delete(self, kind: ResourceKind, job_name: str) -> bool:
        """True, если ресурс удалён; False, если его уже не было."""

    @abstractmethod
    async def list(
        self,
        kind: ResourceKind,
        name_filter: Optional[str] = None,
    ) -> List[ResourceState]:
        ...
