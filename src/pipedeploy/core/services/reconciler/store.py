import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import JobRecord

logger = get_logger(__name__)


class JobRecordStore(ABC):
    """
    Единственное долговременное общее состояние: записи о джобах.
    Изоляцию read-modify-write по имени джоба обеспечивает JobLocks движка.
    """

    @abstractmethod
    async def get(self, name: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    async def put(self, record: JobRecord) -> None:
        ...

    @abstractmethod
    async def delete(self, name: str) -> None:
        ...

    @abstractmethod
    async def list(self) -> List[JobRecord]:
        ...

    async def close(self) -> None:
        return None


class InMemoryJobRecordStore(JobRecordStore):
    def __init__(self) -> None:
        self._records: Dict[str, JobRecord] = {}

    async def get(self, name: str) -> Optional[JobRecord]:
        record = self._records.get(name)
        return record.model_copy(deep=True) if record else None

    async def put(self, record: JobRecord) -> None:
        self._records[record.name] = record.model_copy(deep=True)

    async def delete(self, name: str) -> None:
        self._records.pop(name, None)

    async def list(self) -> List[JobRecord]:
        return [record.model_copy(deep=True) for record in self._records.values()]


class JsonFileJobRecordStore(JobRecordStore):
    """
    Записи в JSON-файле (по умолчанию BASE_TEMP_DIR/jobs.json).

    Файл перезаписывается целиком через временный файл и os.replace,
    поэтому при падении процесса остаётся либо старая, либо новая версия.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._records: Optional[Dict[str, JobRecord]] = None
        self._lock = asyncio.Lock()

    def _read_file(self) -> Dict[str, JobRecord]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return {item["name"]: JobRecord.model_validate(item) for item in raw.get("jobs", [])}

    def _write_file(self, records: Dict[str, JobRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"jobs": [record.model_dump(mode="json") for record in records.values()]}
        fd, tmp_path = tempfile.mkstemp(prefix=".jobs_", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    async def _loaded(self) -> Dict[str, JobRecord]:
        if self._records is None:
            self._records = await asyncio.to_thread(self._read_file)
            logger.debug("job_records_loaded", path=str(self.path), count=len(self._records))
        return self._records

    async def get(self, name: str) -> Optional[JobRecord]:
        async with self._lock:
            record = (await self._loaded()).get(name)
            return record.model_copy(deep=True) if record else None

    async def put(self, record: JobRecord) -> None:
        async with self._lock:
            records = dict(await self._loaded())
            records[record.name] = record.model_copy(deep=True)
            await asyncio.to_thread(self._write_file, records)
            self._records = records

    async def delete(self, name: str) -> None:
        async with self._lock:
            records = dict(await self._loaded())
            if records.pop(name, None) is None:
                return
            await asyncio.to_thread(self._write_file, records)
            self._records = records

    async def list(self) -> List[JobRecord]:
        async with self._lock:
            return [record.model_copy(deep=True) for record in (await self._loaded()).values()]
