from typing import List, Optional, Tuple

from pipedeploy.core.config import Settings
from pipedeploy.core.exceptions import ImmutableFieldError
from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import (
    BuildStatus,
    ConfigMode,
    JobRecord,
    JobState,
    Operation,
    ReconcileResult,
    RenderedJob,
    ResourceKind,
    StandardConfig,
    TriggerResult,
    utcnow,
)
from pipedeploy.core.renders.jenkins import document_for
from pipedeploy.core.services.builders.pipeline import Clock
from pipedeploy.core.services.credentials import CredentialResolver
from pipedeploy.core.services.jenkins import BuildServer
from pipedeploy.core.services.k8s import (
    APPLY_ORDER,
    DELETE_ORDER,
    OrchestrationResourceSet,
    Orchestrator,
    derive_resources,
)
from pipedeploy.core.validation import check_resource_names, validate_config, validate_job_name
from pipedeploy.exception import RemoteCallError

from .exceptions import JobExistsError, JobNotFoundError, JobStateError, PartialFailureError
from .locks import JobLocks
from .store import JobRecordStore

logger = get_logger(__name__)


def _fingerprint(config) -> dict:
    return config.model_dump(mode="json")


def plan(
    config,
    settings: Settings,
    clock: Clock,
) -> Tuple[RenderedJob, OrchestrationResourceSet, List[str], List[str]]:
    """
    Локальная часть реконсиляции: валидация, документ джоба и ресурсы.
    Удалённых вызовов нет, поэтому подходит и для предпросмотра.
    """
    validate_job_name(config.name)
    validate_config(config)
    resources = derive_resources(config, settings)
    check_resource_names(resources)
    rendered, logs, warnings = document_for(config, settings, clock)
    return rendered, resources, logs, warnings


class ReconciliationEngine:
    """
    Приводит джоб Jenkins и ресурсы Kubernetes к последней применённой
    конфигурации.

    Порядок шагов:
      create: джоб Jenkins -> workload -> endpoint -> routing-rule
      update: update_job -> workload -> endpoint -> routing-rule
      delete: routing-rule -> endpoint -> workload -> джоб Jenkins -> запись

    Любой сбой удалённого вызова посреди операции переводит запись в
    partial-failure с указанием шага; повтор той же операции продолжает работу.
    """

    def __init__(
        self,
        build_server: BuildServer,
        orchestrator: Orchestrator,
        records: JobRecordStore,
        credentials: CredentialResolver,
        settings: Settings,
        clock: Optional[Clock] = None,
        locks: Optional[JobLocks] = None,
    ) -> None:
        self.build_server = build_server
        self.orchestrator = orchestrator
        self.records = records
        self.credentials = credentials
        self.settings = settings
        self.clock = clock or utcnow
        self.locks = locks or JobLocks()

    # ---------- подготовка ----------

    def plan(self, config) -> Tuple[RenderedJob, OrchestrationResourceSet, List[str], List[str]]:
        return plan(config, self.settings, self.clock)

    async def _bind_credentials(self, config, logs: List[str]):
        """
        Новые учётные данные заводятся (или переиспользуются по имени) и в
        конфигурации заменяются ссылкой; существующая ссылка проверяется.
        """
        if not isinstance(config, StandardConfig):
            return config

        source = config.source
        if source.credentials is not None:
            credential_id = await self.credentials.ensure(source.credentials)
            logs.append(f"Учётные данные git: {credential_id}")
            source = source.model_copy(update={"credentials_id": credential_id, "credentials": None})
            return config.model_copy(update={"source": source})

        if source.credentials_id:
            await self.credentials.resolve(source.credentials_id)
            logs.append(f"Учётные данные git {source.credentials_id} найдены.")
        return config

    async def _prepare(self, config):
        # валидация до обращения к хранилищу учётных данных
        validate_job_name(config.name)
        validate_config(config)
        logs: List[str] = []
        config = await self._bind_credentials(config, logs)
        rendered, resources, plan_logs, warnings = self.plan(config)
        return config, rendered, resources, logs + plan_logs, warnings

    # ---------- запись о джобе ----------

    async def _require(self, name: str) -> JobRecord:
        record = await self.records.get(name)
        if record is None:
            raise JobNotFoundError(name)
        return record

    async def _save(self, record: JobRecord, **changes) -> JobRecord:
        for key, value in changes.items():
            setattr(record, key, value)
        record.updated_at = utcnow()
        await self.records.put(record)
        return record

    async def _fail(
        self,
        record: JobRecord,
        operation: Operation,
        step: ResourceKind,
        error: RemoteCallError,
        logs: List[str],
    ) -> PartialFailureError:
        logs.append(f"Шаг {step.value} завершился ошибкой: {error}")
        await self._save(
            record,
            state=JobState.PARTIAL_FAILURE,
            pending_operation=operation,
            failed_step=step,
            orchestration_complete=False,
            last_error=str(error),
        )
        logger.warning(
            "reconcile_partial_failure",
            job=record.name,
            operation=operation.value,
            step=step.value,
            error=str(error),
        )
        return PartialFailureError(record.name, operation, step, error, logs=logs + error.logs)

    async def _apply_resources(
        self,
        record: JobRecord,
        resources: OrchestrationResourceSet,
        operation: Operation,
        logs: List[str],
        start: ResourceKind = ResourceKind.WORKLOAD,
    ) -> JobRecord:
        kinds = APPLY_ORDER[APPLY_ORDER.index(start):]
        for kind in kinds:
            spec = resources.for_kind(kind)
            try:
                await self.orchestrator.create_or_update(kind, record.name, spec)
            except RemoteCallError as e:
                raise await self._fail(record, operation, kind, e, logs) from e
            logs.append(f"Ресурс {kind.value} {spec.name} применён.")

        return await self._save(
            record,
            state=JobState.READY,
            pending_operation=None,
            failed_step=None,
            orchestration_complete=True,
            last_error=None,
        )

    @staticmethod
    def _check_immutable(record: JobRecord, name: str, config) -> None:
        if config.name != name:
            raise ImmutableFieldError(name, "name", name, config.name)
        if config.stack != record.stack:
            raise ImmutableFieldError(name, "stack", record.stack.value, config.stack.value)

    # ---------- операции ----------

    async def create(self, config) -> ReconcileResult:
        name = config.name
        validate_job_name(name)
        async with self.locks.hold(name):
            existing = await self.records.get(name)
            if existing is not None:
                if (
                    existing.state == JobState.PARTIAL_FAILURE
                    and existing.pending_operation == Operation.CREATE
                ):
                    return await self._resume_create(existing, config)
                raise JobExistsError(name, existing.state)

            config, rendered, resources, logs, warnings = await self._prepare(config)

            try:
                job_id = await self.build_server.create_job(name, rendered.document)
            except RemoteCallError as e:
                logs.append("Джоб в Jenkins не создан, ресурсы кластера не трогаем.")
                e.logs = logs + e.logs
                raise
            logs.append(f"Джоб {job_id} создан в Jenkins.")

            record = JobRecord(
                name=name,
                build_server_id=job_id,
                mode=ConfigMode(config.mode),
                stack=config.stack,
                state=JobState.JOB_CREATED,
                pending_operation=Operation.CREATE,
                orchestration_complete=False,
                config=config,
                document=rendered.document,
            )
            await self.records.put(record)
            logger.info("job_created", job=name, build_server_id=job_id)

            record = await self._apply_resources(record, resources, Operation.CREATE, logs)
            logs.append(f"Джоб {name} готов.")
            return ReconcileResult(
                operation=Operation.CREATE,
                job_name=name,
                state=record.state,
                record=record,
                logs=logs,
                warnings=warnings,
            )

    async def _resume_create(self, record: JobRecord, config) -> ReconcileResult:
        name = record.name
        self._check_immutable(record, name, config)
        config, rendered, resources, logs, warnings = await self._prepare(config)

        unchanged = _fingerprint(config) == _fingerprint(record.config)
        if unchanged and record.failed_step in APPLY_ORDER:
            start = record.failed_step
            logs.append(f"Конфигурация не менялась: продолжаем создание с шага {start.value}.")
        else:
            try:
                await self.build_server.update_job(record.build_server_id, rendered.document)
            except RemoteCallError as e:
                raise await self._fail(record, Operation.CREATE, ResourceKind.JOB, e, logs) from e
            record.config = config
            record.mode = ConfigMode(config.mode)
            record.document = rendered.document
            start = ResourceKind.WORKLOAD
            logs.append("Конфигурация изменилась: джоб обновлён, ресурсы применяются заново.")

        await self._save(record, state=JobState.JOB_CREATED)
        logger.info("job_create_resumed", job=name, start=start.value)
        record = await self._apply_resources(record, resources, Operation.CREATE, logs, start=start)
        logs.append(f"Джоб {name} готов.")
        return ReconcileResult(
            operation=Operation.CREATE,
            job_name=name,
            state=record.state,
            record=record,
            logs=logs,
            warnings=warnings,
        )

    async def update(self, name: str, config) -> ReconcileResult:
        async with self.locks.hold(name):
            record = await self._require(name)
            self._check_immutable(record, name, config)
            if record.state == JobState.DELETING or record.pending_operation == Operation.DELETE:
                raise JobStateError(name, record.state, "update", "finish the pending delete first")

            config, rendered, resources, logs, warnings = await self._prepare(config)

            await self._save(record, state=JobState.RECONCILING, pending_operation=Operation.UPDATE)
            try:
                await self.build_server.update_job(record.build_server_id, rendered.document)
            except RemoteCallError as e:
                raise await self._fail(record, Operation.UPDATE, ResourceKind.JOB, e, logs) from e
            logs.append(f"Джоб {record.build_server_id} обновлён в Jenkins.")

            if record.mode.value != config.mode:
                logs.append(f"Режим конфигурации: {record.mode.value} -> {config.mode}")
            record.config = config
            record.mode = ConfigMode(config.mode)
            record.document = rendered.document

            record = await self._apply_resources(record, resources, Operation.UPDATE, logs)
            logger.info("job_updated", job=name)
            return ReconcileResult(
                operation=Operation.UPDATE,
                job_name=name,
                state=record.state,
                record=record,
                logs=logs,
                warnings=warnings,
            )

    async def delete(self, name: str) -> ReconcileResult:
        async with self.locks.hold(name):
            record = await self._require(name)
            logs: List[str] = []
            await self._save(record, state=JobState.DELETING, pending_operation=Operation.DELETE)

            for kind in DELETE_ORDER:
                try:
                    removed = await self.orchestrator.delete(kind, name)
                except RemoteCallError as e:
                    raise await self._fail(record, Operation.DELETE, kind, e, logs) from e
                logs.append(
                    f"Ресурс {kind.value} удалён." if removed else f"Ресурса {kind.value} уже нет."
                )

            try:
                removed = await self.build_server.delete_job(record.build_server_id)
            except RemoteCallError as e:
                raise await self._fail(record, Operation.DELETE, ResourceKind.JOB, e, logs) from e
            logs.append("Джоб удалён из Jenkins." if removed else "Джоба в Jenkins уже нет.")

            await self.records.delete(name)
            logs.append(f"Запись о джобе {name} удалена.")
            logger.info("job_deleted", job=name)
            return ReconcileResult(operation=Operation.DELETE, job_name=name, logs=logs)

    # ---------- сборки ----------

    async def _refresh_active(self, record: JobRecord) -> JobRecord:
        """
        Активный статус в записи мог устареть: сборку никто не отслеживал.
        Сборка новее last_build_number заменяет его; если её ещё нет,
        запуск по-прежнему в очереди.
        """
        build = await self.build_server.get_latest_build(record.build_server_id)
        if build is None:
            return record
        if record.last_build_number is not None and build.number <= record.last_build_number:
            return record
        logger.info(
            "build_status_refreshed",
            job=record.name,
            number=build.number,
            status=build.status.value,
        )
        return await self._save(record, last_build_status=build.status, last_build_number=build.number)

    async def trigger_build(self, name: str, refresh: bool = True) -> TriggerResult:
        """
        refresh=False: статус в записи ведёт трекер, Jenkins не перечитывается.
        """
        async with self.locks.hold(name):
            record = await self._require(name)
            if record.state != JobState.READY:
                raise JobStateError(
                    name,
                    record.state,
                    "build",
                    "retry the pending operation until the job is ready",
                )
            if refresh and record.last_build_status.is_active:
                record = await self._refresh_active(record)
            result = await self.build_server.trigger_build(
                record.build_server_id,
                record.last_build_status,
            )
            if result.accepted:
                baseline = result.baseline_number
                await self._save(
                    record,
                    last_build_status=BuildStatus.QUEUED,
                    last_build_number=baseline if baseline is not None else record.last_build_number,
                )
            return result

    async def record_build_status(
        self,
        name: str,
        status: BuildStatus,
        number: Optional[int] = None,
    ) -> Optional[JobRecord]:
        async with self.locks.hold(name):
            record = await self.records.get(name)
            if record is None:
                return None
            changes = {"last_build_status": status}
            if number is not None:
                changes["last_build_number"] = number
            return await self._save(record, **changes)

    async def refresh_status(self, name: str) -> JobRecord:
        """
        Перечитывает последнюю сборку из Jenkins. Ошибка чтения
        пробрасывается как есть и состояние записи не меняет.
        """
        record = await self._require(name)
        build = await self.build_server.get_latest_build(record.build_server_id)
        if build is None:
            return record
        updated = await self.record_build_status(name, build.status, build.number)
        return updated or record
