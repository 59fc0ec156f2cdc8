from typing import List, Optional, Tuple

from pydantic import BaseModel

from .config import Settings
from .models import (
    BuildRecord,
    JobInfo,
    JobRecord,
    JobStatusView,
    ReconcileResult,
    RenderedJob,
    ResourceKind,
    ResourceState,
    ScriptSummary,
    StandardConfig,
    TriggerResult,
    utcnow,
)
from .services.advisor import Advisory, summarize
from .services.builders import pipeline as builder
from .services.builders.pipeline import Clock
from .services.credentials import (
    CredentialResolver,
    CredentialStore,
    InMemoryCredentialStore,
    JenkinsCredentialStore,
)
from .services.git_module import GitSourceProbe, RemoteRef
from .services.jenkins import BuildServer, JenkinsClient
from .services.k8s import (
    APPLY_ORDER,
    KubernetesOrchestrator,
    OrchestrationResourceSet,
    Orchestrator,
)
from .services.reconciler import (
    JobNotFoundError,
    JobRecordStore,
    JsonFileJobRecordStore,
    ReconciliationEngine,
    plan,
)
from .services.tracker import BuildTracker, TrackingHandle


class PreviewResult(BaseModel):
    rendered: RenderedJob
    summary: Optional[ScriptSummary] = None
    resources: OrchestrationResourceSet
    logs: List[str] = []
    warnings: List[str] = []


def preview(config, settings: Settings, clock: Clock = utcnow) -> PreviewResult:
    """
    Предпросмотр без побочных эффектов: config.xml, скрипт и ресурсы кластера.
    """
    rendered, resources, logs, warnings = plan(config, settings, clock)

    summary = None
    if isinstance(config, StandardConfig):
        script, _, _ = builder.build_script(config, settings, clock)
        summary = builder.summarize_script(script)

    if not warnings:
        warnings.append(
            "Скрипт сформирован автоматически. Проверьте команды сборки и выката перед запуском."
        )
    return PreviewResult(
        rendered=rendered,
        summary=summary,
        resources=resources,
        logs=logs,
        warnings=warnings,
    )


class PipeDeployCore:
    """
    Точка входа для CLI и внешних вызывающих: собирает клиентов Jenkins
    и Kubernetes, хранилища, движок реконсиляции и трекер сборок.
    """

    def __init__(
        self,
        settings: Settings,
        build_server: BuildServer,
        orchestrator: Orchestrator,
        records: JobRecordStore,
        credential_store: CredentialStore,
        clock: Optional[Clock] = None,
        tracker: Optional[BuildTracker] = None,
        probe: Optional[GitSourceProbe] = None,
        generate=None,
    ) -> None:
        self.settings = settings
        self.clock = clock or utcnow
        self.build_server = build_server
        self.orchestrator = orchestrator
        self.records = records
        self.credentials = CredentialResolver(credential_store, records)
        self.engine = ReconciliationEngine(
            build_server=build_server,
            orchestrator=orchestrator,
            records=records,
            credentials=self.credentials,
            settings=settings,
            clock=self.clock,
        )
        self.tracker = tracker or BuildTracker(
            build_server,
            interval=settings.poll_interval,
            max_polls=settings.max_polls,
            max_poll_errors=settings.max_poll_errors,
        )
        self.probe = probe or GitSourceProbe()
        self.generate = generate

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PipeDeployCore":
        settings = settings or Settings.from_env()
        jenkins = JenkinsClient.from_settings(settings)
        if settings.credentials_backend == "memory":
            credential_store: CredentialStore = InMemoryCredentialStore()
        else:
            credential_store = JenkinsCredentialStore(
                jenkins,
                store=settings.jenkins_credentials_store,
                domain=settings.jenkins_credentials_domain,
            )
        return cls(
            settings=settings,
            build_server=jenkins,
            orchestrator=KubernetesOrchestrator.from_settings(settings),
            records=JsonFileJobRecordStore(settings.state_file),
            credential_store=credential_store,
        )

    async def aclose(self) -> None:
        await self.tracker.shutdown()
        await self.build_server.aclose()
        await self.records.close()

    async def __aenter__(self) -> "PipeDeployCore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ---------- джобы ----------

    def preview(self, config) -> PreviewResult:
        return preview(config, self.settings, self.clock)

    async def create(self, config) -> ReconcileResult:
        return await self.engine.create(config)

    async def update(self, name: str, config) -> ReconcileResult:
        return await self.engine.update(name, config)

    async def delete(self, name: str) -> ReconcileResult:
        if self.tracker.is_tracking(name):
            await self.tracker.cancel(name)
        return await self.engine.delete(name)

    async def _record(self, name: str) -> JobRecord:
        record = await self.records.get(name)
        if record is None:
            raise JobNotFoundError(name)
        return record

    async def status(self, name: str) -> JobStatusView:
        record = await self._record(name)
        latest = await self.build_server.get_latest_build(record.build_server_id)
        tracking = self.tracker.is_tracking(name)
        # пока идёт отслеживание, статус в записи ведёт трекер
        if latest is not None and not tracking:
            record = await self.engine.record_build_status(name, latest.status, latest.number) or record

        resources: List[ResourceState] = []
        for kind in APPLY_ORDER:
            state = await self.orchestrator.get(kind, name)
            if state is not None:
                resources.append(state)

        return JobStatusView(
            name=record.name,
            state=record.state,
            mode=record.mode,
            stack=record.stack,
            failed_step=record.failed_step,
            pending_operation=record.pending_operation,
            last_error=record.last_error,
            build_status=record.last_build_status,
            latest_build=latest,
            tracking=tracking,
            resources=resources,
        )

    async def list_records(self) -> List[JobRecord]:
        return sorted(await self.records.list(), key=lambda record: record.name)

    async def list_remote_jobs(self, name_filter: Optional[str] = None) -> List[JobInfo]:
        return await self.build_server.list_jobs(name_filter)

    # ---------- сборки ----------

    async def trigger_build(
        self,
        name: str,
        track: bool = True,
    ) -> Tuple[TriggerResult, Optional[TrackingHandle]]:
        # пока идёт отслеживание, статус в записи ведёт трекер
        result = await self.engine.trigger_build(name, refresh=not self.tracker.is_tracking(name))
        handle = None
        if result.accepted and track:
            handle = self.tracker.track(
                name,
                result.job_id,
                baseline_number=result.baseline_number,
                on_status=self.engine.record_build_status,
            )
        return result, handle

    async def builds(self, name: str) -> List[BuildRecord]:
        record = await self._record(name)
        return await self.build_server.list_builds(record.build_server_id)

    async def build_log(self, name: str, number: int) -> str:
        record = await self._record(name)
        return await self.build_server.get_build_log(record.build_server_id, number)

    # ---------- кластер, источники, подсказки ----------

    async def resources(
        self,
        kind: ResourceKind,
        name_filter: Optional[str] = None,
    ) -> List[ResourceState]:
        return await self.orchestrator.list(kind, name_filter)

    async def check_source(
        self,
        repo_url: str,
        ref: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ) -> RemoteRef:
        return await self.probe.resolve_ref(repo_url, ref, username=username, password=password)

    async def advise(self, config) -> Advisory:
        return await summarize(config, self.generate)
