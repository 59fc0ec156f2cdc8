"""Pytest configuration and fixtures for pipedeploy tests."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from pipedeploy.core.config import Settings
from pipedeploy.core.models import (
    BuildRecord,
    BuildStatus,
    CustomConfig,
    JobInfo,
    ResourceKind,
    ResourceState,
    StandardConfig,
    TriggerResult,
    parse_pipeline_config,
)
from pipedeploy.core.services.credentials import CredentialResolver, InMemoryCredentialStore
from pipedeploy.core.services.jenkins import BuildServer, BuildServerError
from pipedeploy.core.services.k8s import Orchestrator, OrchestratorError
from pipedeploy.core.services.reconciler import InMemoryJobRecordStore, ReconciliationEngine

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

CUSTOM_XML = """<?xml version='1.1' encoding='UTF-8'?>
<flow-definition plugin="workflow-job">
  <description>hand written</description>
  <definition class="org.jenkinsci.plugins.workflow.cps.CpsFlowDefinition" plugin="workflow-cps">
    <script>pipeline { agent any; stages { stage('Hello') { steps { echo 'hi' } } } }</script>
    <sandbox>true</sandbox>
  </definition>
</flow-definition>
"""


class FakeBuildServer(BuildServer):
    """In-memory Jenkins: records every remote call into a shared journal."""

    def __init__(self, journal: List[Tuple]) -> None:
        self.journal = journal
        self.jobs: Dict[str, str] = {}
        self.builds: Dict[str, List[BuildRecord]] = {}
        self.failures: Dict[str, Exception] = {}
        # items returned by get_latest_build one per call: BuildRecord, None or an exception
        self.latest_sequence: List[Any] = []

    def _enter(self, operation: str, *args: Any) -> None:
        self.journal.append(("jenkins", operation) + args)
        error = self.failures.get(operation)
        if error is not None:
            raise error

    async def list_jobs(self, name_filter: Optional[str] = None) -> List[JobInfo]:
        self._enter("list_jobs")
        return [
            JobInfo(name=name)
            for name in sorted(self.jobs)
            if not name_filter or name_filter in name
        ]

    async def get_job(self, job_id: str) -> Optional[JobInfo]:
        self._enter("get_job", job_id)
        if job_id not in self.jobs:
            return None
        builds = self.builds.get(job_id) or []
        return JobInfo(name=job_id, last_build_number=builds[0].number if builds else None)

    async def get_job_config(self, job_id: str) -> Optional[str]:
        self._enter("get_job_config", job_id)
        return self.jobs.get(job_id)

    async def create_job(self, name: str, document: str) -> str:
        self._enter("create_job", name)
        if name in self.jobs:
            raise BuildServerError("job", "create", f"job {name} already exists", status_code=400)
        self.jobs[name] = document
        return name

    async def update_job(self, job_id: str, document: str) -> None:
        self._enter("update_job", job_id)
        if job_id not in self.jobs:
            raise BuildServerError("job", "update", "no such job", status_code=404)
        self.jobs[job_id] = document

    async def delete_job(self, job_id: str) -> bool:
        self._enter("delete_job", job_id)
        return self.jobs.pop(job_id, None) is not None

    async def trigger_build(
        self,
        job_id: str,
        last_known_status: BuildStatus = BuildStatus.UNKNOWN,
    ) -> TriggerResult:
        if last_known_status.is_active:
            return TriggerResult(job_id=job_id, accepted=False, reason=f"build is already {last_known_status.value}")
        self._enter("trigger_build", job_id)
        builds = self.builds.get(job_id) or []
        return TriggerResult(
            job_id=job_id,
            accepted=True,
            baseline_number=builds[0].number if builds else None,
        )

    async def get_latest_build(self, job_id: str) -> Optional[BuildRecord]:
        self._enter("get_latest_build", job_id)
        if self.latest_sequence:
            item = self.latest_sequence.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        builds = self.builds.get(job_id) or []
        return builds[0] if builds else None

    async def list_builds(self, job_id: str) -> List[BuildRecord]:
        self._enter("list_builds", job_id)
        return sorted(self.builds.get(job_id) or [], key=lambda build: build.number, reverse=True)

    async def get_build(self, job_id: str, number: int) -> Optional[BuildRecord]:
        self._enter("get_build", job_id, number)
        for build in self.builds.get(job_id) or []:
            if build.number == number:
                return build
        return None

    async def get_build_log(self, job_id: str, number: int) -> str:
        self._enter("get_build_log", job_id, number)
        return f"Started build #{number} of {job_id}\nFinished: SUCCESS\n"


class FakeOrchestrator(Orchestrator):
    """
    In-memory cluster that enforces the dependency between resources:
    a routing rule needs its endpoint, an endpoint cannot go while its rule exists.
    """

    def __init__(self, journal: List[Tuple], namespace: str = "apps") -> None:
        self.journal = journal
        self.namespace = namespace
        self.resources: Dict[Tuple[ResourceKind, str], Any] = {}
        self.failures: Dict[Tuple[str, ResourceKind], Exception] = {}

    def _enter(self, operation: str, kind: ResourceKind, job_name: Optional[str]) -> None:
        self.journal.append(("k8s", operation, kind, job_name))
        error = self.failures.get((operation, kind))
        if error is not None:
            raise error

    def _state(self, kind: ResourceKind, job_name: str, spec: Any) -> ResourceState:
        return ResourceState(kind=kind, name=spec.name, job_name=job_name, namespace=self.namespace)

    async def get(self, kind: ResourceKind, job_name: str) -> Optional[ResourceState]:
        self._enter("get", kind, job_name)
        spec = self.resources.get((kind, job_name))
        return self._state(kind, job_name, spec) if spec is not None else None

    async def create_or_update(self, kind: ResourceKind, job_name: str, spec: Any) -> ResourceState:
        self._enter("apply", kind, job_name)
        if kind == ResourceKind.ROUTING_RULE and (ResourceKind.ENDPOINT, job_name) not in self.resources:
            raise OrchestratorError(kind.value, "create", "backend service does not exist", status_code=422)
        self.resources[(kind, job_name)] = spec
        return self._state(kind, job_name, spec)

    async def delete(self, kind: ResourceKind, job_name: str) -> bool:
        self._enter("delete", kind, job_name)
        if kind == ResourceKind.ENDPOINT and (ResourceKind.ROUTING_RULE, job_name) in self.resources:
            raise OrchestratorError(kind.value, "delete", "still referenced by a routing rule", status_code=409)
        return self.resources.pop((kind, job_name), None) is not None

    async def list(self, kind: ResourceKind, name_filter: Optional[str] = None) -> List[ResourceState]:
        self._enter("list", kind, None)
        return [
            self._state(kind, job_name, spec)
            for (stored_kind, job_name), spec in self.resources.items()
            if stored_kind == kind and (not name_filter or name_filter in spec.name)
        ]


# ============ Fixtures ============


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        jenkins_url="http://jenkins.test",
        registry="registry.example",
        registry_namespace="team",
        k8s_namespace="apps",
        ingress_domain="apps.example.com",
        poll_interval=0.01,
        max_polls=5,
        max_poll_errors=3,
        state_file=tmp_path / "jobs.json",
        credentials_backend="memory",
    )


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def journal() -> List[Tuple]:
    return []


@pytest.fixture
def build_server(journal) -> FakeBuildServer:
    return FakeBuildServer(journal)


@pytest.fixture
def orchestrator(journal) -> FakeOrchestrator:
    return FakeOrchestrator(journal)


@pytest.fixture
def records() -> InMemoryJobRecordStore:
    return InMemoryJobRecordStore()


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def resolver(credential_store, records) -> CredentialResolver:
    return CredentialResolver(credential_store, records)


@pytest.fixture
def engine(build_server, orchestrator, records, resolver, settings, clock) -> ReconciliationEngine:
    return ReconciliationEngine(
        build_server=build_server,
        orchestrator=orchestrator,
        records=records,
        credentials=resolver,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def make_config():
    """Factory for STANDARD configs with sensible defaults."""

    def _make(name: str = "app", stack: str = "node", **overrides: Any) -> StandardConfig:
        data: Dict[str, Any] = {
            "name": name,
            "stack": stack,
            "source": {
                "repo_url": "https://git.example.com/team/app.git",
                "branch": "main",
            },
        }
        data.update(overrides)
        return parse_pipeline_config(data)

    return _make


@pytest.fixture
def custom_xml() -> str:
    return CUSTOM_XML


@pytest.fixture
def custom_config() -> CustomConfig:
    return parse_pipeline_config(
        {"name": "app", "stack": "node", "mode": "CUSTOM", "config_xml": CUSTOM_XML}
    )
