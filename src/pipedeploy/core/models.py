from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, SecretStr, TypeAdapter


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RuntimeStack(str, Enum):
    NODE = "node"
    JAVA = "java"
    PYTHON = "python"


class ConfigMode(str, Enum):
    STANDARD = "STANDARD"
    CUSTOM = "CUSTOM"


class BuildStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in-progress"
    SUCCESS = "success"
    FAILURE = "failure"
    ABORTED = "aborted"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (BuildStatus.SUCCESS, BuildStatus.FAILURE, BuildStatus.ABORTED)

    @property
    def is_active(self) -> bool:
        return self in (BuildStatus.QUEUED, BuildStatus.IN_PROGRESS)


class JobState(str, Enum):
    JOB_CREATED = "job-created"
    RECONCILING = "reconciling"
    READY = "ready"
    PARTIAL_FAILURE = "partial-failure"
    DELETING = "deleting"


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ResourceKind(str, Enum):
    JOB = "job"
    WORKLOAD = "workload"
    ENDPOINT = "endpoint"
    ROUTING_RULE = "routing-rule"
    POD = "pod"


# =========================
# Конфигурация пайплайна
# =========================

class NewCredential(BaseModel):
    """
    Учётные данные git, которые нужно завести (или переиспользовать по имени)
    при создании джоба. Секрет в JobRecord никогда не попадает.
    """
    name: str
    username: str
    secret: SecretStr
    description: Optional[str] = None


class SourceSpec(BaseModel):
    repo_url: str = ""
    branch: str = "master"
    credentials_id: Optional[str] = None
    credentials: Optional[NewCredential] = None


class ImageSpec(BaseModel):
    """
    dockerfile_path: путь до Dockerfile от корня репозитория
    build_context  : контекст docker build
    build_directory: рабочая папка для установки зависимостей (монорепо)
    image_name     : имя образа, по умолчанию совпадает с именем джоба
    """
    dockerfile_path: str = "./Dockerfile"
    build_context: str = "."
    build_directory: Optional[str] = None
    image_name: Optional[str] = None


class RuntimeSpec(BaseModel):
    container_port: Optional[int] = Field(None, ge=1, le=65535)
    service_port: int = Field(80, ge=1, le=65535)
    replicas: int = Field(1, ge=0)
    path_prefix: Optional[str] = None


class _PipelineConfigBase(BaseModel):
    name: str
    stack: RuntimeStack
    image: ImageSpec = Field(default_factory=ImageSpec)
    runtime: RuntimeSpec = Field(default_factory=RuntimeSpec)

    @property
    def image_name(self) -> str:
        return self.image.image_name or self.name

    @property
    def container_port(self) -> int:
        # node-сборки отдаются nginx'ом на 80, остальные стеки слушают 8080
        if self.runtime.container_port is not None:
            return self.runtime.container_port
        return 80 if self.stack == RuntimeStack.NODE else 8080


class StandardConfig(_PipelineConfigBase):
    mode: Literal["STANDARD"] = "STANDARD"
    source: SourceSpec = Field(default_factory=SourceSpec)
    node_options: Optional[str] = None


class CustomConfig(_PipelineConfigBase):
    mode: Literal["CUSTOM"] = "CUSTOM"
    config_xml: str = ""


PipelineConfig = Annotated[
    Union[StandardConfig, CustomConfig],
    Field(discriminator="mode"),
]

PIPELINE_CONFIG_ADAPTER: TypeAdapter = TypeAdapter(PipelineConfig)


def parse_pipeline_config(data: Dict[str, Any]) -> Union[StandardConfig, CustomConfig]:
    if "mode" not in data:
        data = {**data, "mode": ConfigMode.STANDARD.value}
    return PIPELINE_CONFIG_ADAPTER.validate_python(data)


# =========================
# Состояние джобов и сборок
# =========================

class JobRecord(BaseModel):
    name: str
    build_server_id: str
    mode: ConfigMode
    stack: RuntimeStack
    state: JobState
    pending_operation: Optional[Operation] = None
    failed_step: Optional[ResourceKind] = None
    orchestration_complete: bool = False
    last_error: Optional[str] = None
    last_build_status: BuildStatus = BuildStatus.UNKNOWN
    last_build_number: Optional[int] = None
    config: PipelineConfig
    document: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class BuildRecord(BaseModel):
    job_id: str
    number: int
    status: BuildStatus
    started_at: Optional[datetime] = None
    duration: Optional[float] = None  # секунды
    url: Optional[str] = None


class JobInfo(BaseModel):
    """Джоб в том виде, в каком его отдаёт Jenkins (нормализованный)."""
    name: str
    url: Optional[str] = None
    status: BuildStatus = BuildStatus.UNKNOWN
    in_queue: bool = False
    buildable: bool = True
    last_build_number: Optional[int] = None


class TriggerResult(BaseModel):
    job_id: str
    accepted: bool
    reason: Optional[str] = None
    queue_url: Optional[str] = None
    baseline_number: Optional[int] = None


class ResourceState(BaseModel):
    """Наблюдаемое состояние ресурса в кластере."""
    kind: ResourceKind
    name: str
    job_name: Optional[str] = None
    namespace: str
    managed: bool = True
    summary: Dict[str, Any] = Field(default_factory=dict)


class CredentialRecord(BaseModel):
    """Метаданные учётных данных. Секрета здесь нет и не будет."""
    id: str
    name: str
    username: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =========================
# Ответы фасада
# =========================

class ScriptSummary(BaseModel):
    stages_count: int
    stages: List[str]
    # Короткое текстовое описание для UI
    description: str


class RenderedJob(BaseModel):
    script: Optional[str] = None
    document: str


class ReconcileResult(BaseModel):
    operation: Operation
    job_name: str
    state: Optional[JobState] = None
    record: Optional[JobRecord] = None
    logs: List[str] = []
    warnings: List[str] = []


class JobStatusView(BaseModel):
    name: str
    state: JobState
    mode: ConfigMode
    stack: RuntimeStack
    failed_step: Optional[ResourceKind] = None
    pending_operation: Optional[Operation] = None
    last_error: Optional[str] = None
    build_status: BuildStatus = BuildStatus.UNKNOWN
    latest_build: Optional[BuildRecord] = None
    tracking: bool = False
    resources: List[ResourceState] = []
