from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from pipedeploy.core.config import Settings
from pipedeploy.core.models import ResourceKind
from pipedeploy.core.services.builders.pipeline import image_repository

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
MANAGED_BY_VALUE = "pipedeploy"
JOB_LABEL = "pipedeploy.io/job"

APPLY_ORDER = (ResourceKind.WORKLOAD, ResourceKind.ENDPOINT, ResourceKind.ROUTING_RULE)
DELETE_ORDER = tuple(reversed(APPLY_ORDER))


def owner_labels(job_name: str) -> Dict[str, str]:
    return {MANAGED_BY_LABEL: MANAGED_BY_VALUE, JOB_LABEL: job_name}


def managed_selector(job_name: Optional[str] = None) -> str:
    selector = f"{MANAGED_BY_LABEL}={MANAGED_BY_VALUE}"
    if job_name:
        selector += f",{JOB_LABEL}={job_name}"
    return selector


def resource_name(kind: ResourceKind, job_name: str) -> str:
    """
    Имена в Kubernetes уникальны в пределах вида ресурса, поэтому Deployment,
    Service и Ingress называются так же, как джоб, и ограничение длины
    у них общее с именем джоба.
    """
    return job_name


class _ResourceSpecBase(BaseModel):
    name: str
    namespace: str
    job_name: str
    labels: Dict[str, str] = Field(default_factory=dict)


class WorkloadSpec(_ResourceSpecBase):
    image: str
    replicas: int
    container_port: int


class EndpointSpec(_ResourceSpecBase):
    port: int
    target_port: int
    selector: Dict[str, str]


class RoutingRuleSpec(_ResourceSpecBase):
    host: Optional[str] = None
    path: str = "/"
    path_type: str = "Prefix"
    service_name: str
    service_port: int
    ingress_class: Optional[str] = None


ResourceSpec = Union[WorkloadSpec, EndpointSpec, RoutingRuleSpec]


class OrchestrationResourceSet(BaseModel):
    workload: WorkloadSpec
    endpoint: EndpointSpec
    routing_rule: RoutingRuleSpec

    def for_kind(self, kind: ResourceKind) -> ResourceSpec:
        if kind == ResourceKind.WORKLOAD:
            return self.workload
        if kind == ResourceKind.ENDPOINT:
            return self.endpoint
        if kind == ResourceKind.ROUTING_RULE:
            return self.routing_rule
        raise ValueError(f"{kind.value} is not a managed resource kind")

    def ordered(self) -> List[Tuple[ResourceKind, ResourceSpec]]:
        return [(kind, self.for_kind(kind)) for kind in APPLY_ORDER]


def derive_resources(config, settings: Settings) -> OrchestrationResourceSet:
    """
    Ресурсы кластера как чистая функция конфигурации и настроек.
    Пересчитываются при каждой реконсиляции, локально не кэшируются.
    """
    name = config.name
    namespace = settings.k8s_namespace
    labels = owner_labels(name)
    endpoint_name = resource_name(ResourceKind.ENDPOINT, name)

    workload = WorkloadSpec(
        name=resource_name(ResourceKind.WORKLOAD, name),
        namespace=namespace,
        job_name=name,
        labels=labels,
        image=f"{image_repository(config.image_name, settings)}:latest",
        replicas=config.runtime.replicas,
        container_port=config.container_port,
    )
    endpoint = EndpointSpec(
        name=endpoint_name,
        namespace=namespace,
        job_name=name,
        labels=labels,
        port=config.runtime.service_port,
        target_port=config.container_port,
        selector={JOB_LABEL: name},
    )
    routing_rule = RoutingRuleSpec(
        name=resource_name(ResourceKind.ROUTING_RULE, name),
        namespace=namespace,
        job_name=name,
        labels=labels,
        host=f"{name}.{settings.ingress_domain}" if settings.ingress_domain else None,
        path=config.runtime.path_prefix or "/",
        service_name=endpoint_name,
        service_port=config.runtime.service_port,
        ingress_class=settings.ingress_class,
    )
    return OrchestrationResourceSet(
        workload=workload,
        endpoint=endpoint,
        routing_rule=routing_rule,
    )
