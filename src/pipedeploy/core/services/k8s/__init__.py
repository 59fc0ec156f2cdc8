from .base import Orchestrator
from .client import KubernetesOrchestrator
from .exceptions import OrchestratorError
from .specs import (
    APPLY_ORDER,
    DELETE_ORDER,
    JOB_LABEL,
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    EndpointSpec,
    OrchestrationResourceSet,
    RoutingRuleSpec,
    WorkloadSpec,
    derive_resources,
    resource_name,
)

__all__ = [
    "Orchestrator",
    "KubernetesOrchestrator",
    "OrchestratorError",
    "APPLY_ORDER",
    "DELETE_ORDER",
    "JOB_LABEL",
    "MANAGED_BY_LABEL",
    "MANAGED_BY_VALUE",
    "EndpointSpec",
    "OrchestrationResourceSet",
    "RoutingRuleSpec",
    "WorkloadSpec",
    "derive_resources",
    "resource_name",
]
