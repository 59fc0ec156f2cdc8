import asyncio
from typing import Any, Callable, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from pipedeploy.core.config import Settings
from pipedeploy.core.logs import get_logger
from pipedeploy.core.models import ResourceKind, ResourceState
from pipedeploy.utils import split_image_ref

from .base import Orchestrator
from .exceptions import OrchestratorError
from .manifests import deployment_body, ingress_body, service_body
from .specs import (
    JOB_LABEL,
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    ResourceSpec,
    managed_selector,
    resource_name,
)

logger = get_logger(__name__)

READ_ONLY_KINDS = (ResourceKind.POD,)


def _labels(obj: Any) -> Dict[str, str]:
    return dict(getattr(obj.metadata, "labels", None) or {})


def is_managed(obj: Any) -> bool:
    return _labels(obj).get(MANAGED_BY_LABEL) == MANAGED_BY_VALUE


def _deployment_summary(obj: Any) -> Dict[str, Any]:
    containers = obj.spec.template.spec.containers or []
    status = obj.status
    return {
        "replicas": obj.spec.replicas,
        "ready_replicas": (status.ready_replicas or 0) if status else 0,
        "image": containers[0].image if containers else None,
    }


def _service_summary(obj: Any) -> Dict[str, Any]:
    return {
        "type": obj.spec.type,
        "cluster_ip": obj.spec.cluster_ip,
        "ports": [
            {"port": port.port, "target_port": port.target_port}
            for port in (obj.spec.ports or [])
        ],
    }


def _ingress_summary(obj: Any) -> Dict[str, Any]:
    rules = obj.spec.rules or []
    hosts = [rule.host for rule in rules if rule.host]
    paths = [
        path.path
        for rule in rules
        if rule.http
        for path in (rule.http.paths or [])
    ]
    return {"hosts": hosts, "paths": paths, "class": obj.spec.ingress_class_name}


def _pod_summary(obj: Any) -> Dict[str, Any]:
    statuses = (obj.status.container_statuses or []) if obj.status else []
    return {
        "phase": obj.status.phase if obj.status else None,
        "node": obj.spec.node_name,
        "restarts": sum(status.restart_count or 0 for status in statuses),
    }


_SUMMARIES: Dict[ResourceKind, Callable[[Any], Dict[str, Any]]] = {
    ResourceKind.WORKLOAD: _deployment_summary,
    ResourceKind.ENDPOINT: _service_summary,
    ResourceKind.ROUTING_RULE: _ingress_summary,
    ResourceKind.POD: _pod_summary,
}


class KubernetesOrchestrator(Orchestrator):
    """
    Клиент Kubernetes для ресурсов джоба: Deployment, Service, Ingress
    и поды (только чтение).

    Клиент kubernetes синхронный, поэтому каждый вызов уходит в поток
    через asyncio.to_thread.
    """

    def __init__(
        self,
        namespace: str,
        apps_api: Any = None,
        core_api: Any = None,
        networking_api: Any = None,
    ) -> None:
        self.namespace = namespace
        self.apps = apps_api or client.AppsV1Api()
        self.core = core_api or client.CoreV1Api()
        self.networking = networking_api or client.NetworkingV1Api()

    @classmethod
    def from_settings(cls, settings: Settings) -> "KubernetesOrchestrator":
        try:
            if settings.kubeconfig or settings.k8s_context:
                config.load_kube_config(
                    config_file=settings.kubeconfig,
                    context=settings.k8s_context,
                )
            else:
                try:
                    config.load_incluster_config()
                except config.ConfigException:
                    config.load_kube_config()
        except config.ConfigException as e:
            raise OrchestratorError("cluster", "connect", f"cannot load Kubernetes config: {e}") from e
        return cls(namespace=settings.k8s_namespace)

    # ---------- вызовы API ----------

    def _api(self, kind: ResourceKind) -> Dict[str, Callable]:
        ns = self.namespace
        if kind == ResourceKind.WORKLOAD:
            return {
                "read": lambda name: self.apps.read_namespaced_deployment(name, ns),
                "create": lambda body: self.apps.create_namespaced_deployment(ns, body),
                "replace": lambda name, body: self.apps.replace_namespaced_deployment(name, ns, body),
                "delete": lambda name: self.apps.delete_namespaced_deployment(name, ns),
                "list": lambda selector: self.apps.list_namespaced_deployment(ns, label_selector=selector),
            }
        if kind == ResourceKind.ENDPOINT:
            return {
                "read": lambda name: self.core.read_namespaced_service(name, ns),
                "create": lambda body: self.core.create_namespaced_service(ns, body),
                "replace": lambda name, body: self.core.replace_namespaced_service(name, ns, body),
                "delete": lambda name: self.core.delete_namespaced_service(name, ns),
                "list": lambda selector: self.core.list_namespaced_service(ns, label_selector=selector),
            }
        if kind == ResourceKind.ROUTING_RULE:
            return {
                "read": lambda name: self.networking.read_namespaced_ingress(name, ns),
                "create": lambda body: self.networking.create_namespaced_ingress(ns, body),
                "replace": lambda name, body: self.networking.replace_namespaced_ingress(name, ns, body),
                "delete": lambda name: self.networking.delete_namespaced_ingress(name, ns),
                "list": lambda selector: self.networking.list_namespaced_ingress(ns, label_selector=selector),
            }
        if kind == ResourceKind.POD:
            return {
                "list": lambda selector: self.core.list_namespaced_pod(ns, label_selector=selector),
            }
        raise ValueError(f"Unsupported resource kind: {kind}")

    async def _call(self, kind: ResourceKind, operation: str, *args: Any) -> Any:
        func = self._api(kind).get(operation)
        if func is None:
            raise OrchestratorError(kind.value, operation, "resource kind is read-only")
        try:
            return await asyncio.to_thread(func, *args)
        except ApiException as e:
            raise OrchestratorError(
                kind.value,
                operation,
                e.reason or "API request failed",
                status_code=e.status,
            ) from e
        except Exception as e:
            raise OrchestratorError(kind.value, operation, repr(e)) from e

    async def _read(self, kind: ResourceKind, name: str) -> Optional[Any]:
        try:
            return await self._call(kind, "read", name)
        except OrchestratorError as e:
            if e.status_code == 404:
                return None
            raise

    def _state(self, kind: ResourceKind, obj: Any) -> ResourceState:
        labels = _labels(obj)
        return ResourceState(
            kind=kind,
            name=obj.metadata.name,
            job_name=labels.get(JOB_LABEL),
            namespace=obj.metadata.namespace or self.namespace,
            managed=is_managed(obj),
            summary=_SUMMARIES[kind](obj),
        )

    # ---------- операции ----------

    async def _first_pod(self, job_name: str) -> Optional[ResourceState]:
        """
        У подов Deployment сгенерированные имена, поэтому под джоба ищется
        по меткам: первый по имени.
        """
        result = await self._call(ResourceKind.POD, "list", managed_selector(job_name))
        pods = sorted((result.items or []), key=lambda obj: obj.metadata.name)
        if not pods:
            return None
        return self._state(ResourceKind.POD, pods[0])

    async def get(self, kind: ResourceKind, job_name: str) -> Optional[ResourceState]:
        if kind == ResourceKind.POD:
            return await self._first_pod(job_name)
        obj = await self._read(kind, resource_name(kind, job_name))
        if obj is None:
            return None
        return self._state(kind, obj)

    @staticmethod
    def _keep_rolled_out_image(body: Dict[str, Any], existing: Any) -> None:
        """
        Сборка выкатывает образ с тегом версии через kubectl set image.
        Если репозиторий образа не поменялся, оставляем этот тег, чтобы
        реконсиляция не откатывала Deployment на :latest.
        """
        containers = existing.spec.template.spec.containers or []
        if not containers:
            return
        current_repo, current_tag = split_image_ref(containers[0].image or "")
        desired = body["spec"]["template"]["spec"]["containers"][0]
        desired_repo, _ = split_image_ref(desired["image"])
        if current_tag and current_repo == desired_repo:
            desired["image"] = containers[0].image

    def _body(self, kind: ResourceKind, spec: ResourceSpec) -> Dict[str, Any]:
        if kind == ResourceKind.WORKLOAD:
            return deployment_body(spec)
        if kind == ResourceKind.ENDPOINT:
            return service_body(spec)
        if kind == ResourceKind.ROUTING_RULE:
            return ingress_body(spec)
        raise OrchestratorError(kind.value, "apply", "resource kind is read-only")

    async def create_or_update(
        self,
        kind: ResourceKind,
        job_name: str,
        spec: ResourceSpec,
    ) -> ResourceState:
        body = self._body(kind, spec)
        name = spec.name

        existing = await self._read(kind, name)
        if existing is None:
            try:
                created = await self._call(kind, "create", body)
                logger.info("k8s_resource_created", kind=kind.value, name=name, job=job_name)
                return self._state(kind, created)
            except OrchestratorError as e:
                # ресурс появился между чтением и созданием
                if e.status_code != 409:
                    raise
                existing = await self._read(kind, name)
                if existing is None:
                    raise

        if not is_managed(existing):
            raise OrchestratorError(
                kind.value,
                "update",
                f"{name!r} exists but is not managed by pipedeploy",
                status_code=409,
            )

        body["metadata"]["resourceVersion"] = existing.metadata.resource_version
        if kind == ResourceKind.WORKLOAD:
            self._keep_rolled_out_image(body, existing)
        if kind == ResourceKind.ENDPOINT and existing.spec.cluster_ip:
            body["spec"]["clusterIP"] = existing.spec.cluster_ip

        replaced = await self._call(kind, "replace", name, body)
        logger.info("k8s_resource_updated", kind=kind.value, name=name, job=job_name)
        return self._state(kind, replaced)

    async def delete(self, kind: ResourceKind, job_name: str) -> bool:
        name = resource_name(kind, job_name)
        existing = await self._read(kind, name)
        if existing is None:
            logger.info("k8s_resource_already_absent", kind=kind.value, name=name)
            return False
        if not is_managed(existing):
            raise OrchestratorError(
                kind.value,
                "delete",
                f"{name!r} is not managed by pipedeploy",
                status_code=409,
            )
        try:
            await self._call(kind, "delete", name)
        except OrchestratorError as e:
            if e.status_code == 404:
                return False
            raise
        logger.info("k8s_resource_deleted", kind=kind.value, name=name, job=job_name)
        return True

    async def list(
        self,
        kind: ResourceKind,
        name_filter: Optional[str] = None,
    ) -> List[ResourceState]:
        result = await self._call(kind, "list", managed_selector())
        states = [
            self._state(kind, obj)
            for obj in (result.items or [])
            if is_managed(obj)
        ]
        if name_filter:
            states = [state for state in states if name_filter in state.name]
        return states
