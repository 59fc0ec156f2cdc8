from typing import Any, Dict

from .specs import EndpointSpec, RoutingRuleSpec, WorkloadSpec

"""
Тела ресурсов Kubernetes в виде словарей: клиент kubernetes принимает их
в create_*/replace_* наравне с V1-объектами.
"""


def _metadata(spec) -> Dict[str, Any]:
    return {
        "name": spec.name,
        "namespace": spec.namespace,
        "labels": dict(spec.labels),
    }


def deployment_body(spec: WorkloadSpec) -> Dict[str, Any]:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(spec),
        "spec": {
            "replicas": spec.replicas,
            "selector": {"matchLabels": dict(spec.labels)},
            "template": {
                "metadata": {"labels": dict(spec.labels)},
                "spec": {
                    "containers": [
                        {
                            "name": spec.job_name,
                            "image": spec.image,
                            "imagePullPolicy": "Always",
                            "ports": [{"containerPort": spec.container_port}],
                        }
                    ]
                },
            },
        },
    }


def service_body(spec: EndpointSpec) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(spec),
        "spec": {
            "type": "ClusterIP",
            "selector": dict(spec.selector),
            "ports": [
                {
                    "name": "http",
                    "protocol": "TCP",
                    "port": spec.port,
                    "targetPort": spec.target_port,
                }
            ],
        },
    }


def ingress_body(spec: RoutingRuleSpec) -> Dict[str, Any]:
    rule: Dict[str, Any] = {
        "http": {
            "paths": [
                {
                    "path": spec.path,
                    "pathType": spec.path_type,
                    "backend": {
                        "service": {
                            "name": spec.service_name,
                            "port": {"number": spec.service_port},
                        }
                    },
                }
            ]
        }
    }
    if spec.host:
        rule["host"] = spec.host

    body: Dict[str, Any] = {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": _metadata(spec),
        "spec": {"rules": [rule]},
    }
    if spec.ingress_class:
        body["spec"]["ingressClassName"] = spec.ingress_class
    return body
