"""
Telemetry unit
In-cluster namespace and IRSA service account used by collectors to
remote-write into Managed Prometheus
"""

import json
from typing import Dict

import pulumi
import pulumi_kubernetes as k8s

from config import EnvironmentConfig
from . import exports
from .observability import PROMETHEUS_NAMESPACE, PROMETHEUS_SERVICE_ACCOUNT

UNIT_ID = "telemetry"
DEPENDS_ON = ("infrastructure", "observability")
OUTPUTS = (
    exports.TELEMETRY_NAMESPACE,
    exports.TELEMETRY_SERVICE_ACCOUNT,
)


def build_kubeconfig(cluster_name: str, endpoint: str, ca_data: str, region: str) -> str:
    """
    Kubeconfig authenticating through `aws eks get-token`

    Args:
        cluster_name: EKS cluster name
        endpoint: API server endpoint
        ca_data: Base64 cluster CA certificate
        region: Cluster region

    Returns:
        Kubeconfig as a JSON string
    """
    return json.dumps({
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": cluster_name,
            "cluster": {"server": endpoint, "certificate-authority-data": ca_data},
        }],
        "contexts": [{
            "name": cluster_name,
            "context": {"cluster": cluster_name, "user": cluster_name},
        }],
        "current-context": cluster_name,
        "users": [{
            "name": cluster_name,
            "user": {
                "exec": {
                    "apiVersion": "client.authentication.k8s.io/v1beta1",
                    "command": "aws",
                    "args": ["eks", "get-token", "--cluster-name", cluster_name, "--region", region],
                }
            },
        }],
    })


def prepare(config: EnvironmentConfig, registry):
    """Read cluster access details and the Prometheus ingest role"""
    kubeconfig = build_kubeconfig(
        registry.resolve(exports.INFRA_CLUSTER_NAME),
        registry.resolve(exports.INFRA_CLUSTER_ENDPOINT),
        registry.resolve(exports.INFRA_CLUSTER_CA),
        config.region,
    )
    prometheus_role_arn = registry.resolve(exports.OBS_PROMETHEUS_ROLE_ARN)

    def program() -> Dict[str, object]:
        name = config.environment
        provider = k8s.Provider(f"{name}-k8s-provider", kubeconfig=kubeconfig)
        labels = {"managed-by": "pulumi", "environment": name}

        namespace = k8s.core.v1.Namespace(
            f"{name}-prometheus-namespace",
            metadata=k8s.meta.v1.ObjectMetaArgs(
                name=PROMETHEUS_NAMESPACE,
                labels=labels
            ),
            opts=pulumi.ResourceOptions(provider=provider)
        )

        service_account = k8s.core.v1.ServiceAccount(
            f"{name}-prometheus-ingest-sa",
            metadata=k8s.meta.v1.ObjectMetaArgs(
                name=PROMETHEUS_SERVICE_ACCOUNT,
                namespace=namespace.metadata.name,
                labels=labels,
                annotations={"eks.amazonaws.com/role-arn": prometheus_role_arn}
            ),
            opts=pulumi.ResourceOptions(provider=provider)
        )

        return {
            exports.TELEMETRY_NAMESPACE: namespace.metadata.name,
            exports.TELEMETRY_SERVICE_ACCOUNT: service_account.metadata.name,
        }

    return program
