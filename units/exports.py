"""
Export names shared between units
Keys are namespaced as <unit>.<resource>.<attribute>
"""


def export_name(unit_type: str, resource_type: str, resource_name: str) -> str:
    return f"{unit_type}.{resource_type}.{resource_name}"


# Network exports
NETWORK_VPC_ID = export_name("network", "vpc", "id")
NETWORK_VPC_CIDR = export_name("network", "vpc", "cidr")
NETWORK_PRIVATE_SUBNET_IDS = export_name("network", "subnets", "private-ids")
NETWORK_PUBLIC_SUBNET_IDS = export_name("network", "subnets", "public-ids")

# Infrastructure exports
INFRA_CLUSTER_NAME = export_name("infra", "eks", "cluster-name")
INFRA_CLUSTER_ARN = export_name("infra", "eks", "cluster-arn")
INFRA_CLUSTER_ENDPOINT = export_name("infra", "eks", "cluster-endpoint")
INFRA_CLUSTER_CA = export_name("infra", "eks", "certificate-authority")
INFRA_OIDC_PROVIDER_ARN = export_name("infra", "eks", "oidc-provider-arn")
INFRA_OIDC_PROVIDER_ISSUER = export_name("infra", "eks", "oidc-provider-issuer")
INFRA_FLUENT_BIT_ROLE_ARN = export_name("infra", "iam", "fluent-bit-role-arn")

# Observability exports
OBS_PROMETHEUS_WORKSPACE_ID = export_name("obs", "prometheus", "workspace-id")
OBS_PROMETHEUS_ENDPOINT = export_name("obs", "prometheus", "endpoint")
OBS_PROMETHEUS_ROLE_ARN = export_name("obs", "prometheus", "role-arn")
OBS_GRAFANA_WORKSPACE_ID = export_name("obs", "grafana", "workspace-id")
OBS_GRAFANA_ENDPOINT = export_name("obs", "grafana", "endpoint")
OBS_OPENSEARCH_ENDPOINT = export_name("obs", "opensearch", "endpoint")
OBS_PIPELINE_ROLE_ARN = export_name("obs", "iam", "pipeline-role-arn")

# Ingestion pipeline exports
PIPELINES_LOGS_INGESTION_URL = export_name("pipelines", "logs", "ingestion-url")
PIPELINES_TRACES_INGESTION_URL = export_name("pipelines", "traces", "ingestion-url")

# In-cluster telemetry exports
TELEMETRY_NAMESPACE = export_name("telemetry", "prometheus", "namespace")
TELEMETRY_SERVICE_ACCOUNT = export_name("telemetry", "prometheus", "service-account")
