"""
Observability unit
Managed Prometheus, Managed Grafana, OpenSearch and the roles that feed them
"""

import json
from typing import Dict, Tuple

import pulumi_aws as aws

from config import EnvironmentConfig
from . import exports
from .iam import irsa_assume_role_policy, service_assume_role_policy

UNIT_ID = "observability"
DEPENDS_ON = ("network", "infrastructure")
OUTPUTS = (
    exports.OBS_PROMETHEUS_WORKSPACE_ID,
    exports.OBS_PROMETHEUS_ENDPOINT,
    exports.OBS_PROMETHEUS_ROLE_ARN,
    exports.OBS_GRAFANA_WORKSPACE_ID,
    exports.OBS_GRAFANA_ENDPOINT,
    exports.OBS_OPENSEARCH_ENDPOINT,
    exports.OBS_PIPELINE_ROLE_ARN,
)

PROMETHEUS_NAMESPACE = "prometheus"
PROMETHEUS_SERVICE_ACCOUNT = "amp-iamproxy-ingest-service-account"


def opensearch_sizing(environment: str) -> Tuple[str, int]:
    """Data node instance type and EBS volume size (GiB) for an environment"""
    if environment == "prod":
        return "r5.large.search", 50
    return "t3.small.search", 20


def prepare(config: EnvironmentConfig, registry):
    """Read the cluster OIDC provider used by the Prometheus ingest role"""
    oidc_provider_arn = registry.resolve(exports.INFRA_OIDC_PROVIDER_ARN)
    prometheus_trust_policy = irsa_assume_role_policy(
        oidc_provider_arn, PROMETHEUS_NAMESPACE, PROMETHEUS_SERVICE_ACCOUNT)

    def program() -> Dict[str, object]:
        name = config.environment
        tags = {**config.common_tags, "Stack": "Observability"}

        workspace = aws.amp.Workspace(
            f"{name}-prometheus-workspace",
            alias=f"{name}-eks-observability-workspace",
            tags=tags
        )

        # Grafana reads Prometheus and CloudWatch
        grafana_role = aws.iam.Role(
            f"{name}-grafana-service-role",
            name=f"{name}-grafana-service-role",
            assume_role_policy=service_assume_role_policy("grafana.amazonaws.com"),
            inline_policies=[aws.iam.RoleInlinePolicyArgs(
                name="PrometheusAccess",
                policy=json.dumps({
                    "Version": "2012-10-17",
                    "Statement": [{
                        "Effect": "Allow",
                        "Action": [
                            "aps:ListWorkspaces",
                            "aps:DescribeWorkspace",
                            "aps:QueryMetrics",
                            "aps:GetLabels",
                            "aps:GetSeries",
                            "aps:GetMetricMetadata"
                        ],
                        "Resource": "*"
                    }]
                })
            )],
            tags=tags
        )
        aws.iam.RolePolicyAttachment(
            f"{name}-grafana-cloudwatch-access",
            policy_arn="arn:aws:iam::aws:policy/service-role/AmazonGrafanaCloudWatchAccess",
            role=grafana_role.name
        )

        grafana = aws.grafana.Workspace(
            f"{name}-grafana-workspace",
            name=f"{name}-eks-observability-grafana",
            description=f"Grafana workspace for EKS observability in {name}",
            account_access_type="CURRENT_ACCOUNT",
            authentication_providers=["AWS_SSO"],
            permission_type="SERVICE_MANAGED",
            data_sources=["PROMETHEUS", "CLOUDWATCH"],
            role_arn=grafana_role.arn,
            grafana_version="10.4",
            tags=tags
        )

        # In-cluster collectors remote-write through this role
        prometheus_role = aws.iam.Role(
            f"{name}-prometheus-service-account-role",
            name=f"{name}-prometheus-service-account-role",
            assume_role_policy=prometheus_trust_policy,
            tags=tags
        )
        aws.iam.RolePolicy(
            f"{name}-prometheus-remote-write",
            role=prometheus_role.id,
            policy=workspace.arn.apply(lambda arn: json.dumps({
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Action": [
                        "aps:RemoteWrite",
                        "aps:GetSeries",
                        "aps:GetLabels",
                        "aps:GetMetricMetadata"
                    ],
                    "Resource": arn
                }]
            }))
        )

        instance_type, volume_size = opensearch_sizing(name)
        account_id = aws.get_caller_identity().account_id
        domain = aws.opensearch.Domain(
            f"{name}-opensearch",
            engine_version="OpenSearch_2.11",
            cluster_config=aws.opensearch.DomainClusterConfigArgs(
                instance_type=instance_type,
                instance_count=1,
                dedicated_master_enabled=False,
                zone_awareness_enabled=False,
                multi_az_with_standby_enabled=False,
            ),
            ebs_options=aws.opensearch.DomainEbsOptionsArgs(
                ebs_enabled=True,
                volume_size=volume_size,
                volume_type="gp3",
            ),
            node_to_node_encryption=aws.opensearch.DomainNodeToNodeEncryptionArgs(enabled=True),
            encrypt_at_rest=aws.opensearch.DomainEncryptAtRestArgs(enabled=True),
            domain_endpoint_options=aws.opensearch.DomainDomainEndpointOptionsArgs(enforce_https=True),
            access_policies=json.dumps({
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Principal": {"AWS": f"arn:aws:iam::{account_id}:root"},
                    "Action": [
                        "es:ESHttpGet",
                        "es:ESHttpPost",
                        "es:ESHttpPut",
                        "es:ESHttpDelete",
                        "es:ESHttpHead"
                    ],
                    "Resource": "*"
                }]
            }),
            tags=tags
        )

        # OpenSearch Ingestion pipelines write to the domain with this role
        pipeline_role = aws.iam.Role(
            f"{name}-ingestion-pipeline-role",
            name=f"{name}-ingestion-pipeline-role",
            assume_role_policy=service_assume_role_policy("osis-pipelines.amazonaws.com"),
            tags=tags
        )
        aws.iam.RolePolicy(
            f"{name}-ingestion-pipeline-access",
            role=pipeline_role.id,
            policy=domain.arn.apply(lambda arn: json.dumps({
                "Version": "2012-10-17",
                "Statement": [{
                    "Effect": "Allow",
                    "Action": ["es:DescribeDomain", "es:ESHttp*"],
                    "Resource": [arn, f"{arn}/*"]
                }]
            }))
        )

        return {
            exports.OBS_PROMETHEUS_WORKSPACE_ID: workspace.id,
            exports.OBS_PROMETHEUS_ENDPOINT: workspace.prometheus_endpoint,
            exports.OBS_PROMETHEUS_ROLE_ARN: prometheus_role.arn,
            exports.OBS_GRAFANA_WORKSPACE_ID: grafana.id,
            exports.OBS_GRAFANA_ENDPOINT: grafana.endpoint,
            exports.OBS_OPENSEARCH_ENDPOINT: domain.endpoint,
            exports.OBS_PIPELINE_ROLE_ARN: pipeline_role.arn,
        }

    return program
