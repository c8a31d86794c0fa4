"""
Infrastructure unit
EKS cluster, managed node group, add-ons, ECR repositories and IRSA roles
"""

import json
from typing import Dict

import pulumi
import pulumi_aws as aws

from config import EnvironmentConfig
from . import exports
from .iam import irsa_assume_role_policy, service_assume_role_policy

UNIT_ID = "infrastructure"
DEPENDS_ON = ("network",)
OUTPUTS = (
    exports.INFRA_CLUSTER_NAME,
    exports.INFRA_CLUSTER_ARN,
    exports.INFRA_CLUSTER_ENDPOINT,
    exports.INFRA_CLUSTER_CA,
    exports.INFRA_OIDC_PROVIDER_ARN,
    exports.INFRA_OIDC_PROVIDER_ISSUER,
    exports.INFRA_FLUENT_BIT_ROLE_ARN,
)

# AWS EKS root CA thumbprint
EKS_OIDC_THUMBPRINT = "9e99a48a9960b14926bb7f3b02e22da2b0ab7280"

CLUSTER_LOG_TYPES = ["api", "authenticator", "scheduler", "controllerManager"]

NODE_POLICIES = [
    "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy",
    "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy",
    "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly",
    "arn:aws:iam::aws:policy/service-role/AmazonEBSCSIDriverPolicy",
]

MANAGED_ADDONS = {
    "aws-ebs-csi-driver": None,
    "kube-state-metrics": "v2.16.0-eksbuild.1",
    "eks-pod-identity-agent": None,
}

SERVICE_REPOSITORIES = ["hello-service", "world-service", "traffic-generator"]


def prepare(config: EnvironmentConfig, registry):
    """Read the private subnets the cluster is placed in"""
    subnet_ids = registry.resolve_list(exports.NETWORK_PRIVATE_SUBNET_IDS)

    def program() -> Dict[str, object]:
        name = config.environment
        tags = {**config.common_tags, "Stack": "Infrastructure"}
        cluster_name = f"{name}-eks-cluster"

        # IAM role for cluster
        cluster_role = aws.iam.Role(
            f"{name}-eks-cluster-role",
            assume_role_policy=service_assume_role_policy("eks.amazonaws.com"),
            tags=tags
        )
        cluster_policy = aws.iam.RolePolicyAttachment(
            f"{name}-eks-cluster-policy",
            policy_arn="arn:aws:iam::aws:policy/AmazonEKSClusterPolicy",
            role=cluster_role.name
        )

        cluster = aws.eks.Cluster(
            "cluster",
            name=cluster_name,
            role_arn=cluster_role.arn,
            version=config.platform_version,
            vpc_config=aws.eks.ClusterVpcConfigArgs(
                subnet_ids=subnet_ids,
                endpoint_public_access=True,
                endpoint_private_access=True,
                public_access_cidrs=["0.0.0.0/0"],
            ),
            access_config=aws.eks.ClusterAccessConfigArgs(
                authentication_mode="API_AND_CONFIG_MAP"
            ),
            enabled_cluster_log_types=CLUSTER_LOG_TYPES,
            tags=tags,
            opts=pulumi.ResourceOptions(depends_on=[cluster_policy])
        )

        # The IAM OIDC provider is not created by EKS itself
        oidc_provider = aws.iam.OpenIdConnectProvider(
            f"{name}-eks-oidc-provider",
            client_id_lists=["sts.amazonaws.com"],
            thumbprint_lists=[EKS_OIDC_THUMBPRINT],
            url=cluster.identities.apply(lambda identities: identities[0].oidcs[0].issuer),
            tags=tags
        )

        # IAM role for nodes
        node_role = aws.iam.Role(
            f"{name}-eks-node-role",
            assume_role_policy=service_assume_role_policy("ec2.amazonaws.com"),
            tags=tags
        )
        node_policies = [
            aws.iam.RolePolicyAttachment(
                f"{name}-node-policy-{i+1}",
                policy_arn=policy_arn,
                role=node_role.name
            )
            for i, policy_arn in enumerate(NODE_POLICIES)
        ]

        aws.eks.NodeGroup(
            f"{name}-eks-nodes",
            cluster_name=cluster.name,
            node_group_name=f"{name}-eks-nodes",
            node_role_arn=node_role.arn,
            subnet_ids=subnet_ids,
            instance_types=[config.node_instance_type or "t3.large"],
            ami_type="AL2_X86_64",
            capacity_type="ON_DEMAND",
            disk_size=20,
            scaling_config=aws.eks.NodeGroupScalingConfigArgs(
                desired_size=config.node_count,
                min_size=config.node_count,
                max_size=config.node_count + 2,
            ),
            tags=tags,
            opts=pulumi.ResourceOptions(depends_on=node_policies)
        )

        # Cluster admin access for the account's Admin role
        account_id = aws.get_caller_identity().account_id
        admin_access = aws.eks.AccessEntry(
            f"{name}-admin-role-access",
            cluster_name=cluster.name,
            principal_arn=f"arn:aws:iam::{account_id}:role/Admin",
            type="STANDARD"
        )
        aws.eks.AccessPolicyAssociation(
            f"{name}-admin-role-policy",
            cluster_name=cluster.name,
            principal_arn=admin_access.principal_arn,
            policy_arn="arn:aws:eks::aws:cluster-access-policy/AmazonEKSClusterAdminPolicy",
            access_scope=aws.eks.AccessPolicyAssociationAccessScopeArgs(type="cluster")
        )

        for addon_name, addon_version in MANAGED_ADDONS.items():
            aws.eks.Addon(
                f"{name}-{addon_name}",
                cluster_name=cluster.name,
                addon_name=addon_name,
                addon_version=addon_version,
                resolve_conflicts_on_create="OVERWRITE",
                resolve_conflicts_on_update="OVERWRITE"
            )

        for service in SERVICE_REPOSITORIES:
            aws.ecr.Repository(
                f"{name}-{service}-repo",
                name=f"{cluster_name}-{service}",
                force_delete=True,
                tags=tags
            )

        # FluentBit ships cluster logs to OpenSearch through IRSA
        fluent_bit_role = aws.iam.Role(
            f"{name}-fluent-bit-role",
            assume_role_policy=oidc_provider.arn.apply(
                lambda arn: irsa_assume_role_policy(arn, "kube-system", "fluent-bit")),
            inline_policies=[aws.iam.RoleInlinePolicyArgs(
                name="OpenSearchAccess",
                policy=json.dumps({
                    "Version": "2012-10-17",
                    "Statement": [{
                        "Effect": "Allow",
                        "Action": ["es:ESHttpPost", "es:ESHttpPut", "osis:Ingest"],
                        "Resource": "*"
                    }]
                })
            )],
            tags=tags
        )

        return {
            exports.INFRA_CLUSTER_NAME: cluster.name,
            exports.INFRA_CLUSTER_ARN: cluster.arn,
            exports.INFRA_CLUSTER_ENDPOINT: cluster.endpoint,
            exports.INFRA_CLUSTER_CA: cluster.certificate_authority.data,
            exports.INFRA_OIDC_PROVIDER_ARN: oidc_provider.arn,
            exports.INFRA_OIDC_PROVIDER_ISSUER: oidc_provider.url,
            exports.INFRA_FLUENT_BIT_ROLE_ARN: fluent_bit_role.arn,
        }

    return program
