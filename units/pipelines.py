"""
Ingestion pipelines unit
Renders the OpenSearch Ingestion pipeline documents from published exports and
submits them as managed pipelines inside the VPC
"""

from pathlib import Path
from typing import Dict

import pulumi_aws as aws

from config import EnvironmentConfig
from orchestration.templating import Placeholder, TemplateResolver, load_template
from . import exports

UNIT_ID = "pipelines"
DEPENDS_ON = ("network", "observability")
OUTPUTS = (
    exports.PIPELINES_LOGS_INGESTION_URL,
    exports.PIPELINES_TRACES_INGESTION_URL,
)

TEMPLATE_DIR = Path(__file__).parent / "templates"

# pipeline kind -> (template file, ingestion url export)
PIPELINES = {
    "logs": ("logs-pipeline.yaml", exports.PIPELINES_LOGS_INGESTION_URL),
    "traces": ("traces-pipeline.yaml", exports.PIPELINES_TRACES_INGESTION_URL),
}


def with_https(endpoint: str) -> str:
    if endpoint.startswith("https://"):
        return endpoint
    return f"https://{endpoint}"


def pipeline_resolver(config: EnvironmentConfig) -> TemplateResolver:
    """Token mapping used by the pipeline documents"""
    return TemplateResolver(
        placeholders={
            "OPENSEARCH_URL": Placeholder(exports.OBS_OPENSEARCH_ENDPOINT, transform=with_https),
            "PIPELINE_ROLE_ARN": exports.OBS_PIPELINE_ROLE_ARN,
        },
        literals={
            "AWS_REGION": config.region,
            "ENVIRONMENT": config.environment,
        },
    )


def render_pipelines(config: EnvironmentConfig, registry) -> Dict[str, str]:
    """
    Render every pipeline document

    Args:
        config: Resolved environment config
        registry: Registry view holding the observability exports

    Returns:
        Dict of pipeline kind to rendered configuration body

    Raises:
        UnresolvedPlaceholderError: If a document references an unpublished export
    """
    resolver = pipeline_resolver(config)
    return {
        kind: resolver.render(load_template(TEMPLATE_DIR / template), registry)
        for kind, (template, _) in PIPELINES.items()
    }


def prepare(config: EnvironmentConfig, registry):
    """Render the pipeline bodies and read the VPC placement"""
    bodies = render_pipelines(config, registry)
    vpc_id = registry.resolve(exports.NETWORK_VPC_ID)
    vpc_cidr = registry.resolve(exports.NETWORK_VPC_CIDR)
    subnet_ids = registry.resolve_list(exports.NETWORK_PRIVATE_SUBNET_IDS)

    def program() -> Dict[str, object]:
        name = config.environment
        tags = {**config.common_tags, "Stack": "Pipelines"}

        security_group = aws.ec2.SecurityGroup(
            f"{name}-ingestion-pipelines-sg",
            vpc_id=vpc_id,
            description="HTTPS ingestion from inside the VPC",
            ingress=[aws.ec2.SecurityGroupIngressArgs(
                protocol="tcp",
                from_port=443,
                to_port=443,
                cidr_blocks=[vpc_cidr],
            )],
            egress=[aws.ec2.SecurityGroupEgressArgs(
                protocol="-1",
                from_port=0,
                to_port=0,
                cidr_blocks=["0.0.0.0/0"],
            )],
            tags=tags
        )

        outputs = {}
        for kind, (_, export_key) in PIPELINES.items():
            log_group = aws.cloudwatch.LogGroup(
                f"{name}-{kind}-pipeline-logs",
                name=f"/aws/vendedlogs/OpenSearchIngestion/{name}-eks-{kind}",
                retention_in_days=30,
                tags=tags
            )
            pipeline = aws.osis.Pipeline(
                f"{name}-{kind}-pipeline",
                pipeline_name=f"{name}-eks-{kind}",
                pipeline_configuration_body=bodies[kind],
                min_units=1,
                max_units=2,
                vpc_options=aws.osis.PipelineVpcOptionsArgs(
                    subnet_ids=subnet_ids,
                    security_group_ids=[security_group.id],
                ),
                log_publishing_options=aws.osis.PipelineLogPublishingOptionsArgs(
                    is_logging_enabled=True,
                    cloudwatch_log_destination=aws.osis.PipelineLogPublishingOptionsCloudwatchLogDestinationArgs(
                        log_group=log_group.name,
                    ),
                ),
                tags=tags
            )
            outputs[export_key] = pipeline.ingest_endpoint_urls.apply(
                lambda urls: with_https(urls[0]))

        return outputs

    return program
