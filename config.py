"""
Configuration management for the EKS observability deployment
Environment defaults table plus validated per-run configuration
"""

import ipaddress
from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import pulumi

from orchestration.errors import ConfigurationError

PROJECT_NAME = "eks-observability"
DEFAULT_VPC_CIDR = "10.0.0.0/16"
FALLBACK_ENVIRONMENT = "dev"

# Shared by every environment, overridable per run
BASE_DEFAULTS: Dict[str, Any] = {
    "vpc_cidr": None,
    "platform_version": "1.31",
}

ENVIRONMENT_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "prod": {"node_instance_type": "t3.xlarge", "node_count": 5},
    "staging": {"node_instance_type": "t3.large", "node_count": 3},
    "dev": {"node_instance_type": "t3.medium", "node_count": 2},
}


@dataclass(frozen=True)
class EnvironmentConfig:
    """Resolved configuration shared by every unit of a deployment run"""

    environment: str
    region: str
    vpc_cidr: Optional[str] = None
    platform_version: str = BASE_DEFAULTS["platform_version"]
    node_instance_type: Optional[str] = None
    node_count: int = 1
    account: Optional[str] = None
    tags: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Own a read-only copy of the caller's tags
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))

    @property
    def common_tags(self) -> Dict[str, str]:
        """Get common tags for all resources"""
        base_tags = {
            "Environment": self.environment,
            "Project": PROJECT_NAME,
            "ManagedBy": "pulumi",
        }
        base_tags.update(self.tags)
        return base_tags

    @property
    def effective_vpc_cidr(self) -> str:
        return self.vpc_cidr or DEFAULT_VPC_CIDR

    def stack_name(self, unit_id: str) -> str:
        """Stack name following the <environment>-<unit>-stack convention"""
        return f"{self.environment}-{unit_id}-stack"


OVERRIDABLE_FIELDS = frozenset(f.name for f in fields(EnvironmentConfig)) - {"environment", "region"}


def environment_defaults(environment: str, strict: bool = False) -> Dict[str, Any]:
    """
    Look up the defaults record for an environment

    Unknown environments use the dev record unless strict is set.
    """
    if environment in ENVIRONMENT_DEFAULTS:
        return {**BASE_DEFAULTS, **ENVIRONMENT_DEFAULTS[environment]}
    if strict:
        raise ConfigurationError("environment", f"unknown environment '{environment}'")
    pulumi.log.warn(f"Unknown environment '{environment}', using '{FALLBACK_ENVIRONMENT}' defaults")
    return {**BASE_DEFAULTS, **ENVIRONMENT_DEFAULTS[FALLBACK_ENVIRONMENT]}


def _validate(values: Dict[str, Any]) -> None:
    for name in ("environment", "region"):
        value = values.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ConfigurationError(name, "must be a non-empty string")

    node_count = values.get("node_count")
    if isinstance(node_count, bool) or not isinstance(node_count, int):
        raise ConfigurationError("node_count", f"must be an integer, got {node_count!r}")
    if node_count < 1:
        raise ConfigurationError("node_count", "must be at least 1")

    vpc_cidr = values.get("vpc_cidr")
    if vpc_cidr is not None:
        try:
            ipaddress.IPv4Network(vpc_cidr)
        except (ValueError, TypeError):
            raise ConfigurationError("vpc_cidr", f"'{vpc_cidr}' is not a valid IPv4 CIDR") from None


def resolve_config(environment: str, region: str, overrides: Optional[Mapping[str, Any]] = None,
                   strict: bool = False) -> EnvironmentConfig:
    """
    Build the configuration for one deployment run

    Args:
        environment: Environment name (dev, staging, prod or any other label)
        region: AWS region
        overrides: Field values taking precedence over the environment defaults
        strict: Reject environments missing from ENVIRONMENT_DEFAULTS

    Returns:
        Validated, immutable EnvironmentConfig

    Raises:
        ConfigurationError: Naming the first invalid field
    """
    overrides = dict(overrides or {})
    unknown = sorted(set(overrides) - OVERRIDABLE_FIELDS)
    if unknown:
        raise ConfigurationError(unknown[0], "is not a configurable field")

    if not isinstance(environment, str) or not environment.strip():
        raise ConfigurationError("environment", "must be a non-empty string")

    values = environment_defaults(environment, strict=strict)
    values.update({name: value for name, value in overrides.items() if value is not None})
    values["environment"] = environment
    values["region"] = region

    _validate(values)
    values["tags"] = values.get("tags") or {}
    return EnvironmentConfig(**values)
