"""
Deployment error taxonomy
Config and graph errors abort a run; everything else is fatal to one unit only
"""

from typing import Iterable, Optional


class DeploymentError(Exception):
    """Base class for every error raised by the orchestration core"""

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigurationError(DeploymentError):
    """A config field is missing or invalid"""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class GraphError(DeploymentError):
    """The unit graph cannot produce an application order"""


class UnknownDependencyError(GraphError):
    def __init__(self, unit_id: Optional[str], dependency: str):
        if unit_id is None:
            message = f"Unknown unit '{dependency}'"
        else:
            message = f"Unit '{unit_id}' depends on unknown unit '{dependency}'"
        super().__init__(message)
        self.unit_id = unit_id
        self.dependency = dependency


class CycleError(GraphError):
    def __init__(self, nodes: Iterable[str]):
        self.nodes = list(nodes)
        super().__init__(f"Dependency cycle between units: {', '.join(self.nodes)}")


class DuplicateUnitError(GraphError):
    def __init__(self, unit_id: str):
        super().__init__(f"Unit '{unit_id}' is declared more than once")
        self.unit_id = unit_id


class RegistryError(DeploymentError):
    """Invalid access to the export registry"""


class DuplicateKeyError(RegistryError):
    def __init__(self, key: str, producer: Optional[str] = None):
        message = f"Export '{key}' is already published"
        if producer:
            message += f" by '{producer}'"
        super().__init__(message)
        self.key = key
        self.producer = producer


class UnresolvedKeyError(RegistryError):
    def __init__(self, key: str):
        super().__init__(f"Export '{key}' has not been published")
        self.key = key


class ExportTypeError(RegistryError):
    def __init__(self, key: str, message: str):
        super().__init__(f"Export '{key}': {message}")
        self.key = key


class UnresolvedPlaceholderError(DeploymentError):
    def __init__(self, token: str, key: Optional[str] = None):
        if key is None:
            message = f"Placeholder '${{{token}}}' has no value mapping"
        else:
            message = f"Placeholder '${{{token}}}' maps to unpublished export '{key}'"
        super().__init__(message)
        self.token = token
        self.key = key


class ProvisioningError(DeploymentError):
    """The provisioning backend reported a failure for a unit"""

    def __init__(self, unit_id: str, cause: str):
        super().__init__(f"Provisioning '{unit_id}' failed: {cause}")
        self.unit_id = unit_id
        self.cause = cause


class OutputMismatchError(DeploymentError):
    """A unit published a different set of outputs than it declared"""

    def __init__(self, unit_id: str, missing: Iterable[str], unexpected: Iterable[str]):
        self.unit_id = unit_id
        self.missing = sorted(missing)
        self.unexpected = sorted(unexpected)
        parts = []
        if self.missing:
            parts.append(f"missing {', '.join(self.missing)}")
        if self.unexpected:
            parts.append(f"undeclared {', '.join(self.unexpected)}")
        super().__init__(f"Unit '{unit_id}' outputs do not match its declaration: {'; '.join(parts)}")
