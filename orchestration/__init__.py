"""
Deployment orchestration core
Config-independent pieces that decide what to apply, in which order, with which values
"""

from .errors import (
    ConfigurationError,
    CycleError,
    DeploymentError,
    DuplicateKeyError,
    DuplicateUnitError,
    ExportTypeError,
    GraphError,
    OutputMismatchError,
    ProvisioningError,
    RegistryError,
    UnknownDependencyError,
    UnresolvedKeyError,
    UnresolvedPlaceholderError,
)
from .registry import ExportEntry, ExportRegistry, RegistryView
from .graph import DependencyGraph, DeployableUnit
from .templating import Placeholder, TemplateResolver, load_template
from .orchestrator import DeploymentResult, Orchestrator, UnitReport, UnitState

__all__ = [
    "ConfigurationError",
    "CycleError",
    "DependencyGraph",
    "DeployableUnit",
    "DeploymentError",
    "DeploymentResult",
    "DuplicateKeyError",
    "DuplicateUnitError",
    "ExportEntry",
    "ExportRegistry",
    "ExportTypeError",
    "GraphError",
    "Orchestrator",
    "OutputMismatchError",
    "Placeholder",
    "ProvisioningError",
    "RegistryError",
    "RegistryView",
    "TemplateResolver",
    "UnitReport",
    "UnitState",
    "UnknownDependencyError",
    "UnresolvedKeyError",
    "UnresolvedPlaceholderError",
    "load_template",
]
