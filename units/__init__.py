"""
Deployable units for the EKS observability platform
Each unit module declares UNIT_ID, DEPENDS_ON, OUTPUTS and a prepare() function
"""

from typing import List

from orchestration.graph import DeployableUnit
from . import infrastructure, network, observability, pipelines, telemetry

UNIT_MODULES = [network, infrastructure, observability, pipelines, telemetry]


def build_units(provisioner) -> List[DeployableUnit]:
    """
    Declare every unit, bound to a provisioning backend

    Args:
        provisioner: Object with bind(unit_id, prepare) returning the apply closure

    Returns:
        Units in declaration order
    """
    return [
        DeployableUnit(
            unit_id=module.UNIT_ID,
            depends_on=module.DEPENDS_ON,
            outputs=module.OUTPUTS,
            apply=provisioner.bind(module.UNIT_ID, module.prepare),
            description=(module.__doc__ or "").strip().splitlines()[0],
        )
        for module in UNIT_MODULES
    ]


__all__ = ["UNIT_MODULES", "build_units"]
