"""
Pulumi provisioner
Applies every deployable unit as its own Pulumi stack through the Automation API.
Stack outputs double as the durable store of published values between runs.
"""

import json
import time
from typing import Any, Callable, Dict, Optional

import pulumi
from pulumi import automation as auto

from config import PROJECT_NAME, EnvironmentConfig
from orchestration.errors import ProvisioningError

# Zero-argument Pulumi program returning {export key: value}
PulumiProgram = Callable[[], Dict[str, Any]]
# Runs outside the engine: reads the registry, renders templates, returns the program
PrepareFn = Callable[[EnvironmentConfig, Any], PulumiProgram]


def retry_with_backoff(func, max_retries: int = 3, initial_delay: float = 1.0):
    """
    Retry a function with exponential backoff

    Args:
        func: Function to retry
        max_retries: Maximum number of retries
        initial_delay: Initial delay in seconds

    Returns:
        Result of the function call

    Raises:
        Exception: Last exception if all retries fail
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return func()
        except auto.CommandError as e:
            if attempt >= max_retries:
                if max_retries:
                    pulumi.log.error(f"All {max_retries + 1} attempts failed")
                raise
            pulumi.log.warn(f"Attempt {attempt + 1} failed, retrying in {delay}s: {str(e)}")
            time.sleep(delay)
            delay *= 2  # Exponential backoff


def plain_outputs(outputs: Dict[str, Any]) -> Dict[str, Any]:
    """Convert Automation API stack outputs to registry values"""
    values = {}
    for key, output in outputs.items():
        value = output.value
        if isinstance(value, (list, tuple)):
            values[key] = [str(item) for item in value]
        elif value is None:
            values[key] = None
        else:
            values[key] = str(value)
    return values


class PulumiProvisioner:
    """
    Provisioning backend running one Pulumi stack per unit

    Args:
        project_name: Pulumi project owning the unit stacks
        work_dir: Optional workspace directory for the Automation API
        on_output: Callback receiving the engine's console output
        retries: How many times a failed `pulumi up` is retried
    """

    def __init__(self, project_name: str = PROJECT_NAME, work_dir: Optional[str] = None,
                 on_output: Optional[Callable[[str], Any]] = None, retries: int = 0):
        self.project_name = project_name
        self.work_dir = work_dir
        self.on_output = on_output
        self.retries = retries

    def _workspace_options(self) -> Optional[auto.LocalWorkspaceOptions]:
        if self.work_dir:
            return auto.LocalWorkspaceOptions(work_dir=self.work_dir)
        return None

    def _stack(self, config: EnvironmentConfig, unit_id: str, program: Callable[[], None]) -> auto.Stack:
        stack = auto.create_or_select_stack(
            stack_name=config.stack_name(unit_id),
            project_name=self.project_name,
            program=program,
            opts=self._workspace_options(),
        )
        stack.set_config("aws:region", auto.ConfigValue(value=config.region))
        if config.account:
            stack.set_config("aws:allowedAccountIds", auto.ConfigValue(value=json.dumps([config.account])))
        return stack

    def bind(self, unit_id: str, prepare: PrepareFn):
        """Build the apply closure for a unit from its prepare function"""

        def apply(config: EnvironmentConfig, registry) -> Dict[str, Any]:
            unit_program = prepare(config, registry)

            def pulumi_program():
                for key, value in unit_program().items():
                    pulumi.export(key, value)

            try:
                stack = self._stack(config, unit_id, pulumi_program)
                pulumi.log.info(f"Running pulumi up for stack {stack.name}")
                result = retry_with_backoff(
                    lambda: stack.up(on_output=self.on_output),
                    max_retries=self.retries,
                )
            except auto.CommandError as e:
                raise ProvisioningError(unit_id, str(e).strip()) from e
            return plain_outputs(result.outputs)

        return apply

    def load_outputs(self, config: EnvironmentConfig, unit_id: str) -> Optional[Dict[str, Any]]:
        """
        Outputs of the unit's stack from its last update

        Returns:
            Plain output values, or None if the unit has no stack yet

        Raises:
            ProvisioningError: If the stack exists but cannot be read
        """
        try:
            stack = auto.select_stack(
                stack_name=config.stack_name(unit_id),
                project_name=self.project_name,
                program=lambda: None,
                opts=self._workspace_options(),
            )
            outputs = stack.outputs()
        except auto.StackNotFoundError:
            return None
        except auto.CommandError as e:
            raise ProvisioningError(unit_id, str(e).strip()) from e
        return plain_outputs(outputs)
