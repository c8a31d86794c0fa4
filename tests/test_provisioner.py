"""
Unit tests for the Pulumi Automation API provisioner
The automation module is mocked; no Pulumi engine or cloud account is needed
"""

import json
import unittest
from unittest.mock import Mock, patch
import sys
import os

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import resolve_config
from orchestration.errors import ProvisioningError, UnresolvedKeyError
from provisioner import PulumiProvisioner, plain_outputs, retry_with_backoff


class FakeCommandError(Exception):
    pass


class FakeStackNotFoundError(Exception):
    pass


def mock_automation(mock_auto, outputs=None):
    """Wire the mocked automation module with real exception types and a stack"""
    mock_auto.CommandError = FakeCommandError
    mock_auto.StackNotFoundError = FakeStackNotFoundError
    stack = Mock()
    stack.name = "dev-network-stack"
    stack.up.return_value = Mock(outputs=outputs or {})
    mock_auto.create_or_select_stack.return_value = stack
    return stack


class TestPlainOutputs(unittest.TestCase):
    """Test conversion of stack outputs to registry values"""

    def test_values_are_stringified(self):
        outputs = {
            "network.vpc.id": Mock(value="vpc-1"),
            "network.subnets.private-ids": Mock(value=["subnet-1", 2]),
            "obs.grafana.endpoint": Mock(value=None),
            "infra.eks.node-count": Mock(value=3),
        }
        self.assertEqual(plain_outputs(outputs), {
            "network.vpc.id": "vpc-1",
            "network.subnets.private-ids": ["subnet-1", "2"],
            "obs.grafana.endpoint": None,
            "infra.eks.node-count": "3",
        })


class TestRetryWithBackoff(unittest.TestCase):
    """Test retrying failed engine commands"""

    def test_succeeds_after_retries(self):
        with patch('provisioner.auto') as mock_auto, patch('provisioner.time') as mock_time:
            mock_auto.CommandError = FakeCommandError
            func = Mock(side_effect=[FakeCommandError("conflict"), FakeCommandError("conflict"), "ok"])

            self.assertEqual(retry_with_backoff(func, max_retries=3, initial_delay=1.0), "ok")
            self.assertEqual(func.call_count, 3)
            self.assertEqual([c.args[0] for c in mock_time.sleep.call_args_list], [1.0, 2.0])

    def test_raises_last_error_when_exhausted(self):
        with patch('provisioner.auto') as mock_auto, patch('provisioner.time'):
            mock_auto.CommandError = FakeCommandError
            func = Mock(side_effect=FakeCommandError("denied"))

            with self.assertRaises(FakeCommandError):
                retry_with_backoff(func, max_retries=2)
            self.assertEqual(func.call_count, 3)

    def test_other_errors_are_not_retried(self):
        with patch('provisioner.auto') as mock_auto, patch('provisioner.time') as mock_time:
            mock_auto.CommandError = FakeCommandError
            func = Mock(side_effect=ValueError("bad program"))

            with self.assertRaises(ValueError):
                retry_with_backoff(func, max_retries=3)
            self.assertEqual(func.call_count, 1)
            mock_time.sleep.assert_not_called()


class TestPulumiProvisioner(unittest.TestCase):
    """Test stack setup, output collection and failure mapping"""

    def setUp(self):
        self.config = resolve_config("dev", "ap-southeast-1", {"account": "123456789012"})
        self.program_outputs = {"network.vpc.id": "vpc-resource"}
        self.prepare = Mock(return_value=lambda: self.program_outputs)

    def test_apply_returns_stack_outputs(self):
        with patch('provisioner.auto') as mock_auto:
            stack = mock_automation(mock_auto, {"network.vpc.id": Mock(value="vpc-1")})
            apply = PulumiProvisioner().bind("network", self.prepare)

            outputs = apply(self.config, "registry-view")

            self.assertEqual(outputs, {"network.vpc.id": "vpc-1"})
            self.prepare.assert_called_once_with(self.config, "registry-view")
            stack.up.assert_called_once()
            kwargs = mock_auto.create_or_select_stack.call_args.kwargs
            self.assertEqual(kwargs["stack_name"], "dev-network-stack")
            self.assertEqual(kwargs["project_name"], "eks-observability")
            mock_auto.ConfigValue.assert_any_call(value="ap-southeast-1")
            mock_auto.ConfigValue.assert_any_call(value=json.dumps(["123456789012"]))

    def test_program_exports_unit_outputs(self):
        with patch('provisioner.auto') as mock_auto, patch('provisioner.pulumi') as mock_pulumi:
            mock_automation(mock_auto)
            PulumiProvisioner().bind("network", self.prepare)(self.config, None)

            program = mock_auto.create_or_select_stack.call_args.kwargs["program"]
            program()

            mock_pulumi.export.assert_called_once_with("network.vpc.id", "vpc-resource")

    def test_engine_failure_becomes_provisioning_error(self):
        with patch('provisioner.auto') as mock_auto, patch('provisioner.time'):
            stack = mock_automation(mock_auto)
            stack.up.side_effect = FakeCommandError("  error: AccessDenied  ")
            apply = PulumiProvisioner(retries=1).bind("network", self.prepare)

            with self.assertRaises(ProvisioningError) as ctx:
                apply(self.config, None)

            self.assertEqual(ctx.exception.unit_id, "network")
            self.assertEqual(ctx.exception.cause, "error: AccessDenied")
            self.assertEqual(stack.up.call_count, 2)

    def test_prepare_errors_propagate_before_stack_creation(self):
        with patch('provisioner.auto') as mock_auto:
            mock_automation(mock_auto)
            prepare = Mock(side_effect=UnresolvedKeyError("network.vpc.id"))

            with self.assertRaises(UnresolvedKeyError):
                PulumiProvisioner().bind("infrastructure", prepare)(self.config, None)
            mock_auto.create_or_select_stack.assert_not_called()

    def test_work_dir_is_passed_to_workspace(self):
        with patch('provisioner.auto') as mock_auto:
            mock_automation(mock_auto)
            PulumiProvisioner(work_dir="/tmp/stacks").bind("network", self.prepare)(self.config, None)

            mock_auto.LocalWorkspaceOptions.assert_called_once_with(work_dir="/tmp/stacks")

    def test_load_outputs(self):
        with patch('provisioner.auto') as mock_auto:
            mock_automation(mock_auto)
            stack = Mock()
            stack.outputs.return_value = {"network.subnets.private-ids": Mock(value=["subnet-1"])}
            mock_auto.select_stack.return_value = stack

            outputs = PulumiProvisioner().load_outputs(self.config, "network")

            self.assertEqual(outputs, {"network.subnets.private-ids": ["subnet-1"]})
            self.assertEqual(mock_auto.select_stack.call_args.kwargs["stack_name"], "dev-network-stack")

    def test_load_outputs_without_stack(self):
        with patch('provisioner.auto') as mock_auto:
            mock_automation(mock_auto)
            mock_auto.select_stack.side_effect = FakeStackNotFoundError("dev-network-stack")

            self.assertIsNone(PulumiProvisioner().load_outputs(self.config, "network"))

    def test_unreadable_stack_outputs(self):
        with patch('provisioner.auto') as mock_auto:
            mock_automation(mock_auto)
            stack = Mock()
            stack.outputs.side_effect = FakeCommandError("error: the stack is currently locked\n")
            mock_auto.select_stack.return_value = stack

            with self.assertRaises(ProvisioningError) as ctx:
                PulumiProvisioner().load_outputs(self.config, "network")
            self.assertEqual(ctx.exception.cause, "error: the stack is currently locked")


if __name__ == "__main__":
    unittest.main()
