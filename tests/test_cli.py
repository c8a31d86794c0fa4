"""
Unit tests for the command line entry point
"""

import unittest
from unittest.mock import Mock, patch
import sys
import os

from click.testing import CliRunner

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cli import EXIT_FAILED, EXIT_INVALID, EXIT_OK, main
from orchestration.errors import ProvisioningError
from orchestration.graph import DeployableUnit

# Keep the caller's shell environment out of option defaults
CLEAN_ENV = {"ENVIRONMENT": None, "AWS_REGION": None, "AWS_DEFAULT_REGION": None, "AWS_ACCOUNT_ID": None}


def fake_units(fail=None):
    """Three chained units; the one named by fail raises a provisioning error"""

    def apply_for(unit_id, key):
        def apply(config, registry):
            if unit_id == fail:
                raise ProvisioningError(unit_id, "stack update failed")
            return {key: f"{config.environment}-{unit_id}"}
        return apply

    return [
        DeployableUnit("network", apply_for("network", "network.vpc.id"), outputs=["network.vpc.id"]),
        DeployableUnit("infrastructure", apply_for("infrastructure", "infra.eks.cluster-name"),
                       depends_on=["network"], outputs=["infra.eks.cluster-name"]),
        DeployableUnit("observability", apply_for("observability", "obs.grafana.endpoint"),
                       depends_on=["network", "infrastructure"], outputs=["obs.grafana.endpoint"]),
    ]


class TestDryRun(unittest.TestCase):
    """Test printing the plan without deploying"""

    def setUp(self):
        self.runner = CliRunner()

    def test_prints_application_order(self):
        with patch('cli.PulumiProvisioner'):
            result = self.runner.invoke(main, ["--dry-run"], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_OK, result.output)
        self.assertIn("Environment: dev", result.output)
        self.assertIn("Region: ap-southeast-1", result.output)
        self.assertIn("Account: default", result.output)
        self.assertIn("1. network (dev-network-stack): Network unit\n", result.output)
        self.assertIn("5. telemetry (dev-telemetry-stack): Telemetry unit\n", result.output)

    def test_targeted_plan_lists_closure(self):
        with patch('cli.PulumiProvisioner'):
            result = self.runner.invoke(main, ["--dry-run", "-e", "prod", "--unit", "telemetry"], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_OK, result.output)
        self.assertIn("3. observability (prod-observability-stack)", result.output)
        self.assertIn("4. telemetry (prod-telemetry-stack)", result.output)
        self.assertNotIn("pipelines", result.output)

    def test_environment_variables(self):
        env = dict(CLEAN_ENV, ENVIRONMENT="staging", AWS_REGION="eu-west-1", AWS_ACCOUNT_ID="123456789012")
        with patch('cli.PulumiProvisioner'):
            result = self.runner.invoke(main, ["--dry-run"], env=env)

        self.assertIn("Environment: staging", result.output)
        self.assertIn("Region: eu-west-1", result.output)
        self.assertIn("Account: 123456789012", result.output)

    def test_invalid_config(self):
        with patch('cli.PulumiProvisioner'):
            result = self.runner.invoke(main, ["--dry-run", "--node-count", "0"], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_INVALID)
        self.assertIn("node_count", result.output)

    def test_unknown_unit(self):
        with patch('cli.PulumiProvisioner'):
            result = self.runner.invoke(main, ["--dry-run", "--unit", "dns"], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_INVALID)


class TestDeploy(unittest.TestCase):
    """Test full runs against fake units"""

    def setUp(self):
        self.runner = CliRunner()

    def test_successful_run(self):
        with patch('cli.PulumiProvisioner') as mock_provisioner, \
                patch('cli.build_units', return_value=fake_units()):
            result = self.runner.invoke(main, ["--retries", "2"], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_OK, result.output)
        self.assertIn("network: Published\n  network.vpc.id\n", result.output)
        self.assertIn("observability: Published", result.output)
        self.assertEqual(mock_provisioner.call_args.kwargs["retries"], 2)
        self.assertIsNone(mock_provisioner.call_args.kwargs["on_output"])

    def test_failed_run(self):
        with patch('cli.PulumiProvisioner'), \
                patch('cli.build_units', return_value=fake_units(fail="infrastructure")):
            result = self.runner.invoke(main, [], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_FAILED)
        self.assertIn("network: Published", result.output)
        self.assertIn(
            "infrastructure: Failed (ProvisioningError: Provisioning 'infrastructure' failed: stack update failed)",
            result.output,
        )
        self.assertIn("observability: Skipped (infrastructure failed)", result.output)

    def test_invalid_config_aborts(self):
        units = fake_units()
        with patch('cli.PulumiProvisioner'), patch('cli.build_units', return_value=units):
            result = self.runner.invoke(main, ["--vpc-cidr", "10.0.0.0/33"], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_INVALID)
        self.assertIn("vpc_cidr", result.output)
        self.assertNotIn("Published", result.output)

    def test_strict_environment(self):
        with patch('cli.PulumiProvisioner'), patch('cli.build_units', return_value=fake_units()):
            result = self.runner.invoke(main, ["-e", "sandbox", "--strict-environment"], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_INVALID)
        self.assertIn("environment", result.output)

    def test_targeted_run_restores_dependencies(self):
        with patch('cli.PulumiProvisioner') as mock_provisioner, \
                patch('cli.build_units', return_value=fake_units()):
            mock_provisioner.return_value.load_outputs = Mock(side_effect=lambda config, unit_id: {
                "network": {"network.vpc.id": "vpc-stored"},
                "infrastructure": {"infra.eks.cluster-name": "dev-eks-cluster"},
            }[unit_id])
            result = self.runner.invoke(main, ["--unit", "observability"], env=CLEAN_ENV)

        self.assertEqual(result.exit_code, EXIT_OK, result.output)
        self.assertIn("network: Published (restored)", result.output)
        self.assertIn("infrastructure: Published (restored)", result.output)
        self.assertIn("observability: Published\n", result.output)

    def test_verbose_streams_engine_output(self):
        with patch('cli.PulumiProvisioner') as mock_provisioner, \
                patch('cli.build_units', return_value=fake_units()):
            self.runner.invoke(main, ["-v"], env=CLEAN_ENV)

        self.assertTrue(callable(mock_provisioner.call_args.kwargs["on_output"]))


if __name__ == "__main__":
    unittest.main()
