#!/usr/bin/env python3
"""
Command line entry point for deploying the EKS observability platform
"""

import signal
import sys
from typing import List

import click

from config import PROJECT_NAME, resolve_config
from orchestration import DependencyGraph, DeploymentError, Orchestrator, UnitState
from orchestration.orchestrator import DeploymentResult
from provisioner import PulumiProvisioner
from units import build_units

DEFAULT_REGION = "ap-southeast-1"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def format_report(result: DeploymentResult) -> List[str]:
    """One line per unit with its terminal state, plus published keys"""
    lines = []
    for report in result:
        if report.state is UnitState.PUBLISHED:
            suffix = " (restored)" if report.restored else ""
            lines.append(f"{report.unit_id}: {report.state.value}{suffix}")
            lines.extend(f"  {key}" for key in report.published_keys)
        elif report.state is UnitState.FAILED:
            lines.append(f"{report.unit_id}: {report.state.value} ({report.error_kind}: {report.message})")
        elif report.state is UnitState.SKIPPED:
            lines.append(f"{report.unit_id}: {report.state.value} ({report.skipped_because} failed)")
        else:
            lines.append(f"{report.unit_id}: {report.state.value} (not started)")
    return lines


@click.command(name=PROJECT_NAME)
@click.option("--environment", "-e", envvar="ENVIRONMENT", default="dev", show_default=True,
              help="Environment name (dev, staging, prod)")
@click.option("--region", "-r", envvar=["AWS_REGION", "AWS_DEFAULT_REGION"], default=DEFAULT_REGION,
              show_default=True, help="AWS region")
@click.option("--account", envvar="AWS_ACCOUNT_ID", default=None, help="Only deploy into this AWS account")
@click.option("--unit", "target", default=None,
              help="Re-run a single unit and whichever of its dependencies are not deployed yet")
@click.option("--vpc-cidr", default=None, help="VPC CIDR block")
@click.option("--platform-version", default=None, help="EKS Kubernetes version")
@click.option("--instance-type", default=None, help="Node instance type")
@click.option("--node-count", type=int, default=None, help="Number of nodes")
@click.option("--strict-environment", is_flag=True, help="Reject environments without a defaults entry")
@click.option("--retries", type=int, default=0, show_default=True, help="Retries for a failed pulumi up")
@click.option("--dry-run", is_flag=True, help="Print the application order without deploying")
@click.option("--verbose", "-v", is_flag=True, help="Stream Pulumi engine output")
def main(environment, region, account, target, vpc_cidr, platform_version, instance_type,
         node_count, strict_environment, retries, dry_run, verbose):
    """Deploy the network, cluster and observability units in dependency order."""
    overrides = {
        "vpc_cidr": vpc_cidr,
        "platform_version": platform_version,
        "node_instance_type": instance_type,
        "node_count": node_count,
        "account": account,
    }
    provisioner = PulumiProvisioner(
        on_output=(lambda line: click.echo(line, err=True)) if verbose else None,
        retries=retries,
    )
    units = build_units(provisioner)

    if dry_run:
        try:
            config = resolve_config(environment, region, overrides, strict=strict_environment)
            graph = DependencyGraph(units)
            order = graph.closure(target) if target else graph.order()
        except DeploymentError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(EXIT_INVALID)
        click.echo(f"Environment: {config.environment}")
        click.echo(f"Region: {config.region}")
        click.echo(f"Account: {config.account or 'default'}")
        for position, unit_id in enumerate(order, start=1):
            line = f"{position}. {unit_id} ({config.stack_name(unit_id)})"
            description = graph.unit(unit_id).description
            click.echo(f"{line}: {description}" if description else line)
        sys.exit(EXIT_OK)

    orchestrator = Orchestrator(output_store=provisioner, config_resolver=resolve_config)
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: orchestrator.cancel())
    try:
        result = orchestrator.run(environment, region, overrides, units,
                                  target=target, strict=strict_environment)
    except DeploymentError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_INVALID)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    for line in format_report(result):
        click.echo(line)
    if result.cancelled:
        click.echo("Run cancelled", err=True)
    sys.exit(EXIT_OK if result.succeeded else EXIT_FAILED)


if __name__ == "__main__":
    main()
