"""
Orchestrator
Applies deployable units in dependency order, publishes their outputs and
records the terminal state of every unit
"""

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

import pulumi

from .errors import DeploymentError, OutputMismatchError, ProvisioningError
from .graph import DependencyGraph, DeployableUnit
from .registry import ExportRegistry


class UnitState(Enum):
    PENDING = "Pending"
    APPLYING = "Applying"
    PUBLISHED = "Published"
    FAILED = "Failed"
    SKIPPED = "Skipped"

    @property
    def terminal(self) -> bool:
        return self in (UnitState.PUBLISHED, UnitState.FAILED, UnitState.SKIPPED)


@dataclass
class UnitReport:
    unit_id: str
    state: UnitState = UnitState.PENDING
    published_keys: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None
    restored: bool = False
    skipped_because: Optional[str] = None

    @property
    def error_kind(self) -> Optional[str]:
        return type(self.error).__name__ if self.error is not None else None

    @property
    def message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


@dataclass
class DeploymentResult:
    config: Any
    order: List[str]
    reports: Dict[str, UnitReport]
    registry: ExportRegistry
    target: Optional[str] = None
    cancelled: bool = False

    @property
    def failed_units(self) -> List[str]:
        return [uid for uid in self.order if self.reports[uid].state is UnitState.FAILED]

    @property
    def pending_units(self) -> List[str]:
        return [uid for uid in self.order if not self.reports[uid].state.terminal]

    @property
    def succeeded(self) -> bool:
        return not self.failed_units and not self.pending_units

    def report(self, unit_id: str) -> UnitReport:
        return self.reports[unit_id]

    def __iter__(self) -> Iterator[UnitReport]:
        return (self.reports[uid] for uid in self.order)


class Orchestrator:
    """
    Drives one deployment run

    Args:
        max_workers: Number of independent units applied at the same time; 1 applies
            units strictly one after another in application order
        output_store: Object with load_outputs(config, unit_id) used by targeted runs to
            rebuild dependency outputs from a previous run
        config_resolver: resolve_config(environment, region, overrides, strict=...) style
            callable building the run's config; defaults to config.resolve_config
    """

    def __init__(self, max_workers: int = 1, output_store: Any = None,
                 config_resolver: Optional[Callable[..., Any]] = None):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if config_resolver is None:
            from config import resolve_config as config_resolver
        self.max_workers = max_workers
        self.output_store = output_store
        self.config_resolver = config_resolver
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop starting new units; units already applying finish on their own"""
        if not self._cancelled.is_set():
            pulumi.log.warn("Cancellation requested, no further units will be started")
        self._cancelled.set()

    def run(self, environment: str, region: str, overrides: Optional[Mapping[str, Any]],
            units: Iterable[DeployableUnit], target: Optional[str] = None,
            strict: bool = False) -> DeploymentResult:
        """
        Run a deployment

        Args:
            environment: Environment name
            region: Target region
            overrides: Config field overrides
            units: Unit descriptors making up the deployment
            target: Only apply this unit and whichever of its dependencies are not
                already available from the output store
            strict: Reject unknown environment names

        Returns:
            DeploymentResult with the terminal state of every unit in the run

        Raises:
            ConfigurationError: Invalid configuration, nothing applied
            GraphError: Unknown dependency, cycle or duplicate unit, nothing applied
        """
        resolved = self.config_resolver(environment, region, overrides, strict=strict)
        graph = DependencyGraph(units)
        order = graph.closure(target) if target is not None else graph.order()

        registry = ExportRegistry()
        reports = {unit_id: UnitReport(unit_id) for unit_id in order}

        pulumi.log.info(
            f"Deploying {len(order)} unit(s) to '{resolved.environment}' in {resolved.region}: "
            f"{' -> '.join(order)}"
        )

        if target is not None:
            self._restore(graph, resolved, [uid for uid in order if uid != target], registry, reports)

        if self.max_workers == 1:
            self._run_sequential(graph, order, resolved, registry, reports)
        else:
            self._run_concurrent(graph, order, resolved, registry, reports)

        result = DeploymentResult(
            config=resolved,
            order=order,
            reports=reports,
            registry=registry,
            target=target,
            cancelled=self.cancelled,
        )
        if result.pending_units:
            pulumi.log.warn(f"Run cancelled before starting: {', '.join(result.pending_units)}")
        if result.failed_units:
            pulumi.log.error(f"Deployment failed: {', '.join(result.failed_units)}")
        elif result.succeeded:
            pulumi.log.info(f"Deployment of '{resolved.environment}' completed")
        return result

    def _restore(self, graph: DependencyGraph, resolved, unit_ids: List[str],
                 registry: ExportRegistry, reports: Dict[str, UnitReport]) -> None:
        if self.output_store is None:
            return
        for unit_id in unit_ids:
            unit = graph.unit(unit_id)
            try:
                stored = self.output_store.load_outputs(resolved, unit_id)
                if not stored or not unit.outputs.issubset(stored):
                    pulumi.log.info(f"No stored outputs for '{unit_id}', it will be applied")
                    continue
                registry.publish_all(unit_id, {key: stored[key] for key in sorted(unit.outputs)}, restored=True)
            except DeploymentError as e:
                pulumi.log.warn(f"Cannot restore '{unit_id}', it will be applied: {type(e).__name__}: {e}")
                continue
            report = reports[unit_id]
            report.state = UnitState.PUBLISHED
            report.restored = True
            report.published_keys = registry.published_by(unit_id)
            pulumi.log.info(f"Restored {len(report.published_keys)} output(s) of '{unit_id}' from its stack")

    def _run_sequential(self, graph, order, resolved, registry, reports) -> None:
        for unit_id in order:
            if reports[unit_id].state is not UnitState.PENDING:
                continue
            if self.cancelled:
                break
            unit = graph.unit(unit_id)
            view = self._start(graph, unit_id, registry, reports)
            try:
                outputs = self._invoke(unit, resolved, view)
            except Exception as e:
                self._settle(graph, unit, registry, reports, error=e)
            else:
                self._settle(graph, unit, registry, reports, outputs=outputs)

    def _run_concurrent(self, graph, order, resolved, registry, reports) -> None:
        running: Dict[Future, str] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="unit") as executor:
            while True:
                if not self.cancelled:
                    for unit_id in self._ready(graph, order, reports):
                        if len(running) >= self.max_workers:
                            break
                        view = self._start(graph, unit_id, registry, reports)
                        future = executor.submit(self._invoke, graph.unit(unit_id), resolved, view)
                        running[future] = unit_id
                if not running:
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    unit = graph.unit(running.pop(future))
                    error = future.exception()
                    if error is not None:
                        self._settle(graph, unit, registry, reports, error=error)
                    else:
                        self._settle(graph, unit, registry, reports, outputs=future.result())

    @staticmethod
    def _ready(graph: DependencyGraph, order: List[str], reports: Dict[str, UnitReport]) -> List[str]:
        return [
            unit_id for unit_id in order
            if reports[unit_id].state is UnitState.PENDING
            and all(reports[dep].state is UnitState.PUBLISHED for dep in graph.dependencies(unit_id))
        ]

    @staticmethod
    def _start(graph: DependencyGraph, unit_id: str, registry: ExportRegistry,
               reports: Dict[str, UnitReport]):
        reports[unit_id].state = UnitState.APPLYING
        pulumi.log.info(f"Applying '{unit_id}'")
        return registry.view(graph.ancestors(unit_id))

    @staticmethod
    def _invoke(unit: DeployableUnit, resolved, view) -> Dict[str, Any]:
        outputs = unit.apply(resolved, view)
        if not isinstance(outputs, Mapping):
            raise ProvisioningError(unit.unit_id, f"returned {type(outputs).__name__} instead of an output mapping")
        return dict(outputs)

    def _settle(self, graph: DependencyGraph, unit: DeployableUnit, registry: ExportRegistry,
                reports: Dict[str, UnitReport], outputs: Optional[Dict[str, Any]] = None,
                error: Optional[BaseException] = None) -> None:
        report = reports[unit.unit_id]

        if error is None:
            try:
                self._publish(unit, outputs, registry)
            except DeploymentError as e:
                error = e

        if error is None:
            report.state = UnitState.PUBLISHED
            report.published_keys = list(outputs)
            pulumi.log.info(f"Published '{unit.unit_id}': {', '.join(outputs) or 'no outputs'}")
            return

        report.state = UnitState.FAILED
        report.error = error
        pulumi.log.error(f"Unit '{unit.unit_id}' failed: {type(error).__name__}: {error}")

        descendants = graph.descendants(unit.unit_id)
        for dependent, dependent_report in reports.items():
            if dependent in descendants and dependent_report.state is UnitState.PENDING:
                dependent_report.state = UnitState.SKIPPED
                dependent_report.skipped_because = unit.unit_id
                pulumi.log.warn(f"Skipping '{dependent}' because '{unit.unit_id}' failed")

    @staticmethod
    def _publish(unit: DeployableUnit, outputs: Dict[str, Any], registry: ExportRegistry) -> None:
        missing = unit.outputs - set(outputs)
        unexpected = set(outputs) - unit.outputs
        if missing or unexpected:
            raise OutputMismatchError(unit.unit_id, missing, unexpected)
        registry.publish_all(unit.unit_id, outputs)
