"""
Dependency Graph
Deployable unit descriptors and their deterministic application order
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, Set

from .errors import CycleError, DuplicateUnitError, UnknownDependencyError

# (config, registry view) -> {output key: value}
ApplyFn = Callable[[Any, Any], Mapping[str, Any]]


@dataclass(frozen=True)
class DeployableUnit:
    unit_id: str
    apply: ApplyFn
    depends_on: Sequence[str] = ()
    outputs: Iterable[str] = field(default_factory=frozenset)
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "depends_on", tuple(self.depends_on))
        object.__setattr__(self, "outputs", frozenset(self.outputs))


class DependencyGraph:
    """
    Depends-on graph over a static list of units

    Construction validates the graph; order() computes a topological order in
    which ties are broken by declaration order.
    """

    def __init__(self, units: Iterable[DeployableUnit]):
        self._units: Dict[str, DeployableUnit] = {}
        for unit in units:
            if unit.unit_id in self._units:
                raise DuplicateUnitError(unit.unit_id)
            self._units[unit.unit_id] = unit

        for unit in self._units.values():
            for dependency in unit.depends_on:
                if dependency not in self._units:
                    raise UnknownDependencyError(unit.unit_id, dependency)

    def unit(self, unit_id: str) -> DeployableUnit:
        try:
            return self._units[unit_id]
        except KeyError:
            raise UnknownDependencyError(None, unit_id) from None

    def dependencies(self, unit_id: str) -> List[str]:
        return list(self.unit(unit_id).depends_on)

    def order(self) -> List[str]:
        """
        Compute the application order

        Returns:
            Unit ids such that every unit follows all of its dependencies

        Raises:
            CycleError: If the remaining units all wait on each other
        """
        placed: Set[str] = set()
        ordered: List[str] = []
        remaining = list(self._units)

        while remaining:
            for unit_id in remaining:
                if all(dep in placed for dep in self._units[unit_id].depends_on):
                    break
            else:
                raise CycleError(remaining)
            remaining.remove(unit_id)
            placed.add(unit_id)
            ordered.append(unit_id)

        return ordered

    def ancestors(self, unit_id: str) -> Set[str]:
        """All units the given unit transitively depends on"""
        seen: Set[str] = set()
        stack = list(self.unit(unit_id).depends_on)
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._units[current].depends_on)
        return seen

    def descendants(self, unit_id: str) -> Set[str]:
        """All units that transitively depend on the given unit"""
        self.unit(unit_id)
        dependents: Dict[str, List[str]] = {uid: [] for uid in self._units}
        for unit in self._units.values():
            for dependency in unit.depends_on:
                dependents[dependency].append(unit.unit_id)

        seen: Set[str] = set()
        stack = list(dependents[unit_id])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(dependents[current])
        return seen

    def closure(self, target: str) -> List[str]:
        """The target and everything it transitively needs, in application order"""
        members = self.ancestors(target) | {target}
        return [unit_id for unit_id in self.order() if unit_id in members]

    def __contains__(self, unit_id: str) -> bool:
        return unit_id in self._units

    def __len__(self) -> int:
        return len(self._units)
