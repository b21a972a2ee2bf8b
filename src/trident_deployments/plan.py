"""Dependency planning for trident-deployments library."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .exceptions import ConfigurationError, CyclicDependencyError
from .types import ContractRef, ContractSpec, RoleRef

logger = logging.getLogger(__name__)

CONTRACT_PREFIX = "@"
ROLE_PREFIX = "role:"


@dataclass
class DeployPlan:
    """Contracts with resolved dependency edges, in a valid deployment order."""

    specs: Dict[str, ContractSpec]
    order: List[str]  # topological, ties broken by declaration order
    dependencies: Dict[str, List[str]] = field(default_factory=dict)

    def dependents(self, name: str) -> List[str]:
        """Direct dependents of a contract."""
        return [n for n in self.order if name in self.dependencies[n]]

    def descendants(self, name: str) -> Set[str]:
        """Every contract that transitively depends on ``name``."""
        found: Set[str] = set()
        pending = [name]
        while pending:
            current = pending.pop()
            for child in self.dependents(current):
                if child not in found:
                    found.add(child)
                    pending.append(child)
        return found

    @property
    def nodes(self) -> List[str]:
        """Contract names in declaration order; edges refer to these indices."""
        return list(self.specs)

    @property
    def edges(self) -> List[Tuple[int, int]]:
        """(dependency, dependent) index pairs into ``nodes``."""
        index = {name: i for i, name in enumerate(self.specs)}
        return [(index[dep], index[name]) for name in self.specs for dep in self.dependencies[name]]

    def to_dict(self) -> Dict[str, Any]:
        index = {name: i for i, name in enumerate(self.specs)}
        return {
            "nodes": self.nodes,
            "edges": [list(e) for e in self.edges],
            "order": [index[n] for n in self.order],
        }

    def __len__(self) -> int:
        return len(self.order)


def _find_cycle(dependencies: Dict[str, List[str]], nodes: Iterable[str]) -> List[str]:
    """Return one dependency cycle among ``nodes`` as [a, b, ..., a]."""
    nodes = list(nodes)
    remaining = set(nodes)
    # Every remaining node has a remaining dependency, so walking them must loop
    path: List[str] = []
    on_path: Dict[str, int] = {}
    current = nodes[0]
    while current not in on_path:
        on_path[current] = len(path)
        path.append(current)
        current = next(d for d in dependencies[current] if d in remaining)
    return path[on_path[current]:] + [current]


def build_plan(specs: Sequence[ContractSpec]) -> DeployPlan:
    """
    Build a deployment plan from contract specs.

    Edges come from ContractRef constructor arguments and explicit depends_on.

    Args:
        specs: Contracts in declaration order

    Returns:
        DeployPlan with a topological order

    Raises:
        ConfigurationError: If names are duplicated or a reference is unknown
        CyclicDependencyError: If dependencies form a cycle
    """
    by_name: Dict[str, ContractSpec] = {}
    for spec in specs:
        if spec.name in by_name:
            raise ConfigurationError(f"Contract '{spec.name}' is declared twice")
        by_name[spec.name] = spec

    dependencies: Dict[str, List[str]] = {}
    for spec in specs:
        refs = spec.references()
        for ref in refs:
            if ref not in by_name:
                raise ConfigurationError(f"Contract '{spec.name}' references unknown contract '{ref}'")
            if ref == spec.name:
                raise CyclicDependencyError(f"Contract '{spec.name}' depends on itself", [ref, ref])
        dependencies[spec.name] = refs

    # Kahn's algorithm, always taking the earliest declared ready contract
    order: List[str] = []
    done: Set[str] = set()
    while len(order) < len(specs):
        ready = next(
            (s.name for s in specs if s.name not in done and all(d in done for d in dependencies[s.name])),
            None,
        )
        if ready is None:
            cycle = _find_cycle(dependencies, (s.name for s in specs if s.name not in done))
            raise CyclicDependencyError(f"Dependency cycle: {' -> '.join(cycle)}", cycle)
        order.append(ready)
        done.add(ready)

    logger.debug("Deployment order: %s", ", ".join(order))
    return DeployPlan(specs=by_name, order=order, dependencies=dependencies)


def select_by_tags(specs: Sequence[ContractSpec], tags: Optional[Iterable[str]]) -> List[ContractSpec]:
    """
    Keep contracts carrying any of ``tags`` plus their transitive dependencies.

    An empty or missing tag list selects everything. Declaration order is kept.
    """
    tags = set(tags or ())
    if not tags:
        return list(specs)

    by_name = {s.name: s for s in specs}
    wanted: Set[str] = set()
    pending = [s.name for s in specs if tags & set(s.tags)]
    while pending:
        name = pending.pop()
        if name in wanted:
            continue
        wanted.add(name)
        if name not in by_name:
            raise ConfigurationError(f"Unknown contract '{name}' required by tag selection")
        pending.extend(by_name[name].references())

    return [s for s in specs if s.name in wanted]


def parse_argument(value: Any) -> Any:
    """
    Convert a manifest argument into its typed form.

    "@Name" becomes ContractRef("Name"), "role:feeTo" becomes RoleRef("feeTo");
    lists are converted element-wise, everything else is returned unchanged.
    """
    if isinstance(value, str):
        if value.startswith(CONTRACT_PREFIX):
            return ContractRef(value[len(CONTRACT_PREFIX):])
        if value.startswith(ROLE_PREFIX):
            return RoleRef(value[len(ROLE_PREFIX):])
    if isinstance(value, list):
        return [parse_argument(v) for v in value]
    return value


def _spec_from_dict(entry: Dict[str, Any]) -> ContractSpec:
    try:
        name = entry["name"]
        source = entry["source"]
    except KeyError as e:
        raise ConfigurationError(f"Manifest entry is missing required field {e}") from e
    return ContractSpec(
        name=name,
        source=source,
        contract=entry.get("contract"),
        args=[parse_argument(a) for a in entry.get("args", [])],
        depends_on=list(entry.get("dependsOn", [])),
        tags=list(entry.get("tags", [])),
        deployer=entry.get("deployer", "deployer"),
    )


def load_manifest(path: Union[str, Path]) -> List[ContractSpec]:
    """
    Load contract specs from a JSON manifest.

    The manifest is either a list of entries or {"contracts": [...]}. Each
    entry has name and source, and optionally contract, args, dependsOn,
    tags and deployer.

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Manifest not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in manifest {path}: {e}") from e

    entries = data.get("contracts") if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise ConfigurationError(f"Manifest {path} must contain a list of contracts")
    return [_spec_from_dict(e) for e in entries]
