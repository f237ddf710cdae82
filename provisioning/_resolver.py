# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import heapq
import logging
from typing import Collection
from typing import Dict
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Sequence

from provisioning._module import Module
from provisioning._module import ModuleRegistry

_logger = logging.getLogger(__name__)


class PlanningError(Exception):
    pass


class UnknownModule(PlanningError):

    def __init__(self, name: str):
        super().__init__(f"Unknown module {name!r}")
        self.name = name


class UnknownDependency(PlanningError):

    def __init__(self, module: str, missing: str):
        super().__init__(f"Module {module!r} depends on unknown module {missing!r}")
        self.module = module
        self.missing = missing


class CyclicDependency(PlanningError):

    def __init__(self, members: Sequence[str]):
        cycle = ' -> '.join([*members, members[0]])
        super().__init__(f"Cyclic dependency: {cycle}")
        self.members = list(members)


class DependencyExcluded(PlanningError):

    def __init__(self, module: str, excluded: str, path: Sequence[str]):
        super().__init__(
            f"Module {module!r} needs skipped module {excluded!r} "
            f"via {' -> '.join(path)}")
        self.module = module
        self.excluded = excluded
        self.path = list(path)


class Plan(NamedTuple):
    modules: Sequence[Module]
    requested: Sequence[str]
    skipped: Sequence[str]

    def names(self) -> Sequence[str]:
        return [module.name() for module in self.modules]


def resolve_plan(
        registry: ModuleRegistry,
        requested: Optional[Sequence[str]] = None,
        skip: Collection[str] = (),
        ) -> Plan:
    """Order the requested modules and everything they need.

    The whole registry is validated, not only the requested part:
    a malformed declaration is an error whatever is asked for.
    Every module comes after all its dependencies; otherwise
    registration order is kept.
    """
    for name in [*(requested or []), *skip]:
        if name not in registry:
            raise UnknownModule(name)
    _check_dependencies_known(registry)
    _check_acyclic(registry)
    if requested is None:
        requested = registry.names()
    requested = list(dict.fromkeys(requested))
    skip = list(dict.fromkeys(skip))
    roots = [name for name in requested if name not in skip]
    closure = _closure(registry, roots, set(skip))
    modules = _topological_order(registry, closure)
    plan = Plan(modules, requested, skip)
    _logger.info("Plan: %s", ', '.join(plan.names()) or "(empty)")
    return plan


def _check_dependencies_known(registry: ModuleRegistry):
    for module in registry:
        for dependency in module.depends_on():
            if dependency not in registry:
                raise UnknownDependency(module.name(), dependency)


def _check_acyclic(registry: ModuleRegistry):
    # Depth-first search in registration order, so the reported cycle is reproducible.
    done = set()
    for name in registry.names():
        if name in done:
            continue
        path = [name]
        on_path = {name}
        stack = [iter(registry.get(name).depends_on())]
        while stack:
            dependency = next(stack[-1], None)
            if dependency is None:
                stack.pop()
                done.add(path[-1])
                on_path.discard(path.pop())
            elif dependency in on_path:
                raise CyclicDependency(path[path.index(dependency):])
            elif dependency not in done:
                path.append(dependency)
                on_path.add(dependency)
                stack.append(iter(registry.get(dependency).depends_on()))


def _closure(registry: ModuleRegistry, roots: Sequence[str], skip: Collection[str]):
    selected = set()
    for root in roots:
        pending = [[root]]
        while pending:
            path = pending.pop()
            name = path[-1]
            if name in selected:
                continue
            selected.add(name)
            for dependency in registry.get(name).depends_on():
                if dependency in skip:
                    raise DependencyExcluded(root, dependency, [*path, dependency])
                pending.append([*path, dependency])
    return selected


def _topological_order(registry: ModuleRegistry, selected: Collection[str]) -> List[Module]:
    index = {name: i for i, name in enumerate(registry.names())}
    remaining_dependencies: Dict[str, int] = {}
    dependants: Dict[str, List[str]] = {name: [] for name in selected}
    for name in selected:
        dependencies = registry.get(name).depends_on()
        remaining_dependencies[name] = len(dependencies)
        for dependency in dependencies:
            dependants[dependency].append(name)
    ready = [(index[name], name) for name, count in remaining_dependencies.items() if count == 0]
    heapq.heapify(ready)
    order = []
    while ready:
        _, name = heapq.heappop(ready)
        order.append(registry.get(name))
        for dependant in dependants[name]:
            remaining_dependencies[dependant] -= 1
            if remaining_dependencies[dependant] == 0:
                heapq.heappush(ready, (index[dependant], dependant))
    if len(order) != len(selected):
        raise RuntimeError("Cycle slipped through validation")
    return order
