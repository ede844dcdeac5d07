"""Dependency graph analysis for bundled workflows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Set

from app.workflow_import.loader import BundledWorkflow

logger = logging.getLogger("app.workflow_import.dependencies")


@dataclass
class DependencyAnalysis:
    """Result of a graph walk. ``order`` lists dependencies before their dependents."""

    has_cycle: bool = False
    cycles: List[List[str]] = field(default_factory=list)
    order: List[str] = field(default_factory=list)

    def describe_cycles(self) -> str:
        return "; ".join(" -> ".join(cycle) for cycle in self.cycles)


class DependencyGraphAnalyzer:
    """Builds a name -> dependencies graph and orders it with a depth-first search.

    References to names outside the bundled set are ignored. When a cycle is
    found ``order`` is still filled in but callers must not rely on it.
    """

    def __init__(self, workflows: Iterable[BundledWorkflow]) -> None:
        self._graph: Dict[str, Sequence[str]] = {}
        for workflow in workflows:
            self._graph[workflow.name] = tuple(workflow.dependencies)

    @property
    def graph(self) -> Dict[str, Sequence[str]]:
        return dict(self._graph)

    def analyze(self) -> DependencyAnalysis:
        result = DependencyAnalysis()
        on_stack: Set[str] = set()
        finished: Set[str] = set()

        def visit(node: str, path: List[str]) -> None:
            if node in on_stack:
                result.cycles.append(path[path.index(node):] + [node])
                result.has_cycle = True
                return
            if node in finished:
                return

            on_stack.add(node)
            path.append(node)
            for dependency in self._graph.get(node, ()):
                if dependency in self._graph:
                    visit(dependency, path)
            path.pop()
            on_stack.discard(node)

            finished.add(node)
            result.order.append(node)

        for name in self._graph:
            if name not in finished:
                visit(name, [])

        if result.has_cycle:
            logger.error("workflow_dependency_cycles", extra={"cycles": result.cycles})
        else:
            logger.debug("workflow_dependency_order", extra={"order": result.order})
        return result
