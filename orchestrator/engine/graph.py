# ============================================================================
# STEP GRAPH
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Dependency graph construction and cycle detection
# PURPOSE: Turn a flat step list into an adjacency structure and certify it
# CREATED: 12 OCT 2026
# ============================================================================
"""
Step Graph

Builds the dependency graph for a list of steps and finds cycles in it.

Template steps are keyed by their order (int), instance steps by their
step_id (str). Both produce the same graph shape:

    A -> B means "B depends on A" (A must complete before B).

References to keys that are not in the step list are kept as edges so
the validator can report them; the cycle detector ignores them.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence, Union

from core.models import InstanceStep, TemplateStep

logger = logging.getLogger(__name__)

StepKey = Hashable


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class DependencyGraph:
    """
    Dependency graph for a list of steps.

    keys keeps insertion order so traversal is deterministic.
    """
    keys: List[StepKey] = field(default_factory=list)

    # Step key -> keys it depends on (in declaration order)
    predecessors: Dict[StepKey, List[StepKey]] = field(default_factory=dict)

    # Step key -> keys that depend on it
    successors: Dict[StepKey, List[StepKey]] = field(default_factory=lambda: defaultdict(list))

    # Step key -> title, for diagnostics
    titles: Dict[StepKey, str] = field(default_factory=dict)

    def add_step(self, key: StepKey, title: str, depends_on: Iterable[StepKey]) -> None:
        if key not in self.predecessors:
            self.keys.append(key)
        deps = list(depends_on)
        self.predecessors[key] = deps
        self.titles[key] = title
        for dep in deps:
            self.successors[dep].append(key)

    def __contains__(self, key: StepKey) -> bool:
        return key in self.predecessors

    def __len__(self) -> int:
        return len(self.keys)

    def get_dependencies(self, key: StepKey) -> List[StepKey]:
        """Get keys that this step depends on."""
        return self.predecessors.get(key, [])

    def get_dependents(self, key: StepKey) -> List[StepKey]:
        """Get keys that depend on this step."""
        return self.successors.get(key, [])

    def unknown_references(self) -> Dict[StepKey, List[StepKey]]:
        """Step key -> referenced keys that are not steps of this graph."""
        result = {}
        for key in self.keys:
            missing = [dep for dep in self.predecessors[key] if dep not in self.predecessors]
            if missing:
                result[key] = missing
        return result

    def title_of(self, key: StepKey) -> str:
        return self.titles.get(key, str(key))


@dataclass
class Cycle:
    """A dependency cycle: path[0] -> ... -> path[-1] -> path[0]."""
    path: List[StepKey]

    @property
    def is_self_reference(self) -> bool:
        return len(self.path) == 1

    def closed_path(self) -> List[StepKey]:
        return self.path + [self.path[0]]

    def describe(self, titles: Optional[Mapping[StepKey, str]] = None) -> str:
        """Render as 'A → B → A', using titles when given."""
        titles = titles or {}
        return " → ".join(str(titles.get(key, key)) for key in self.closed_path())


# ============================================================================
# GRAPH BUILDER
# ============================================================================

AnyStep = Union[TemplateStep, InstanceStep]


class GraphBuilder:
    """Builds a dependency graph from template or instance steps."""

    @staticmethod
    def key_of(step: AnyStep) -> StepKey:
        if isinstance(step, TemplateStep):
            return step.order
        if isinstance(step, InstanceStep):
            return step.step_id
        raise TypeError(f"Cannot build graph from {type(step).__name__}")

    def build(self, steps: Sequence[AnyStep]) -> DependencyGraph:
        """
        Build dependency graph from steps.

        Args:
            steps: Template steps (keyed by order) or instance steps
                   (keyed by step_id)

        Returns:
            DependencyGraph instance
        """
        graph = DependencyGraph()
        for step in steps:
            graph.add_step(self.key_of(step), step.title, step.depends_on)
        return graph


# ============================================================================
# CYCLE DETECTION
# ============================================================================

_WHITE, _GRAY, _BLACK = 0, 1, 2


class CycleDetector:
    """
    Finds cycles with a three-colour depth-first search.

    A back edge to a GRAY (on-stack) node closes a cycle. Iterative, so
    deep linear templates do not hit the recursion limit.
    """

    def detect(self, graph: DependencyGraph) -> List[Cycle]:
        """
        Find cycles in the graph.

        Args:
            graph: Dependency graph (not mutated)

        Returns:
            One Cycle per back edge found, empty if the graph is acyclic
        """
        colour: Dict[StepKey, int] = {key: _WHITE for key in graph.keys}
        cycles: List[Cycle] = []

        for root in graph.keys:
            if colour[root] != _WHITE:
                continue

            path: List[StepKey] = [root]
            colour[root] = _GRAY
            stack = [(root, iter(graph.get_dependencies(root)))]

            while stack:
                node, deps = stack[-1]
                advanced = False
                for dep in deps:
                    state = colour.get(dep)
                    if state is None:
                        # Unknown reference, reported elsewhere
                        continue
                    if state == _GRAY:
                        start = path.index(dep)
                        # Path runs dependent -> dependency; flip to execution order
                        cycles.append(Cycle(path=list(reversed(path[start:]))))
                    elif state == _WHITE:
                        colour[dep] = _GRAY
                        path.append(dep)
                        stack.append((dep, iter(graph.get_dependencies(dep))))
                        advanced = True
                        break
                if not advanced:
                    colour[node] = _BLACK
                    path.pop()
                    stack.pop()

        if cycles:
            logger.debug(f"Detected {len(cycles)} cycle(s)")
        return cycles

    def is_acyclic(self, graph: DependencyGraph) -> bool:
        return not self.detect(graph)


__all__ = [
    "StepKey",
    "DependencyGraph",
    "Cycle",
    "GraphBuilder",
    "CycleDetector",
]
