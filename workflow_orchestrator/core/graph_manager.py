"""Dependency analysis for workflow graphs: validation, cycle detection and level ordering."""

from typing import Dict, List, Optional

from ..models.core import ExecutionLevel, ValidationResult, WorkflowGraph
from .exceptions import CircularDependencyError, GraphValidationError
from .logging import get_logger

logger = get_logger(__name__)

# Three-colour DFS marking
_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2

MAX_RECOMMENDED_DEPTH = 15
MAX_RECOMMENDED_FAN = 10


class GraphManager:
    """Validates workflow graphs and computes their dependency-respecting execution order."""

    def validate_graph(self, graph: WorkflowGraph) -> ValidationResult:
        """
        Validate a graph for structural correctness before execution.

        Args:
            graph: The workflow graph to validate

        Returns:
            ValidationResult: Validation results with errors and warnings
        """
        logger.debug(f"Validating workflow graph: {graph.model_id}")

        structure = graph.validate_structure()
        errors = list(structure.errors)
        warnings = list(structure.warnings)

        if not errors:
            for cycle in self.detect_cycles(graph):
                errors.append(f"Circular dependency detected: {' → '.join(cycle)}")

        if not errors:
            self._collect_complexity_warnings(graph, warnings)

        result = ValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings
        )

        logger.debug(f"Graph validation completed. Valid: {result.is_valid}, "
                     f"Errors: {len(result.errors)}, Warnings: {len(result.warnings)}")
        return result

    def compute_order(self, graph: WorkflowGraph) -> List[ExecutionLevel]:
        """
        Group the graph's container nodes into topological levels.

        Level 0 holds every node without dependencies; level k+1 holds the nodes
        whose dependencies all lie in levels up to k. Node ids inside a level are
        sorted ascending. Nothing is returned for a cyclic graph.

        Args:
            graph: The workflow graph to order

        Returns:
            List[ExecutionLevel]: Ordered levels covering every node exactly once

        Raises:
            GraphValidationError: If a dependency references an unknown node
            CircularDependencyError: If the dependencies contain a cycle
        """
        node_ids = graph.node_ids
        for node in graph.containers:
            unknown = sorted(node.dependencies - node_ids)
            if unknown:
                raise GraphValidationError(
                    f"Node {node.id} depends on non-existent node: {', '.join(unknown)}",
                    model_id=graph.model_id
                )

        adjacency = self._build_adjacency(graph)
        cycles = self._find_cycles(adjacency, first_only=True)
        if cycles:
            error = CircularDependencyError(cycles[0], model_id=graph.model_id)
            logger.warning(error.message)
            raise error

        levels_by_node = self._calculate_levels(graph)
        grouped: Dict[int, List[str]] = {}
        for node_id, level in levels_by_node.items():
            grouped.setdefault(level, []).append(node_id)

        levels = [
            ExecutionLevel(index=index, node_ids=sorted(grouped[index]))
            for index in sorted(grouped)
        ]
        logger.debug(f"Computed {len(levels)} execution levels for {len(node_ids)} nodes")
        return levels

    def detect_cycles(self, graph: WorkflowGraph) -> List[List[str]]:
        """Return every dependency cycle found, each closed by repeating its first node."""
        return self._find_cycles(self._build_adjacency(graph), first_only=False)

    def find_critical_path(self, graph: WorkflowGraph) -> List[str]:
        """
        Find the longest dependency chain of an acyclic graph.

        Raises:
            CircularDependencyError: If the dependencies contain a cycle
        """
        levels = self.compute_order(graph)
        chain_length: Dict[str, int] = {}
        predecessor: Dict[str, Optional[str]] = {}

        for level in levels:
            for node_id in level.node_ids:
                node = graph.get_container(node_id)
                best: Optional[str] = None
                for dependency in sorted(node.dependencies):
                    if best is None or chain_length[dependency] > chain_length[best]:
                        best = dependency
                chain_length[node_id] = 1 + (chain_length[best] if best else 0)
                predecessor[node_id] = best

        if not chain_length:
            return []

        end = min(chain_length, key=lambda node_id: (-chain_length[node_id], node_id))
        path = []
        current: Optional[str] = end
        while current is not None:
            path.append(current)
            current = predecessor[current]
        return list(reversed(path))

    def _build_adjacency(self, graph: WorkflowGraph) -> Dict[str, List[str]]:
        """Map each node to the nodes that depend on it (edge A→B: B depends on A)."""
        adjacency: Dict[str, List[str]] = {node.id: [] for node in graph.containers}
        for node in graph.containers:
            for dependency in node.dependencies:
                if dependency in adjacency:
                    adjacency[dependency].append(node.id)
        for dependents in adjacency.values():
            dependents.sort()
        return adjacency

    def _find_cycles(self, adjacency: Dict[str, List[str]], first_only: bool) -> List[List[str]]:
        colour = {node_id: _UNVISITED for node_id in adjacency}
        path: List[str] = []
        cycles: List[List[str]] = []

        def visit(node_id: str) -> bool:
            colour[node_id] = _IN_PROGRESS
            path.append(node_id)

            for dependent in adjacency[node_id]:
                if colour[dependent] == _IN_PROGRESS:
                    # Back-edge: the cycle is the path segment starting at the dependent
                    start = path.index(dependent)
                    cycles.append(path[start:] + [dependent])
                    if first_only:
                        return True
                elif colour[dependent] == _UNVISITED:
                    if visit(dependent) and first_only:
                        return True

            path.pop()
            colour[node_id] = _DONE
            return False

        for node_id in sorted(adjacency):
            if colour[node_id] == _UNVISITED:
                if visit(node_id) and first_only:
                    break

        return cycles

    def _calculate_levels(self, graph: WorkflowGraph) -> Dict[str, int]:
        """Assign each node its level; callers guarantee the graph is acyclic."""
        levels: Dict[str, int] = {}
        nodes = {node.id: node for node in graph.containers}

        def level_of(node_id: str) -> int:
            if node_id in levels:
                return levels[node_id]
            dependencies = nodes[node_id].dependencies
            level = 0 if not dependencies else 1 + max(level_of(dep) for dep in dependencies)
            levels[node_id] = level
            return level

        for node_id in sorted(nodes):
            level_of(node_id)
        return levels

    def _collect_complexity_warnings(self, graph: WorkflowGraph, warnings: List[str]) -> None:
        levels = self._calculate_levels(graph)
        depth = max(levels.values()) + 1 if levels else 0
        if depth > MAX_RECOMMENDED_DEPTH:
            warnings.append(
                f"Deep dependency chain detected ({depth} levels) - "
                "consider restructuring for better performance"
            )

        adjacency = self._build_adjacency(graph)
        for node in sorted(graph.containers, key=lambda n: n.id):
            label = node.name or node.id
            if len(node.dependencies) > MAX_RECOMMENDED_FAN:
                warnings.append(
                    f'Node "{label}" has many dependencies ({len(node.dependencies)}) - '
                    "consider breaking into smaller components"
                )
            if len(adjacency[node.id]) > MAX_RECOMMENDED_FAN:
                warnings.append(
                    f'Node "{label}" is depended upon by many nodes ({len(adjacency[node.id])}) - '
                    "ensure it's stable"
                )
