"""Dependency graph for ordering declarations."""

import heapq
from typing import Dict, List, Set, Optional
from dataclasses import dataclass
from collections import defaultdict, deque

from shipyard.state.models import ResourceDeclaration
from shipyard.utils.errors import ConfigurationError, ErrorContext


@dataclass
class DependencyNode:
    """Node in the dependency graph."""

    name: str
    declaration: ResourceDeclaration
    dependencies: Set[str]  # Names this node depends on


class DependencyGraph:
    """Directed acyclic graph (DAG) of declaration dependencies."""

    def __init__(self):
        self.nodes: Dict[str, DependencyNode] = {}
        self._adjacency_list: Dict[str, Set[str]] = defaultdict(set)

    @classmethod
    def from_declarations(cls, declarations) -> 'DependencyGraph':
        """Build a graph from declarations.

        Args:
            declarations: Iterable of ResourceDeclaration

        Returns:
            Populated graph (not yet validated)

        Raises:
            ConfigurationError: If two declarations share a name
        """
        graph = cls()
        for declaration in declarations:
            graph.add_declaration(declaration)
        return graph

    def add_declaration(self, declaration: ResourceDeclaration) -> None:
        """Add a declaration to the graph.

        Args:
            declaration: Declaration to add

        Raises:
            ConfigurationError: If a declaration with the same name exists
        """
        if declaration.name in self.nodes:
            existing = self.nodes[declaration.name].declaration
            raise ConfigurationError(
                f"Duplicate declaration name '{declaration.name}' "
                f"({existing} and {declaration})",
                context=ErrorContext(resource_id=declaration.name)
            )

        dependencies = set(declaration.depends_on)
        self.nodes[declaration.name] = DependencyNode(
            name=declaration.name,
            declaration=declaration,
            dependencies=dependencies,
        )

        for dep_name in dependencies:
            self._adjacency_list[dep_name].add(declaration.name)

    def get_dependencies(self, name: str) -> Set[str]:
        """Get direct dependencies of a declaration."""
        if name not in self.nodes:
            return set()
        return self.nodes[name].dependencies.copy()

    def get_dependents(self, name: str) -> Set[str]:
        """Get declarations that directly depend on ``name``."""
        return self._adjacency_list.get(name, set()).copy()

    def get_all_dependents(self, name: str) -> Set[str]:
        """Get all transitive dependents of a declaration.

        Args:
            name: Declaration name

        Returns:
            Names of every declaration that depends on ``name``, directly or not
        """
        visited = set()
        queue = deque([name])

        while queue:
            current = queue.popleft()
            if current in visited:
                continue

            visited.add(current)

            for dependent in self._adjacency_list.get(current, ()):
                if dependent not in visited:
                    queue.append(dependent)

        visited.discard(name)
        return visited

    def detect_circular_dependencies(self) -> Optional[List[str]]:
        """Detect circular dependencies in the graph.

        Returns:
            Names forming a cycle (first name repeated at the end), or None
        """
        # White (0): unvisited, Gray (1): visiting, Black (2): visited
        color = {name: 0 for name in self.nodes}
        parent: Dict[str, str] = {}

        def dfs(name: str) -> Optional[List[str]]:
            color[name] = 1

            for dependent in sorted(self._adjacency_list.get(name, ())):
                if dependent not in color:
                    continue

                if color[dependent] == 1:
                    # Back edge: walk parents back to the dependent
                    cycle = [dependent]
                    current = name
                    while current != dependent:
                        cycle.append(current)
                        current = parent.get(current)
                        if current is None:
                            break
                    cycle.append(dependent)
                    return list(reversed(cycle))

                if color[dependent] == 0:
                    parent[dependent] = name
                    cycle = dfs(dependent)
                    if cycle:
                        return cycle

            color[name] = 2
            return None

        for name in sorted(self.nodes):
            if color[name] == 0:
                cycle = dfs(name)
                if cycle:
                    return cycle

        return None

    def validate(self) -> None:
        """Validate the dependency graph.

        Raises:
            ConfigurationError: On unknown dependencies or circular dependencies
        """
        for name in sorted(self.nodes):
            for dep_name in sorted(self.nodes[name].dependencies):
                if dep_name == name:
                    raise ConfigurationError(
                        f"Declaration '{name}' depends on itself",
                        context=ErrorContext(resource_id=name)
                    )
                if dep_name not in self.nodes:
                    raise ConfigurationError(
                        f"Declaration '{name}' depends on '{dep_name}' which is not declared",
                        context=ErrorContext(resource_id=name)
                    )

        cycle = self.detect_circular_dependencies()
        if cycle:
            raise ConfigurationError(
                f"Circular dependency detected: {' -> '.join(cycle)}",
                context=ErrorContext(resource_id=cycle[0])
            )

    def topological_sort(self) -> List[str]:
        """Order declarations so every dependency precedes its dependents.

        Ties between declarations that are ready at the same time are broken
        by name, so the same plan always yields the same order.

        Returns:
            Declaration names in reconciliation order

        Raises:
            ConfigurationError: If the graph is invalid
        """
        self.validate()

        # Kahn's algorithm with a min-heap as the ready set
        in_degree = {name: len(node.dependencies) for name, node in self.nodes.items()}
        ready = [name for name, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)
        result = []

        while ready:
            name = heapq.heappop(ready)
            result.append(name)

            for dependent in self._adjacency_list.get(name, ()):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(result) != len(self.nodes):
            raise ConfigurationError("Cannot order declarations: graph contains cycles")

        return result

    def get_declaration(self, name: str) -> Optional[ResourceDeclaration]:
        """Get a declaration from the graph."""
        node = self.nodes.get(name)
        return node.declaration if node else None

    def roots(self) -> List[str]:
        """Names of declarations without dependencies, sorted."""
        return sorted(name for name, node in self.nodes.items() if not node.dependencies)

    def size(self) -> int:
        return len(self.nodes)
