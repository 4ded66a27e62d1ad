"""
Dependency graph for fpm

A directed graph over package names. An edge ``a -> b`` records that ``a``
depends on ``b``. The graph refuses any edge that would close a cycle, so it
is acyclic at all times. It only grows; nothing is ever removed.
"""

import threading
from collections import defaultdict
from typing import Dict, Iterator, List, Set, Tuple

from ..errors import CycleError, DuplicateEdgeError, VertexNotFoundError


class DependencyGraph:
    """Thread-safe acyclic graph of package names"""

    def __init__(self):
        self._lock = threading.Lock()
        self._edges: Dict[str, Set[str]] = defaultdict(set)
        # Insertion order of vertices
        self._vertices: Dict[str, None] = {}

    def add_vertex(self, name: str) -> None:
        """Add a vertex; adding an existing one is a no-op"""
        with self._lock:
            self._vertices.setdefault(name, None)

    def add_edge(self, source: str, target: str) -> None:
        """
        Record that ``source`` depends on ``target``

        Raises VertexNotFoundError if either end is missing, DuplicateEdgeError
        if the edge exists and CycleError if ``target`` already reaches
        ``source``.
        """
        with self._lock:
            for name in (source, target):
                if name not in self._vertices:
                    raise VertexNotFoundError(source, target, name)

            if target in self._edges[source]:
                raise DuplicateEdgeError(source, target)

            if self._reaches(target, source):
                raise CycleError(source, target)

            self._edges[source].add(target)

    def _reaches(self, start: str, goal: str) -> bool:
        """Depth-first search; the caller holds the lock"""
        stack = [start]
        seen = set()
        while stack:
            node = stack.pop()
            if node == goal:
                return True
            if node in seen:
                continue
            seen.add(node)
            stack.extend(self._edges.get(node, ()))
        return False

    def has_vertex(self, name: str) -> bool:
        with self._lock:
            return name in self._vertices

    def has_edge(self, source: str, target: str) -> bool:
        with self._lock:
            return target in self._edges.get(source, ())

    def vertices(self) -> List[str]:
        with self._lock:
            return list(self._vertices)

    def edges(self) -> List[Tuple[str, str]]:
        with self._lock:
            return [
                (source, target)
                for source in self._vertices
                for target in sorted(self._edges.get(source, ()))
            ]

    def dependencies_of(self, name: str) -> List[str]:
        """Direct dependencies of a package, sorted by name"""
        with self._lock:
            return sorted(self._edges.get(name, ()))

    def topological_order(self) -> List[str]:
        """Vertices ordered so every package comes after its dependencies"""
        with self._lock:
            order: List[str] = []
            done: Set[str] = set()
            for vertex in self._vertices:
                if vertex in done:
                    continue
                # Iterative post-order walk
                stack = [(vertex, iter(sorted(self._edges.get(vertex, ()))))]
                done.add(vertex)
                while stack:
                    node, children = stack[-1]
                    child = next(children, None)
                    if child is None:
                        stack.pop()
                        order.append(node)
                    elif child not in done:
                        done.add(child)
                        stack.append((child, iter(sorted(self._edges.get(child, ())))))
            return order

    def __contains__(self, name: str) -> bool:
        return self.has_vertex(name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._vertices)

    def __iter__(self) -> Iterator[str]:
        return iter(self.vertices())
