"""Dependency ordering for registered plugins.

The graph is a plain name-indexed mapping: each key is a plugin name and its
value lists the names that plugin depends on. Edges point from a plugin to
its dependencies, so a depth-first post-order walk yields dependencies before
dependents.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .exceptions import CircularDependencyError


def resolve_order(dependencies: Mapping[str, Iterable[str]]) -> list[str]:
    """Return plugin names ordered so every dependency precedes its dependents.

    Args:
        dependencies: Mapping of plugin name -> declared dependency names.
            Iteration order of the mapping is the tie-breaker between
            mutually independent plugins. Dependency names that are not keys
            of the mapping are ignored.

    Returns:
        List of plugin names in initialization order.

    Raises:
        CircularDependencyError: If a cycle is found. ``cycle`` holds the path
            from the repeated name back to itself, e.g. ``["a", "c", "b", "a"]``.
    """
    result: list[str] = []
    visited: set[str] = set()
    visiting: set[str] = set()

    def visit(name: str, path: list[str]) -> None:
        if name in visited:
            return
        if name in visiting:
            start = path.index(name)
            raise CircularDependencyError([*path[start:], name])
        if name not in dependencies:
            return

        visiting.add(name)
        path.append(name)
        for dependency in dependencies[name]:
            visit(dependency, path)
        path.pop()
        visiting.discard(name)

        visited.add(name)
        result.append(name)

    for name in dependencies:
        visit(name, [])

    return result
