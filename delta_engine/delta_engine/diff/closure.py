"""Flatten a package subtree into a name -> version map."""

from __future__ import annotations

from delta_engine.models.package import PackageNode


def flatten_closure(node: PackageNode) -> dict[str, str]:
    """Map every dependency base name below *node* to its version.

    The first occurrence in depth-first, source order wins when a name
    appears more than once.  The package's own name is never included, even
    when something in its closure shares it.
    """
    closure: dict[str, str] = {}
    for dep in node.walk():
        if dep.base_name == node.base_name:
            continue
        closure.setdefault(dep.base_name, dep.version)
    return closure
