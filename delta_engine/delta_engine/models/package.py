"""Package models for a single store entry and its dependency subtree.

A :class:`PackageNode` is the unit captured by a snapshot: a package's
identity, its opaque version string, and the ordered list of packages it
references.  Nodes are frozen once built; every appearance of a dependency is
its own node so that two top-level packages never share a subtree.
"""

from __future__ import annotations

from collections.abc import Iterator

from pydantic import BaseModel, ConfigDict, Field


class PackageIdentity(BaseModel):
    """Logical name of a package plus an optional output/variant label."""

    model_config = ConfigDict(frozen=True)

    base_name: str = Field(
        ...,
        min_length=1,
        description="Logical package name, e.g. 'curl' or 'wine-wow'.",
    )
    variant: str | None = Field(
        default=None,
        description="Output or build variant suffix, e.g. 'bin' or 'staging'.",
    )

    @property
    def display_name(self) -> str:
        """Name with the variant in braces, e.g. ``curl{bin}``."""
        if self.variant:
            return f"{self.base_name}{{{self.variant}}}"
        return self.base_name

    def __str__(self) -> str:
        return self.display_name


class PackageNode(BaseModel):
    """A package together with the packages it references.

    Versions are compared for equality only; no ordering is ever implied.
    """

    model_config = ConfigDict(frozen=True)

    identity: PackageIdentity
    version: str = Field(
        ...,
        min_length=1,
        description="Opaque version string taken from the store path.",
    )
    dependencies: tuple[PackageNode, ...] = Field(
        default=(),
        description="Direct references in source order (registration time, newest first).",
    )

    @property
    def base_name(self) -> str:
        return self.identity.base_name

    def walk(self) -> Iterator[PackageNode]:
        """Yield every node below this one, depth-first in source order."""
        for dep in self.dependencies:
            yield dep
            yield from dep.walk()

    def closure_size(self) -> int:
        """Number of dependency nodes in this subtree (self excluded)."""
        return sum(1 for _ in self.walk())
