"""Parse Nix store paths into a package identity and version.

A store path looks like ``/nix/store/<hash>-<name>-<version>[-<variant>]``.
Names may contain hyphens (``wine-wow``, ``vulkan-loader``) and so may
versions (``4.0-rc5``, ``9165-8ca53f9``), so the split point is found by
scanning hyphen-separated fragments for the first one that looks like a
version.  A trailing fragment without any digit is taken as the variant
(``bin``, ``staging``).

Paths that carry no version at all (patches, ``.drv`` files, bare names) raise
:class:`MalformedStorePath`; callers skip those entries.
"""

from __future__ import annotations

from pydantic import BaseModel

from delta_engine.models.package import PackageIdentity

_DELIMITER = "-"

# "/nix/store/" + 32-character base32 hash + "-"
_PREFIX_LEN = len("/nix/store/zzw3mjv8dcmrz4ran92pnyj97f05ff55-")
_DASH_POS = _PREFIX_LEN - 1

_VERSION_CHARS = frozenset("0123456789abcdefghijklmnopqrstuvwxyz._")


class MalformedStorePath(ValueError):
    """Raised when no name/version split can be found in a store path."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed store path {path!r}: {reason}")


class ParsedStorePath(BaseModel):
    """Identity and version extracted from one store path."""

    identity: PackageIdentity
    version: str


def strip_store_prefix(path: str) -> str | None:
    """Drop the ``/nix/store/<hash>-`` prefix from *path*.

    Returns ``None`` when nothing remains after the prefix.
    """
    if len(path) > _PREFIX_LEN and path[_DASH_POS] == _DELIMITER:
        return path[_PREFIX_LEN:]

    # Fall back to the first dash for stores with a different prefix length.
    pos = path.find(_DELIMITER)
    if pos < 0 or len(path) <= pos + 1:
        return None
    return path[pos + 1 :]


def is_version_fragment(fragment: str) -> bool:
    """Return True if *fragment* reads like the start of a version.

    A version fragment starts with a digit (or ``v`` and a digit) and holds
    only digits, lowercase letters, ``.`` and ``_``.
    """
    if not fragment:
        return False

    if fragment[0] == "v":
        if len(fragment) < 2 or not fragment[1].isdigit():
            return False
        fragment = fragment[1:]
    elif not fragment[0].isdigit():
        return False

    return all(ch in _VERSION_CHARS for ch in fragment)


def _has_digit(value: str) -> bool:
    return any(ch.isdigit() for ch in value)


def parse_store_path(path: str) -> ParsedStorePath:
    """Split a store path into name, version and optional variant.

    Parameters
    ----------
    path:
        Full store path, e.g. ``/nix/store/<hash>-ffmpeg-3.4.5-bin``.

    Returns
    -------
    ParsedStorePath
        The identity (name + variant) and version string.

    Raises
    ------
    MalformedStorePath
        If the path has no component that can be read as a version.
    """
    body = strip_store_prefix(path)
    if body is None:
        raise MalformedStorePath(path, "nothing follows the store prefix")

    dashes = [i for i, ch in enumerate(body) if ch == _DELIMITER]

    if not dashes:
        raise MalformedStorePath(path, "no version component")

    # A single dash is the common "<name>-<version>" shape.
    if len(dashes) == 1:
        name, version = body[: dashes[0]], body[dashes[0] + 1 :]
        if not name or not _has_digit(version):
            raise MalformedStorePath(path, "no version component")
        return ParsedStorePath(identity=PackageIdentity(base_name=name), version=version)

    variant: str | None = None
    version_end = len(body)
    last_fragment = body[dashes[-1] + 1 :]
    if not _has_digit(last_fragment):
        variant = last_fragment
        version_end = dashes[-1]

    for idx, dash in enumerate(dashes):
        next_dash = dashes[idx + 1] if idx + 1 < len(dashes) else len(body)
        if not is_version_fragment(body[dash + 1 : next_dash]):
            continue

        name = body[:dash]
        version = body[dash + 1 : version_end]
        if not name or not version:
            break
        return ParsedStorePath(
            identity=PackageIdentity(base_name=name, variant=variant or None),
            version=version,
        )

    raise MalformedStorePath(path, "no version component")
