"""Startup check that installed dependencies fall within supported version ranges.

Range expressions accept the npm forms used by server packages
(``2.x.x``, ``0.1.x``, ``^1.2.3``, ``~1.2``, ``*``, ``^2.0.0-rc.1``) as well as PEP 440
specifier sets (``>=2,<3``, ``~=1.4``).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from importlib import metadata as importlib_metadata

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from .logging import get_logger

logger = get_logger(__name__)

# Libraries gqlkit is written against
REQUIRED_VERSIONS: dict[str, str] = {
    "strawberry-graphql": "0.x.x",
    "graphql-core": "3.x.x",
    "fastapi": "0.x.x",
    "sqlalchemy": "2.x.x",
    "pydantic-settings": "2.x.x",
}

WILDCARDS = {"x", "X", "*"}
_PART_RE = re.compile(r"^\d+$")


class VersionRangeError(ValueError):
    """Raised when a version range expression cannot be parsed."""

    pass


@dataclass(frozen=True)
class VersionMismatch:
    """An installed distribution that does not satisfy its required range."""

    name: str
    required: str
    installed: str | None

    def __str__(self) -> str:
        if self.installed is None:
            return f"{self.name}: not installed, {self.required} required"
        return f"{self.name}: {self.installed} installed, {self.required} required"


class IncompatibleVersionsError(RuntimeError):
    """Raised at startup when one or more dependencies are out of range."""

    def __init__(self, mismatches: list[VersionMismatch]):
        self.mismatches = list(mismatches)
        lines = "\n".join(f"  - {m}" for m in self.mismatches)
        super().__init__(f"Incompatible package versions:\n{lines}")


def _split_parts(
    text: str, expression: str
) -> tuple[int | None, int | None, int | None, str | None]:
    """Split ``1.2.x`` into (1, 2, None, None); wildcards and missing parts become None.

    A prerelease tag (``2.0.0-rc.1``) needs all three parts; it comes back as
    the normalized version the range starts from (``2.0.0rc1``).
    """
    text = text.strip()
    if text[:1] in ("v", "="):
        text = text[1:]
    text, dash, prerelease = text.partition("-")

    raw = text.split(".")
    if not text or len(raw) > 3:
        raise VersionRangeError(f"Invalid version range: {expression!r}")

    parts: list[int | None] = []
    wildcard_seen = False
    for piece in raw:
        if piece in WILDCARDS:
            wildcard_seen = True
            parts.append(None)
        elif _PART_RE.match(piece) and not wildcard_seen:
            parts.append(int(piece))
        else:
            raise VersionRangeError(f"Invalid version range: {expression!r}")

    floor = None
    if dash:
        if not prerelease or len(parts) < 3 or wildcard_seen:
            raise VersionRangeError(f"Invalid version range: {expression!r}")
        try:
            floor = str(Version(f"{text}-{prerelease}"))
        except InvalidVersion as e:
            raise VersionRangeError(f"Invalid version range: {expression!r}") from e

    while len(parts) < 3:
        parts.append(None)
    return parts[0], parts[1], parts[2], floor


def _x_range(
    major: int | None, minor: int | None, patch: int | None, floor: str | None = None
) -> SpecifierSet:
    if floor is not None:
        return SpecifierSet(f"=={floor}")
    if major is None:
        return SpecifierSet()
    if minor is None:
        return SpecifierSet(f">={major}.0.0,<{major + 1}.0.0")
    if patch is None:
        return SpecifierSet(f">={major}.{minor}.0,<{major}.{minor + 1}.0")
    return SpecifierSet(f"=={major}.{minor}.{patch}")


def _caret(
    major: int | None, minor: int | None, patch: int | None, floor: str | None = None
) -> SpecifierSet:
    if major is None:
        return SpecifierSet()

    lower = f">={floor or f'{major}.{minor or 0}.{patch or 0}'}"
    if major > 0 or minor is None:
        upper = f"<{major + 1}.0.0"
    elif minor > 0 or patch is None:
        upper = f"<0.{minor + 1}.0"
    else:
        upper = f"<0.0.{patch + 1}"
    return SpecifierSet(f"{lower},{upper}")


def _tilde(
    major: int | None, minor: int | None, patch: int | None, floor: str | None = None
) -> SpecifierSet:
    if major is None:
        return SpecifierSet()
    if minor is None:
        return SpecifierSet(f">={major}.0.0,<{major + 1}.0.0")
    lower = floor or f"{major}.{minor}.{patch or 0}"
    return SpecifierSet(f">={lower},<{major}.{minor + 1}.0")


def parse_version_range(expression: str) -> SpecifierSet:
    """Translate a range expression into a :class:`SpecifierSet`.

    Raises:
        VersionRangeError: If the expression is malformed
    """
    expr = expression.strip()
    if not expr or expr in WILDCARDS:
        return SpecifierSet()

    if expr.startswith(("<", ">", "!", "==", "~=")):
        try:
            return SpecifierSet(expr)
        except InvalidSpecifier as e:
            raise VersionRangeError(f"Invalid version range: {expression!r}") from e

    if expr.startswith("^"):
        return _caret(*_split_parts(expr[1:], expression))
    if expr.startswith("~"):
        return _tilde(*_split_parts(expr[1:], expression))
    return _x_range(*_split_parts(expr, expression))


def get_installed_version(name: str) -> str | None:
    """Return the installed version of a distribution, or None if it is missing."""
    try:
        return importlib_metadata.version(name)
    except importlib_metadata.PackageNotFoundError:
        return None


def version_satisfies(installed: str, expression: str) -> bool:
    """Check a single version string against a range expression."""
    spec = parse_version_range(expression)
    try:
        version = Version(installed)
    except InvalidVersion:
        return False
    return spec.contains(version)


def check_package_versions(requirements: Mapping[str, str]) -> list[VersionMismatch]:
    """Compare installed distributions against required ranges.

    Every range is parsed before any lookup, so a malformed expression fails
    the whole check rather than being reported as a mismatch.

    Args:
        requirements: Distribution name to range expression

    Returns:
        One VersionMismatch per violating distribution, in mapping order.
        An empty list means every requirement is satisfied.

    Raises:
        VersionRangeError: If any range expression is malformed
    """
    for expression in requirements.values():
        parse_version_range(expression)

    mismatches: list[VersionMismatch] = []
    for name, expression in requirements.items():
        installed = get_installed_version(name)
        if installed is None or not version_satisfies(installed, expression):
            mismatches.append(VersionMismatch(name=name, required=expression, installed=installed))
    return mismatches


def ensure_package_versions(requirements: Mapping[str, str] | None = None) -> None:
    """Fail startup if any dependency is outside its required range.

    Args:
        requirements: Distribution name to range expression
            (defaults to REQUIRED_VERSIONS)

    Raises:
        IncompatibleVersionsError: Naming every offending distribution
    """
    if requirements is None:
        requirements = REQUIRED_VERSIONS

    mismatches = check_package_versions(requirements)
    if mismatches:
        for mismatch in mismatches:
            logger.error(
                "Incompatible package version",
                package=mismatch.name,
                installed=mismatch.installed,
                required=mismatch.required,
            )
        raise IncompatibleVersionsError(mismatches)

    logger.debug("Package versions verified", packages=list(requirements))
