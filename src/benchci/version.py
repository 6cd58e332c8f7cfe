from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

# Semantic Versioning 2.0.0 grammar (https://semver.org), without the leading "v".
_SEMVER_RE: Final[re.Pattern[str]] = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$"
)

_VERSION_PREFIXES: Final[tuple[str, ...]] = ("v", "V")


class VersionError(ValueError):
    """Raised when a version literal is not a valid semantic version."""


@dataclass(frozen=True, slots=True)
class Version:
    """
    A semantic version.

    `parsed` is False for the zero value produced by `parse_version_lenient` when
    the input could not be parsed. Such a version still compares as 0.0.0.
    """

    major: int = 0
    minor: int = 0
    patch: int = 0
    prerelease: tuple[str, ...] = ()
    build: tuple[str, ...] = ()
    parsed: bool = True

    def precedence_key(self) -> tuple[object, ...]:
        # Build metadata does not take part in precedence.
        if self.prerelease:
            pre: tuple[object, ...] = (0, tuple(_identifier_key(p) for p in self.prerelease))
        else:
            pre = (1,)
        return (self.major, self.minor, self.patch, pre)

    def compare(self, other: Version) -> int:
        a = self.precedence_key()
        b = other.precedence_key()
        if a < b:
            return -1
        if a > b:
            return 1
        return 0

    def __str__(self) -> str:
        s = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            s += "-" + ".".join(self.prerelease)
        if self.build:
            s += "+" + ".".join(self.build)
        return s


ZERO_VERSION: Final[Version] = Version(parsed=False)


def _identifier_key(ident: str) -> tuple[int, int | str]:
    # Numeric identifiers sort numerically and before alphanumeric ones.
    if ident.isdigit():
        return (0, int(ident))
    return (1, ident)


def strip_version_prefix(text: str) -> str:
    """Trim whitespace and a single leading version-prefix character (e.g. `v1.2.3`)."""
    s = text.strip()
    if s[:1] in _VERSION_PREFIXES:
        s = s[1:]
    return s


def parse_version(text: str) -> Version:
    """
    Parse a semantic version such as `1.2.3`, `v1.2.3-rc.1` or `1.2.3+build.5`.

    Raises
    ------
    VersionError
        If `text` is not a valid semantic version.
    """
    s = strip_version_prefix(text)
    m = _SEMVER_RE.match(s)
    if m is None:
        raise VersionError(f"invalid semantic version: {text!r}")

    pre = m.group(4)
    build = m.group(5)
    return Version(
        major=int(m.group(1)),
        minor=int(m.group(2)),
        patch=int(m.group(3)),
        prerelease=tuple(pre.split(".")) if pre else (),
        build=tuple(build.split(".")) if build else (),
    )


def parse_version_lenient(text: str) -> Version:
    """Like `parse_version`, but malformed input yields `ZERO_VERSION` instead of raising."""
    try:
        return parse_version(text)
    except VersionError:
        return ZERO_VERSION


def version_matches(constraint: str, tag: str) -> bool:
    """
    Check whether `tag` satisfies a version `constraint`.

    Supported constraints:
      ""          always true
      ">=1.3.0"   tag >= 1.3.0
      ">v1.3.0"   tag >  1.3.0
      "1.3.0"     tag == 1.3.0 (precedence equality, prerelease labels included)

    Whitespace around either input and a leading `v` on either version are
    ignored. Unparseable versions on either side compare as 0.0.0 and never
    raise; validate with `parse_version` first when strictness matters.
    """
    c = constraint.strip()
    if not c:
        return True

    current = parse_version_lenient(tag)

    if c.startswith(">="):
        required = parse_version_lenient(c.removeprefix(">="))
        return current.compare(required) >= 0

    if c.startswith(">"):
        required = parse_version_lenient(c.removeprefix(">"))
        return current.compare(required) > 0

    return current.compare(parse_version_lenient(c)) == 0


__all__ = [
    "Version",
    "VersionError",
    "ZERO_VERSION",
    "parse_version",
    "parse_version_lenient",
    "strip_version_prefix",
    "version_matches",
]
