"""
Semantic version ranges

npm registries publish plain semantic versions, while manifests ask for them
with range expressions such as ``^4.0.0``, ``~1.2``, ``1.x || >=3`` or
``1.2.3 - 2``. This module turns those expressions into sets of comparators
over ``semver.Version`` objects.

Supported syntax:
    ``||``                      alternatives
    whitespace or ``,``         comparators that must all hold
    ``= != < <= > >=``          primitive comparators (``!=`` needs a full version)
    ``^`` ``~`` ``~>``          caret and tilde ranges
    ``x X *`` and partials      wildcards (``1``, ``1.2``, ``1.2.x``)
    ``A - B``                   hyphen ranges

A prerelease version only satisfies a comparator set that mentions a
prerelease of the same ``major.minor.patch``.
"""

import operator
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

import semver

from ..errors import InvalidRangeError


PARTIAL_PATTERN = re.compile(
    r"^v?(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*])"
    r"(?:\.(?P<patch>\d+|[xX*])"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?)?)?$"
)
COMPARATOR_PATTERN = re.compile(r"^(?P<op><=|>=|!=|~>|<|>|=|\^|~)?(?P<version>\S+)$")
HYPHEN_PATTERN = re.compile(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$")
OPERATOR_SPACING = re.compile(r"(<=|>=|!=|~>|<|>|=|\^|~)\s+")

WILDCARDS = ("x", "X", "*")

# (major, minor, patch, prerelease); None marks a wildcard or omitted part
Partial = Tuple[Optional[int], Optional[int], Optional[int], Optional[str]]

_OPERATORS: Dict[str, Callable[[semver.Version, semver.Version], bool]] = {
    "=": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def parse_version(text: str) -> semver.Version:
    """Parse a published version, tolerating a leading ``v`` or ``=``.

    Raises ValueError for anything that is not a semantic version.
    """
    if not isinstance(text, str):
        raise ValueError(f"Version must be a string, not {type(text).__name__}")
    cleaned = text.strip().lstrip("=v").strip()
    return semver.Version.parse(cleaned)


@dataclass(frozen=True)
class Comparator:
    """A single ``<op> <version>`` test"""
    op: str
    version: semver.Version

    def matches(self, version: semver.Version) -> bool:
        return _OPERATORS[self.op](version, self.version)

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


def _version(major: int, minor: int = 0, patch: int = 0,
             prerelease: Optional[str] = None) -> semver.Version:
    return semver.Version(major, minor, patch, prerelease=prerelease)


# Matches nothing: no release is below 0.0.0
_NOTHING = [Comparator("<", _version(0))]


def _parse_partial(text: str, expression: str) -> Partial:
    match = PARTIAL_PATTERN.match(text)
    if not match:
        raise InvalidRangeError(expression)

    parts: List[Optional[int]] = []
    for key in ("major", "minor", "patch"):
        value = match.group(key)
        # Anything after a wildcard is a wildcard too
        if value is None or value in WILDCARDS or (parts and parts[-1] is None):
            parts.append(None)
        else:
            parts.append(int(value))

    prerelease = match.group("prerelease") if parts[2] is not None else None
    return parts[0], parts[1], parts[2], prerelease


def _desugar(op: str, partial: Partial, expression: str) -> List[Comparator]:
    """Expand one operator + partial version into primitive comparators"""
    major, minor, patch, prerelease = partial

    if op in ("", "="):
        if major is None:
            return []
        if minor is None:
            return [Comparator(">=", _version(major)), Comparator("<", _version(major + 1))]
        if patch is None:
            return [Comparator(">=", _version(major, minor)),
                    Comparator("<", _version(major, minor + 1))]
        return [Comparator("=", _version(major, minor, patch, prerelease))]

    if op == "!=":
        if patch is None:
            raise InvalidRangeError(expression)
        return [Comparator("!=", _version(major, minor, patch, prerelease))]

    if op == ">":
        if major is None:
            return list(_NOTHING)
        if minor is None:
            return [Comparator(">=", _version(major + 1))]
        if patch is None:
            return [Comparator(">=", _version(major, minor + 1))]
        return [Comparator(">", _version(major, minor, patch, prerelease))]

    if op == ">=":
        if major is None:
            return []
        return [Comparator(">=", _version(major, minor or 0, patch or 0, prerelease))]

    if op == "<":
        if major is None:
            return list(_NOTHING)
        return [Comparator("<", _version(major, minor or 0, patch or 0, prerelease))]

    if op == "<=":
        if major is None:
            return []
        if minor is None:
            return [Comparator("<", _version(major + 1))]
        if patch is None:
            return [Comparator("<", _version(major, minor + 1))]
        return [Comparator("<=", _version(major, minor, patch, prerelease))]

    if op in ("~", "~>"):
        if major is None:
            return []
        if minor is None:
            return [Comparator(">=", _version(major)), Comparator("<", _version(major + 1))]
        return [Comparator(">=", _version(major, minor, patch or 0, prerelease)),
                Comparator("<", _version(major, minor + 1))]

    if op == "^":
        if major is None:
            return []
        lower = Comparator(">=", _version(major, minor or 0, patch or 0, prerelease))
        if major > 0 or minor is None:
            upper = _version(major + 1)
        elif minor > 0 or patch is None:
            upper = _version(0, minor + 1)
        else:
            upper = _version(0, 0, patch + 1)
        return [lower, Comparator("<", upper)]

    raise InvalidRangeError(expression)


def _desugar_hyphen(low: Partial, high: Partial) -> List[Comparator]:
    comparators = []
    if low[0] is not None:
        comparators.append(
            Comparator(">=", _version(low[0], low[1] or 0, low[2] or 0, low[3]))
        )

    major, minor, patch, prerelease = high
    if major is None:
        pass
    elif minor is None:
        comparators.append(Comparator("<", _version(major + 1)))
    elif patch is None:
        comparators.append(Comparator("<", _version(major, minor + 1)))
    else:
        comparators.append(Comparator("<=", _version(major, minor, patch, prerelease)))
    return comparators


def _parse_alternative(text: str, expression: str) -> List[Comparator]:
    text = text.strip()

    hyphen = HYPHEN_PATTERN.match(text)
    if hyphen:
        return _desugar_hyphen(
            _parse_partial(hyphen.group("low"), expression),
            _parse_partial(hyphen.group("high"), expression)
        )

    text = OPERATOR_SPACING.sub(r"\1", text.replace(",", " "))
    comparators: List[Comparator] = []
    for token in text.split():
        match = COMPARATOR_PATTERN.match(token)
        if not match:
            raise InvalidRangeError(expression)
        partial = _parse_partial(match.group("version"), expression)
        comparators.extend(_desugar(match.group("op") or "", partial, expression))
    return comparators


def _allows(comparators: List[Comparator], version: semver.Version) -> bool:
    if not all(c.matches(version) for c in comparators):
        return False

    if version.prerelease:
        core = (version.major, version.minor, version.patch)
        return any(
            c.version.prerelease and (c.version.major, c.version.minor, c.version.patch) == core
            for c in comparators
        )

    return True


class VersionRange:
    """A parsed range expression: a union of comparator sets"""

    def __init__(self, expression: str, alternatives: List[List[Comparator]]):
        self.expression = expression
        self.alternatives = alternatives

    @classmethod
    def parse(cls, expression: str) -> 'VersionRange':
        """Parse a range expression, raising InvalidRangeError on bad input"""
        if not isinstance(expression, str):
            raise InvalidRangeError(repr(expression))

        alternatives = [
            _parse_alternative(part, expression)
            for part in expression.split("||")
        ]
        return cls(expression, alternatives)

    def satisfies(self, version: Union[str, semver.Version]) -> bool:
        """Check whether a version falls inside this range"""
        if isinstance(version, str):
            try:
                version = parse_version(version)
            except ValueError:
                return False

        return any(_allows(comparators, version) for comparators in self.alternatives)

    def __contains__(self, version) -> bool:
        return self.satisfies(version)

    def __str__(self) -> str:
        return " || ".join(
            " ".join(str(c) for c in comparators) or "*"
            for comparators in self.alternatives
        )

    def __repr__(self) -> str:
        return f"VersionRange({self.expression!r})"
