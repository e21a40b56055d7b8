"""
Immutable filter descriptions.

A condition compiles to a ``PredicateFragment``; fragments are folded into a
``FilterSpec`` (a conjunction). Nothing here touches the database, so AND/OR
composition can be exercised without a live backend.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable


class PredicateOp(str, Enum):
    EQ = "eq"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    IN = "in"
    DATE_EQ = "date_eq"  # calendar-day equality on a timestamp column


class IdSourceKind(str, Enum):
    TAG_ASSIGNMENT = "tag_assignment"  # value: tag ids
    PAID_SINCE = "paid_since"  # value: cutoff datetime
    USAGE_SINCE = "usage_since"  # value: cutoff datetime


@dataclass(frozen=True)
class Predicate:
    """One column comparison against the profile table."""

    column: str
    op: PredicateOp
    value: Any


@dataclass(frozen=True)
class IdSource:
    """A set of profile ids the store resolves with a subquery."""

    kind: IdSourceKind
    value: Any


@dataclass(frozen=True)
class Membership:
    """The profile id is in any of ``sources`` (or, when negated, in none of them).

    A non-negated membership without sources matches nobody.
    """

    sources: tuple[IdSource, ...] = ()
    negated: bool = False

    @property
    def matches_nobody(self) -> bool:
        return not self.sources and not self.negated


@dataclass(frozen=True)
class PredicateFragment:
    """What a single condition contributes: column predicates and id memberships."""

    predicates: tuple[Predicate, ...] = ()
    memberships: tuple[Membership, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not self.predicates and not self.memberships


NOOP = PredicateFragment()


@dataclass(frozen=True)
class FilterSpec:
    """Conjunctive filter: every predicate and every membership holds."""

    predicates: tuple[Predicate, ...] = ()
    memberships: tuple[Membership, ...] = ()

    @property
    def matches_nobody(self) -> bool:
        return any(m.matches_nobody for m in self.memberships)

    @property
    def is_unrestricted(self) -> bool:
        return not self.predicates and not self.memberships

    def merge(self, other: "FilterSpec | PredicateFragment") -> "FilterSpec":
        return FilterSpec(self.predicates + other.predicates, self.memberships + other.memberships)

    @classmethod
    def conjunction(cls, parts: Iterable["FilterSpec | PredicateFragment"]) -> "FilterSpec":
        spec = cls()
        for part in parts:
            spec = spec.merge(part)
        return spec
