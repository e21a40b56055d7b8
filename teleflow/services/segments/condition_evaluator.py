"""
Condition evaluator.

Turns one builder condition into a ``PredicateFragment``. Half-configured or
malformed conditions are normal while a segment is being edited, so they
compile to ``NOOP`` instead of raising.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, List

from teleflow.config import settings
from teleflow.schemas.segment import SegmentCondition
from teleflow.services.segments.attribute_store import AttributeStore
from teleflow.services.segments.field_registry import FieldDefinition, TypeClass, get_field
from teleflow.services.segments.predicates import (
    NOOP,
    IdSource,
    IdSourceKind,
    Membership,
    Predicate,
    PredicateFragment,
    PredicateOp,
)

logger = logging.getLogger(__name__)

COMPARISON_OPS = {
    ">": PredicateOp.GT,
    "<": PredicateOp.LT,
    "=": PredicateOp.EQ,
    ">=": PredicateOp.GTE,
    "<=": PredicateOp.LTE,
}

# "N days since registration" against a timestamp: more days means earlier
TENURE_OPS = {
    ">": PredicateOp.LT,
    "<": PredicateOp.GT,
    ">=": PredicateOp.LTE,
    "<=": PredicateOp.GTE,
    "=": PredicateOp.DATE_EQ,
}

PAID_ACTIVITY_WINDOW_DAYS = 30
USAGE_ACTIVITY_WINDOW_DAYS = 7
DORMANCY_WINDOW_DAYS = 30

ACTIVITY_STATUSES = ("Active", "Inactive", "Dormant")
STORED_STATUS_FOR = {"Active": "Active", "Inactive": "Inactive", "Dormant": "Inactive"}


def is_configured(value: Any) -> bool:
    """Empty string / None / empty list mean the condition is not filled in yet."""
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (list, tuple)) and not value:
        return False
    return True


def parse_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


class ConditionEvaluator:
    """Compiles atomic conditions, dispatching on the field's type class."""

    def __init__(
        self,
        store: AttributeStore,
        active_status_source: Optional[str] = None,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.active_status_source = active_status_source or settings.ACTIVE_STATUS_SOURCE
        self._now = now
        self._handlers = {
            TypeClass.NUMERIC: self._numeric,
            TypeClass.ENUM: self._enum,
            TypeClass.TENURE: self._tenure,
            TypeClass.TAG_LIST: self._tag_list,
            TypeClass.DERIVED_STATUS: self._activity_status,
        }

    async def evaluate(self, condition: SegmentCondition) -> PredicateFragment:
        if not is_configured(condition.value):
            return NOOP

        field_def = get_field(condition.field)
        if field_def is None:
            logger.debug("Ignoring condition on unknown field %r", condition.field)
            return NOOP

        operator = (condition.operator or "").strip().lower()
        if operator not in field_def.operators:
            logger.debug("Operator %r not allowed for %s", condition.operator, field_def.name)
            return NOOP

        return await self._handlers[field_def.type_class](field_def, operator, condition.value)

    # =========================================================================
    # TYPE CLASS HANDLERS
    # =========================================================================

    async def _numeric(self, field_def: FieldDefinition, operator: str, value: Any) -> PredicateFragment:
        number = parse_number(value)
        if number is None:
            logger.debug("Dropping %s condition with non-numeric value %r", field_def.name, value)
            return NOOP
        return PredicateFragment(predicates=(Predicate(field_def.column, COMPARISON_OPS[operator], number),))

    async def _enum(self, field_def: FieldDefinition, operator: str, value: Any) -> PredicateFragment:
        if operator == "in":
            if not isinstance(value, (list, tuple)):
                return NOOP
            options = tuple(str(v) for v in value if is_configured(v))
            if not options:
                return NOOP
            return PredicateFragment(predicates=(Predicate(field_def.column, PredicateOp.IN, options),))

        if isinstance(value, (list, tuple, dict)):
            return NOOP
        return PredicateFragment(predicates=(Predicate(field_def.column, PredicateOp.EQ, str(value)),))

    async def _tenure(self, field_def: FieldDefinition, operator: str, value: Any) -> PredicateFragment:
        days = parse_number(value)
        if days is None:
            return NOOP
        cutoff = self._now() - timedelta(days=days)
        op = TENURE_OPS[operator]
        compare_to = cutoff.date() if op == PredicateOp.DATE_EQ else cutoff
        return PredicateFragment(predicates=(Predicate(field_def.column, op, compare_to),))

    async def _tag_list(self, field_def: FieldDefinition, operator: str, value: Any) -> PredicateFragment:
        names = self._tag_names(value)
        if not names:
            return NOOP

        if operator == "contains":
            # every named tag must be assigned
            memberships = []
            for name in names:
                membership = await self._tagged_with([name])
                memberships.append(membership)
                if membership.matches_nobody:
                    break
            return PredicateFragment(memberships=tuple(memberships))

        return PredicateFragment(memberships=(await self._tagged_with(names),))

    async def _activity_status(self, field_def: FieldDefinition, operator: str, value: Any) -> PredicateFragment:
        if not isinstance(value, str):
            return NOOP
        status = value.strip().capitalize()
        if status not in ACTIVITY_STATUSES:
            return NOOP

        if self.active_status_source == "column":
            return PredicateFragment(
                predicates=(Predicate(field_def.column, PredicateOp.EQ, STORED_STATUS_FOR[status]),)
            )

        return PredicateFragment(memberships=self.activity_status_memberships(status))

    # =========================================================================
    # HELPERS
    # =========================================================================

    def activity_status_memberships(self, status: str) -> tuple[Membership, ...]:
        """
        Express a live activity status as per-user aggregation subqueries.

        - Active: paid activity in 30 days or usage in 7 days
        - Inactive: not Active, but some usage in 30 days
        - Dormant: not Active and no usage in 30 days

        Paid activity in 30 days already makes a subscriber Active, so usage is
        the only signal left that separates Inactive from Dormant.
        """
        now = self._now()
        active = (
            IdSource(IdSourceKind.PAID_SINCE, now - timedelta(days=PAID_ACTIVITY_WINDOW_DAYS)),
            IdSource(IdSourceKind.USAGE_SINCE, now - timedelta(days=USAGE_ACTIVITY_WINDOW_DAYS)),
        )
        if status == "Active":
            return (Membership(active),)

        window_usage = (IdSource(IdSourceKind.USAGE_SINCE, now - timedelta(days=DORMANCY_WINDOW_DAYS)),)
        not_active = Membership(active, negated=True)
        if status == "Inactive":
            return (Membership(window_usage), not_active)
        return (not_active, Membership(window_usage, negated=True))

    async def _tagged_with(self, names: List[str]) -> Membership:
        """Tag names resolve to tag ids here; no matching tag means nobody."""
        tag_ids = await self.store.tag_ids_by_name(names)
        if not tag_ids:
            return Membership()
        return Membership((IdSource(IdSourceKind.TAG_ASSIGNMENT, tuple(sorted(tag_ids))),))

    @staticmethod
    def _tag_names(value: Any) -> List[str]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            return []
        return [str(v).strip() for v in value if is_configured(v)]
