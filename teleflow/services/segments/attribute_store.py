"""
Attribute store: the query surface segment evaluation runs against.

Wraps an AsyncSession over the profiles table and its satellites. Every
query goes through ``_execute`` so failures surface as one error type and
query volume can be observed (``query_count``).

Id restrictions (tags, live activity status) are rendered as
``profiles.id [NOT] IN (SELECT user_id ...)`` subqueries, so the size of a
matched population never turns into bound parameters.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Set, Union

from sqlalchemy import Date, and_, false, func, or_, select, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.sql import Select
from sqlalchemy.sql.expression import ColumnElement

from teleflow.models.profile import (
    Profile,
    UserTag,
    UserTagAssignment,
    BillingTransaction,
    TelecomUsage,
)
from teleflow.services.segments.predicates import (
    FilterSpec,
    IdSource,
    IdSourceKind,
    Membership,
    Predicate,
    PredicateOp,
)

logger = logging.getLogger(__name__)

# A FilterSpec, or a boolean expression already built from specs by ``where``
Filter = Union[FilterSpec, ColumnElement]


class AttributeStoreError(Exception):
    """The store was unreachable or rejected a query."""


class AttributeStore:
    """SQLAlchemy-backed customer attribute store."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.query_count = 0

    # =========================================================================
    # FILTERED QUERIES
    # =========================================================================

    async def count(self, spec: Filter) -> int:
        """Filtered count, pushed down as one query."""
        if isinstance(spec, FilterSpec) and spec.matches_nobody:
            return 0
        query = self._apply(select(func.count()).select_from(Profile), spec)
        result = await self._execute(query)
        return result.scalar() or 0

    async def fetch_ids(self, spec: Filter) -> Set[str]:
        """Ids of matching profiles (identifier column only)."""
        if isinstance(spec, FilterSpec) and spec.matches_nobody:
            return set()
        result = await self._execute(self._apply(select(Profile.id), spec))
        return {row[0] for row in result.all()}

    async def fetch_rows(self, spec: Filter, limit: int = 50) -> List[Profile]:
        """Matching profiles with their tags loaded."""
        if isinstance(spec, FilterSpec) and spec.matches_nobody:
            return []
        query = (
            self._apply(select(Profile), spec)
            .options(selectinload(Profile.tag_assignments).selectinload(UserTagAssignment.tag))
            .order_by(Profile.registration_date.desc(), Profile.id)
            .limit(limit)
        )
        result = await self._execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # SECONDARY LOOKUPS
    # =========================================================================

    async def tag_ids_by_name(self, names: Iterable[str]) -> List[str]:
        names = list(names)
        if not names:
            return []
        result = await self._execute(select(UserTag.id).where(UserTag.name.in_(names)))
        return [row[0] for row in result.all()]

    # =========================================================================
    # EXPRESSIONS
    # =========================================================================

    def where(self, spec: FilterSpec) -> ColumnElement:
        """The conjunction ``spec`` describes, as one boolean expression."""
        if spec.matches_nobody:
            return false()
        clauses = [self._clause(p) for p in spec.predicates]
        clauses.extend(self._membership(m) for m in spec.memberships)
        if not clauses:
            return true()
        return and_(*clauses)

    @staticmethod
    def any_of(expressions: Iterable[ColumnElement]) -> ColumnElement:
        expressions = list(expressions)
        if not expressions:
            return false()
        return or_(*expressions)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _apply(self, query: Select, spec: Filter) -> Select:
        if isinstance(spec, FilterSpec):
            if spec.is_unrestricted:
                return query
            spec = self.where(spec)
        return query.where(spec)

    @staticmethod
    def _clause(predicate: Predicate):
        column = getattr(Profile, predicate.column)
        op = predicate.op
        value = predicate.value

        if op == PredicateOp.EQ:
            return column == value
        elif op == PredicateOp.GT:
            return column > value
        elif op == PredicateOp.LT:
            return column < value
        elif op == PredicateOp.GTE:
            return column >= value
        elif op == PredicateOp.LTE:
            return column <= value
        elif op == PredicateOp.IN:
            return column.in_(list(value))
        elif op == PredicateOp.DATE_EQ:
            return func.date(column, type_=Date) == value
        raise ValueError(f"Unsupported predicate operator: {op}")

    def _membership(self, membership: Membership) -> ColumnElement:
        if not membership.sources:
            return true() if membership.negated else false()
        in_any = or_(*(Profile.id.in_(self._id_select(source)) for source in membership.sources))
        return ~in_any if membership.negated else in_any

    @staticmethod
    def _id_select(source: IdSource) -> Select:
        if source.kind == IdSourceKind.TAG_ASSIGNMENT:
            return select(UserTagAssignment.user_id).where(UserTagAssignment.tag_id.in_(list(source.value)))
        elif source.kind == IdSourceKind.PAID_SINCE:
            return select(BillingTransaction.user_id).where(BillingTransaction.timestamp >= source.value)
        elif source.kind == IdSourceKind.USAGE_SINCE:
            return select(TelecomUsage.user_id).where(TelecomUsage.timestamp >= source.value)
        raise ValueError(f"Unsupported id source: {source.kind}")

    async def _execute(self, query):
        self.query_count += 1
        try:
            return await self.db.execute(query)
        except SQLAlchemyError as e:
            logger.warning("Attribute store query failed: %s", type(e).__name__)
            raise AttributeStoreError(str(e)) from e
