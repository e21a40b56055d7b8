"""
Criteria Estimator - audience population for a segment criteria tree.

Groups are folded left to right starting from "everyone":
- groupOperator OR  -> union with the accumulated set
- anything else     -> intersection with the accumulated set
- groups with no effective conditions are neutral and skipped

When no group joins with OR and every group is a single conjunctive filter,
the whole fold collapses into one filtered count in the database
("pushdown"). Otherwise member ids are materialized per group and combined in
memory ("materialized"). Both strategies give the same answer.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Set, List, Tuple

from sqlalchemy import and_, or_, true
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.expression import ColumnElement

from teleflow.models.profile import Profile
from teleflow.schemas.segment import SegmentCriteria
from teleflow.services.segments.attribute_store import AttributeStore, AttributeStoreError
from teleflow.services.segments.condition_evaluator import ConditionEvaluator
from teleflow.services.segments.group_compiler import GroupCompiler, MemberSetQuery
from teleflow.services.segments.predicates import FilterSpec

logger = logging.getLogger(__name__)

PUSHDOWN = "pushdown"
MATERIALIZED = "materialized"


@dataclass
class EstimateResult:
    """Outcome of one estimate. ``count`` is None only when the estimate failed."""

    count: Optional[int]
    member_ids: Optional[Set[str]] = None
    strategy: Optional[str] = None
    error: Optional[str] = None
    execution_time_ms: float = 0
    groups: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class CriteriaEstimator:
    """
    Computes the population matched by a SegmentCriteria.

    Accepts either an AsyncSession or a prepared AttributeStore; the
    evaluator can be injected to control activity-status mode and clock.
    """

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        store: Optional[AttributeStore] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        if store is None:
            if db is None:
                raise ValueError("CriteriaEstimator needs a session or an attribute store")
            store = AttributeStore(db)
        self.store = store
        self.evaluator = evaluator or ConditionEvaluator(store)
        self.compiler = GroupCompiler(self.evaluator)

    async def estimate(
        self,
        criteria: SegmentCriteria,
        include_members: bool = False,
        force_materialize: bool = False,
    ) -> EstimateResult:
        """Estimate the population. Store failures degrade to count=None."""
        start = time.perf_counter()
        try:
            queries = await self._compile(criteria)
            if not include_members and not force_materialize and self._can_push_down(queries):
                count = await self.store.count(self._pushdown_filter(queries))
                result = EstimateResult(count=count, strategy=PUSHDOWN)
            else:
                members = await self._fold(queries)
                result = EstimateResult(
                    count=len(members),
                    member_ids=members if include_members else None,
                    strategy=MATERIALIZED,
                )
            result.groups = [query.group_id for _, query in self._effective(queries)]
        except AttributeStoreError as e:
            logger.warning("Segment estimate failed: %s", e)
            result = EstimateResult(count=None, error=str(e))

        result.execution_time_ms = round((time.perf_counter() - start) * 1000, 2)
        return result

    async def fetch_members(self, criteria: SegmentCriteria, limit: int = 50) -> tuple[Optional[int], List[Profile], Optional[str]]:
        """
        Preview matching profiles ("verify users").

        Returns (total count, up to ``limit`` profiles, error).
        """
        try:
            queries = await self._compile(criteria)
            if self._can_push_down(queries):
                spec = self._pushdown_filter(queries)
            else:
                spec = self._fold_expression(queries)
            total = await self.store.count(spec)
            rows = await self.store.fetch_rows(spec, limit=limit)
        except AttributeStoreError as e:
            logger.warning("Segment member preview failed: %s", e)
            return None, [], str(e)
        return total, rows, None

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _compile(self, criteria: SegmentCriteria) -> List[Tuple[str, MemberSetQuery]]:
        """Compile every group, paired with the operator joining it to the fold."""
        compiled = []
        for group in criteria.normalized_groups():
            query = await self.compiler.compile(group)
            compiled.append((group.group_operator or "AND", query))
        return compiled

    @staticmethod
    def _effective(compiled: List[Tuple[str, MemberSetQuery]]) -> List[Tuple[str, MemberSetQuery]]:
        return [(joined_by, query) for joined_by, query in compiled if not query.is_empty]

    def _can_push_down(self, compiled: List[Tuple[str, MemberSetQuery]]) -> bool:
        effective = self._effective(compiled)
        # groupOperator on the first effective group has nothing to join
        if any(joined_by == "OR" for joined_by, _ in effective[1:]):
            return False
        return all(query.pushdown_filter is not None for _, query in effective)

    def _pushdown_filter(self, compiled: List[Tuple[str, MemberSetQuery]]) -> FilterSpec:
        return FilterSpec.conjunction(query.pushdown_filter for _, query in self._effective(compiled))

    async def _fold(self, compiled: List[Tuple[str, MemberSetQuery]]) -> Set[str]:
        current: Optional[Set[str]] = None  # None means everyone
        for joined_by, query in self._effective(compiled):
            members = await query.resolve(self.store)
            if current is None:
                current = members
            elif joined_by == "OR":
                current = current | members
            else:
                current = current & members

        if current is None:
            return await self.store.fetch_ids(FilterSpec())
        return current

    def _fold_expression(self, compiled: List[Tuple[str, MemberSetQuery]]) -> ColumnElement:
        """The fold as one SQL condition, for previews that page through members."""
        current: Optional[ColumnElement] = None
        for joined_by, query in self._effective(compiled):
            where = query.where(self.store)
            if current is None:
                current = where
            elif joined_by == "OR":
                current = or_(current, where)
            else:
                current = and_(current, where)
        return true() if current is None else current
