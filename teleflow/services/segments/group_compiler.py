"""
Group compiler.

AND groups become one conjunctive filter that the store evaluates in a single
query. OR groups become one branch per effective condition; each branch is an
id-only query and the results are unioned in memory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Set, Optional

from sqlalchemy import true
from sqlalchemy.sql.expression import ColumnElement

from teleflow.schemas.segment import SegmentConditionGroup
from teleflow.services.segments.attribute_store import AttributeStore
from teleflow.services.segments.condition_evaluator import ConditionEvaluator
from teleflow.services.segments.predicates import FilterSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemberSetQuery:
    """Deferred member-set query for one condition group.

    ``branches`` are unioned. An AND group has exactly one branch; a group
    with no effective conditions has none and is neutral in the fold.
    """

    group_id: str
    operator: str
    branches: tuple[FilterSpec, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.branches

    @property
    def pushdown_filter(self) -> Optional[FilterSpec]:
        """The single conjunctive filter, when this group can be pushed down."""
        if len(self.branches) == 1:
            return self.branches[0]
        return None

    async def resolve(self, store: AttributeStore) -> Set[str]:
        """Materialize member ids.

        Evaluated on its own, an empty group restricts nothing and resolves
        to the whole store.
        """
        if self.is_empty:
            return await store.fetch_ids(FilterSpec())
        if len(self.branches) == 1:
            return await store.fetch_ids(self.branches[0])

        members: Set[str] = set()
        for branch in self.branches:
            members |= await store.fetch_ids(branch)
        return members

    def where(self, store: AttributeStore) -> ColumnElement:
        """The same member set as one boolean expression over profiles."""
        if self.is_empty:
            return true()
        return store.any_of(store.where(branch) for branch in self.branches)


class GroupCompiler:
    def __init__(self, evaluator: ConditionEvaluator):
        self.evaluator = evaluator

    async def compile(self, group: SegmentConditionGroup) -> MemberSetQuery:
        fragments = []
        for condition in group.conditions:
            fragment = await self.evaluator.evaluate(condition)
            if not fragment.is_noop:
                fragments.append(fragment)

        if not fragments:
            return MemberSetQuery(group_id=group.id, operator=group.operator)

        if group.operator == "OR":
            branches = tuple(FilterSpec.conjunction([fragment]) for fragment in fragments)
        else:
            branches = (FilterSpec.conjunction(fragments),)

        logger.debug(
            "Compiled group %s (%s) into %d branch(es)", group.id, group.operator, len(branches)
        )
        return MemberSetQuery(group_id=group.id, operator=group.operator, branches=branches)
