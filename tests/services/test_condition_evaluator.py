"""
Tests for the condition evaluator and group compiler.
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teleflow.models.profile import Profile, BillingTransaction, TelecomUsage
from teleflow.schemas.segment import SegmentCondition, SegmentConditionGroup
from teleflow.services.segments import AttributeStore, ConditionEvaluator, GroupCompiler
from teleflow.services.segments.predicates import NOOP, FilterSpec, Membership, Predicate, PredicateOp
from tests.factories import ProfileFactory

NOW = datetime(2026, 6, 1, 12, 0, 0)


def cond(field, operator, value) -> SegmentCondition:
    return SegmentCondition(field=field, operator=operator, value=value)


@pytest.fixture
def store(test_db: AsyncSession):
    return AttributeStore(test_db)


@pytest.fixture
def evaluator(store):
    return ConditionEvaluator(store, active_status_source="live", now=lambda: NOW)


class TestSkippedConditions:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "condition",
        [
            cond("age", ">", ""),
            cond("age", ">", None),
            cond("city", "in", []),
            cond("favourite_colour", "=", "blue"),
            cond("", "=", "x"),
            cond("age", "in", [1, 2]),
            cond("active_status", ">", "Active"),
            cond("age", ">", "twenty"),
            cond("arpu", "<", "nan"),
            cond("created_at", ">", "soon"),
        ],
    )
    async def test_incomplete_or_invalid_condition_is_noop(self, evaluator, condition):
        assert await evaluator.evaluate(condition) == NOOP


class TestPredicates:
    @pytest.mark.asyncio
    async def test_numeric_comparison(self, evaluator):
        fragment = await evaluator.evaluate(cond("arpu", ">=", "5000"))
        assert fragment.predicates == (Predicate("arpu_30d", PredicateOp.GTE, 5000.0),)

    @pytest.mark.asyncio
    async def test_enum_equality_and_membership(self, evaluator):
        eq = await evaluator.evaluate(cond("city", "=", "Yangon"))
        member = await evaluator.evaluate(cond("tier", "in", ["Gold", "Crown"]))

        assert eq.predicates == (Predicate("location_city", PredicateOp.EQ, "Yangon"),)
        assert member.predicates == (Predicate("tier", PredicateOp.IN, ("Gold", "Crown")),)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "operator,expected_op",
        [
            (">", PredicateOp.LT),
            ("<", PredicateOp.GT),
            (">=", PredicateOp.LTE),
            ("<=", PredicateOp.GTE),
        ],
    )
    async def test_tenure_flips_comparison_against_registration_date(self, evaluator, operator, expected_op):
        fragment = await evaluator.evaluate(cond("created_at", operator, 90))
        assert fragment.predicates == (Predicate("registration_date", expected_op, NOW - timedelta(days=90)),)

    @pytest.mark.asyncio
    async def test_tenure_equality_is_calendar_day(self, evaluator):
        fragment = await evaluator.evaluate(cond("tenure", "=", "30"))
        assert fragment.predicates == (
            Predicate("registration_date", PredicateOp.DATE_EQ, (NOW - timedelta(days=30)).date()),
        )

    @pytest.mark.asyncio
    async def test_unknown_tag_matches_nobody(self, evaluator):
        fragment = await evaluator.evaluate(cond("user_tags", "in", ["Ghost"]))
        assert fragment.memberships == (Membership(),)
        assert not fragment.is_noop
        assert FilterSpec.conjunction([fragment]).matches_nobody


class TestActivityStatus:
    @pytest_asyncio.fixture
    async def activity(self, test_db: AsyncSession):
        paid, recent_usage, older_usage, dormant = (ProfileFactory() for _ in range(4))
        for row in (paid, recent_usage, older_usage, dormant):
            test_db.add(Profile(**row))
        await test_db.flush()
        test_db.add_all(
            [
                BillingTransaction(user_id=paid["id"], amount=3000, timestamp=NOW - timedelta(days=12)),
                TelecomUsage(user_id=recent_usage["id"], volume_mb=120, timestamp=NOW - timedelta(days=3)),
                TelecomUsage(user_id=older_usage["id"], volume_mb=80, timestamp=NOW - timedelta(days=20)),
                BillingTransaction(user_id=dormant["id"], amount=1000, timestamp=NOW - timedelta(days=45)),
            ]
        )
        await test_db.commit()
        return {"paid": paid["id"], "recent": recent_usage["id"], "older": older_usage["id"], "dormant": dormant["id"]}

    async def members(self, store, evaluator, status):
        fragment = await evaluator.evaluate(cond("active_status", "=", status))
        return await store.fetch_ids(FilterSpec.conjunction([fragment]))

    @pytest.mark.asyncio
    async def test_live_status_classification(self, store, evaluator, activity):
        assert await self.members(store, evaluator, "Active") == {activity["paid"], activity["recent"]}
        assert await self.members(store, evaluator, "Inactive") == {activity["older"]}
        assert await self.members(store, evaluator, "dormant") == {activity["dormant"]}

    @pytest.mark.asyncio
    async def test_inactive_means_usage_in_thirty_days_without_being_active(self, test_db, store, evaluator):
        # old top-up plus usage 20 days ago: usage alone keeps them out of Dormant
        row = ProfileFactory()
        test_db.add(Profile(**row))
        await test_db.flush()
        test_db.add_all(
            [
                BillingTransaction(user_id=row["id"], amount=500, timestamp=NOW - timedelta(days=40)),
                TelecomUsage(user_id=row["id"], volume_mb=15, timestamp=NOW - timedelta(days=20)),
            ]
        )
        await test_db.commit()

        assert await self.members(store, evaluator, "Inactive") == {row["id"]}
        assert await self.members(store, evaluator, "Dormant") == set()

    @pytest.mark.asyncio
    async def test_live_status_is_a_single_query(self, store, evaluator, activity):
        fragment = await evaluator.evaluate(cond("active_status", "=", "Dormant"))
        assert store.query_count == 0

        assert await store.count(FilterSpec.conjunction([fragment])) == 1
        assert store.query_count == 1

    @pytest.mark.asyncio
    async def test_large_populations_do_not_become_bound_parameters(self, test_db, store, evaluator):
        rows = [ProfileFactory() for _ in range(200)]
        for row in rows:
            test_db.add(Profile(**row))
        await test_db.flush()
        test_db.add_all(
            TelecomUsage(user_id=row["id"], volume_mb=10, timestamp=NOW - timedelta(days=1)) for row in rows[:150]
        )
        await test_db.commit()

        fragment = await evaluator.evaluate(cond("active_status", "=", "Dormant"))
        spec = FilterSpec.conjunction([fragment])
        statement = select(Profile.id).where(store.where(spec)).compile()

        # only the three window cutoffs are bound, whatever the population size
        assert len(statement.params) == 3
        assert await store.count(spec) == 50

    @pytest.mark.asyncio
    async def test_column_mode_maps_dormant_onto_inactive(self, store):
        evaluator = ConditionEvaluator(store, active_status_source="column")
        fragment = await evaluator.evaluate(cond("active_status", "=", "Dormant"))
        assert fragment.predicates == (Predicate("status", PredicateOp.EQ, "Inactive"),)
        assert store.query_count == 0


class TestGroupCompiler:
    def _group(self, operator):
        return SegmentConditionGroup(
            id="g1",
            operator=operator,
            conditions=(
                cond("age", ">", 20),
                cond("tier", "=", "Gold"),
                cond("balance", "<", 10000),
                cond("city", "=", ""),
            ),
        )

    @pytest.mark.asyncio
    async def test_and_group_is_a_single_query(self, store, evaluator):
        query = await GroupCompiler(evaluator).compile(self._group("AND"))

        assert len(query.branches) == 1
        assert query.pushdown_filter is not None
        await query.resolve(store)
        assert store.query_count == 1

    @pytest.mark.asyncio
    async def test_or_group_queries_once_per_effective_condition(self, store, evaluator):
        query = await GroupCompiler(evaluator).compile(self._group("OR"))

        assert len(query.branches) == 3
        assert query.pushdown_filter is None
        await query.resolve(store)
        assert store.query_count == 3

    @pytest.mark.asyncio
    async def test_group_without_effective_conditions_is_empty(self, evaluator):
        group = SegmentConditionGroup(id="g1", conditions=(cond("age", ">", ""),))
        query = await GroupCompiler(evaluator).compile(group)
        assert query.is_empty
