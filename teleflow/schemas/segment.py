"""
Segment Criteria Schemas

Criteria arrive from the audience builder while the user is still editing, so
these models are deliberately lenient: values are kept as-is and the condition
evaluator decides what is usable. Nothing here raises for half-configured
conditions.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from typing import Optional, Literal, Any
import uuid


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class SegmentCondition(BaseModel):
    """Single atomic filter: field, operator, value."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=_new_id)
    field: str = ""
    operator: str = "="
    value: Any = None

    @field_validator("field", "operator", mode="before")
    @classmethod
    def null_as_unset(cls, v: Any) -> Any:
        # the builder sends null for pickers the user has not touched yet
        return "" if v is None else v


class SegmentConditionGroup(BaseModel):
    """Conditions combined by one intra-group operator.

    ``group_operator`` relates this group to the accumulated result of the
    groups before it and is ignored on the first group.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=_new_id)
    conditions: tuple[SegmentCondition, ...] = ()
    operator: Literal["AND", "OR"] = "AND"
    group_operator: Optional[Literal["AND", "OR"]] = Field(None, alias="groupOperator")

    @field_validator("operator", "group_operator", mode="before")
    @classmethod
    def upper_operator(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, str):
            v = v.strip().upper()
        if not v:
            return "AND" if info.field_name == "operator" else None
        return v


class RangeFilter(BaseModel):
    """Legacy min/max pair (strings as typed in the builder)."""

    min: Optional[str] = None
    max: Optional[str] = None


# Legacy activityType values collapse onto the stored status column
LEGACY_ACTIVITY_STATUS = {
    "Active": "Active",
    "Inactive": "Inactive",
    "Dormant": "Inactive",
    "Register": "Active",
}


class SegmentCriteria(BaseModel):
    """Ordered condition groups, plus the legacy flat builder fields."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    condition_groups: tuple[SegmentConditionGroup, ...] = Field((), alias="conditionGroups")

    # Legacy fields (pre group builder)
    age_min: Optional[str] = Field(None, alias="ageMin")
    age_max: Optional[str] = Field(None, alias="ageMax")
    gender: Optional[str] = None
    city: Optional[str] = None
    sim_type: Optional[str] = Field(None, alias="simType")
    tier: Optional[str] = None
    activity_type: Optional[str] = Field(None, alias="activityType")
    arpu: Optional[RangeFilter] = None
    balance: Optional[RangeFilter] = None
    tags: Optional[list[str]] = None

    @field_validator("age_min", "age_max", mode="before")
    @classmethod
    def stringify_numbers(cls, v: Any) -> Any:
        if isinstance(v, (int, float)):
            return str(v)
        return v

    def normalized_groups(self) -> tuple[SegmentConditionGroup, ...]:
        """Return the groups to evaluate.

        conditionGroups win when present; otherwise the legacy flat fields are
        migrated into one implicit AND group (possibly empty).
        """
        if self.condition_groups:
            return self.condition_groups
        legacy = self.legacy_conditions()
        return (SegmentConditionGroup(id="legacy", conditions=tuple(legacy), operator="AND"),)

    def legacy_conditions(self) -> list[SegmentCondition]:
        conditions: list[SegmentCondition] = []

        def add(field: str, operator: str, value: Any) -> None:
            conditions.append(SegmentCondition(id=f"legacy-{field}-{len(conditions)}", field=field, operator=operator, value=value))

        if self.age_min:
            add("age", ">=", self.age_min)
        if self.age_max:
            add("age", "<=", self.age_max)
        if self.gender and self.gender != "All":
            add("gender", "=", self.gender)
        if self.city:
            add("city", "=", self.city)
        if self.sim_type:
            add("sim_type", "=", self.sim_type)
        if self.tier:
            add("tier", "=", self.tier)
        if self.activity_type:
            add("status", "=", LEGACY_ACTIVITY_STATUS.get(self.activity_type, self.activity_type))
        if self.arpu:
            if self.arpu.min:
                add("arpu_30d", ">", self.arpu.min)
            if self.arpu.max:
                add("arpu_30d", "<", self.arpu.max)
        if self.balance:
            if self.balance.min:
                add("balance", ">=", self.balance.min)
            if self.balance.max:
                add("balance", "<=", self.balance.max)
        if self.tags:
            add("user_tags", "in", list(self.tags))
        return conditions


# ============================================
# API payloads
# ============================================


class EstimateRequest(BaseModel):
    criteria: SegmentCriteria


class EstimateResponse(BaseModel):
    count: Optional[int] = Field(None, description="Matching population; null when the estimate failed")
    error: Optional[str] = None
    strategy: Optional[Literal["pushdown", "materialized"]] = None
    execution_time_ms: float = 0


class MembersRequest(BaseModel):
    criteria: SegmentCriteria
    limit: int = Field(50, ge=1, le=1000)


class SegmentMember(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    msisdn: Optional[str] = None
    name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    tier: Optional[str] = None
    status: Optional[str] = None
    device_type: Optional[str] = None
    location_city: Optional[str] = None
    arpu_30d: float = 0
    balance: float = 0
    tags: list[str] = Field(default_factory=list)


class MembersResponse(BaseModel):
    count: Optional[int] = None
    error: Optional[str] = None
    members: list[SegmentMember] = Field(default_factory=list)


class FieldDefinitionResponse(BaseModel):
    name: str
    display_name: str
    type_class: str
    operators: list[str]
    description: str = ""


class LiveEstimateState(BaseModel):
    count: Optional[int] = None
    loading: bool = False
    error: Optional[str] = None
    generation: int = 0
