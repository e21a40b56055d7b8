"""
Field registry for segment conditions.

Maps a builder field name to its type class and backing profile column.
Adding a field of an existing type class is a data change here; the
condition evaluator dispatches on the type class.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Any


class TypeClass(str, Enum):
    NUMERIC = "numeric"
    ENUM = "enum"
    TENURE = "tenure"
    TAG_LIST = "tag_list"
    DERIVED_STATUS = "derived_status"


ALLOWED_OPERATORS: Dict[TypeClass, Tuple[str, ...]] = {
    TypeClass.NUMERIC: (">", "<", "=", ">=", "<="),
    TypeClass.ENUM: ("=", "in"),
    TypeClass.TENURE: (">", "<", "=", ">=", "<="),
    TypeClass.TAG_LIST: ("in", "contains"),
    TypeClass.DERIVED_STATUS: ("=",),
}


@dataclass(frozen=True)
class FieldDefinition:
    """Definition of a field that can be used in segment conditions."""

    name: str
    display_name: str
    type_class: TypeClass
    column: Optional[str]
    description: str = ""
    aliases: Tuple[str, ...] = field(default=())

    @property
    def operators(self) -> Tuple[str, ...]:
        return ALLOWED_OPERATORS[self.type_class]


FIELD_DEFINITIONS: Dict[str, FieldDefinition] = {
    # Numeric
    "age": FieldDefinition("age", "Age", TypeClass.NUMERIC, "age", "Subscriber age in years"),
    "arpu_30d": FieldDefinition(
        "arpu_30d", "ARPU (30d)", TypeClass.NUMERIC, "arpu_30d", "Average revenue per user, last 30 days", ("arpu",)
    ),
    "balance": FieldDefinition("balance", "Balance", TypeClass.NUMERIC, "balance", "Main account balance"),
    "churn_score": FieldDefinition(
        "churn_score", "Churn Score", TypeClass.NUMERIC, "churn_score", "Predicted churn risk"
    ),
    # Enum
    "city": FieldDefinition(
        "city", "City", TypeClass.ENUM, "location_city", "Home city", ("location_city",)
    ),
    "tier": FieldDefinition("tier", "Tier", TypeClass.ENUM, "tier", "Loyalty tier"),
    "gender": FieldDefinition("gender", "Gender", TypeClass.ENUM, "gender"),
    "sim_type": FieldDefinition("sim_type", "SIM Type", TypeClass.ENUM, "sim_type", "Prepaid / postpaid"),
    "status": FieldDefinition("status", "Account Status", TypeClass.ENUM, "status", "Stored account status"),
    # Derived
    "created_at": FieldDefinition(
        "created_at",
        "Tenure (days)",
        TypeClass.TENURE,
        "registration_date",
        "Days since registration",
        ("tenure",),
    ),
    "active_status": FieldDefinition(
        "active_status",
        "Active Status",
        TypeClass.DERIVED_STATUS,
        "status",
        "Active / Inactive / Dormant from recent billing and usage",
    ),
    "user_tags": FieldDefinition(
        "user_tags", "User Tags", TypeClass.TAG_LIST, None, "Assigned user tags", ("tags",)
    ),
}

_ALIASES: Dict[str, str] = {
    alias: definition.name for definition in FIELD_DEFINITIONS.values() for alias in definition.aliases
}


def get_field(name: Optional[str]) -> Optional[FieldDefinition]:
    """Look up a field by name or alias. Unknown names return None."""
    if not name:
        return None
    return FIELD_DEFINITIONS.get(name) or FIELD_DEFINITIONS.get(_ALIASES.get(name, ""))


def get_available_fields() -> List[Dict[str, Any]]:
    """Get all available fields for segment conditions."""
    return [
        {
            "name": field_def.name,
            "display_name": field_def.display_name,
            "type_class": field_def.type_class.value,
            "operators": list(field_def.operators),
            "description": field_def.description,
        }
        for field_def in FIELD_DEFINITIONS.values()
    ]
