"""
Audience Segmentation Services

Compiles segment criteria into attribute-store queries and estimates the
matched population.
"""

from teleflow.services.segments.attribute_store import AttributeStore, AttributeStoreError
from teleflow.services.segments.condition_evaluator import ConditionEvaluator
from teleflow.services.segments.group_compiler import GroupCompiler, MemberSetQuery
from teleflow.services.segments.estimator import CriteriaEstimator, EstimateResult
from teleflow.services.segments.live_estimator import LiveEstimator
from teleflow.services.segments.field_registry import get_available_fields, get_field

__all__ = [
    "AttributeStore",
    "AttributeStoreError",
    "ConditionEvaluator",
    "GroupCompiler",
    "MemberSetQuery",
    "CriteriaEstimator",
    "EstimateResult",
    "LiveEstimator",
    "get_available_fields",
    "get_field",
]
