"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .profile import ProfileFactory, DormantProfileFactory
from .campaign import FlowDefinitionFactory, PurchaseLogFactory

__all__ = [
    "ProfileFactory",
    "DormantProfileFactory",
    "FlowDefinitionFactory",
    "PurchaseLogFactory",
]
