from teleflow.models.profile import (
    Profile,
    UserTag,
    UserTagAssignment,
    BillingTransaction,
    TelecomUsage,
)
from teleflow.models.campaign import Campaign, CampaignLog

__all__ = [
    "Profile",
    "UserTag",
    "UserTagAssignment",
    "BillingTransaction",
    "TelecomUsage",
    "Campaign",
    "CampaignLog",
]
