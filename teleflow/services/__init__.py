# Services module
from teleflow.services.segments import CriteriaEstimator, LiveEstimator
from teleflow.services.campaigns import (
    FlowGraphWalker,
    PostPurchaseWorkflowEngine,
    CampaignLauncher,
    CampaignStatsService,
)

__all__ = [
    # Audience segmentation
    "CriteriaEstimator",
    "LiveEstimator",
    # Campaign workflows
    "FlowGraphWalker",
    "PostPurchaseWorkflowEngine",
    "CampaignLauncher",
    "CampaignStatsService",
]
