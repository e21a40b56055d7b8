"""
Campaign Services

Flow graph walking, activation auto-send, conversion stats and the
post-purchase follow-up workflow.
"""

from teleflow.services.campaigns.change_feed import ChangeFeed, Subscription, CAMPAIGN_LOGS_TOPIC
from teleflow.services.campaigns.flow_graph import FlowGraphWalker, find_next_of_type, find_upstream_of_type
from teleflow.services.campaigns.launcher import CampaignLauncher, CampaignNotFoundError
from teleflow.services.campaigns.stats import CampaignStatsService
from teleflow.services.campaigns.workflow_engine import PostPurchaseWorkflowEngine, WorkflowWiringError
from teleflow.services.campaigns.workflow_state import WorkflowStateStore, WorkflowStatus, WorkflowRun

__all__ = [
    "ChangeFeed",
    "Subscription",
    "CAMPAIGN_LOGS_TOPIC",
    "FlowGraphWalker",
    "find_next_of_type",
    "find_upstream_of_type",
    "CampaignLauncher",
    "CampaignNotFoundError",
    "CampaignStatsService",
    "PostPurchaseWorkflowEngine",
    "WorkflowWiringError",
    "WorkflowStateStore",
    "WorkflowStatus",
    "WorkflowRun",
]
