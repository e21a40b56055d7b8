from teleflow.schemas.segment import (
    SegmentCondition,
    SegmentConditionGroup,
    SegmentCriteria,
    EstimateRequest,
    EstimateResponse,
    MembersRequest,
    MembersResponse,
)
from teleflow.schemas.campaign import (
    FlowNode,
    FlowEdge,
    FlowDefinition,
    ConversionEvent,
    CampaignLogCreate,
    CampaignLogResponse,
)

__all__ = [
    "SegmentCondition",
    "SegmentConditionGroup",
    "SegmentCriteria",
    "EstimateRequest",
    "EstimateResponse",
    "MembersRequest",
    "MembersResponse",
    "FlowNode",
    "FlowEdge",
    "FlowDefinition",
    "ConversionEvent",
    "CampaignLogCreate",
    "CampaignLogResponse",
]
