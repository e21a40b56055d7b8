"""
Campaign Schemas

Flow definitions come straight from the canvas editor, so node payloads stay
free-form dicts; only the fields the workflow engine reads are typed helpers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


NodeType = Literal["trigger", "segment", "action", "logic", "wait", "channel"]


class FlowNode(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


class FlowEdge(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    id: Optional[str] = None
    source: str
    target: str


class FlowDefinition(BaseModel):
    model_config = ConfigDict(extra="allow")

    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def demo_emails(self) -> list[str]:
        emails = self.metadata.get("demoEmails") or []
        return [e.strip() for e in emails if isinstance(e, str) and e.strip()]


class ConversionEvent(BaseModel):
    """A campaign log row as seen on the change feed."""

    model_config = ConfigDict(frozen=True)

    log_id: Optional[int] = None
    campaign_id: str
    user_id: Optional[str] = None
    product_id: str = "unknown"
    action_type: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_log(cls, log) -> "ConversionEvent":
        metadata = log.log_metadata if isinstance(log.log_metadata, dict) else {}
        product_id = metadata.get("product_id") or metadata.get("offer_id") or "unknown"
        return cls(
            log_id=log.id,
            campaign_id=log.campaign_id,
            user_id=log.user_id,
            product_id=str(product_id),
            action_type=log.action_type,
            metadata=metadata,
            timestamp=log.created_at or datetime.utcnow(),
        )


class CampaignLogCreate(BaseModel):
    user_id: Optional[str] = None
    action_type: Literal["send", "click", "purchase"]
    status: str = "Success"
    metadata: dict[str, Any] = Field(default_factory=dict)


class CampaignLogResponse(BaseModel):
    id: int
    campaign_id: str
    user_id: Optional[str] = None
    action_type: str
    status: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class CampaignStatsResponse(BaseModel):
    campaign_id: str
    sent: int = 0
    clicked: int = 0
    converted: int = 0
    reach: int = 0
    conversion_rate: float = 0


class ActivationResponse(BaseModel):
    campaign_id: str
    subscribed: bool
    recipients: int = 0
    sent: int = 0
    failed: int = 0


class SubscriptionResponse(BaseModel):
    campaign_id: str
    subscribed: bool


class WorkflowRunResponse(BaseModel):
    campaign_id: str
    user_id: str
    product_id: str
    status: str
    recipient: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class NotificationResponse(BaseModel):
    id: str
    campaign_id: str
    campaign_name: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    type: Literal["conversion", "upsell_sent", "workflow_step"]
    message: Optional[str] = None
    revenue: Optional[float] = None
    timestamp: datetime
