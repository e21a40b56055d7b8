"""Campaign and campaign log models."""

from datetime import datetime
import uuid

from sqlalchemy import Column, String, Integer, Float, DateTime, JSON, Index

from teleflow.database import Base


class Campaign(Base):
    """
    Campaign with its canvas flow definition.

    flow_definition layout:
        {
          "nodes": [{"id": "n1", "type": "trigger", "data": {...}}, ...],
          "edges": [{"source": "n1", "target": "n2"}, ...],
          "metadata": {"demoEmails": ["someone@example.com"]}
        }
    """

    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    status = Column(String(20), default="draft")  # draft, active, paused, completed
    channel = Column(String(20), default="Email")

    flow_definition = Column(JSON)

    reach = Column(Integer, default=0)
    conversion_rate = Column(Float, default=0)
    stats = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Campaign {self.name}>"


class CampaignLog(Base):
    """One send / click / purchase event for a campaign and user."""

    __tablename__ = "campaign_logs"
    __table_args__ = (Index("ix_campaign_logs_campaign_user_action", "campaign_id", "user_id", "action_type"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), index=True)
    action_type = Column(String(30), nullable=False)  # send, click, purchase
    status = Column(String(20), default="Success")

    # "metadata" is reserved on declarative classes
    log_metadata = Column("metadata", JSON)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<CampaignLog {self.action_type} {self.campaign_id}/{self.user_id}>"
