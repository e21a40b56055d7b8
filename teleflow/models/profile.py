"""Subscriber profile, tag and activity models backing the audience store."""

from datetime import datetime
import uuid

from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from teleflow.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    """Subscriber profile. The columns here are what segment conditions filter on."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    msisdn = Column(String(20), index=True)
    name = Column(String(255))
    email = Column(String(255), index=True)

    age = Column(Integer, index=True)
    gender = Column(String(20))
    location_city = Column(String(100), index=True)
    tier = Column(String(20), index=True)  # Crown, Diamond, Platinum, Gold, Silver
    sim_type = Column(String(20))
    device_type = Column(String(100))
    status = Column(String(20), index=True)  # Active, Inactive, Sleep, Registration, Dormant

    arpu_30d = Column(Float, default=0)
    churn_score = Column(Float)
    balance = Column(Float, default=0)

    registration_date = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, onupdate=func.now())

    tag_assignments = relationship("UserTagAssignment", back_populates="profile", cascade="all, delete-orphan")

    @property
    def tags(self) -> list[str]:
        """Tag names; requires tag_assignments.tag to be loaded."""
        return [a.tag.name for a in self.tag_assignments if a.tag is not None]

    def __repr__(self):
        return f"<Profile {self.msisdn or self.id}>"


class UserTag(Base):
    """Human-named tag that can be assigned to profiles."""

    __tablename__ = "user_tags"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False, unique=True, index=True)
    category = Column(String(50), default="Custom")
    color = Column(String(7), default="#6366f1")
    description = Column(String(500))
    created_at = Column(DateTime, default=datetime.utcnow)

    assignments = relationship("UserTagAssignment", back_populates="tag", cascade="all, delete-orphan")


class UserTagAssignment(Base):
    """Profile <-> tag link."""

    __tablename__ = "user_tag_assignments"
    __table_args__ = (UniqueConstraint("user_id", "tag_id", name="uq_user_tag_assignment"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    tag_id = Column(String(36), ForeignKey("user_tags.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    profile = relationship("Profile", back_populates="tag_assignments")
    tag = relationship("UserTag", back_populates="assignments")


class BillingTransaction(Base):
    """Paid activity (top-ups, bundle purchases)."""

    __tablename__ = "billing_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), default="Topup")
    amount = Column(Float, default=0)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)


class TelecomUsage(Base):
    """Network usage records (data, voice, SMS)."""

    __tablename__ = "telecom_usage"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(20), default="Data")
    volume_mb = Column(Float)
    duration_sec = Column(Float)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
