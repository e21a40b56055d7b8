"""
FastAPI Dependencies

Database sessions and the process-wide campaign runtime. Tests override these
through ``app.dependency_overrides``.
"""

from typing import Annotated
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from teleflow.database import get_db, async_session_maker
from teleflow.services.campaigns import runtime
from teleflow.services.campaigns.change_feed import ChangeFeed
from teleflow.services.campaigns.workflow_engine import PostPurchaseWorkflowEngine
from teleflow.services.email_service import EmailService


def get_session_factory() -> async_sessionmaker:
    return async_session_maker


def get_change_feed() -> ChangeFeed:
    return runtime.feed


def get_dispatcher() -> EmailService:
    return runtime.dispatcher


def get_workflow_engine() -> PostPurchaseWorkflowEngine:
    return runtime.workflow_engine


DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker, Depends(get_session_factory)]
Feed = Annotated[ChangeFeed, Depends(get_change_feed)]
Dispatcher = Annotated[EmailService, Depends(get_dispatcher)]
WorkflowEngine = Annotated[PostPurchaseWorkflowEngine, Depends(get_workflow_engine)]
