"""Process-wide campaign runtime: change feed, dispatcher and workflow engine."""

from teleflow.database import async_session_maker
from teleflow.services.campaigns.change_feed import ChangeFeed
from teleflow.services.campaigns.workflow_engine import PostPurchaseWorkflowEngine
from teleflow.services.email_service import get_email_service

feed = ChangeFeed()
dispatcher = get_email_service()
workflow_engine = PostPurchaseWorkflowEngine(async_session_maker, feed, dispatcher)
