"""
Campaign API Endpoints

Includes:
- Activation (initial offer auto-send + purchase subscription)
- Purchase subscription management
- Campaign log ingestion (published on the change feed)
- Conversion stats refresh
- Post-purchase workflow runs and notifications
"""

import logging
from typing import List

from fastapi import APIRouter, status

from teleflow.api.deps import DbSession, Dispatcher, Feed, WorkflowEngine
from teleflow.exceptions import NotFoundError, ServiceUnavailableError
from teleflow.models.campaign import Campaign, CampaignLog
from teleflow.schemas.campaign import (
    ActivationResponse,
    CampaignLogCreate,
    CampaignLogResponse,
    CampaignStatsResponse,
    ConversionEvent,
    NotificationResponse,
    SubscriptionResponse,
    WorkflowRunResponse,
)
from teleflow.services.campaigns import (
    CampaignLauncher,
    CampaignNotFoundError,
    CampaignStatsService,
    WorkflowWiringError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_campaign(db, campaign_id: str) -> Campaign:
    campaign = await db.get(Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign", campaign_id)
    return campaign


# Static paths are declared before /{campaign_id} routes


@router.get("/notifications", response_model=List[NotificationResponse])
async def list_notifications(engine: WorkflowEngine):
    """Conversion and workflow notifications, oldest first."""
    return engine.notifications


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def dismiss_notification(notification_id: str, engine: WorkflowEngine):
    if not engine.dismiss(notification_id):
        raise NotFoundError("Notification", notification_id)


@router.post("/{campaign_id}/activate", response_model=ActivationResponse)
async def activate_campaign(campaign_id: str, db: DbSession, engine: WorkflowEngine, dispatcher: Dispatcher):
    """Send the initial offer to the campaign's demo recipients and start listening for purchases."""
    try:
        return await CampaignLauncher(db, engine, dispatcher).activate(campaign_id)
    except CampaignNotFoundError:
        raise NotFoundError("Campaign", campaign_id)
    except WorkflowWiringError as e:
        raise ServiceUnavailableError(str(e))


@router.post("/{campaign_id}/subscribe", response_model=SubscriptionResponse)
async def subscribe_campaign(campaign_id: str, db: DbSession, engine: WorkflowEngine):
    campaign = await _get_campaign(db, campaign_id)
    try:
        engine.subscribe(campaign_id, campaign.name)
    except WorkflowWiringError as e:
        raise ServiceUnavailableError(str(e))
    return SubscriptionResponse(campaign_id=campaign_id, subscribed=True)


@router.delete("/{campaign_id}/subscribe", response_model=SubscriptionResponse)
async def unsubscribe_campaign(campaign_id: str, engine: WorkflowEngine):
    """Stop listening and cancel pending follow-ups. Safe to repeat."""
    await engine.unsubscribe(campaign_id)
    return SubscriptionResponse(campaign_id=campaign_id, subscribed=False)


@router.post("/{campaign_id}/logs", response_model=CampaignLogResponse, status_code=status.HTTP_201_CREATED)
async def record_log(campaign_id: str, payload: CampaignLogCreate, db: DbSession, feed: Feed):
    """Record a send / click / purchase and publish it on the change feed."""
    await _get_campaign(db, campaign_id)

    log = CampaignLog(
        campaign_id=campaign_id,
        user_id=payload.user_id,
        action_type=payload.action_type,
        status=payload.status,
        log_metadata=payload.metadata,
    )
    db.add(log)
    await db.commit()
    await db.refresh(log)

    delivered = feed.publish(ConversionEvent.from_log(log))
    logger.debug(f"Campaign log {log.id} ({log.action_type}) delivered to {delivered} subscriber(s)")

    return CampaignLogResponse(
        id=log.id,
        campaign_id=log.campaign_id,
        user_id=log.user_id,
        action_type=log.action_type,
        status=log.status,
        metadata=log.log_metadata or {},
        created_at=log.created_at,
    )


@router.post("/{campaign_id}/stats/refresh", response_model=CampaignStatsResponse)
async def refresh_stats(campaign_id: str, db: DbSession):
    await _get_campaign(db, campaign_id)
    return await CampaignStatsService(db).refresh(campaign_id)


@router.get("/{campaign_id}/workflows", response_model=List[WorkflowRunResponse])
async def list_workflow_runs(campaign_id: str, engine: WorkflowEngine):
    """Post-purchase workflow runs tracked in this process."""
    return [
        WorkflowRunResponse(
            campaign_id=run.campaign_id,
            user_id=run.user_id,
            product_id=run.product_id,
            status=run.status.value,
            recipient=run.recipient,
            message_id=run.message_id,
            error=run.error,
            started_at=run.started_at,
            finished_at=run.finished_at,
        )
        for run in engine.runs_for(campaign_id)
    ]
