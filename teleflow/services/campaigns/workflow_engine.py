"""
Post-Purchase Workflow Engine

Reacts to purchase logs on the change feed for subscribed campaigns:

    purchase -> anchor action -> wait node -> (delay) -> next action/channel -> send

At most one follow-up is sent per (campaign, user, product). The guard sets in
WorkflowStateStore are checked and marked synchronously in ``handle_event``
before any await, so duplicate feed deliveries of the same purchase cannot
both start a workflow. Failures end the run in FAILED with a notification;
nothing is retried.
"""

import asyncio
import functools
import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from teleflow.config import settings
from teleflow.models.campaign import Campaign, CampaignLog
from teleflow.models.profile import Profile
from teleflow.schemas.campaign import ConversionEvent, FlowDefinition, FlowNode, NotificationResponse
from teleflow.services.campaigns.change_feed import CAMPAIGN_LOGS_TOPIC, ChangeFeed
from teleflow.services.campaigns.flow_graph import FlowGraphWalker
from teleflow.services.campaigns.messages import magic_link, upsell_offer
from teleflow.services.campaigns.stats import CampaignStatsService
from teleflow.services.campaigns.workflow_state import (
    WorkflowRun,
    WorkflowStateStore,
    WorkflowStatus,
)

logger = logging.getLogger(__name__)

WORKFLOW_STAGE = "post_purchase_upsell"
ORIGIN_WORKFLOW = "workflow"

UNIT_SECONDS = {
    "minute": 60,
    "hour": 60 * 60,
    "day": 24 * 60 * 60,
    "week": 7 * 24 * 60 * 60,
}


class WorkflowWiringError(RuntimeError):
    """The engine was used without the collaborators it needs."""


def is_workflow_byproduct(metadata: Optional[Dict[str, Any]]) -> bool:
    """True when a purchase came from a follow-up message rather than the initial offer."""
    if not metadata:
        return False
    return (
        metadata.get("origin") == ORIGIN_WORKFLOW
        or metadata.get("workflow_stage") == WORKFLOW_STAGE
        or metadata.get("is_upsell") is True
        or metadata.get("purchase_type") == "upsell"
    )


def wait_duration_seconds(data: Dict[str, Any], fallback: float) -> float:
    """Delay configured on a wait node; missing or unusable values use ``fallback``."""
    try:
        value = float(data.get("durationValue"))
    except (TypeError, ValueError):
        return fallback
    if value <= 0:
        return fallback

    unit = str(data.get("durationUnit") or "").strip().lower()
    if unit.endswith("s"):
        unit = unit[:-1]
    multiplier = UNIT_SECONDS.get(unit)
    if multiplier is None:
        return fallback
    return value * multiplier


class PostPurchaseWorkflowEngine:
    """Drives post-purchase follow-ups for subscribed campaigns."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        feed: ChangeFeed,
        dispatcher,
        state: Optional[WorkflowStateStore] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        fallback_delay_seconds: Optional[float] = None,
        notification_buffer_size: Optional[int] = None,
    ):
        if session_factory is None:
            raise WorkflowWiringError("Workflow engine requires a session factory")
        if feed is None:
            raise WorkflowWiringError("Workflow engine requires a change feed")
        if dispatcher is None or not hasattr(dispatcher, "send"):
            raise WorkflowWiringError("Workflow engine requires a dispatcher with send()")

        self.session_factory = session_factory
        self.feed = feed
        self.dispatcher = dispatcher
        self.state = state or WorkflowStateStore()
        self._sleep = sleep
        self.fallback_delay_seconds = (
            fallback_delay_seconds
            if fallback_delay_seconds is not None
            else settings.WORKFLOW_FALLBACK_DELAY_SECONDS
        )
        self._notifications: Deque[NotificationResponse] = deque(
            maxlen=notification_buffer_size or settings.NOTIFICATION_BUFFER_SIZE
        )
        self._campaign_names: Dict[str, Optional[str]] = {}
        self._tasks: Dict[str, Set[asyncio.Task]] = {}
        self._started = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        self._started = True
        logger.info("Post-purchase workflow engine started")

    async def stop(self) -> None:
        """Unsubscribe everything, cancel in-flight workflows and clear guard state."""
        for campaign_id in list(self._campaign_names):
            await self.unsubscribe(campaign_id)
        await self._cancel_all()
        self.state.clear()
        self._notifications.clear()
        self._started = False
        logger.info("Post-purchase workflow engine stopped")

    def subscribe(self, campaign_id: str, campaign_name: Optional[str] = None) -> bool:
        """Start listening for purchases on ``campaign_id``. Returns False if already subscribed."""
        self._require_started()
        if campaign_id in self._campaign_names:
            return False

        self._campaign_names[campaign_id] = campaign_name
        self.feed.subscribe(CAMPAIGN_LOGS_TOPIC, campaign_id, functools.partial(self._on_feed_event, campaign_id))
        logger.info(f"Subscribed to purchase events for campaign {campaign_id}")
        return True

    async def unsubscribe(self, campaign_id: str) -> bool:
        """Stop listening and cancel pending workflows. Unknown campaigns are ignored."""
        was_subscribed = campaign_id in self._campaign_names
        self._campaign_names.pop(campaign_id, None)
        self.feed.unsubscribe(CAMPAIGN_LOGS_TOPIC, campaign_id)

        tasks = self._tasks.pop(campaign_id, set())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if was_subscribed:
            logger.info(f"Unsubscribed from campaign {campaign_id}")
        return was_subscribed

    def is_subscribed(self, campaign_id: str) -> bool:
        return campaign_id in self._campaign_names

    @property
    def subscriptions(self) -> List[str]:
        return list(self._campaign_names)

    async def drain(self) -> None:
        """Wait until every tracked workflow task has finished."""
        while True:
            pending = [t for tasks in self._tasks.values() for t in tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def _on_feed_event(self, campaign_id: str, event: ConversionEvent) -> None:
        # the feed fans out to every subscription key; handle only our own campaign
        if event.campaign_id != campaign_id:
            return
        self.handle_event(event)

    def handle_event(self, event: ConversionEvent) -> Optional[asyncio.Task]:
        """
        Decide synchronously whether ``event`` starts a workflow.

        Returns the scheduled task, or None when the event is ignored.
        """
        self._require_started()

        if event.campaign_id not in self._campaign_names:
            return None
        if event.action_type != "purchase" or not event.user_id:
            return None

        if is_workflow_byproduct(event.metadata):
            logger.info(
                f"Follow-up purchase for campaign {event.campaign_id} by {event.user_id}; no workflow started"
            )
            self._notify(event.campaign_id, "conversion", event, "Follow-up offer purchased", revenue=_revenue(event))
            return self._track(event.campaign_id, self._refresh_stats(event.campaign_id))

        run = self.state.try_claim(event.campaign_id, event.user_id, event.product_id)
        if run is None:
            logger.debug(
                "Duplicate purchase ignored",
                extra={"campaign_id": event.campaign_id, "user_id": event.user_id, "product_id": event.product_id},
            )
            return None

        self._notify(event.campaign_id, "conversion", event, "New purchase", revenue=_revenue(event))
        return self._track(event.campaign_id, self._execute(run, event))

    # =========================================================================
    # WORKFLOW
    # =========================================================================

    async def _execute(self, run: WorkflowRun, event: ConversionEvent) -> None:
        try:
            async with self.session_factory() as db:
                if await self._already_followed_up(db, run):
                    logger.info(f"User {run.user_id} already received a follow-up for {run.campaign_id}")
                    run.finish(WorkflowStatus.DONE)
                    return

                await CampaignStatsService(db).refresh(run.campaign_id)

                campaign = await db.get(Campaign, run.campaign_id)
                if campaign is None:
                    self._fail(run, event, "Campaign not found")
                    return
                flow = FlowDefinition.model_validate(campaign.flow_definition or {})

            walker = FlowGraphWalker(flow.nodes, flow.edges)
            anchor = self._anchor_action(walker, run.product_id)
            wait_node = walker.find_next_of_type(anchor.id, "wait") if anchor else None
            if wait_node is None:
                logger.info(f"No wait step after purchase in campaign {run.campaign_id}; workflow complete")
                run.finish(WorkflowStatus.DONE)
                return

            delay = wait_duration_seconds(wait_node.data, self.fallback_delay_seconds)
            run.status = WorkflowStatus.WAITING
            self._notify(run.campaign_id, "workflow_step", event, f"Waiting {delay:.0f}s before follow-up")
            await self._sleep(delay)

            if not self.is_subscribed(run.campaign_id):
                run.finish(WorkflowStatus.FAILED, "Campaign unsubscribed during wait")
                return

            run.status = WorkflowStatus.SENDING
            action = walker.find_next_of_type(wait_node.id, "action")
            channel = walker.find_next_of_type(wait_node.id, "channel")
            if action is None and channel is None:
                run.finish(WorkflowStatus.DONE)
                return

            async with self.session_factory() as db:
                recipient = await self._resolve_recipient(db, event)
                if not recipient:
                    self._fail(run, event, "No recipient email found")
                    return
                run.recipient = recipient

                message = upsell_offer(action, channel)
                link = magic_link(run.campaign_id, run.user_id, message.product_id, message.offer_id)
                result = await self.dispatcher.send(recipient, message.subject, message.body, link)
                if not result or not result.get("success"):
                    self._fail(run, event, (result or {}).get("error") or "Dispatch failed")
                    return

                db.add(
                    CampaignLog(
                        campaign_id=run.campaign_id,
                        user_id=run.user_id,
                        action_type="send",
                        status="Success",
                        log_metadata={
                            "offer_name": message.offer_name,
                            "product_id": message.product_id,
                            "email_sent_to": recipient,
                            "magic_link": link,
                            "sent_at": datetime.utcnow().isoformat(),
                            "workflow_stage": WORKFLOW_STAGE,
                            "origin": ORIGIN_WORKFLOW,
                            "trigger_product_id": run.product_id,
                        },
                    )
                )
                await db.commit()

            run.message_id = result.get("message_id")
            run.finish(WorkflowStatus.DONE)
            self._notify(
                run.campaign_id,
                "upsell_sent",
                event,
                f'Follow-up offer "{message.offer_name}" sent to {recipient}',
                user_email=recipient,
            )

        except asyncio.CancelledError:
            run.finish(WorkflowStatus.FAILED, "Cancelled")
            raise
        except Exception as e:
            self._fail(run, event, str(e))
        finally:
            self.state.release(run.campaign_id, run.user_id)

    async def _refresh_stats(self, campaign_id: str) -> None:
        try:
            async with self.session_factory() as db:
                await CampaignStatsService(db).refresh(campaign_id)
        except Exception as e:
            logger.error("Stats refresh failed", extra={"campaign_id": campaign_id, "error": str(e)})

    @staticmethod
    def _anchor_action(walker: FlowGraphWalker, product_id: str) -> Optional[FlowNode]:
        """The action the purchase belongs to."""
        for node in walker.of_type("action"):
            if product_id and product_id in (str(node.data.get("productId") or ""), str(node.data.get("offerId") or "")):
                return node

        trigger = walker.first_of_type("trigger")
        if trigger is not None:
            downstream = walker.find_next_of_type(trigger.id, "action")
            if downstream is not None:
                return downstream
        return walker.first_of_type("action")

    @staticmethod
    async def _already_followed_up(db: AsyncSession, run: WorkflowRun) -> bool:
        result = await db.execute(
            select(CampaignLog.log_metadata).where(
                CampaignLog.campaign_id == run.campaign_id,
                CampaignLog.user_id == run.user_id,
                CampaignLog.action_type == "send",
            )
        )
        return any(
            isinstance(metadata, dict)
            and (metadata.get("origin") == ORIGIN_WORKFLOW or metadata.get("workflow_stage") == WORKFLOW_STAGE)
            for metadata in result.scalars().all()
        )

    @staticmethod
    async def _resolve_recipient(db: AsyncSession, event: ConversionEvent) -> Optional[str]:
        """Event metadata, then the latest send log, then the profile's email."""
        recipient = event.metadata.get("email_sent_to") or event.metadata.get("user_email")
        if recipient:
            return recipient

        result = await db.execute(
            select(CampaignLog.log_metadata)
            .where(
                CampaignLog.campaign_id == event.campaign_id,
                CampaignLog.user_id == event.user_id,
                CampaignLog.action_type == "send",
            )
            .order_by(CampaignLog.created_at.desc(), CampaignLog.id.desc())
            .limit(1)
        )
        metadata = result.scalar_one_or_none()
        if isinstance(metadata, dict):
            recipient = metadata.get("email_sent_to") or metadata.get("user_email")
            if recipient:
                return recipient

        result = await db.execute(select(Profile.email).where(Profile.id == event.user_id))
        return result.scalar_one_or_none()

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    @property
    def notifications(self) -> List[NotificationResponse]:
        return list(self._notifications)

    def dismiss(self, notification_id: str) -> bool:
        for notification in self._notifications:
            if notification.id == notification_id:
                self._notifications.remove(notification)
                return True
        return False

    def runs_for(self, campaign_id: str) -> List[WorkflowRun]:
        return self.state.runs_for(campaign_id)

    def _notify(
        self,
        campaign_id: str,
        kind: str,
        event: ConversionEvent,
        message: str,
        revenue: Optional[float] = None,
        user_email: Optional[str] = None,
    ) -> None:
        self._notifications.append(
            NotificationResponse(
                id=f"{kind}-{uuid.uuid4().hex[:12]}",
                campaign_id=campaign_id,
                campaign_name=self._campaign_names.get(campaign_id),
                user_id=event.user_id,
                user_email=user_email or event.metadata.get("email_sent_to") or event.metadata.get("user_email"),
                type=kind,
                message=message,
                revenue=revenue,
                timestamp=datetime.utcnow(),
            )
        )

    def _fail(self, run: WorkflowRun, event: ConversionEvent, error: str) -> None:
        logger.error(
            "Post-purchase workflow failed",
            extra={"campaign_id": run.campaign_id, "user_id": run.user_id, "error": error},
        )
        run.finish(WorkflowStatus.FAILED, error)
        self._notify(run.campaign_id, "workflow_step", event, f"Workflow error: {error}")

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require_started(self) -> None:
        if not self._started:
            raise WorkflowWiringError("Workflow engine used before start()")

    def _track(self, campaign_id: str, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        tasks = self._tasks.setdefault(campaign_id, set())
        tasks.add(task)
        task.add_done_callback(tasks.discard)
        return task

    async def _cancel_all(self) -> None:
        tasks = [t for group in self._tasks.values() for t in group]
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def _revenue(event: ConversionEvent) -> Optional[float]:
    for key in ("revenue", "amount", "price"):
        value = event.metadata.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None
