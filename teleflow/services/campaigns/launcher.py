"""
Campaign activation.

Activating a campaign sends the initial offer to each demo recipient listed
in ``flow_definition.metadata.demoEmails``. Every send is attributed to a
random profile matching the campaign's segment, so the click/purchase loop
downstream behaves as it would for a real subscriber. The campaign is then
subscribed on the workflow engine.
"""

import logging
import random
from datetime import datetime
from typing import Callable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from teleflow.models.campaign import Campaign, CampaignLog
from teleflow.models.profile import Profile
from teleflow.schemas.campaign import ActivationResponse, FlowDefinition
from teleflow.schemas.segment import SegmentCriteria
from teleflow.services.campaigns.flow_graph import FlowGraphWalker
from teleflow.services.campaigns.messages import initial_offer, magic_link
from teleflow.services.campaigns.workflow_engine import PostPurchaseWorkflowEngine
from teleflow.services.segments.estimator import CriteriaEstimator

logger = logging.getLogger(__name__)

ORIGIN_INITIAL = "initial"
CANDIDATE_LIMIT = 100


class CampaignNotFoundError(LookupError):
    pass


class CampaignLauncher:
    def __init__(
        self,
        db: AsyncSession,
        engine: PostPurchaseWorkflowEngine,
        dispatcher,
        choose: Callable[[Sequence[Profile]], Profile] = random.choice,
    ):
        self.db = db
        self.engine = engine
        self.dispatcher = dispatcher
        self._choose = choose

    async def activate(self, campaign_id: str) -> ActivationResponse:
        campaign = await self.db.get(Campaign, campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)

        campaign.status = "active"
        await self.db.commit()

        flow = FlowDefinition.model_validate(campaign.flow_definition or {})
        response = ActivationResponse(campaign_id=campaign_id, subscribed=False, recipients=len(flow.demo_emails))

        if flow.demo_emails:
            await self._send_initial_offers(campaign, flow, response)
        else:
            logger.info(f"No demo emails for campaign {campaign_id}; nothing to auto-send")

        self.engine.subscribe(campaign_id, campaign.name)
        response.subscribed = True
        return response

    async def _send_initial_offers(self, campaign: Campaign, flow: FlowDefinition, response: ActivationResponse) -> None:
        walker = FlowGraphWalker(flow.nodes, flow.edges)
        segment_node = walker.first_of_type("segment")
        action_node = walker.first_of_type("action")
        if segment_node is None or action_node is None:
            logger.warning(f"Campaign {campaign.id} is missing a segment or action node")
            response.failed = len(flow.demo_emails)
            return

        channel_node = walker.find_next_of_type(action_node.id, "channel") or walker.first_of_type("channel")
        criteria = SegmentCriteria.model_validate(segment_node.data.get("segmentCriteria") or {})
        message = initial_offer(action_node, channel_node)

        _, candidates, error = await CriteriaEstimator(self.db).fetch_members(criteria, limit=CANDIDATE_LIMIT)
        if error or not candidates:
            logger.warning(f"No users match the segment for campaign {campaign.id}: {error or 'empty segment'}")
            response.failed = len(flow.demo_emails)
            return

        for email in flow.demo_emails:
            user = self._choose(candidates)
            link = magic_link(campaign.id, user.id, message.product_id, message.offer_id)
            result = await self.dispatcher.send(email, message.subject, message.body, link)
            if not result or not result.get("success"):
                logger.error(
                    "Initial offer send failed",
                    extra={"campaign_id": campaign.id, "error": (result or {}).get("error")},
                )
                response.failed += 1
                continue

            self.db.add(
                CampaignLog(
                    campaign_id=campaign.id,
                    user_id=user.id,
                    action_type="send",
                    status="Success",
                    log_metadata={
                        "offer_name": message.offer_name,
                        "product_id": message.product_id,
                        "user_msisdn": user.msisdn,
                        "user_name": user.name,
                        "user_tier": user.tier,
                        "email_sent_to": email,
                        "magic_link": link,
                        "sent_at": datetime.utcnow().isoformat(),
                        "origin": ORIGIN_INITIAL,
                    },
                )
            )
            response.sent += 1

        await self.db.commit()
        logger.info(f"Campaign {campaign.id} activation: sent={response.sent}, failed={response.failed}")
