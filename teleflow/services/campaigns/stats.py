"""Campaign conversion stats from campaign logs."""

import logging
from datetime import datetime

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from teleflow.models.campaign import Campaign, CampaignLog
from teleflow.schemas.campaign import CampaignStatsResponse

logger = logging.getLogger(__name__)


class CampaignStatsService:
    """Recomputes reach and conversion rate for a campaign."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def refresh(self, campaign_id: str) -> CampaignStatsResponse:
        result = await self.db.execute(
            select(CampaignLog.action_type, func.count())
            .where(CampaignLog.campaign_id == campaign_id)
            .group_by(CampaignLog.action_type)
        )
        counts = {action_type: count for action_type, count in result.all()}

        sent = counts.get("send", 0)
        clicked = counts.get("click", 0)
        converted = counts.get("purchase", 0)
        conversion_rate = converted / sent if sent > 0 else 0.0

        campaign = await self.db.get(Campaign, campaign_id)
        if campaign is not None:
            campaign.reach = sent
            campaign.conversion_rate = conversion_rate
            campaign.stats = {
                "sent": sent,
                "clicked": clicked,
                "converted": converted,
                "updated_at": datetime.utcnow().isoformat(),
            }
            await self.db.commit()

        logger.info(
            f"Campaign {campaign_id} stats: sent={sent}, clicked={clicked}, "
            f"converted={converted}, rate={conversion_rate:.4f}"
        )

        return CampaignStatsResponse(
            campaign_id=campaign_id,
            sent=sent,
            clicked=clicked,
            converted=converted,
            reach=sent,
            conversion_rate=conversion_rate,
        )
