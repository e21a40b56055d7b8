"""Offer message builders shared by activation and follow-up sends."""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from teleflow.config import settings
from teleflow.schemas.campaign import FlowNode


@dataclass(frozen=True)
class OfferMessage:
    offer_name: str
    product_id: str
    offer_id: Optional[str]
    subject: str
    body: str


def magic_link(campaign_id: str, user_id: str, product_id: str, offer_id: Optional[str] = None) -> str:
    """Landing-page link that attributes clicks and purchases to campaign and user."""
    origin = settings.PUBLIC_APP_URL.rstrip("/")
    if offer_id:
        query = urlencode({"campaignId": campaign_id, "userId": user_id, "productId": product_id})
        return f"{origin}/offer/{offer_id}?{query}"
    return f"{origin}/campaign/{campaign_id}/{user_id}/{product_id}"


def _channel_text(channel: Optional[FlowNode], *channels: str) -> Optional[str]:
    if channel is None:
        return None
    content = channel.data.get("channelContent") or {}
    for name in channels:
        text = (content.get(name) or {}).get("text")
        if text:
            return text
    return None


def initial_offer(action: FlowNode, channel: Optional[FlowNode]) -> OfferMessage:
    data = action.data
    offer_name = data.get("productName") or data.get("couponName") or "Campaign Offer"
    body = _channel_text(channel, "email", "sms") or f"Don't miss out on this exclusive offer: {offer_name}!"
    return OfferMessage(
        offer_name=offer_name,
        product_id=str(data.get("productId") or ""),
        offer_id=data.get("offerId"),
        subject=f"🎁 Exclusive Offer: {offer_name}",
        body=body,
    )


def upsell_offer(action: Optional[FlowNode], channel: Optional[FlowNode]) -> OfferMessage:
    data = action.data if action is not None else {}
    offer_name = data.get("productName") or data.get("offerName") or "Exclusive Upsell Offer"
    body = _channel_text(channel, "email") or (
        f"Thanks for buying! Here is a special 50% OFF addon just for you: {offer_name}"
    )
    return OfferMessage(
        offer_name=offer_name,
        product_id=str(data.get("productId") or ""),
        offer_id=data.get("offerId"),
        subject=f"🎁 {offer_name} - Exclusive Upsell",
        body=body,
    )
