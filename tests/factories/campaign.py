"""
Campaign test factories.

FlowDefinitionFactory builds the canvas graph used by the post-purchase
workflow:

    trigger -> segment -> action (initial offer) -> channel -> wait -> action (upsell) -> channel
"""

import factory
from faker import Faker

fake = Faker()


def _flow(product_id, upsell_product_id, upsell_offer_id, duration_value, duration_unit, demo_emails):
    nodes = [
        {"id": "trigger-1", "type": "trigger", "data": {"label": "Campaign start"}},
        {"id": "segment-1", "type": "segment", "data": {"segmentCriteria": {"conditionGroups": []}}},
        {
            "id": "action-1",
            "type": "action",
            "data": {"productId": product_id, "productName": "Data Pack 5GB"},
        },
        {
            "id": "channel-1",
            "type": "channel",
            "data": {"channelContent": {"email": {"text": "Grab 5GB today!"}}},
        },
        {
            "id": "wait-1",
            "type": "wait",
            "data": {"durationValue": duration_value, "durationUnit": duration_unit},
        },
        {
            "id": "action-2",
            "type": "action",
            "data": {"productId": upsell_product_id, "productName": "Night Owl Add-on", "offerId": upsell_offer_id},
        },
        {
            "id": "channel-2",
            "type": "channel",
            "data": {"channelContent": {"email": {"text": "Half price night data for you."}}},
        },
    ]
    order = [n["id"] for n in nodes]
    edges = [{"id": f"e{i}", "source": a, "target": b} for i, (a, b) in enumerate(zip(order, order[1:]))]
    return {"nodes": nodes, "edges": edges, "metadata": {"demoEmails": demo_emails}}


class FlowDefinitionFactory(factory.Factory):
    """
    Factory for campaign flow definitions.

    Usage:
        flow = FlowDefinitionFactory()
        flow = FlowDefinitionFactory(duration_value=2, duration_unit="hours")
    """

    class Meta:
        model = _flow

    product_id = "prod-data-5gb"
    upsell_product_id = "prod-night-owl"
    upsell_offer_id = None
    duration_value = 30
    duration_unit = "minutes"
    demo_emails = factory.LazyFunction(lambda: [fake.email().lower()])


class PurchaseLogFactory(factory.Factory):
    """Factory for purchase log payloads (POST /campaigns/{id}/logs)."""

    class Meta:
        model = dict

    user_id = None
    action_type = "purchase"
    status = "Success"
    metadata = factory.LazyFunction(
        lambda: {"product_id": "prod-data-5gb", "email_sent_to": fake.email().lower(), "revenue": 4500}
    )
