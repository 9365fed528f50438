from datetime import time

from ruralmatch.recommendations.intent import infer_intent
from ruralmatch.recommendations.models import (
    AvailabilityWindow,
    Category,
    Location,
    Preferences,
    PriceTier,
    UserContext,
    Weekday,
)


def test_infer_intent_from_preferences():
    context = UserContext(
        user_id="u-1",
        location=Location(postcode="2830"),
        intent="  someone to fix a bore pump ",
        preferences=Preferences(
            categories=[Category.service, Category.farm_related, Category.service],
            price_tiers=[PriceTier.moderate],
            availability=AvailabilityWindow(day=Weekday.monday, start=time(7, 30), end=time(9, 0)),
        ),
    )

    assert infer_intent(context) == (
        "looking for: farm supplies, produce and agricultural services, local services"
        " | price: moderately priced"
        " | available: monday 07:30-09:00"
        " | near postcode 2830"
        " | someone to fix a bore pump"
    )


def test_infer_intent_fallback(make_context):
    assert infer_intent(make_context()) == "useful local businesses and community resources"


def test_infer_intent_is_deterministic(make_context):
    context = make_context(categories=[Category.retail, Category.other], intent="gifts")

    assert infer_intent(context) == infer_intent(context)
