from __future__ import annotations

from .models import Category, UserContext

ECONOMIC_OPPORTUNITY_INTENT = "local jobs, training and economic opportunities"

_CATEGORY_PHRASES: dict[Category, str] = {
    Category.retail: "local shops and retail",
    Category.service: "local services",
    Category.farm_related: "farm supplies, produce and agricultural services",
    Category.economic_opportunity: "jobs, training and economic opportunities",
    Category.other: "community resources",
}

_PRICE_PHRASES: dict[str, str] = {
    "$": "budget",
    "$$": "moderately priced",
    "$$$": "premium",
    "$$$$": "luxury",
}


def infer_intent(context: UserContext) -> str:
    """
    Build a free-text intent from what the context already says.

    An explicit intent is kept as the last part so the structured hints
    only add to it. The result is deterministic for a given context.
    """
    parts: list[str] = []
    prefs = context.preferences

    if prefs.categories:
        phrases = [_CATEGORY_PHRASES[c] for c in sorted(set(prefs.categories), key=lambda c: c.value)]
        parts.append(f"looking for: {', '.join(phrases)}")
    if prefs.price_tiers:
        tiers = sorted({_PRICE_PHRASES[t.value] for t in prefs.price_tiers})
        parts.append(f"price: {', '.join(tiers)}")
    if prefs.availability:
        window = prefs.availability
        parts.append(
            f"available: {window.day.value} {window.start.strftime('%H:%M')}-{window.end.strftime('%H:%M')}"
        )
    if context.location.postcode:
        parts.append(f"near postcode {context.location.postcode}")
    if context.has_intent:
        parts.append(context.intent.strip())

    if not parts:
        parts.append("useful local businesses and community resources")
    return " | ".join(parts)
