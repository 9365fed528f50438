from __future__ import annotations

from collections import defaultdict

from .models import (
    BusinessRecord,
    Category,
    InsightPriority,
    InsightType,
    OpportunityInsight,
)

# Essential rural services and the words that show a nearby provider exists
ESSENTIAL_SERVICES: dict[str, tuple[str, ...]] = {
    "Healthcare": ("health", "medical", "clinic", "doctor", "gp", "pharmacy", "nurse"),
    "Education": ("education", "school", "tutor", "training", "learning", "tafe"),
    "Transport": ("transport", "bus", "freight", "courier", "taxi", "haulage"),
    "Technology": ("technology", "internet", "computer", "it support", "software", "telco"),
    "Finance": ("finance", "bank", "accountant", "bookkeeping", "credit union", "insurance"),
}

_SAMPLE_SIZE = 3


def _mentions(business: BusinessRecord, keywords: tuple[str, ...]) -> bool:
    text = f"{business.name} {business.description}".lower()
    return any(k in text for k in keywords)


def find_area_insights(businesses: list[BusinessRecord]) -> list[OpportunityInsight]:
    """Spot supply-chain links, service gaps and job providers among nearby businesses."""
    by_category: dict[Category, list[BusinessRecord]] = defaultdict(list)
    for b in sorted(businesses, key=lambda b: b.id):
        by_category[b.category].append(b)

    insights: list[OpportunityInsight] = []

    farms = by_category.get(Category.farm_related, [])
    shops = by_category.get(Category.retail, [])
    if farms and shops:
        insights.append(OpportunityInsight(
            type=InsightType.supply_chain,
            title="Farm-to-table supply chain opportunity",
            description="Local farms and retailers could set up direct supply relationships",
            business_ids=[b.id for b in farms[:_SAMPLE_SIZE] + shops[:_SAMPLE_SIZE]],
            priority=InsightPriority.high,
        ))

    jobs = by_category.get(Category.economic_opportunity, [])
    if jobs:
        insights.append(OpportunityInsight(
            type=InsightType.jobs,
            title=f"{len(jobs)} local employment and training provider(s)",
            description="Businesses nearby are offering work, training or economic support",
            business_ids=[b.id for b in jobs],
            priority=InsightPriority.medium,
        ))

    for service, keywords in ESSENTIAL_SERVICES.items():
        if not any(_mentions(b, keywords) for b in businesses):
            insights.append(OpportunityInsight(
                type=InsightType.market_gap,
                title=f"Service gap: {service}",
                description=f"There appear to be limited {service.lower()} services in this area",
                priority=InsightPriority.low if businesses else InsightPriority.medium,
            ))

    return insights
