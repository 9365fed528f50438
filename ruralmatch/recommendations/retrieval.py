"""
Recommendation orchestration.

Responsibilities:
- Resolve the user's location and pull a bounded candidate pool from storage.
- Score structured attributes inline while oracle batches run concurrently.
- Bound oracle concurrency and the overall request deadline.
- Hand every candidate, degraded or not, to the aggregator.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace

from ..errors import ErrorKind, MatchValidationError, StorageUnavailableError
from ..llm.groq_client import BatchOutcome, CandidateSummary, RelevanceOracleClient
from . import scoring
from .aggregator import PartialCandidate, combine
from .config import DEFAULT_MATCH_SETTINGS, MatchSettings
from .data_store import CandidateFilter, CandidateStore
from .intent import ECONOMIC_OPPORTUNITY_INTENT, infer_intent
from .models import (
    AreaInsightsResponse,
    BusinessRecord,
    Category,
    Location,
    MatchRequest,
    MatchResponse,
    ScoreWeights,
    UserContext,
)
from .opportunities import find_area_insights

logger = logging.getLogger(__name__)


def chunk(items: list, size: int) -> list[list]:
    """Split ``items`` into consecutive slices of at most ``size``."""
    return [items[i:i + size] for i in range(0, len(items), size)]


class Recommender:
    """
    Public entry point for ranked, explained business matches.

    Settings, store and oracle are fixed at construction. Each call builds
    its own semaphore and task set, so concurrent requests share nothing
    mutable.
    """

    def __init__(
        self,
        store: CandidateStore,
        oracle: RelevanceOracleClient,
        settings: MatchSettings = DEFAULT_MATCH_SETTINGS,
    ):
        self.store = store
        self.oracle = oracle
        self.settings = settings

    # ── Public API ──────────────────────────────────────────────────────

    async def recommend(self, request: MatchRequest) -> MatchResponse:
        """Rank by attributes, blended with relevance when the user stated an intent."""
        context = request.context
        intent = context.intent if context.has_intent else None
        return await self._run(context, intent, request.limit, request.weights)

    async def ai_matches(self, request: MatchRequest) -> MatchResponse:
        """Like ``recommend`` but always asks the oracle, inferring an intent if none was given."""
        intent = infer_intent(request.context)
        return await self._run(request.context, intent, request.limit, request.weights)

    async def economic_opportunities(
        self,
        context: UserContext,
        limit: int | None = None,
        weights: ScoreWeights | None = None,
    ) -> MatchResponse:
        """Same pipeline over economic-opportunity providers only."""
        intent = context.intent.strip() if context.has_intent else ECONOMIC_OPPORTUNITY_INTENT
        return await self._run(
            context,
            intent,
            limit or self.settings.default_limit,
            weights or self.settings.default_weights,
            categories=frozenset({Category.economic_opportunity}),
        )

    async def area_insights(self, context: UserContext) -> AreaInsightsResponse:
        context = await self._resolve_location(context)
        radius = context.preferences.max_distance_km or self.settings.insight_radius_km
        businesses = await self._find_candidates(CandidateFilter(
            origin=context.location.point,
            radius_km=radius,
            limit=self.settings.candidate_pool_limit,
        ))
        return AreaInsightsResponse(
            insights=find_area_insights(businesses),
            businesses_considered=len(businesses),
        )

    # ── Pipeline ────────────────────────────────────────────────────────

    async def _resolve_location(self, context: UserContext) -> UserContext:
        if context.location.point is not None:
            return context
        point = await asyncio.to_thread(self.store.resolve_postcode, context.location.postcode)
        if point is None:
            raise MatchValidationError(f"unknown postcode {context.location.postcode!r}")
        location = Location(postcode=context.location.postcode, point=point)
        return context.model_copy(update={"location": location})

    async def _find_candidates(self, candidate_filter: CandidateFilter) -> list[BusinessRecord]:
        try:
            return await asyncio.to_thread(self.store.find_candidates, candidate_filter)
        except StorageUnavailableError:
            raise
        except Exception as exc:
            raise StorageUnavailableError(f"candidate store failed: {exc}") from exc

    async def _run(
        self,
        context: UserContext,
        intent: str | None,
        limit: int,
        weights: ScoreWeights,
        categories: frozenset[Category] = frozenset(),
    ) -> MatchResponse:
        start_time = time.monotonic()
        context = await self._resolve_location(context)
        prefs = context.preferences
        max_distance = prefs.max_distance_km or self.settings.default_max_distance_km

        pool = await self._find_candidates(CandidateFilter(
            origin=context.location.point,
            radius_km=max_distance,
            categories=categories,
            price_tiers=frozenset(prefs.price_tiers),
            availability=prefs.availability,
            limit=self.settings.candidate_pool_limit,
        ))

        # The store filter is coarse; nothing past the max distance is scored
        candidates: list[tuple[BusinessRecord, float]] = []
        seen: set[str] = set()
        for business in pool:
            if business.id in seen:
                continue
            seen.add(business.id)
            distance = scoring.haversine_km(context.location.point, business.point)
            if distance <= max_distance:
                candidates.append((business, distance))

        relevance_requested = bool(intent and intent.strip()) and bool(candidates)
        batches = chunk(
            [CandidateSummary.from_business(b) for b, _ in candidates],
            self.oracle.batch_size,
        ) if relevance_requested else []

        semaphore = asyncio.Semaphore(self.settings.max_concurrency)

        async def dispatch(batch: list[CandidateSummary]) -> BatchOutcome:
            async with semaphore:
                return await self.oracle.score_batch(intent, batch)

        tasks = [asyncio.create_task(dispatch(b)) for b in batches]
        try:
            if tasks:
                # Let the batches reach the oracle before scoring attributes
                await asyncio.sleep(0)
            partials = self._score_attributes(context, candidates, max_distance, relevance_requested)
            outcomes = await self._settle(tasks, batches)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        relevance: dict[str, float] = {}
        failed = 0
        for outcome in outcomes:
            if outcome.failed:
                failed += 1
            relevance.update(outcome.scores)

        merged = [replace(p, relevance_score=relevance.get(p.business.id)) for p in partials]
        ranked = combine(merged, weights, limit)
        degraded = failed > 0 or any(p.relevance_requested and p.relevance_score is None for p in merged)

        elapsed_ms = round((time.monotonic() - start_time) * 1000, 1)
        logger.info(
            "Matched user=%s candidates=%d batches=%d failed=%d returned=%d degraded=%s in %.1fms",
            context.user_id, len(candidates), len(batches), failed, len(ranked), degraded, elapsed_ms,
        )
        return MatchResponse(
            candidates=ranked,
            degraded=degraded,
            total_candidates=len(candidates),
            batches=len(batches),
            failed_batches=failed,
        )

    def _score_attributes(
        self,
        context: UserContext,
        candidates: list[tuple[BusinessRecord, float]],
        max_distance: float,
        relevance_requested: bool,
    ) -> list[PartialCandidate]:
        prefs = context.preferences
        partials: list[PartialCandidate] = []
        for business, distance in candidates:
            attribute_score, subscores = scoring.score(context, business, max_distance)
            partials.append(PartialCandidate(
                business=business,
                distance_km=distance,
                attribute_score=attribute_score,
                subscores=subscores,
                relevance_requested=relevance_requested,
                stated_interests=bool(prefs.categories),
                stated_window=prefs.availability is not None,
            ))
        return partials

    async def _settle(
        self,
        tasks: list[asyncio.Task],
        batches: list[list[CandidateSummary]],
    ) -> list[BatchOutcome]:
        """Wait for every batch up to the request deadline; stragglers count as timed out."""
        if not tasks:
            return []
        done, pending = await asyncio.wait(tasks, timeout=self.settings.request_deadline)
        if pending:
            logger.warning(
                "Request deadline %.1fs hit with %d of %d oracle batches outstanding",
                self.settings.request_deadline, len(pending), len(tasks),
            )
            for task in pending:
                task.cancel()

        outcomes: list[BatchOutcome] = []
        for task, batch in zip(tasks, batches):
            ids = [c.id for c in batch]
            if task in pending or task.cancelled():
                outcomes.append(BatchOutcome.failure(ids, ErrorKind.oracle_timeout))
            elif task.exception() is not None:
                logger.warning("Oracle batch raised unexpectedly", exc_info=task.exception())
                outcomes.append(BatchOutcome.failure(ids, ErrorKind.oracle_transport))
            else:
                outcomes.append(task.result())
        return outcomes
