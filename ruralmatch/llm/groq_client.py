from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from groq import APIConnectionError, APIError, APITimeoutError, AsyncGroq

from ..errors import (
    ErrorKind,
    OracleError,
    OracleParseError,
    OracleTimeoutError,
    OracleTransportError,
)
from ..recommendations.models import BusinessRecord
from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You score how relevant local rural businesses and community resources are "
    "to what a resident is looking for. "
    "Given the resident's request and a list of candidates, give every candidate "
    "a relevance score between 0 and 1, where 1 means a perfect fit for the request "
    "and 0 means unrelated.\n\n"
    "Return ONLY valid JSON in this exact format:\n"
    '{"scores": [{"id": "<candidate_id>", "score": <number between 0 and 1>}]}\n'
    "Score every candidate in the list exactly once and no others."
)

_DESCRIPTION_LIMIT = 200
_LINE_SCORE_RE = re.compile(
    r"""["']?(?P<id>[\w.\-]+)["']?\s*[:=|,\-]+\s*(?P<score>\d+(?:\.\d+)?|\.\d+)"""
)
_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(?P<body>.*?)```", re.DOTALL)


@dataclass(frozen=True)
class CandidateSummary:
    """Compact per-candidate description sent to the oracle."""

    id: str
    description: str

    @classmethod
    def from_business(cls, business: BusinessRecord) -> CandidateSummary:
        parts = [business.name, business.category.value]
        if business.price_tier is not None:
            parts.append(f"price {business.price_tier.value}")
        if business.rating is not None:
            parts.append(f"rated {business.rating:.1f}/5")
        text = " ".join(business.description.split())
        if len(text) > _DESCRIPTION_LIMIT:
            text = text[: _DESCRIPTION_LIMIT - 3].rstrip() + "..."
        if text:
            parts.append(text)
        return cls(id=business.id, description=" | ".join(parts))


class BatchStatus(str, Enum):
    ok = "ok"
    skipped = "skipped"
    failed = "failed"


@dataclass
class BatchOutcome:
    candidate_ids: list[str]
    status: BatchStatus
    scores: dict[str, float] = field(default_factory=dict)
    error_kind: ErrorKind | None = None

    @property
    def failed(self) -> bool:
        return self.status is BatchStatus.failed

    @classmethod
    def failure(cls, candidate_ids: list[str], kind: ErrorKind) -> BatchOutcome:
        return cls(candidate_ids=candidate_ids, status=BatchStatus.failed, error_kind=kind)


def _build_user_message(intent: str, candidates: list[CandidateSummary]) -> str:
    lines = ["## Resident Request", intent.strip(), "", "## Candidates"]
    lines.append("| ID | Description |")
    lines.append("|---|---|")
    for c in candidates:
        lines.append(f"| {c.id} | {c.description.replace('|', '/')} |")
    return "\n".join(lines)


def _coerce_score(raw: Any) -> float | None:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if value != value:  # NaN
        return None
    if 1.0 < value <= 100.0:
        value /= 100.0
    return max(0.0, min(1.0, value))


def _strip_code_fence(content: str) -> str:
    match = _CODE_FENCE_RE.search(content)
    return match.group("body") if match else content


def _scores_from_json(parsed: Any) -> dict[str, Any]:
    if isinstance(parsed, dict):
        for key in ("scores", "results", "candidates"):
            nested = parsed.get(key)
            if isinstance(nested, dict):
                return {str(k): v for k, v in nested.items()}
            if isinstance(nested, list):
                parsed = nested
                break
        else:
            return {str(k): v for k, v in parsed.items()}
    if isinstance(parsed, list):
        raw: dict[str, Any] = {}
        for item in parsed:
            if isinstance(item, dict) and "id" in item:
                raw[str(item["id"])] = item.get("score", item.get("relevance"))
        return raw
    return {}


def _wanted_scores(raw: dict[str, Any], wanted: set[str]) -> dict[str, float]:
    scores: dict[str, float] = {}
    for cid, value in raw.items():
        if cid not in wanted:
            continue
        coerced = _coerce_score(value)
        if coerced is not None:
            scores[cid] = coerced
    return scores


def parse_relevance_scores(content: str, expected_ids: list[str]) -> dict[str, float]:
    """
    Extract a 0-1 score per expected candidate id from an oracle reply.

    Accepts the requested JSON shape, a bare list, a flat ``{id: score}``
    object (also nested under ``scores``), any of those inside a markdown
    code fence, or ``id: score`` lines. Unknown ids are ignored and ids the
    reply skipped are left out. Raises OracleParseError when nothing
    usable comes back.
    """
    wanted = set(expected_ids)
    text = _strip_code_fence(content or "")
    raw: dict[str, Any] = {}
    try:
        raw = _scores_from_json(json.loads(text))
    except (json.JSONDecodeError, TypeError):
        logger.debug("Oracle reply is not JSON, falling back to line parsing")

    scores = _wanted_scores(raw, wanted)
    if not scores:
        lines: dict[str, Any] = {}
        for match in _LINE_SCORE_RE.finditer(text):
            lines.setdefault(match.group("id"), match.group("score"))
        scores = _wanted_scores(lines, wanted)

    if not scores:
        raise OracleParseError(
            f"no relevance scores for any of {len(expected_ids)} candidates in oracle reply"
        )
    return scores


class RelevanceOracleClient:
    """
    One Groq chat completion per batch of candidates.

    ``score_relevance`` enforces the per-attempt timeout and the bounded
    retry policy and raises typed oracle errors. ``score_batch`` wraps it
    and turns any oracle failure into a FAILED outcome for the batch.
    """

    def __init__(self, config: LLMConfig = DEFAULT_LLM_CONFIG, client: AsyncGroq | None = None):
        self.config = config
        self._client = client

    @property
    def batch_size(self) -> int:
        return self.config.batch_size

    def _get_client(self) -> AsyncGroq:
        if self._client is None:
            # The SDK must not retry on its own; attempts are bounded here.
            self._client = AsyncGroq(
                api_key=self.config.api_key, timeout=self.config.timeout, max_retries=0
            )
        return self._client

    async def _complete(self, messages: list[dict[str, str]]) -> str:
        try:
            response = await self._get_client().chat.completions.create(
                model=self.config.model,
                messages=messages,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )
        except APITimeoutError as exc:
            raise OracleTimeoutError(f"oracle call timed out: {exc}") from exc
        except (APIConnectionError, APIError) as exc:
            raise OracleTransportError(f"oracle call failed: {exc}") from exc
        return response.choices[0].message.content or ""

    async def score_relevance(
        self,
        intent: str | None,
        candidates: list[CandidateSummary],
    ) -> dict[str, float]:
        """
        Score one batch against the user's intent.

        Returns a mapping of candidate id to a score in [0, 1]. With no
        intent, or no candidates, nothing is sent and the mapping is empty.
        """
        if not intent or not intent.strip() or not candidates:
            return {}
        if len(candidates) > self.config.batch_size:
            raise ValueError(
                f"batch of {len(candidates)} exceeds oracle batch size {self.config.batch_size}"
            )
        if not self.config.enabled or not self.config.api_key:
            raise OracleTransportError("relevance oracle is not configured")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": _build_user_message(intent, candidates)},
        ]
        expected_ids = [c.id for c in candidates]

        attempt = 0
        while True:
            attempt += 1
            try:
                content = await asyncio.wait_for(self._complete(messages), timeout=self.config.timeout)
            except asyncio.TimeoutError:
                error: OracleError = OracleTimeoutError(
                    f"oracle batch exceeded {self.config.timeout}s"
                )
            except (OracleTimeoutError, OracleTransportError) as exc:
                error = exc
            else:
                return parse_relevance_scores(content, expected_ids)

            if attempt >= self.config.max_attempts:
                raise error
            delay = self.config.backoff_base * (2 ** (attempt - 1))
            logger.info(
                "Oracle attempt %d/%d failed (%s), retrying in %.2fs",
                attempt, self.config.max_attempts, error.kind.value, delay,
            )
            await asyncio.sleep(delay)

    async def score_batch(
        self,
        intent: str | None,
        candidates: list[CandidateSummary],
    ) -> BatchOutcome:
        ids = [c.id for c in candidates]
        if not intent or not intent.strip():
            return BatchOutcome(candidate_ids=ids, status=BatchStatus.skipped)
        try:
            scores = await self.score_relevance(intent, candidates)
        except OracleError as exc:
            logger.warning(
                "Oracle batch of %d candidates failed (%s), scoring attribute-only",
                len(ids), exc.kind.value, exc_info=True,
            )
            return BatchOutcome.failure(ids, exc.kind)
        return BatchOutcome(candidate_ids=ids, status=BatchStatus.ok, scores=scores)
