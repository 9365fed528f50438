from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .models import ScoreWeights

_PROCESSED_CSV = Path(__file__).resolve().parent.parent / "data" / "processed" / "businesses.csv"


@dataclass(frozen=True)
class MatchSettings:
    max_concurrency: int = 4
    request_deadline: float = 15.0
    default_max_distance_km: float = 50.0
    candidate_pool_limit: int = 200
    default_limit: int = 10
    default_weights: ScoreWeights = field(default_factory=ScoreWeights)
    insight_radius_km: float = 25.0
    data_path: Path = Path(os.getenv("RURALMATCH_DATA_PATH", str(_PROCESSED_CSV)))


DEFAULT_MATCH_SETTINGS = MatchSettings()
