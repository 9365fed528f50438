from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

MAX_ATTEMPTS_CEILING = 2


@dataclass(frozen=True)
class LLMConfig:
    api_key: str = os.getenv("GROQ_API_KEY", "")
    model: str = os.getenv("RURALMATCH_ORACLE_MODEL", "llama-3.3-70b-versatile")
    timeout: float = float(os.getenv("RURALMATCH_ORACLE_TIMEOUT", "5.0"))
    max_attempts: int = 2
    backoff_base: float = 0.5
    batch_size: int = 20
    max_tokens: int = 1024
    temperature: float = 0.0
    enabled: bool = True

    def __post_init__(self) -> None:
        if not 1 <= self.max_attempts <= MAX_ATTEMPTS_CEILING:
            raise ValueError(f"max_attempts must be between 1 and {MAX_ATTEMPTS_CEILING}")
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


DEFAULT_LLM_CONFIG = LLMConfig()
