"""Logging setup and per-review model usage telemetry."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# USD per million tokens (input, output)
MODEL_PRICES_PER_MILLION: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "claude-3-5-haiku-20241022": (0.8, 4.0),
    "claude-opus-4-20250514": (15.0, 75.0),
}
DEFAULT_PRICE_PER_MILLION = (3.0, 15.0)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the service or CLI."""
    resolved_level = logging.getLevelName(level.upper())
    if not isinstance(resolved_level, int):
        resolved_level = logging.INFO
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def redact_code(code: str | None) -> str:
    """Shorten an OAuth code or token for log output."""
    if not code:
        return "null"
    return f"{code[:10]}..."


def estimate_cost_usd(model: str, *, tokens_in: int, tokens_out: int) -> float:
    """Estimate model spend from token counts."""
    price_in, price_out = MODEL_PRICES_PER_MILLION.get(model, DEFAULT_PRICE_PER_MILLION)
    return round((tokens_in * price_in + tokens_out * price_out) / 1_000_000, 6)


@dataclass(slots=True)
class RunTelemetry:
    """Model usage accumulated over one review run."""

    review_id: str
    model: str
    cost_usd: float = 0.0
    tokens_in: int = 0
    tokens_out: int = 0
    llm_calls: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def tokens_used(self) -> int:
        return self.tokens_in + self.tokens_out

    def record_call(self, *, tokens_in: int, tokens_out: int) -> None:
        """Add one model call to the totals."""
        self.llm_calls += 1
        self.tokens_in += tokens_in
        self.tokens_out += tokens_out
        self.cost_usd = estimate_cost_usd(
            self.model,
            tokens_in=self.tokens_in,
            tokens_out=self.tokens_out,
        )

    def warn(self, message: str) -> None:
        self.warnings.append(message)
