"""Pydantic models for latency samples and their summary."""

from pydantic import BaseModel, Field, model_validator


class LatencySample(BaseModel):
    """One (submission, completion) timestamp pair. Never mutated."""

    time_create: int = Field(description="Submission time (epoch ms)")
    time_final: int = Field(description="Completion time (epoch ms)")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_order(self) -> "LatencySample":
        if self.time_final < self.time_create:
            raise ValueError(
                f"time_final ({self.time_final}) precedes time_create ({self.time_create})"
            )
        return self

    @property
    def duration(self) -> int:
        return self.time_final - self.time_create


class LatencyStats(BaseModel):
    """Summary of the durations stored in a latency sink."""

    count: int = 0
    min_ms: int = 0
    max_ms: int = 0
    mean_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    skipped_lines: int = 0
