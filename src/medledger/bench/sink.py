"""Append-only latency sink and its summary reader."""

import logging
import math
import statistics
from pathlib import Path

from ..errors import SinkWriteError
from ..models.latency import LatencySample, LatencyStats

logger = logging.getLogger(__name__)


class LatencySink:
    """Append-only latency sink.

    Writes one integer duration (ms) per line. Never truncates or rewrites;
    only appends. The parent directory must already exist: a missing sink
    location is treated as a setup error, not silently created.
    """

    def __init__(self, sink_path: Path):
        self.sink_path = Path(sink_path)

    def append(self, sample: LatencySample) -> LatencySample:
        """Append one sample and flush it.

        Raises:
            SinkWriteError: If the line cannot be written. The failure is
                logged before it is raised.
        """
        try:
            with open(self.sink_path, "a", encoding="utf-8") as f:
                f.write(f"{sample.duration}\n")
                f.flush()
        except OSError as e:
            logger.error(f"Failed to append latency sample to {self.sink_path}: {e}")
            raise SinkWriteError(f"Cannot append to latency sink {self.sink_path}: {e}") from e
        return sample


def read_durations(sink_path: Path) -> tuple[list[int], int]:
    """Read every duration from a sink.

    Robust parsing: skips malformed lines with a warning.

    Returns:
        (durations in file order, number of skipped lines)
    """
    if not sink_path.exists():
        return [], 0

    durations: list[int] = []
    skipped = 0
    with open(sink_path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                value = int(line)
            except ValueError:
                skipped += 1
                logger.warning(f"Skipping malformed sink line {lineno}: {line!r}")
                continue
            if value < 0:
                skipped += 1
                logger.warning(f"Skipping negative duration on sink line {lineno}: {value}")
                continue
            durations.append(value)

    if skipped:
        logger.warning(f"Skipped {skipped} malformed line(s) in {sink_path}")
    return durations, skipped


def _percentile(ordered: list[int], pct: float) -> float:
    """Nearest-rank percentile over an already sorted list."""
    rank = max(1, math.ceil(pct / 100.0 * len(ordered)))
    return float(ordered[rank - 1])


def summarize_latencies(sink_path: Path) -> LatencyStats:
    durations, skipped = read_durations(sink_path)
    if not durations:
        return LatencyStats(skipped_lines=skipped)

    ordered = sorted(durations)
    return LatencyStats(
        count=len(ordered),
        min_ms=ordered[0],
        max_ms=ordered[-1],
        mean_ms=statistics.fmean(ordered),
        p50_ms=_percentile(ordered, 50),
        p95_ms=_percentile(ordered, 95),
        p99_ms=_percentile(ordered, 99),
        skipped_lines=skipped,
    )
