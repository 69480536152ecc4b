"""Tests for the latency sink."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from medledger.bench.sink import LatencySink, read_durations, summarize_latencies
from medledger.errors import SinkWriteError
from medledger.models.latency import LatencySample


def test_sink_append_creates_file(sink_path):
    """Test that appending to the sink creates the file if it doesn't exist."""
    assert not sink_path.exists()

    sink = LatencySink(sink_path)
    sample = sink.append(LatencySample(time_create=1000, time_final=1042))

    assert sink_path.exists()
    assert sample.duration == 42
    assert sink_path.read_text() == "42\n"


def test_sink_appends_in_order(sink_path):
    """Test that samples accumulate one line each, never rewritten."""
    sink_path.write_text("7\n")
    sink = LatencySink(sink_path)

    for duration in (3, 0, 15):
        sink.append(LatencySample(time_create=100, time_final=100 + duration))

    assert sink_path.read_text().splitlines() == ["7", "3", "0", "15"]


def test_sink_missing_directory_is_fatal(tmp_path, caplog):
    """Test that a missing sink location raises instead of being created."""
    sink = LatencySink(tmp_path / "nope" / "EXECUTION_TIME")

    with pytest.raises(SinkWriteError):
        sink.append(LatencySample(time_create=1, time_final=2))

    assert not (tmp_path / "nope").exists()
    assert "Failed to append latency sample" in caplog.text


def test_sample_rejects_final_before_create():
    with pytest.raises(PydanticValidationError):
        LatencySample(time_create=10, time_final=9)


def test_read_durations_skips_malformed_lines(sink_path):
    """Test robust parsing of a hand-edited sink."""
    sink_path.write_text("5\n\nabc\n-3\n12\n")

    durations, skipped = read_durations(sink_path)

    assert durations == [5, 12]
    assert skipped == 2


def test_read_durations_missing_file(tmp_path):
    assert read_durations(tmp_path / "missing") == ([], 0)


def test_summarize_latencies(sink_path):
    """Test nearest-rank percentiles over 1..100."""
    sink_path.write_text("".join(f"{i}\n" for i in range(100, 0, -1)))

    stats = summarize_latencies(sink_path)

    assert stats.count == 100
    assert stats.min_ms == 1
    assert stats.max_ms == 100
    assert stats.mean_ms == pytest.approx(50.5)
    assert stats.p50_ms == 50
    assert stats.p95_ms == 95
    assert stats.p99_ms == 99


def test_summarize_empty_sink(sink_path):
    sink_path.write_text("oops\n")
    stats = summarize_latencies(sink_path)
    assert stats.count == 0
    assert stats.skipped_lines == 1
