"""Tests for the throughput meter."""

from __future__ import annotations

import itertools

from llmedge.metrics.instrumentation import GenerationMetrics, ThroughputMeter


def _clock(*values: float):
    it = iter(values)
    return lambda: next(it)


def test_metrics_without_time_report_zero_speed():
    assert GenerationMetrics(tokens_generated=5).tokens_per_second == 0.0


def test_meter_reports_tokens_per_second():
    meter = ThroughputMeter(prompt_tokens=7, clock=_clock(10.0, 12.0))
    meter.start()
    for _ in range(4):
        meter.record_token()
    metrics = meter.stop()
    assert metrics == GenerationMetrics(tokens_generated=4, elapsed_seconds=2.0, prompt_tokens=7)
    assert metrics.tokens_per_second == 2.0


def test_start_and_stop_are_latched():
    ticks = itertools.count()
    meter = ThroughputMeter(clock=lambda: float(next(ticks)))
    meter.start()
    meter.start()
    meter.record_token()
    first = meter.stop()
    second = meter.stop()
    assert first == second
    assert first.elapsed_seconds == 1.0


def test_unstarted_meter_has_no_elapsed_time():
    meter = ThroughputMeter()
    meter.record_token()
    assert not meter.started
    assert meter.snapshot().elapsed_seconds == 0.0
