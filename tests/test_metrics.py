import random

import pytest

from metrics import (NO_DATA, LatencySample, LatencyStatistics, format_duration,
                     format_statistics, percentile_index, summarize)


class TestLatencySample:
    def test_keeps_issue_order(self):
        sample = LatencySample()
        for v in (30, 10, 20):
            sample.record(v)
        assert sample.values == (30, 10, 20)
        assert list(sample) == [30, 10, 20]
        assert len(sample) == 3

    def test_rejects_negative(self):
        sample = LatencySample()
        with pytest.raises(ValueError):
            sample.record(-1)
        assert len(sample) == 0

    def test_frozen_sample_is_read_only(self):
        sample = LatencySample()
        sample.record(5)
        assert sample.freeze() is sample
        assert sample.frozen
        with pytest.raises(RuntimeError):
            sample.record(6)
        assert sample.values == (5,)


class TestPercentileIndex:
    @pytest.mark.parametrize("count,p,expected", [
        (100, 50, 50),
        (100, 95, 95),
        (100, 99, 99),
        (10, 95, 9),    # floor(9.5)
        (20, 95, 19),
        (200, 99, 198),
        (1, 99, 0),
        (2, 50, 1),
        (3, 99, 2),     # floor(2.97)
    ])
    def test_nearest_rank(self, count, p, expected):
        assert percentile_index(count, p) == expected

    def test_clamped_to_last_element(self):
        assert percentile_index(5, 100) == 4


class TestSummarize:
    def test_empty_sample_is_no_data(self):
        assert summarize(LatencySample()) is NO_DATA
        assert summarize([]) is NO_DATA

    def test_hundred_element_fixture(self):
        values = list(range(100))
        random.Random(7).shuffle(values)
        stats = summarize(values)
        assert stats == LatencyStatistics(min=0, max=99, mean=49, p50=50, p95=95, p99=99, count=100)

    def test_mean_truncates(self):
        assert summarize([1, 2]).mean == 1
        assert summarize([2, 2, 3]).mean == 2

    def test_single_measurement(self):
        stats = summarize([42])
        assert stats.min == stats.max == stats.mean == stats.p50 == stats.p95 == stats.p99 == 42

    def test_duplicates(self):
        stats = summarize([5, 1, 5, 5, 1])
        assert stats.min == 1
        assert stats.p50 == 5
        assert stats.max == 5

    def test_does_not_reorder_the_sample(self):
        sample = LatencySample()
        for v in (3, 1, 2):
            sample.record(v)
        summarize(sample)
        assert sample.values == (3, 1, 2)

    @pytest.mark.parametrize("seed", range(20))
    def test_ordering_invariant(self, seed):
        rng = random.Random(seed)
        values = [rng.randint(0, 10_000_000) for _ in range(rng.randint(1, 500))]
        stats = summarize(values)
        assert stats.min <= stats.p50 <= stats.p95 <= stats.p99 <= stats.max
        assert stats.min <= stats.mean <= stats.max


class TestFormatting:
    @pytest.mark.parametrize("ns,expected", [
        (0, "0ns"),
        (999, "999ns"),
        (1_500, "1.500µs"),
        (2_000_000, "2.000ms"),
        (3_500_000_000, "3.500s"),
    ])
    def test_format_duration(self, ns, expected):
        assert format_duration(ns) == expected

    def test_no_data_block(self):
        assert format_statistics("IPC", NO_DATA) == "IPC: No data"

    def test_summary_block(self):
        text = format_statistics("HTTP", summarize([1_000_000, 2_000_000, 3_000_000]))
        lines = text.splitlines()
        assert lines[0] == "HTTP Results:"
        assert lines[1].split() == ["Min:", "1.000ms"]
        assert lines[2].split() == ["Max:", "3.000ms"]
        assert lines[3].split() == ["Avg:", "2.000ms"]
        assert [line.split()[0] for line in lines[4:]] == ["P50:", "P95:", "P99:"]
