from enum import Enum
from typing import Iterable, Iterator, List, NamedTuple, Tuple, Union

PERCENTILES = (50, 95, 99)


class LatencyStatistics(NamedTuple):
    # All durations are integer nanoseconds
    min: int
    max: int
    mean: int
    p50: int
    p95: int
    p99: int
    count: int


class EmptySampleMarker(Enum):
    NO_DATA = "No data"


NO_DATA = EmptySampleMarker.NO_DATA


class LatencySample:
    """Round-trip durations (ns) from one benchmark run, in the order the requests were issued."""

    def __init__(self):
        self._values: List[int] = []
        self._frozen = False

    def record(self, elapsed_ns: int):
        if self._frozen:
            raise RuntimeError("LatencySample is frozen; the run that produced it has completed")
        if elapsed_ns < 0:
            raise ValueError(f"Round-trip measurement must be non-negative, got {elapsed_ns}")
        self._values.append(elapsed_ns)

    def freeze(self) -> "LatencySample":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def values(self) -> Tuple[int, ...]:
        return tuple(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[int]:
        return iter(self._values)

    def __repr__(self) -> str:
        return f"LatencySample(count={len(self._values)}, frozen={self._frozen})"


def percentile_index(count: int, p: int) -> int:
    # Nearest rank: floor(count * p / 100), clamped to the last element
    return min(count * p // 100, count - 1)


def summarize(sample: Iterable[int]) -> Union[LatencyStatistics, EmptySampleMarker]:
    sorted_latencies = sorted(sample)
    count = len(sorted_latencies)
    if count == 0:
        return NO_DATA

    p50, p95, p99 = (sorted_latencies[percentile_index(count, p)] for p in PERCENTILES)
    return LatencyStatistics(
        min=sorted_latencies[0],
        max=sorted_latencies[-1],
        mean=sum(sorted_latencies) // count,  # non-negative, so floor == truncation
        p50=p50,
        p95=p95,
        p99=p99,
        count=count,
    )


def format_duration(ns: int) -> str:
    if ns < 1_000:
        return f"{ns}ns"
    if ns < 1_000_000:
        return f"{ns / 1_000:.3f}µs"
    if ns < 1_000_000_000:
        return f"{ns / 1_000_000:.3f}ms"
    return f"{ns / 1_000_000_000:.3f}s"


def format_statistics(name: str, stats: Union[LatencyStatistics, EmptySampleMarker]) -> str:
    if stats is NO_DATA:
        return f"{name}: {NO_DATA.value}"
    lines = [
        f"{name} Results:",
        f"  Min:    {format_duration(stats.min)}",
        f"  Max:    {format_duration(stats.max)}",
        f"  Avg:    {format_duration(stats.mean)}",
        f"  P50:    {format_duration(stats.p50)}",
        f"  P95:    {format_duration(stats.p95)}",
        f"  P99:    {format_duration(stats.p99)}",
    ]
    return "\n".join(lines)
