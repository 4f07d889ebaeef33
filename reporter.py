import asyncio
import logging
from typing import Callable, NamedTuple, Optional, Union

from benchmark_driver import HttpTransport, IpcTransport, run_benchmark
from metrics import (NO_DATA, EmptySampleMarker, LatencyStatistics, format_statistics,
                     summarize)
from config import BENCHMARK_PROGRESS_EVERY, COMPARE_STARTUP_DELAY_SECONDS

logger = logging.getLogger(__name__)

Summary = Union[LatencyStatistics, EmptySampleMarker]


class ComparisonReport(NamedTuple):
    http: Summary
    ipc: Summary
    verdict: Optional[str]


def speed_ratio(mean_a: int, mean_b: int) -> float:
    slower, faster = max(mean_a, mean_b), min(mean_a, mean_b)
    if faster == 0:
        return 1.0 if slower == 0 else float('inf')
    return slower / faster


def verdict(name_a: str, stats_a: Summary, name_b: str, stats_b: Summary) -> Optional[str]:
    """Which transport won and by how much, or None when either run has no data."""
    if stats_a is NO_DATA or stats_b is NO_DATA:
        return None
    ratio = speed_ratio(stats_a.mean, stats_b.mean)
    # Ties go to A
    faster = name_b if stats_a.mean > stats_b.mean else name_a
    return f"{faster} is {ratio:.2f}x faster"


async def compare(base_url: str, socket_path: str, request_count: int,
                  startup_delay: float = COMPARE_STARTUP_DELAY_SECONDS,
                  progress_every: int = BENCHMARK_PROGRESS_EVERY,
                  emit: Callable[[str], None] = print,
                  http_transport: Optional[HttpTransport] = None,
                  ipc_transport: Optional[IpcTransport] = None) -> ComparisonReport:
    """Benchmark HTTP, then IPC, printing each summary as soon as its run completes.

    A failed run propagates before anything is printed for it, and no
    comparison is produced.
    """
    logger.info(f"Running comparison test: {request_count} requests per transport")
    if startup_delay > 0:
        await asyncio.sleep(startup_delay)

    http_transport = http_transport or HttpTransport(base_url)
    ipc_transport = ipc_transport or IpcTransport(socket_path)

    # The two runs must never overlap
    http_stats = summarize(await run_benchmark(http_transport, request_count, progress_every))
    emit(format_statistics(http_transport.name, http_stats))

    ipc_stats = summarize(await run_benchmark(ipc_transport, request_count, progress_every))
    emit(format_statistics(ipc_transport.name, ipc_stats))

    report = ComparisonReport(
        http=http_stats,
        ipc=ipc_stats,
        verdict=verdict(http_transport.name, http_stats, ipc_transport.name, ipc_stats),
    )
    if report.verdict is not None:
        emit(f"Comparison: {report.verdict}")
    return report


def format_report(report: ComparisonReport) -> str:
    blocks = [
        format_statistics("HTTP", report.http),
        format_statistics("IPC", report.ipc),
    ]
    if report.verdict is not None:
        blocks.append(f"Comparison: {report.verdict}")
    return "\n\n".join(blocks)
