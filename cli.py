import argparse
import asyncio
import logging
import sys

import config
from benchmark_driver import run_http, run_ipc
from errors import LatencyBenchError
from http_service import HttpEchoServer
from ipc_service import IpcEchoServer
from metrics import format_statistics, summarize
from reporter import compare

logger = logging.getLogger()  # Root logger


def setup_logging(level=config.LOG_LEVEL, log_file=config.LOG_FILE):
    handlers = [logging.StreamHandler()]  # stderr; stdout carries the report
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w'))

    logging.basicConfig(level=level, format=config.LOG_FORMAT, handlers=handlers, force=True)
    logger.debug(f"Logging setup complete. Log file: {log_file}")


async def _serve(server):
    try:
        await server.start()
        await server.serve_forever()
    finally:
        await server.stop()


async def _run_client(args) -> int:
    if args.command == "http":
        sample = await run_http(args.url, args.requests)
        print(format_statistics("HTTP", summarize(sample)))
    elif args.command == "ipc":
        sample = await run_ipc(args.socket_path, args.requests)
        print(format_statistics("IPC", summarize(sample)))
    else:
        await compare(args.url, args.socket_path, args.requests, startup_delay=args.startup_delay)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compare HTTP and Unix-socket IPC round-trip latency")
    parser.add_argument("--log-level", default=logging.getLevelName(config.LOG_LEVEL),
                        help="Log level (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--log-file", default=config.LOG_FILE, help="Also log to this file")
    sub = parser.add_subparsers(dest="command", required=True)

    http_service = sub.add_parser("http-service", help="Run the HTTP echo service")
    http_service.add_argument("--host", default=config.HTTP_SERVICE_HOST)
    http_service.add_argument("--port", type=int, default=config.HTTP_SERVICE_PORT)

    ipc_service = sub.add_parser("ipc-service", help="Run the Unix-socket echo service")
    ipc_service.add_argument("-s", "--socket-path", default=config.IPC_SOCKET_PATH)

    def add_requests(p):
        p.add_argument("-r", "--requests", type=int, default=config.BENCHMARK_REQUEST_COUNT,
                       help="Round trips per transport")

    http = sub.add_parser("http", help="Benchmark the HTTP echo service")
    http.add_argument("-u", "--url", default=config.HTTP_BASE_URL)
    add_requests(http)

    ipc = sub.add_parser("ipc", help="Benchmark the Unix-socket echo service")
    ipc.add_argument("-s", "--socket-path", default=config.IPC_SOCKET_PATH)
    add_requests(ipc)

    cmp_parser = sub.add_parser("compare", help="Benchmark HTTP, then IPC, and compare")
    cmp_parser.add_argument("-u", "--url", default=config.HTTP_BASE_URL)
    cmp_parser.add_argument("-s", "--socket-path", default=config.IPC_SOCKET_PATH)
    cmp_parser.add_argument("--startup-delay", type=float, default=config.COMPARE_STARTUP_DELAY_SECONDS,
                            help="Seconds to wait for the services before the first run")
    add_requests(cmp_parser)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level.upper(), log_file=args.log_file)

    if getattr(args, "requests", 0) < 0:
        logger.error("--requests must be non-negative")
        return 2

    try:
        if args.command == "http-service":
            asyncio.run(_serve(HttpEchoServer(args.host, args.port)))
        elif args.command == "ipc-service":
            asyncio.run(_serve(IpcEchoServer(args.socket_path)))
        else:
            return asyncio.run(_run_client(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user (Ctrl+C). Shutting down...")
    except LatencyBenchError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
