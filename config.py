import logging

# General
LOG_LEVEL = logging.INFO  # DEBUG for more verbosity
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(filename)s:%(lineno)d - %(message)s'
LOG_FILE = None  # e.g. "latency_bench.log"; None logs to stderr only

# HTTP Echo Service Config
HTTP_SERVICE_HOST = '0.0.0.0'
HTTP_SERVICE_PORT = 3000
HTTP_BASE_URL = 'http://http-service:3000'  # Where the client reaches the HTTP service

# IPC Echo Service Config
IPC_SOCKET_PATH = '/tmp/ipc-service.sock'
IPC_READ_LIMIT_BYTES = 64 * 1024  # Longest accepted request line

# Benchmark Config
BENCHMARK_REQUEST_COUNT = 100
BENCHMARK_PROGRESS_EVERY = 10  # Log progress every N requests
COMPARE_STARTUP_DELAY_SECONDS = 2.0  # Give the services time to come up before comparing
