class LatencyBenchError(Exception):
    """Base class for every failure raised by the echo services and the benchmark client."""


class ConnectionFailure(LatencyBenchError):
    """The transport could not be established (refused, missing socket, unreachable host)."""


class MalformedPayload(LatencyBenchError):
    """A received message is not a valid encoding of the expected structure."""


class EndpointSetupFailure(LatencyBenchError):
    """A service could not bind or listen on its endpoint."""


class IOFailure(LatencyBenchError):
    """A read or write failed mid-stream, other than a clean end of stream."""
