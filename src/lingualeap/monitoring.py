"""Monitoring configuration for the data layer."""
from prometheus_client import Counter, start_http_server

# Store metrics
progress_writes = Counter(
    "lingualeap_progress_writes_total",
    "Total number of progress records created or updated",
    ["store", "operation"],
)

uniqueness_violations = Counter(
    "lingualeap_uniqueness_violations_total",
    "Total number of inserts rejected by the (user, item) unique index",
    ["store"],
)

# Database metrics
db_errors = Counter(
    "lingualeap_db_errors_total",
    "Total number of database errors",
    ["error_type"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
