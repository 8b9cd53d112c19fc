from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

BOOKING_ADMISSIONS = Counter(
    "booking_admissions_total",
    "Booking admission decisions by outcome",
    ["outcome"],
)

CAPACITY_WRITE_CONFLICTS = Counter(
    "capacity_write_conflicts_total",
    "Conditional slot writes rejected because the optimistic token was stale",
    ["operation"],
)

BOOKING_TRANSITIONS = Counter(
    "booking_transitions_total",
    "Booking lifecycle transitions applied",
    ["to_status"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
