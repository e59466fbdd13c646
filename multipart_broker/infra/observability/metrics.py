from prometheus_client import Counter, Histogram, make_asgi_app

# Route templates (e.g. /s3/{upload_id}) keep label cardinality low.
REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

LATENCY = Histogram(
    "http_request_duration_seconds",
    "Request latency in seconds",
    ["method", "route"],
)

MULTIPART_OPERATIONS = Counter(
    "multipart_operations_total",
    "Storage operations issued by the multipart upload handler",
    ["operation", "outcome"],
)

metrics_app = make_asgi_app()
