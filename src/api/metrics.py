from prometheus_client import Counter, Histogram, Gauge, REGISTRY


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # already registered by an earlier import of this module
        return REGISTRY._names_to_collectors[name]


REQUESTS_TOTAL = get_or_create_metric(
    "cogniflow_requests_total",
    "Total requests",
    Counter,
    labelnames=["endpoint", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "cogniflow_request_latency_seconds",
    "Request latency",
    Histogram,
    labelnames=["endpoint"],
)

ITEMS_CLASSIFIED_TOTAL = get_or_create_metric(
    "cogniflow_items_classified_total",
    "Items created from free-text intake, by type",
    Counter,
    labelnames=["type"],
)

CLASSIFICATION_FALLBACK_TOTAL = get_or_create_metric(
    "cogniflow_classification_fallback_total",
    "Intake classifications that fell back to a default task",
    Counter,
)

ASSIST_TASKS_TOTAL = get_or_create_metric(
    "cogniflow_assist_tasks_total",
    "Assist tasks reaching a terminal state",
    Counter,
    labelnames=["status"],
)

ASSIST_QUEUE_DEPTH = get_or_create_metric(
    "cogniflow_assist_queue_depth", "Pending assist tasks", Gauge
)
