from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
import functools

# Naive Bayes scoring is pure arithmetic over a few dicts, so latencies are
# expected well under a millisecond for small models.
MODEL_OPERATION_BUCKETS = (0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 5)


class MetricsManager:
    """
    Prometheus metrics of the classification service.

    Attributes
    ----------
    registry : CollectorRegistry
        Registry holding every metric below. Isolated per manager so tests
        can inspect a clean state.
    requests : Counter
        HTTP requests served, labeled by route, method and status code.
    request_time : Histogram
        End-to-end request latency in seconds, labeled by route and method.
    payload_size : Histogram
        Request body sizes in bytes.
    train_time : Histogram
        Time spent training and persisting a model, in seconds.
    predict_time : Histogram
        Time spent scoring an observation, in seconds.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry: CollectorRegistry = registry or CollectorRegistry()

        self.requests = Counter(
            "api_requests_total",
            "Total requests",
            ["route", "method", "status"],
            registry=self.registry,
        )

        self.request_time: Histogram = Histogram(
            "request_latency_seconds",
            "End-to-end request latency",
            ["route", "method"],
            buckets=(0.005, 0.01, 0.02, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
            registry=self.registry,
        )

        self.payload_size: Histogram = Histogram(
            "request_payload_bytes",
            "Payload size in bytes",
            buckets=(128, 512, 1024, 4096, 16384, 65536, 262144, 1048576),
            registry=self.registry,
        )

        # Includes writing the model file, which dominates for large models.
        self.train_time: Histogram = Histogram(
            "model_train_seconds",
            "Latency of model training including persistence",
            buckets=MODEL_OPERATION_BUCKETS,
            registry=self.registry,
        )

        self.predict_time: Histogram = Histogram(
            "model_predict_seconds",
            "Latency of model prediction",
            buckets=MODEL_OPERATION_BUCKETS,
            registry=self.registry,
        )

    def render(self) -> bytes:
        """Render all registered metrics in Prometheus' text exposition format."""
        return generate_latest(self.registry)


@functools.cache
def get_metrics_manager() -> MetricsManager:
    """
    Retrieve a cached global instance of the MetricsManager.

    Memoized so that all routes share one Prometheus registry unless a test
    overrides this dependency.
    """
    return MetricsManager()
