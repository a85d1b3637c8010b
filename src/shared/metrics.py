from opentelemetry import metrics
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource


def setup_metrics(app_name: str) -> MeterProvider:
    """Install the global meter provider (Prometheus pull + console push)."""
    resource = Resource.create({"service.name": app_name})

    readers = [
        PrometheusMetricReader(),
        PeriodicExportingMetricReader(ConsoleMetricExporter()),
    ]
    provider = MeterProvider(resource=resource, metric_readers=readers)

    metrics.set_meter_provider(provider)
    return provider
