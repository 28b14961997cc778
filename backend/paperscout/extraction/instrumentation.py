"""
OpenTelemetry instrumentation for extraction passes.
"""

from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from paperscout.configs.app_configs import ENABLE_EXTRACTION_TRACING
from paperscout.configs.app_configs import OTEL_ENVIRONMENT
from paperscout.configs.app_configs import OTEL_EXPORTER_OTLP_ENDPOINT
from paperscout.configs.app_configs import OTEL_SERVICE_NAME
from paperscout.configs.app_configs import OTEL_SERVICE_VERSION
from paperscout.utils.logger import setup_logger

logger = setup_logger()

_tracing_configured = False


def setup_tracing(
    service_name: str = OTEL_SERVICE_NAME,
    service_version: str = OTEL_SERVICE_VERSION,
    environment: str = OTEL_ENVIRONMENT,
    otlp_endpoint: Optional[str] = OTEL_EXPORTER_OTLP_ENDPOINT,
    enable_tracing: bool = ENABLE_EXTRACTION_TRACING,
) -> bool:
    """
    Set up OpenTelemetry tracing for extraction passes.

    Args:
        service_name: Name of the service for tracing
        service_version: Version of the service
        environment: Environment (development, staging, production)
        otlp_endpoint: OTLP exporter endpoint (e.g., 'localhost:4317')
        enable_tracing: Whether to enable tracing

    Returns:
        True if a tracer provider was installed
    """
    global _tracing_configured

    if not enable_tracing:
        logger.info("Extraction tracing is disabled")
        return False

    if _tracing_configured:
        return True

    if not otlp_endpoint:
        logger.info(
            "No OTLP endpoint specified. Spans will be created but not exported. "
            "Set OTEL_EXPORTER_OTLP_ENDPOINT to enable."
        )
        return False

    try:
        resource = Resource.create({
            "service.name": service_name,
            "service.version": service_version,
            "environment": environment,
        })
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
        trace.set_tracer_provider(provider)
        _tracing_configured = True

        logger.info(
            f"Extraction tracing enabled. Exporting traces to {otlp_endpoint}. "
            f"Service: {service_name} v{service_version} ({environment})"
        )
        return True

    except Exception as e:
        logger.error(f"Failed to set up extraction tracing: {e}")
        return False


def get_tracer(name: str = "paperscout.extraction") -> trace.Tracer:
    """
    Get a tracer instance for manual instrumentation.

    Without a configured provider this returns a no-op tracer.
    """
    return trace.get_tracer(name)
