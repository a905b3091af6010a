"""collectorstack: dependency-ordered provisioning of an OpenTelemetry collector pipeline."""

__version__ = "0.1.0"
