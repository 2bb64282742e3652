from .telemetry import TelemetryRecord, TrendBucket

__all__ = ["TelemetryRecord", "TrendBucket"]
