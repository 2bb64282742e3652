from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv
import os

load_dotenv()

DEFAULT_DEVICES = (
    "Kubos01",
    "Kubos02",
    "IBEX",
    "CST-100 Starliner",
    "Orion MPCV",
    "Dream Chaser CRS-2",
    "ISRO OV",
    "Skylon D1",
    "XCOR Lynx",
    "SIRIUS-1",
    "ISS (ZARYA)",
)


def _devices_from_env() -> tuple[str, ...]:
    raw = os.getenv("TELEMETRY_DEVICES")
    if not raw:
        return DEFAULT_DEVICES
    return tuple(name.strip() for name in raw.split(",") if name.strip())


@dataclass(frozen=True)
class Settings:
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    redis_max_connections: int = int(os.getenv("REDIS_MAX_CONNECTIONS", "200"))
    key_prefix: str = os.getenv("TELEMETRY_KEY_PREFIX", "telemetry")
    max_records: int = int(os.getenv("TELEMETRY_MAX_RECORDS", "9999"))
    devices: tuple[str, ...] = field(default_factory=_devices_from_env)
    ingest_concurrency: int = int(os.getenv("TELEMETRY_INGEST_CONCURRENCY", "5"))
    ingest_write_timeout: float = float(os.getenv("TELEMETRY_INGEST_WRITE_TIMEOUT", "30"))
    range_query_limit: int = int(os.getenv("TELEMETRY_RANGE_LIMIT", "10"))
    broadcast_send_timeout: float = float(os.getenv("TELEMETRY_BROADCAST_SEND_TIMEOUT", "5"))
    # generator ranges used for simulated bulk ingestion
    value_high: float = 400000.0
    value_low: float = -400000.0
    rate_high: float = 20.0
    rate_low: float = -20.0
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
