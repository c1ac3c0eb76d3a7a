"""Shared TelemetryService instance for the HTTP and MQTT adapters.

Module-level global with set/get functions so API modules do not import
main.py.
"""

from ..services.telemetry import TelemetryService

_service: TelemetryService | None = None


def set_telemetry_service(service: TelemetryService) -> None:
    global _service
    _service = service


def get_telemetry_service() -> TelemetryService:
    if _service is None:
        raise RuntimeError("TelemetryService not initialised; is the app lifespan running?")
    return _service
