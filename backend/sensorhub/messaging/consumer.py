"""MQTT message handler: one JSON reading per message, fire-and-forget.

Malformed payloads and failed creates are logged and dropped.  Nothing is
sent back to the broker and nothing is retried.
"""

import json
import logging
from typing import Any

from ..config import settings
from ..deadline import Deadline
from ..errors import TelemetryError
from ..services.telemetry import TelemetryService

logger = logging.getLogger(__name__)

_PAYLOAD_LOG_LIMIT = 200


class SensorConsumer:
    """Feeds readings from the subscribed topic into TelemetryService.create."""

    def __init__(self, service: TelemetryService, timeout: float = settings.query_timeout_sec):
        self.service = service
        self.timeout = timeout

    def handle_message(self, _client: Any, _userdata: Any, msg: Any) -> None:
        """paho-mqtt on_message callback."""
        raw = msg.payload
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(
                "MQTT: invalid JSON on %s: %s (payload=%r)",
                msg.topic, e, raw[:_PAYLOAD_LOG_LIMIT],
            )
            return

        fields = payload if isinstance(payload, dict) else {}
        try:
            resp = self.service.create(payload, deadline=Deadline(self.timeout))
        except TelemetryError as e:
            logger.error(
                "MQTT: create failed on %s (id1=%s id2=%s sensor_type=%s "
                "sensor_value=%s timestamp=%s): %s",
                msg.topic, fields.get("id1"), fields.get("id2"),
                fields.get("sensor_type"), fields.get("sensor_value"),
                fields.get("timestamp"), e.message,
            )
            return
        except Exception:
            # Raising into paho would stop its network loop
            logger.exception(
                "MQTT: unexpected error handling message on %s (id1=%s id2=%s sensor_type=%s)",
                msg.topic, fields.get("id1"), fields.get("id2"), fields.get("sensor_type"),
            )
            return

        record = resp.sensor_records[0]
        logger.info(
            "MQTT: sensor data created on %s (id1=%s id2=%s sensor_type=%s "
            "sensor_value=%s timestamp=%s)",
            msg.topic, resp.id1, resp.id2, resp.sensor_type,
            record.sensor_value, record.timestamp.isoformat(),
        )
