"""
Delivery manager: sends alerts to the collection endpoint.

One POST per attempt. The alert id doubles as the Idempotency-Key header
so the endpoint can deduplicate re-deliveries (at-least-once, not
exactly-once).

Delivery never raises for network or endpoint problems: a failed attempt
becomes (or advances) a record in the DurableQueue and the caller gets a
FAILED outcome. Only StorageUnavailableError propagates, since the alert
could not be made durable.

Usage:
    >>> queue = DurableQueue("/var/lib/leakguard/failed_alerts")
    >>> with DeliveryManager("https://dlp.example.com/alerts", "dev-1", queue) as manager:
    ...     outcome = manager.deliver(alert)
"""

import logging
from typing import Dict, Optional

import httpx

from ..core.exceptions import (
    DeliveryError,
    DeliveryTimeoutError,
    EndpointRejectedError,
    NetworkError,
)
from ..core.types import Alert, DeliveryOutcome, QueuedAlertRecord
from ..logging_config import AuditLogger, get_audit_logger
from .queue import DurableQueue

logger = logging.getLogger(__name__)

USER_AGENT = "leakguard-agent"


class DeliveryManager:
    """
    Sends alerts with httpx and hands failures to the durable queue.

    Args:
        endpoint_url: Full URL that receives alert POSTs
        device_id: Identity of this monitor, sent as X-Device-Id
        queue: Durable queue for failed attempts
        client: Optional pre-built httpx.Client (e.g. with MockTransport)
        api_key: Optional bearer token from device registration
        timeout: Request timeout in seconds for the owned client
    """

    def __init__(
        self,
        endpoint_url: str,
        device_id: str,
        queue: DurableQueue,
        client: Optional[httpx.Client] = None,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        audit: Optional[AuditLogger] = None,
    ):
        self.endpoint_url = endpoint_url
        self.device_id = device_id
        self.queue = queue
        self.api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)
        self._audit = audit or get_audit_logger()

    def __enter__(self) -> "DeliveryManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _headers(self, alert: Alert) -> Dict[str, str]:
        headers = {
            "Idempotency-Key": alert.id,
            "X-Device-Id": self.device_id,
            "User-Agent": USER_AGENT,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _send(self, alert: Alert) -> None:
        """
        POST one alert.

        Raises:
            DeliveryTimeoutError: No answer within the timeout
            NetworkError: Connection failed or dropped
            EndpointRejectedError: Non-2xx response
        """
        try:
            response = self._client.post(
                self.endpoint_url,
                json=alert.to_dict(),
                headers=self._headers(alert),
            )
        except httpx.TimeoutException as e:
            raise DeliveryTimeoutError(
                f"Timed out delivering alert {alert.id}: {e}", url=self.endpoint_url
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(
                f"Network error delivering alert {alert.id}: {e}", url=self.endpoint_url
            ) from e

        if not response.is_success:
            raise EndpointRejectedError(
                f"Endpoint rejected alert {alert.id} with HTTP {response.status_code}",
                url=self.endpoint_url,
                status_code=response.status_code,
            )

    def deliver(self, alert: Alert) -> DeliveryOutcome:
        """
        Attempt delivery of an alert.

        On success any queued record for the alert is removed. On failure
        the alert is queued (attempt_count 1) or its record is advanced.

        Raises:
            StorageUnavailableError: The failed alert could not be persisted
        """
        try:
            self._send(alert)
        except DeliveryError as e:
            return self._handle_failure(alert, e)

        self.queue.ack(alert.id)
        logger.info(f"Delivered alert {alert.id} ({alert.rule_name} in {alert.file_path})")
        self._audit.alert_delivered(alert_id=alert.id, path=alert.file_path, rule=alert.rule_name)
        return DeliveryOutcome.success(alert.id)

    def retry(self, record: QueuedAlertRecord) -> DeliveryOutcome:
        """Re-deliver a queued record under its original alert id."""
        logger.debug(f"Retrying alert {record.alert_id} (attempt {record.attempt_count + 1})")
        return self.deliver(record.alert)

    def _handle_failure(self, alert: Alert, error: DeliveryError) -> DeliveryOutcome:
        reason = f"{type(error).__name__}: {error.message}"
        logger.warning(f"Delivery failed for alert {alert.id} ({alert.file_path}): {reason}")

        record = self.queue.record_failure(alert, reason)
        if self.queue.is_abandoned(record):
            self._audit.alert_abandoned(
                alert_id=alert.id, path=alert.file_path, rule=alert.rule_name,
                attempt_count=record.attempt_count, reason=reason,
            )
        else:
            self._audit.alert_queued(
                alert_id=alert.id, path=alert.file_path, rule=alert.rule_name,
                attempt_count=record.attempt_count, next_retry_at=record.next_retry_at,
            )
        return DeliveryOutcome.failure(alert.id, reason)
