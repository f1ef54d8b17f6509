"""
Webhook Publisher - Forwards status updates to an HTTP endpoint.

The outbound counterpart of an in-process EventBus subscription: each
StatusUpdate is POSTed as JSON. Delivery is fire-and-forget; transport
errors are logged and dropped so a dead endpoint can never stall a run.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field

import httpx

from orchestration.runtime.event_bus import StatusUpdate

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Orchestration-Signature"


def sign_body(secret: str, body: bytes) -> str:
    """HMAC-SHA256 signature of a request body, as ``sha256=<hex>``."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


@dataclass
class WebhookPublisherConfig:
    """Configuration for the webhook publisher."""

    url: str
    secret: str | None = None  # For HMAC-SHA256 request signing
    timeout_seconds: float = 5.0
    headers: dict[str, str] = field(default_factory=dict)


class WebhookPublisher:
    """
    Publisher that POSTs every update to a webhook URL.

    Lifecycle:
        publisher = WebhookPublisher(WebhookPublisherConfig(url="http://localhost:9000/status"))
        coordinator = RunCoordinator(executor=my_executor, publisher=publisher)
        ...
        await publisher.aclose()
    """

    def __init__(
        self,
        config: WebhookPublisherConfig,
        client: httpx.AsyncClient | None = None,
    ):
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_client = client is None
        self._failures = 0

    @property
    def failure_count(self) -> int:
        """Number of updates that could not be delivered."""
        return self._failures

    async def publish(self, update: StatusUpdate) -> None:
        body = json.dumps(update.to_dict()).encode()
        headers = {"Content-Type": "application/json", **self._config.headers}
        if self._config.secret:
            headers[SIGNATURE_HEADER] = sign_body(self._config.secret, body)

        try:
            response = await self._client.post(self._config.url, content=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._failures += 1
            logger.warning(f"Webhook delivery of {update.type} for run {update.run_id} failed: {e}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
