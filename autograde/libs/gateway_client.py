"""HTTP client for the remote AI grading gateway."""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from autograde.libs.config_loader import ConfigType, get_config

LOG = logging.getLogger(__name__)

# Fix up logging level for httpx to WARNING to reduce noise
logging.getLogger("httpx").setLevel(logging.WARNING)

DEFAULT_PROVIDER = "gateway"
DEFAULT_PLUGIN = "lms_autograde"
DEFAULT_TIMEOUT = 60.0


class GatewayError(Exception):
    """Base class for failures talking to the grading gateway."""


class NotReadyError(GatewayError):
    """No gateway key is configured; AI grading is unavailable."""


class TransportError(GatewayError):
    """The request never produced a usable HTTP exchange (timeout, refused, TLS...)."""


class InvalidResponseError(GatewayError):
    """The gateway answered, but with something other than a usable JSON object."""


class Quality(str, Enum):
    """Cost/latency/accuracy tier forwarded opaquely to the gateway."""
    FAST = "fast"
    BALANCED = "balanced"
    BEST = "best"


@dataclass(frozen=True)
class GatewayResponse:
    """Provider name plus the raw content returned for an operation."""
    provider: str
    content: Any


def decode_json_content(content: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize gateway content into a dict.

    Content may arrive as a JSON-encoded string or as an already decoded value.
    Returns None when it is neither a JSON object nor a string holding one.
    """
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except json.JSONDecodeError:
            return None
    if isinstance(content, dict):
        return content
    return None


class GatewayClient:
    """Stateless client for the gateway's single ``/grade`` endpoint."""

    def __init__(self, configs: ConfigType, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize the client.

        Args:
            configs: Configuration dictionary (reads the ``gateway`` section)
            transport: Optional httpx transport, mainly for tests
        """
        self.url = str(get_config("gateway.url", configs, default="")).rstrip("/")
        self.key = str(get_config("gateway.key", configs, default="") or "").strip()
        self.timeout = float(get_config("gateway.timeout", configs, default=DEFAULT_TIMEOUT))
        self.plugin = str(get_config("gateway.plugin", configs, default=DEFAULT_PLUGIN))
        self.transport = transport

    def is_ready(self) -> bool:
        """Whether a gateway key is configured."""
        return self.key != ""

    @property
    def endpoint(self) -> str:
        return f"{self.url}/grade"

    def grade(self, operation: str, payload: Dict[str, Any],
              quality: Quality = Quality.BALANCED) -> GatewayResponse:
        """
        Send a grading operation to the gateway.

        Args:
            operation: Gateway operation name (e.g. ``grade_text``)
            payload: Operation-specific payload
            quality: Quality tier

        Returns:
            GatewayResponse with the provider name and decoded content

        Raises:
            NotReadyError: If no key is configured (no request is made)
            TransportError: If the request fails at the transport level
            InvalidResponseError: If the body is not a JSON object or reports an error
        """
        if not self.is_ready():
            raise NotReadyError("AI gateway is not configured (missing gateway.key)")

        request = {
            "operation": operation,
            "quality": Quality(quality).value,
            "payload": payload,
            "plugin": self.plugin,
        }
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self.key}",
            "X-Plugin": self.plugin,
        }

        LOG.debug("Calling gateway operation %s at %s", operation, self.endpoint)
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.endpoint, content=json.dumps(request), headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"Gateway request failed: {e}") from e

        try:
            decoded = json.loads(response.text)
        except json.JSONDecodeError as e:
            if response.status_code >= 400:
                raise TransportError(
                    f"Gateway returned HTTP {response.status_code}"
                ) from e
            raise InvalidResponseError("Gateway response was not valid JSON") from e

        if not isinstance(decoded, dict):
            raise InvalidResponseError("Gateway response was not a JSON object")

        if decoded.get("error"):
            raise InvalidResponseError(f"Gateway rejected request: {decoded['error']}")

        if decoded.get("content") is not None:
            content = decoded["content"]
        elif decoded.get("result") is not None:
            content = decoded["result"]
        else:
            content = decoded

        provider = str(decoded.get("provider") or "").strip() or DEFAULT_PROVIDER

        return GatewayResponse(provider=provider, content=content)
