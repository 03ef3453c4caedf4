"""Replicate predictions API client.

Provides:
- Async client for api.replicate.com (create prediction, get prediction)
- Completion polling for long-running predictions
- Output URL extraction

Usage:
    from canvaspipe.services.replicate_client import get_replicate_client

    client = get_replicate_client()
    prediction = await client.run(model="black-forest-labs/flux-schnell", input={...})
    url = first_output_url(prediction)
"""

import logging
from typing import Any, Optional

import httpx
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from canvaspipe.config import settings
from canvaspipe.errors import ProviderRequestError

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})


def _is_pending(prediction: dict) -> bool:
    return prediction.get("status") not in _TERMINAL_STATUSES


def first_output_url(prediction: dict) -> str:
    """Extract the first output URL from a finished prediction.

    Replicate returns either a single URL string or a list of URLs depending
    on the model.
    """
    output = prediction.get("output")
    if isinstance(output, list):
        output = output[0] if output else None
    if not output or not isinstance(output, str):
        raise ProviderRequestError(f"No output received from prediction {prediction.get('id')}")
    return output


class ReplicateClient:
    """Async client for the Replicate HTTP API.

    Prediction creation is never retried (it is not idempotent); status
    polls are retried on transport errors.
    """

    def __init__(
        self,
        api_token: Optional[str],
        base_url: str = "https://api.replicate.com/v1",
        poll_interval: float = 1.0,
        poll_max_attempts: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if not self.api_token:
            raise ProviderRequestError(
                "Replicate API token not configured. Set CANVASPIPE_PROVIDERS__REPLICATE_API_TOKEN "
                "or providers.replicate_api_token in config.yaml."
            )
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.api_token}"},
                follow_redirects=True,
                timeout=httpx.Timeout(120.0, connect=30.0),
                transport=self._transport,
            )
        return self._client

    async def create_prediction(
        self,
        input: dict[str, Any],
        *,
        model: Optional[str] = None,
        version: Optional[str] = None,
    ) -> dict:
        """Submit a prediction by model name or by version hash."""
        if model:
            path = f"/models/{model}/predictions"
            body: dict[str, Any] = {"input": input}
        elif version:
            path = "/predictions"
            body = {"version": version, "input": input}
        else:
            raise ValueError("Either model or version is required")

        logger.info("POST %s%s", self.base_url, path)
        try:
            response = await self.client.post(path, json=body)
        except httpx.HTTPError as e:
            raise ProviderRequestError(f"Replicate request failed: {e}") from e
        logger.info("  create response: HTTP %d", response.status_code)
        if response.status_code >= 400:
            raise ProviderRequestError(
                f"API request failed: HTTP {response.status_code} {response.text[:200]}"
            )
        return response.json()

    async def get_prediction(self, prediction_id: str) -> dict:
        response = await self.client.get(f"/predictions/{prediction_id}")
        logger.debug("GET /predictions/%s: HTTP %d", prediction_id, response.status_code)
        if response.status_code >= 400:
            raise ProviderRequestError(
                f"Failed to fetch prediction: HTTP {response.status_code}"
            )
        return response.json()

    async def wait_for_prediction(self, prediction: dict) -> dict:
        """Poll until the prediction reaches a terminal status.

        Raises:
            ProviderRequestError: If the prediction failed, was canceled or timed out.
        """
        prediction_id = prediction["id"]

        @retry(
            stop=stop_after_attempt(self.poll_max_attempts),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(_is_pending) | retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        async def _poll() -> dict:
            return await self.get_prediction(prediction_id)

        if _is_pending(prediction):
            try:
                prediction = await _poll()
            except RetryError as e:
                raise ProviderRequestError(f"Prediction {prediction_id} timed out") from e
            except httpx.TransportError as e:
                raise ProviderRequestError(f"Prediction {prediction_id} polling failed: {e}") from e

        status = prediction.get("status")
        if status == "failed":
            raise ProviderRequestError(f"Prediction failed: {prediction.get('error')}")
        if status == "canceled":
            raise ProviderRequestError(f"Prediction {prediction_id} was canceled")
        return prediction

    async def run(
        self,
        input: dict[str, Any],
        *,
        model: Optional[str] = None,
        version: Optional[str] = None,
    ) -> dict:
        prediction = await self.create_prediction(input, model=model, version=version)
        return await self.wait_for_prediction(prediction)

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None


# ---------------------------------------------------------------------------
# Module-level lazy singleton
# ---------------------------------------------------------------------------

_replicate_client: Optional[ReplicateClient] = None


def get_replicate_client() -> ReplicateClient:
    """Get or create the singleton ReplicateClient from settings."""
    global _replicate_client
    if _replicate_client is None:
        cfg = settings.providers
        _replicate_client = ReplicateClient(
            api_token=cfg.replicate_api_token,
            base_url=cfg.replicate_base_url,
            poll_interval=cfg.poll_interval,
            poll_max_attempts=cfg.poll_max_attempts,
        )
    return _replicate_client


async def close_replicate_client() -> None:
    """Close the singleton ReplicateClient (for app shutdown)."""
    global _replicate_client
    if _replicate_client is not None:
        await _replicate_client.close()
        _replicate_client = None
