"""Client for the image-generation workflow webhook.

The workflow receives the prompt parameters as a flat JSON object with
title-cased keys and answers, once the image is rendered, with a list of
result items::

    [{"Status": "Success", "Image": "https://.../image.png"}]

The image is written to the Baserow table by the workflow itself; the URL in
the response is only used to tell when the file is reachable.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from promptgallery.core.errors import WebhookError
from promptgallery.core.models import GenerationRequest, WebhookResult

logger = logging.getLogger(__name__)

SUCCESS_STATUS = "Success"


def build_webhook_payload(request: GenerationRequest) -> dict[str, str]:
    """Build the JSON body expected by the workflow.

    All values are sent as strings.  ``Width`` and ``Height`` are only sent
    when the form supplied them so older workflows keep their defaults.
    """
    payload = {
        "Prompt": request.prompt,
        "Image Count": str(request.image_count),
        "Seed": request.seed or "0",
        "Category": request.category,
    }
    if request.width is not None:
        payload["Width"] = str(request.width)
    if request.height is not None:
        payload["Height"] = str(request.height)
    return payload


def parse_webhook_response(data: Any) -> WebhookResult:
    """Extract the first successful item from a webhook response.

    Raises:
        WebhookError: If the response is not a non-empty list whose first item
            reports ``Status == "Success"`` with an ``Image`` URL.
    """
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise WebhookError("Webhook returned an unexpected response", 502, details=repr(data))

    first = data[0]
    if first.get("Status") != SUCCESS_STATUS:
        raise WebhookError(
            "Webhook did not report success", 502, details=str(first.get("Status"))
        )
    image_url = first.get("Image")
    if not image_url:
        raise WebhookError("Webhook response is missing the image URL", 502)
    return WebhookResult(status=first["Status"], image_url=str(image_url))


class WebhookClient:
    """POST prompt parameters to the generation workflow.

    Args:
        url: Webhook URL.
        client: Shared ``httpx.AsyncClient`` used for the call.
    """

    def __init__(self, url: str, client: httpx.AsyncClient):
        self.url = url
        self._client = client

    async def trigger(self, request: GenerationRequest) -> WebhookResult:
        """Trigger a generation and wait for the workflow's answer.

        Returns:
            The parsed :class:`WebhookResult`.

        Raises:
            WebhookError: On transport failure, non-2xx status, undecodable
                body, or a response that does not report success.
        """
        payload = build_webhook_payload(request)
        logger.info(f"Sending webhook data: {payload}")

        try:
            response = await self._client.post(
                self.url,
                json=payload,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Webhook call failed: {e}")
            raise WebhookError("Webhook call failed", 502, details=str(e)) from e

        logger.info(f"Webhook response status: {response.status_code}")
        if not response.is_success:
            logger.error(
                f"Webhook call failed: {response.status_code} "
                f"{response.reason_phrase}: {response.text}"
            )
            raise WebhookError(
                "Webhook call failed",
                response.status_code,
                details=response.text,
                upstream=True,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise WebhookError("Webhook returned invalid JSON", 502, details=response.text) from e

        result = parse_webhook_response(data)
        logger.info(f"Webhook success response: {result.image_url}")
        return result
