"""
Client for the reasoning service (OpenAI chat completions over httpx).

The client only transports a fully-built request and hands back the message
text. Prompt construction and response parsing live in the prediction
generator.
"""

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from stockpulse.config import settings
from stockpulse.utils.errors import GenerationFailedError, MissingSecretError


class OpenAIReasoningClient:
    """Synchronous chat-completions client with a bounded timeout and no retries."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        if not self.api_key:
            raise MissingSecretError("OPENAI_API_KEY environment variable not set")
        self.base_url = (base_url or settings.openai_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.prediction_timeout_seconds

    def complete(self, request: Dict[str, Any]) -> str:
        """
        Send one chat-completions request and return the first choice's content.

        Raises:
            GenerationFailedError: on timeout, transport error, non-2xx status
                or a response without message content
        """
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, headers=headers, json=request)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Reasoning service timed out after {self.timeout}s")
            raise GenerationFailedError(
                "Prediction request timed out",
                details={"timeout_seconds": self.timeout},
            ) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Reasoning service returned {e.response.status_code}: {e.response.text[:500]}")
            raise GenerationFailedError(
                "Reasoning service returned an error",
                details={"status_code": e.response.status_code},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Reasoning service call failed: {e}")
            raise GenerationFailedError(f"Reasoning service call failed: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationFailedError("Reasoning service response had no message content") from e

        if not content:
            raise GenerationFailedError("Reasoning service returned empty content")

        usage = data.get("usage") or {}
        logger.info(
            f"Reasoning service responded: model={data.get('model')}, "
            f"tokens={usage.get('total_tokens')}"
        )
        return content
