from typing import Optional

import httpx

from wrapbot.config import settings
from wrapbot.logging_config import get_logger
from wrapbot.schemas.processor import ProcessorRequest, ProcessorResponse
from wrapbot.services.errors import ProcessorError

logger = get_logger("processor_client")


class ProcessorClient:
    """Client for the n8n workflow that re-colours the vehicle image."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url or settings.n8n_webhook_url
        self.timeout_seconds = timeout_seconds or settings.processor_timeout_seconds
        self._transport = transport

    async def process(self, request: ProcessorRequest) -> ProcessorResponse:
        """POST the job and normalize the reply. Raises ProcessorError."""
        if not self.webhook_url:
            raise ProcessorError("Processor webhook URL is not configured")

        logger.info(
            "Sending job to processor",
            extra={
                "context": {
                    "chat_id": request.chat_id,
                    "color": request.selected_color,
                    "texture": request.selected_texture,
                }
            },
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json=request.to_payload())
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Processor timed out: {e}")
            raise ProcessorError("Processing timed out. The image may still be processing.") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(
                "Processor returned error status",
                extra={"context": {"status": status, "body": e.response.text[:500]}},
            )
            raise ProcessorError(f"Processor error: {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.error(f"Processor request failed: {e}")
            raise ProcessorError(f"Processor request failed: {e}") from e
        except ValueError as e:
            logger.error(f"Processor returned invalid JSON: {e}")
            raise ProcessorError("Processor returned an unreadable response") from e

        result = ProcessorResponse.from_payload(data)
        logger.info(
            "Processor responded",
            extra={"context": {"chat_id": request.chat_id, "success": result.success, "error": result.error}},
        )
        return result
