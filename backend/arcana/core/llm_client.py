"""
Ollama-compatible chat client used by the reading stages
"""
import time
from typing import Dict, List, Optional

import httpx
from pydantic import BaseModel

from arcana.core.config import Settings, get_settings
from arcana.core.errors import LLMError
from arcana.core.logging_config import LoggingConfig
from arcana.core.metrics import llm_request_duration_seconds, llm_requests_total

logger = LoggingConfig.get_logger(__name__)


class LLMTimeoutError(LLMError):
    """Request to the LLM server timed out"""
    pass


class LLMResponse(BaseModel):
    """Chat API response model"""
    model: str
    response: str
    done: bool = False


def _strip_v1(url: str) -> str:
    url = url.rstrip("/")
    return url[:-3] if url.endswith("/v1") else url


class LLMClient:
    """
    Client for the /api/chat endpoint

    One shared httpx.AsyncClient per instance. Retries are left to the
    caller so that every attempt is visible to the workflow.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def model(self) -> str:
        return self.settings.llm_model

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=_strip_v1(self.settings.llm_base_url),
                timeout=float(self.settings.llm_timeout_seconds),
                limits=httpx.Limits(
                    max_keepalive_connections=5,
                    max_connections=10,
                ),
                transport=self._transport,
            )
        return self._client

    async def health_check(self) -> bool:
        """Check that the server answers /api/tags"""
        try:
            response = await self._get_client().get("/api/tags", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        json_mode: bool = True,
    ) -> LLMResponse:
        """
        Send one chat request

        Args:
            prompt: User message
            system_prompt: System message for the model
            temperature: Sampling temperature (defaults to settings)
            json_mode: Ask the server to constrain output to JSON

        Returns:
            LLMResponse with the assistant message content

        Raises:
            LLMTimeoutError: request timed out
            LLMError: transport failure, non-2xx status or malformed envelope
        """
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": self.settings.llm_temperature if temperature is None else temperature,
            },
        }
        if json_mode:
            payload["format"] = "json"

        start_time = time.time()
        try:
            response = await self._get_client().post("/api/chat", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            llm_requests_total.labels(model=self.model, status="timeout").inc()
            raise LLMTimeoutError(f"Request to {self.settings.llm_base_url} timed out") from e
        except httpx.HTTPStatusError as e:
            llm_requests_total.labels(model=self.model, status="http_error").inc()
            raise LLMError(
                f"HTTP error from {self.settings.llm_base_url}: "
                f"{e.response.status_code} - {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            llm_requests_total.labels(model=self.model, status="error").inc()
            raise LLMError(f"Error calling LLM at {self.settings.llm_base_url}: {e}") from e
        finally:
            llm_request_duration_seconds.labels(model=self.model).observe(time.time() - start_time)

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            llm_requests_total.labels(model=self.model, status="error").inc()
            raise LLMError("LLM response has no message content")

        llm_requests_total.labels(model=self.model, status="success").inc()
        logger.debug(
            "LLM response received",
            extra={"model": self.model, "response_chars": len(message["content"])},
        )
        return LLMResponse(
            model=data.get("model") or self.model,
            response=message["content"],
            done=bool(data.get("done", False)),
        )

    async def close(self):
        """Close HTTP client"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
