"""Service encapsulating interactions with the completion provider.

Talks to an OpenAI-compatible ``/chat/completions`` endpoint over
``httpx``.  The service only shapes requests and parses replies; it keeps
no state about users or conversations.
"""

from __future__ import annotations

from functools import lru_cache

import httpx
from loguru import logger
from pydantic import ValidationError

from ..config.llm_config import LlmConfig, get_llm_config
from ..models.completion import CompletionMessage, CompletionRequest, CompletionResponse
from ..utils.error_handler import ProviderError


class LLMService:
    """Client for the chat-completion provider.

    Parameters
    ----------
    llm_config: LlmConfig, optional
        API credentials, base URL and tuning parameters.  Loaded from the
        environment when omitted.
    transport: httpx.AsyncBaseTransport, optional
        Transport used for outgoing requests.  Tests pass an
        :class:`httpx.MockTransport`.
    """

    def __init__(
        self,
        llm_config: LlmConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.llm_config = llm_config or get_llm_config()
        self._transport = transport

    def build_request(
        self,
        model: str,
        messages: list[CompletionMessage],
        user_id: str,
    ) -> CompletionRequest:
        return CompletionRequest(
            model=model,
            messages=messages,
            max_tokens=self.llm_config.max_tokens,
            temperature=self.llm_config.temperature,
            user=user_id,
        )

    async def complete(
        self,
        model: str,
        messages: list[CompletionMessage],
        user_id: str,
    ) -> CompletionResponse:
        """Send ``messages`` to the provider and return the parsed reply.

        Raises
        ------
        ProviderError
            On network failure, a non-success status or a body that is not
            a JSON object.  The request is not retried.
        """
        request = self.build_request(model, messages, user_id)
        logger.debug(
            "Requesting completion model={} user={} messages={}",
            model,
            user_id,
            len(messages),
        )
        headers = {
            "Authorization": f"Bearer {self.llm_config.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.llm_config.timeout,
            ) as client:
                response = await client.post(
                    self.llm_config.completions_url,
                    json=request.model_dump(mode="json"),
                    headers=headers,
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Completion provider returned {}: {}",
                exc.response.status_code,
                exc.response.text,
            )
            raise ProviderError(f"Provider returned status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Error sending completion request: {!r}", exc)
            raise ProviderError("Failed to reach the completion provider") from exc
        except ValueError as exc:
            logger.error("Completion provider sent a non-JSON body: {}", exc)
            raise ProviderError("Provider response was not JSON") from exc

        if not isinstance(payload, dict):
            logger.error("Completion provider sent an unexpected body: {!r}", payload)
            raise ProviderError("Provider response was not a JSON object")
        try:
            parsed = CompletionResponse.model_validate(payload)
        except ValidationError as exc:
            logger.error("Error parsing completion response: {}", exc)
            raise ProviderError("Malformed provider response") from exc

        if parsed.usage is not None:
            logger.debug(
                "Provider usage prompt={} completion={} total={}",
                parsed.usage.prompt_tokens,
                parsed.usage.completion_tokens,
                parsed.usage.total_tokens,
            )
        return parsed


@lru_cache()
def get_llm_service() -> LLMService:
    return LLMService()
