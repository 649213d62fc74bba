"""
Model client adapter
Boundary around the LangChain chat model: message conversion, timeout race
and response shape validation
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from app.core.exceptions import UpstreamEmptyResponseException, UpstreamTimeoutException
from app.core.llm_providers import EVALLMManager

logger = logging.getLogger(__name__)

_MESSAGE_TYPES = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


@dataclass
class Completion:
    """Normalized model reply"""
    content: str
    model: str
    total_tokens: int
    latency_ms: int


def to_langchain_messages(messages: List[Dict[str, str]]) -> List[BaseMessage]:
    """Convert ``{role, content}`` dicts into LangChain message objects"""
    converted = []
    for message in messages:
        message_cls = _MESSAGE_TYPES.get(message["role"])
        if message_cls is None:
            raise ValueError(f"Unsupported message role: {message['role']}")
        converted.append(message_cls(content=message["content"]))
    return converted


def _total_tokens(response: Any) -> int:
    usage = getattr(response, "usage_metadata", None) or {}
    if usage.get("total_tokens"):
        return int(usage["total_tokens"])
    token_usage = (getattr(response, "response_metadata", None) or {}).get("token_usage") or {}
    return int(token_usage.get("total_tokens") or 0)


class ModelClient:
    """Thin async wrapper over the configured chat model"""

    def __init__(self, llm_manager: EVALLMManager, default_timeout: float = 30):
        self.llm_manager = llm_manager
        self.default_timeout = default_timeout
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def model_name(self) -> str:
        info = self.llm_manager.get_provider_info()
        return info.get("model") or "unknown"

    def info(self) -> Dict[str, Any]:
        return self.llm_manager.get_provider_info()

    async def complete(
        self,
        messages: List[Dict[str, str]],
        timeout: Optional[float] = None,
        **invoke_kwargs: Any,
    ) -> Completion:
        """
        Send a chat completion request.

        Args:
            messages: Ordered ``{role, content}`` dicts, system message first
            timeout: Seconds before the call is abandoned
            **invoke_kwargs: Per-call overrides such as ``max_tokens``

        Returns:
            Completion with the reply text, model name, token usage and latency

        Raises:
            UpstreamTimeoutException: The provider did not answer in time
            UpstreamEmptyResponseException: The reply carried no text
        """
        timeout = timeout or self.default_timeout
        llm = await self.llm_manager.get_llm_instance()
        model = self.model_name
        lc_messages = to_langchain_messages(messages)

        start_time = time.perf_counter()
        try:
            async with asyncio.timeout(timeout):
                response = await llm.ainvoke(lc_messages, **invoke_kwargs)
        except TimeoutError as e:
            self.logger.warning(f"Model call timed out after {timeout}s (model={model})")
            raise UpstreamTimeoutException(model=model, timeout_seconds=timeout) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        content = getattr(response, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise UpstreamEmptyResponseException(model=model)

        total_tokens = _total_tokens(response)
        self.logger.info(f"Model reply received: {len(content)} chars, {total_tokens} tokens, {latency_ms}ms")
        return Completion(content=content, model=model, total_tokens=total_tokens, latency_ms=latency_ms)

    async def stream(
        self,
        messages: List[Dict[str, str]],
        timeout: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Yield non-empty text deltas; the whole stream shares one time budget"""
        timeout = timeout or self.default_timeout
        llm = await self.llm_manager.get_llm_instance()
        model = self.model_name
        lc_messages = to_langchain_messages(messages)

        try:
            async with asyncio.timeout(timeout):
                async for chunk in llm.astream(lc_messages):
                    content = chunk.content if isinstance(chunk.content, str) else ""
                    if content:
                        yield content
        except TimeoutError as e:
            self.logger.warning(f"Model stream timed out after {timeout}s (model={model})")
            raise UpstreamTimeoutException(model=model, timeout_seconds=timeout) from e
