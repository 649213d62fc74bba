"""
LLM provider layer for the EVA ERP Assistant
Groq (OpenAI-compatible endpoint), OpenAI and an offline fallback model
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Type

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.language_models.fake_chat_models import FakeMessagesListChatModel
from langchain_core.messages import AIMessage
from langchain_openai import ChatOpenAI

GROQ_BASE_URL = "https://api.groq.com/openai/v1"

FALLBACK_REPLIES = (
    "EVA is running without a language model. Configure LLM_API_KEY to receive ERP guidance.",
    "Fallback mode: replies are placeholders until a Groq or OpenAI key is configured.",
)


class ProviderType(Enum):
    GROQ = "groq"
    OPENAI = "openai"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ProviderProfile:
    """Static facts about a provider: key shape, default model, endpoint"""
    key_pattern: Optional[str]
    default_model: str
    base_url: Optional[str] = None


PROFILES: Dict[ProviderType, ProviderProfile] = {
    ProviderType.GROQ: ProviderProfile(r"^gsk_[A-Za-z0-9]{20,}$", "llama3-70b-8192", GROQ_BASE_URL),
    ProviderType.OPENAI: ProviderProfile(r"^sk-[A-Za-z0-9\-_]{20,}$", "gpt-4o-mini"),
    ProviderType.FALLBACK: ProviderProfile(None, "mock-model"),
}


@dataclass
class ProviderConfig:
    provider_type: ProviderType
    api_key: Optional[str]
    model: str
    temperature: float = 0.7
    max_tokens: int = 4000
    top_p: float = 0.9
    timeout: int = 30
    base_url: Optional[str] = None
    extra_params: Dict[str, Any] = field(default_factory=dict)


class BaseLLMProvider(ABC):
    """A configured provider that lazily builds one chat model"""

    provider_type: ProviderType

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.profile = PROFILES[self.provider_type]
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._llm: Optional[BaseChatModel] = None

    def key_is_valid(self) -> bool:
        pattern = self.profile.key_pattern
        return pattern is None or bool(self.config.api_key and re.match(pattern, self.config.api_key))

    @abstractmethod
    def build_llm(self) -> BaseChatModel:
        pass

    async def initialize(self) -> bool:
        """Build the chat model; False when the key is malformed or construction fails"""
        name = self.provider_type.value
        if not self.key_is_valid():
            self.logger.error(f"API key does not match the {name} key format")
            return False
        try:
            self._llm = self.build_llm()
        except Exception as e:
            self.logger.error(f"Failed to initialize {name} provider: {e}")
            return False
        self.logger.info(f"{name} provider ready with model {self.config.model}")
        return True

    def get_llm(self) -> Optional[BaseChatModel]:
        return self._llm

    def get_provider_info(self) -> Dict[str, Any]:
        return {
            "provider": self.provider_type.value,
            "model": self.config.model,
            "initialized": self._llm is not None,
            "api_key_valid": self.key_is_valid(),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }


class OpenAICompatibleProvider(BaseLLMProvider):
    """ChatOpenAI against OpenAI itself"""

    provider_type = ProviderType.OPENAI

    def build_llm(self) -> BaseChatModel:
        base_url = self.config.base_url or self.profile.base_url
        options = {"base_url": base_url} if base_url else {}
        return ChatOpenAI(
            model=self.config.model,
            api_key=self.config.api_key,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            top_p=self.config.top_p,
            request_timeout=self.config.timeout,
            **options,
            **self.config.extra_params
        )


class GroqProvider(OpenAICompatibleProvider):
    """ChatOpenAI pointed at Groq's OpenAI-compatible endpoint"""

    provider_type = ProviderType.GROQ


class FallbackProvider(BaseLLMProvider):
    """Canned replies so the service stays usable without credentials"""

    provider_type = ProviderType.FALLBACK

    def build_llm(self) -> BaseChatModel:
        return FakeMessagesListChatModel(responses=[AIMessage(content=reply) for reply in FALLBACK_REPLIES])


class LLMProviderFactory:
    """Resolves a provider from explicit configuration or the API key's shape"""

    _providers: Dict[ProviderType, Type[BaseLLMProvider]] = {
        ProviderType.GROQ: GroqProvider,
        ProviderType.OPENAI: OpenAICompatibleProvider,
        ProviderType.FALLBACK: FallbackProvider,
    }

    @classmethod
    def detect_provider_from_key(cls, api_key: Optional[str]) -> ProviderType:
        if api_key:
            for provider_type, profile in PROFILES.items():
                if profile.key_pattern and re.match(profile.key_pattern, api_key):
                    return provider_type
        return ProviderType.FALLBACK

    @classmethod
    def resolve_type(cls, api_key: Optional[str], provider_name: Optional[str] = None) -> ProviderType:
        if provider_name:
            if provider_name.lower() == "mock":
                return ProviderType.FALLBACK
            try:
                return ProviderType(provider_name.lower())
            except ValueError:
                return ProviderType.FALLBACK
        return cls.detect_provider_from_key(api_key)

    @classmethod
    def create(cls,
               api_key: Optional[str],
               provider_name: Optional[str] = None,
               model: Optional[str] = None,
               **kwargs) -> BaseLLMProvider:
        provider_type = cls.resolve_type(api_key, provider_name)
        config = ProviderConfig(
            provider_type=provider_type,
            api_key=api_key,
            model=model or PROFILES[provider_type].default_model,
            **kwargs
        )
        return cls._providers[provider_type](config)


class EVALLMManager:
    """
    Owns the single provider used by the model client.

    The provider is created on first use. When the configured provider cannot
    be initialized (malformed key, client construction error) the manager
    degrades to the fallback provider instead of failing every request.
    """

    def __init__(self, api_key: Optional[str], provider_name: Optional[str] = None,
                 model: Optional[str] = None, **config_kwargs):
        self.api_key = api_key
        self.provider_name = provider_name
        self.model = model
        self.config_kwargs = config_kwargs
        self._provider: Optional[BaseLLMProvider] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    async def get_llm_provider(self) -> BaseLLMProvider:
        if self._provider is None:
            provider = LLMProviderFactory.create(self.api_key, self.provider_name, self.model, **self.config_kwargs)
            if not await provider.initialize():
                self.logger.warning(f"{provider.provider_type.value} provider unavailable, switching to fallback")
                provider = LLMProviderFactory.create(None, ProviderType.FALLBACK.value)
                await provider.initialize()
            self._provider = provider
        return self._provider

    async def get_llm_instance(self) -> BaseChatModel:
        provider = await self.get_llm_provider()
        return provider.get_llm()

    def get_provider_info(self) -> Dict[str, Any]:
        if self._provider:
            return self._provider.get_provider_info()
        provider_type = LLMProviderFactory.resolve_type(self.api_key, self.provider_name)
        return {
            "provider": provider_type.value,
            "model": self.model or PROFILES[provider_type].default_model,
            "initialized": False,
        }


def create_llm_manager(settings_obj) -> EVALLMManager:
    """LLM manager from application settings"""
    return EVALLMManager(
        api_key=settings_obj.LLM_API_KEY,
        provider_name=settings_obj.LLM_PROVIDER,
        model=settings_obj.LLM_MODEL,
        temperature=settings_obj.LLM_TEMPERATURE,
        max_tokens=settings_obj.LLM_MAX_TOKENS,
        top_p=settings_obj.LLM_TOP_P,
        timeout=settings_obj.LLM_TIMEOUT
    )
