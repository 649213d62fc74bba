"""
Unit Tests: LLM Provider Layer
==============================

Provider detection from key prefixes, explicit selection, and degradation
to the fallback model.
"""

import pytest
from langchain_core.language_models.fake_chat_models import FakeMessagesListChatModel
from langchain_openai import ChatOpenAI

from app.core.llm_providers import (
    GROQ_BASE_URL,
    EVALLMManager,
    LLMProviderFactory,
    ProviderType,
)

GROQ_KEY = "gsk_" + "a" * 40
OPENAI_KEY = "sk-" + "b" * 40


class TestProviderDetection:

    @pytest.mark.parametrize("api_key,expected", [
        (GROQ_KEY, ProviderType.GROQ),
        (OPENAI_KEY, ProviderType.OPENAI),
        ("gsk_short", ProviderType.FALLBACK),
        (None, ProviderType.FALLBACK),
        ("", ProviderType.FALLBACK),
    ])
    def test_detect_from_key(self, api_key, expected):
        assert LLMProviderFactory.detect_provider_from_key(api_key) == expected

    def test_explicit_provider_wins(self):
        assert LLMProviderFactory.resolve_type(GROQ_KEY, "openai") == ProviderType.OPENAI
        assert LLMProviderFactory.resolve_type(GROQ_KEY, "mock") == ProviderType.FALLBACK

    def test_default_models(self):
        assert LLMProviderFactory.create(GROQ_KEY).config.model == "llama3-70b-8192"
        assert LLMProviderFactory.create(GROQ_KEY, model="mixtral-8x7b-32768").config.model == "mixtral-8x7b-32768"


class TestEVALLMManager:

    @pytest.mark.asyncio
    async def test_groq_uses_openai_compatible_endpoint(self):
        manager = EVALLMManager(GROQ_KEY, temperature=0.2)

        llm = await manager.get_llm_instance()

        assert isinstance(llm, ChatOpenAI)
        assert llm.openai_api_base == GROQ_BASE_URL
        assert manager.get_provider_info()["provider"] == "groq"

    @pytest.mark.asyncio
    async def test_no_key_uses_fallback(self):
        manager = EVALLMManager(None)

        llm = await manager.get_llm_instance()

        assert isinstance(llm, FakeMessagesListChatModel)
        reply = await llm.ainvoke("hello")
        assert "LLM_API_KEY" in reply.content

    @pytest.mark.asyncio
    async def test_malformed_key_degrades_to_fallback(self):
        manager = EVALLMManager("gsk_short", provider_name="groq")

        await manager.get_llm_instance()

        info = manager.get_provider_info()
        assert info["provider"] == "fallback"
        assert info["initialized"] is True

    def test_info_before_initialization(self):
        info = EVALLMManager(OPENAI_KEY).get_provider_info()

        assert info == {"provider": "openai", "model": "gpt-4o-mini", "initialized": False}

    @pytest.mark.asyncio
    async def test_provider_is_created_once(self):
        manager = EVALLMManager(None)

        first = await manager.get_llm_provider()
        second = await manager.get_llm_provider()

        assert first is second
