"""
EVA ERP Assistant - Test Configuration & Fixtures
=================================================

Shared fixtures
- conversation memory
- model clients backed by LangChain fake chat models
- settings and FastAPI test client
"""

from typing import Callable
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models.fake_chat_models import FakeMessagesListChatModel
from langchain_core.messages import AIMessage

from app.core.config import Settings
from app.core.llm_providers import EVALLMManager
from app.services.conversation_memory import ConversationMemory
from app.services.model_client import ModelClient
from app.utils.prompts import PromptBuilder


def build_model_client(llm, model: str = "mock-model", timeout: float = 5) -> ModelClient:
    """ModelClient whose manager hands out ``llm``"""
    manager = Mock(spec=EVALLMManager)
    manager.get_llm_instance = AsyncMock(return_value=llm)
    manager.get_provider_info.return_value = {"provider": "fallback", "model": model, "initialized": True}
    return ModelClient(manager, default_timeout=timeout)


# ==================== Core services ====================

@pytest.fixture
def memory() -> ConversationMemory:
    """Fresh in-memory conversation store"""
    return ConversationMemory(max_history_length=50)


@pytest.fixture
def prompt_builder() -> PromptBuilder:
    return PromptBuilder()


@pytest.fixture
def model_client_factory() -> Callable[..., ModelClient]:
    """Build a ModelClient that replies with the given texts in order"""
    def factory(*replies: str, timeout: float = 5) -> ModelClient:
        llm = FakeMessagesListChatModel(responses=[AIMessage(content=r) for r in replies or ("OK",)])
        return build_model_client(llm, timeout=timeout)
    return factory


@pytest.fixture
def model_client(model_client_factory) -> ModelClient:
    return model_client_factory("Here is my ERP recommendation.")


# ==================== Application ====================

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings isolated from the developer's .env"""
    return Settings(
        _env_file=None,
        LLM_API_KEY=None,
        LLM_PROVIDER="fallback",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        RATE_LIMIT_PER_MINUTE=1000,
        CHAT_RATE_LIMIT=1000,
        UPLOAD_RATE_LIMIT=1000,
    )


@pytest.fixture
def client(test_settings, model_client) -> TestClient:
    """TestClient running the full lifespan with a fake model"""
    from app.main import create_app

    app = create_app(test_settings, model_client=model_client)
    with TestClient(app) as test_client:
        yield test_client
