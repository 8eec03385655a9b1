"""Tests for ModelLoader wiring. Provider classes are replaced, nothing is called remotely."""

import pytest

from doc_chat.exception.custom_exception import DocumentChatException
from doc_chat.utils import model_loader
from doc_chat.utils.model_loader import ModelLoader


class FakeChatModel:
    def __init__(self, **kwargs):
        self.kwargs = kwargs


def _config(provider: str) -> dict:
    return {
        "embedding_model": {"provider": "google", "model_name": "models/text-embedding-004"},
        "llm": {
            "rag": {
                "provider": provider,
                "model_name": "some-model",
                "temperature": 0.3,
                "max_tokens": 512,
            }
        },
        "timeouts": {"retrieval_seconds": 5, "generation_seconds": 12},
    }


@pytest.fixture
def api_keys(monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY", "google-test-key")
    monkeypatch.setenv("GROQ_API_KEY", "groq-test-key")


@pytest.mark.parametrize("provider,class_name", [("google", "ChatGoogleGenerativeAI"), ("groq", "ChatGroq")])
def test_chat_model_gets_generation_timeout(api_keys, monkeypatch, provider, class_name):
    monkeypatch.setattr(model_loader, class_name, FakeChatModel)

    llm = ModelLoader(_config(provider)).load_llm("rag")

    assert isinstance(llm, FakeChatModel)
    assert llm.kwargs["timeout"] == 12
    assert llm.kwargs["max_retries"] == 2
    assert llm.kwargs["temperature"] == 0.3


def test_unknown_role_is_rejected(api_keys):
    with pytest.raises(ValueError):
        ModelLoader(_config("google")).load_llm("summary")


def test_missing_key_is_reported(monkeypatch):
    monkeypatch.setattr(model_loader, "load_dotenv", lambda *args, **kwargs: False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)

    with pytest.raises(DocumentChatException) as exc_info:
        ModelLoader(_config("groq"))

    assert "GOOGLE_API_KEY" in str(exc_info.value)
    assert "GROQ_API_KEY" in str(exc_info.value)
