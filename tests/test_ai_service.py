from types import SimpleNamespace

import pytest

from adcompare import ai_service
from adcompare.ai_service import GeminiClient, get_default_llm
from adcompare.config_service import ConfigService


class FakeGenerativeModel:
    """Stands in for genai.GenerativeModel; answers are scripted per model name."""

    script: dict = {}
    calls: list = []

    def __init__(self, model_name, system_instruction=None, generation_config=None):
        self.model_name = model_name
        self.system_instruction = system_instruction
        self.generation_config = generation_config

    async def generate_content_async(self, prompt, request_options=None):
        FakeGenerativeModel.calls.append((self.model_name, prompt, request_options))
        outcomes = FakeGenerativeModel.script[self.model_name]
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)


@pytest.fixture
def fake_genai(monkeypatch):
    FakeGenerativeModel.script = {}
    FakeGenerativeModel.calls = []
    monkeypatch.setattr(ai_service.genai, "configure", lambda **kwargs: None)
    monkeypatch.setattr(ai_service.genai, "GenerativeModel", FakeGenerativeModel)
    monkeypatch.setattr(ConfigService, "GEMINI_RETRY_DELAY_BASE", 0)
    return FakeGenerativeModel


@pytest.mark.asyncio
async def test_returns_text_from_first_model(fake_genai):
    fake_genai.script = {"model-a": ['{"dateRanges": []}']}
    client = GeminiClient(api_key="test-key", models=["model-a", "model-b"])

    text = await client("system", "user")

    assert text == '{"dateRanges": []}'
    assert fake_genai.calls == [("model-a", "user", {"timeout": ConfigService.GEMINI_TIMEOUT})]


@pytest.mark.asyncio
async def test_falls_back_to_next_model(fake_genai):
    fake_genai.script = {
        "model-a": [ValueError("404 model not found")],
        "model-b": ["ok"],
    }
    client = GeminiClient(api_key="test-key", models=["model-a", "model-b"])

    assert await client("system", "user") == "ok"
    assert [c[0] for c in fake_genai.calls] == ["model-a", "model-b"]


@pytest.mark.asyncio
async def test_retries_transient_errors(fake_genai):
    fake_genai.script = {"model-a": [ConnectionError("503 Service Unavailable"), "ok"]}
    client = GeminiClient(api_key="test-key", models=["model-a"])

    assert await client("system", "user") == "ok"
    assert len(fake_genai.calls) == 2


@pytest.mark.asyncio
async def test_raises_when_every_model_fails(fake_genai):
    fake_genai.script = {"model-a": [ValueError("bad request")]}
    client = GeminiClient(api_key="test-key", models=["model-a"])

    with pytest.raises(RuntimeError, match="Gemini API unavailable"):
        await client("system", "user")


@pytest.mark.asyncio
async def test_raises_without_api_key(monkeypatch):
    monkeypatch.setattr(ConfigService, "get_gemini_api_key", classmethod(lambda cls: None))
    client = GeminiClient()

    assert client.available is False
    with pytest.raises(RuntimeError):
        await client("system", "user")


def test_default_llm_requires_api_key(monkeypatch):
    monkeypatch.setattr(ConfigService, "get_gemini_api_key", classmethod(lambda cls: None))

    assert get_default_llm() is None


def test_api_key_falls_back_to_environment(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")

    assert ConfigService.get_gemini_api_key() == "env-key"
