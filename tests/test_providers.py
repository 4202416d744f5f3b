"""
Tests for metadata providers: pacing, retry policy, request shapes and parsing.
"""

import json
import threading
import pytest
import requests
from unittest.mock import MagicMock

from anime_organizer.anime_organizer.providers import (
    ProviderResult, fill_error, RequestPacer, compute_backoff, parse_retry_after,
    is_quota_exhausted, GeminiMetadataProvider, OpenAICompatibleMetadataProvider,
    OpenRouterMetadataProvider, DeepseekProxyMetadataProvider, MockMetadataProvider,
    SAMPLE_METADATA, register_provider, create_provider
)
from anime_organizer.anime_organizer.providers.llm import LlmMetadataProvider
from anime_organizer.anime_organizer.ai_api import (
    parse_items_response, generate_stable_id, extract_json, build_user_prompt
)
from anime_organizer.anime_organizer.config import ProviderConfig, ApiProvider
from anime_organizer.anime_organizer.models import ProviderError
from anime_organizer.anime_organizer.logging import ConfigError, OperationCancelled


ITEMS_TEXT = json.dumps({
    "items": [
        {"index": 0, "titleJP": "葬送のフリーレン", "titleTW": "葬送的芙莉蓮", "titleCN": "葬送的芙莉莲",
         "titleEN": "Frieren", "type": "TV", "year": 2023, "confidence": 0.9},
    ]
}, ensure_ascii=False)


def make_response(status=200, payload=None, text="", headers=None):
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {}
    response.text = text if text else (json.dumps(payload) if payload is not None else "")
    if payload is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = payload
    return response


def gemini_payload(text=ITEMS_TEXT):
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 5},
    }


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.slept = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def gemini(session, sleeps):
    provider = GeminiMetadataProvider(
        api_key="test-key", session=session, cooldown_seconds=0,
        backoff_base_seconds=0.8, max_retries=2,
        sleep=sleeps.append, rand=lambda low, high: 0.0,
    )
    yield provider
    provider.close()


class TestPacing:

    def test_backoff_doubles(self):
        no_jitter = lambda low, high: 0.0
        assert compute_backoff(0, 0.8, rand=no_jitter) == pytest.approx(0.8)
        assert compute_backoff(1, 0.8, rand=no_jitter) == pytest.approx(1.6)
        assert compute_backoff(2, 0.8, rand=no_jitter) == pytest.approx(3.2)

    def test_backoff_jitter_bounds(self):
        value = compute_backoff(0, 1.0, jitter_seconds=0.5, rand=lambda low, high: high)
        assert value == pytest.approx(1.5)

    def test_parse_retry_after(self):
        assert parse_retry_after({"Retry-After": "7"}, None) == pytest.approx(7.0)
        assert parse_retry_after({}, "Please retry in 12.5s.") == pytest.approx(12.5)
        assert parse_retry_after(None, '{"retryDelay": "30s"}') == pytest.approx(30.0)
        assert parse_retry_after({"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"}, None) == 0.0
        assert parse_retry_after({}, "slow down") is None

    def test_quota_markers(self):
        assert is_quota_exhausted("Quota exceeded for metric")
        assert is_quota_exhausted("... limit: 0 ...")
        assert not is_quota_exhausted("Too many requests")
        assert not is_quota_exhausted(None)

    def test_pacer_spaces_calls(self):
        clock = FakeClock()
        pacer = RequestPacer(cooldown_seconds=1.2, name="test", clock=clock, sleep=clock.sleep)
        try:
            assert pacer.call(lambda: "first") == "first"
            assert pacer.call(lambda: "second") == "second"
            assert clock.slept == [pytest.approx(1.2)]

            clock.now += 5
            pacer.call(lambda: None)
            assert len(clock.slept) == 1
        finally:
            pacer.close()

    def test_pacer_serializes_on_one_thread(self):
        pacer = RequestPacer(cooldown_seconds=0, name="test")
        try:
            names = {pacer.call(lambda: threading.current_thread().name) for _ in range(5)}
            assert names == {"test-pacer"}
        finally:
            pacer.close()

    def test_pacer_propagates_exceptions(self):
        pacer = RequestPacer(cooldown_seconds=0, name="test")

        def boom():
            raise ValueError("boom")

        try:
            with pytest.raises(ValueError):
                pacer.call(boom)
        finally:
            pacer.close()

    def test_closed_pacer_rejects_work(self):
        pacer = RequestPacer(cooldown_seconds=0, name="test")
        pacer.close()
        with pytest.raises(RuntimeError):
            pacer.submit(lambda: None)


class TestLlmProvider:

    def test_success(self, gemini, session):
        session.request.return_value = make_response(payload=gemini_payload())
        results = gemini.analyze_batch(["[VCB] Frieren", "unknown folder"])

        assert len(results) == 2
        assert results[0].ok
        assert results[0].metadata.title_tw == "葬送的芙莉蓮"
        assert results[0].metadata.year == 2023
        # The model skipped index 1
        assert results[1] == ProviderResult.empty()

    def test_empty_batch_makes_no_request(self, gemini, session):
        assert gemini.analyze_batch([]) == []
        session.request.assert_not_called()

    def test_missing_key_makes_no_request(self, session):
        provider = GeminiMetadataProvider(api_key="  ", session=session, cooldown_seconds=0)
        try:
            results = provider.analyze_batch(["a", "b"])
            assert [r.error for r in results] == [ProviderError.NO_KEY, ProviderError.NO_KEY]
            session.request.assert_not_called()
        finally:
            provider.close()

    def test_rate_limit_then_success(self, gemini, session, sleeps):
        session.request.side_effect = [
            make_response(429, text="slow down", headers={"Retry-After": "3"}),
            make_response(payload=gemini_payload()),
        ]
        results = gemini.analyze_batch(["Frieren"])

        assert results[0].metadata is not None
        assert session.request.call_count == 2
        # Retry-After (3s) beats the first backoff step (0.8s)
        assert sleeps == [pytest.approx(3.0)]

    def test_rate_limit_exhausts_retries(self, gemini, session, sleeps):
        session.request.return_value = make_response(429, text="slow down")
        results = gemini.analyze_batch(["a", "b", "c"])

        assert all(r.error == ProviderError.RATE_LIMITED for r in results)
        assert session.request.call_count == 3
        assert sleeps == [pytest.approx(0.8), pytest.approx(1.6)]

    def test_quota_exhausted_does_not_retry(self, gemini, session):
        session.request.return_value = make_response(429, text='{"error": "Quota exceeded, limit: 0"}')
        results = gemini.analyze_batch(["a"])
        assert results[0].error == ProviderError.QUOTA_EXCEEDED
        assert session.request.call_count == 1

    def test_server_errors_become_transient(self, gemini, session):
        session.request.return_value = make_response(503, text="unavailable")
        results = gemini.analyze_batch(["a"])
        assert results[0].error == ProviderError.TRANSIENT
        assert session.request.call_count == 3

    def test_network_errors_become_transient(self, gemini, session):
        session.request.side_effect = requests.ConnectionError("down")
        results = gemini.analyze_batch(["a"])
        assert results[0].error == ProviderError.TRANSIENT

    @pytest.mark.parametrize("status,expected", [
        (401, ProviderError.NO_KEY),
        (403, ProviderError.NO_KEY),
        (402, ProviderError.QUOTA_EXCEEDED),
        (404, ProviderError.MODEL_NOT_FOUND),
    ])
    def test_status_mapping(self, gemini, session, status, expected):
        session.request.return_value = make_response(status, text="error")
        results = gemini.analyze_batch(["a"])
        assert results[0].error == expected
        assert session.request.call_count == 1

    def test_unreadable_answer_yields_empty_results(self, gemini, session):
        session.request.return_value = make_response(payload=gemini_payload("I have no idea"))
        results = gemini.analyze_batch(["a", "b"])
        assert results == [ProviderResult.empty(), ProviderResult.empty()]

    def test_unexpected_shape_yields_empty_results(self, gemini, session):
        session.request.return_value = make_response(payload={"candidates": []})
        assert gemini.analyze_batch(["a"]) == [ProviderResult.empty()]

    def test_cancel_before_request(self, gemini, session):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelled):
            gemini.analyze_batch(["a"], cancel)
        session.request.assert_not_called()


class TestRequestShapes:

    def test_gemini_request(self, gemini):
        request = gemini.build_request("system", "user")
        assert request.method == "POST"
        assert request.url.endswith(f"/models/{gemini.model}:generateContent")
        assert request.params == {"key": "test-key"}
        assert request.json["systemInstruction"]["parts"][0]["text"] == "system"
        assert request.json["contents"][0]["parts"][0]["text"] == "user"

    def test_gemini_model_names(self, gemini):
        assert gemini.normalize_model_name("models/gemini-pro") == "gemini-pro"
        assert gemini.normalize_model_name("") == gemini.default_model
        models = gemini.extract_models({"models": [
            {"name": "models/gemini-a", "supportedGenerationMethods": ["generateContent"]},
            {"name": "models/embedder", "supportedGenerationMethods": ["embedContent"]},
        ]})
        assert models == ["gemini-a"]

    def test_openrouter_request(self):
        provider = OpenRouterMetadataProvider(api_key="k", session=MagicMock(), cooldown_seconds=0)
        try:
            request = provider.build_request("system", "user")
            assert request.url == "https://openrouter.ai/api/v1/chat/completions"
            assert request.headers["Authorization"] == "Bearer k"
            assert "HTTP-Referer" in request.headers
            assert request.json["model"] == "openrouter/auto"
            assert [m["role"] for m in request.json["messages"]] == ["system", "user"]
        finally:
            provider.close()

    def test_openai_compatible_text_and_models(self):
        provider = DeepseekProxyMetadataProvider(api_key="k", session=MagicMock(), cooldown_seconds=0)
        try:
            assert "HTTP-Referer" not in provider.build_request("s", "u").headers
            data = {"choices": [{"message": {"content": "answer"}}]}
            assert provider.extract_text(data) == "answer"
            assert provider.extract_models({"data": [{"id": "b"}, {"id": "a"}, {}]}) == ["b", "a"]
            assert provider.extract_models([{"id": "x"}]) == ["x"]
        finally:
            provider.close()

    def test_list_models_is_cached(self, gemini, session):
        session.request.return_value = make_response(payload={"models": [
            {"name": "models/b"}, {"name": "models/a"},
        ]})
        assert gemini.list_models() == ["a", "b"]
        assert gemini.list_models() == ["a", "b"]
        assert session.request.call_count == 1
        gemini.list_models(refresh=True)
        assert session.request.call_count == 2

    def test_provider_without_request_hooks_cannot_be_created(self):
        class HalfProvider(LlmMetadataProvider):
            def build_request(self, system_prompt, user_prompt):
                return None

        with pytest.raises(TypeError):
            HalfProvider(api_key="k", session=MagicMock(), cooldown_seconds=0)


class TestRegistry:

    def test_mock_provider(self):
        provider = create_provider(ProviderConfig(provider=ApiProvider.MOCK))
        assert isinstance(provider, MockMetadataProvider)
        results = provider.analyze_batch(["x", "y"])
        assert [r.metadata for r in results] == [SAMPLE_METADATA, SAMPLE_METADATA]
        assert provider.calls == [["x", "y"]]

    def test_custom_requires_base_url(self):
        with pytest.raises(ConfigError):
            create_provider(ProviderConfig(provider=ApiProvider.CUSTOM, base_url=None, model="m"))

    def test_custom_provider(self):
        config = ProviderConfig(provider=ApiProvider.CUSTOM, base_url="http://localhost:8000/v1/",
                                model="local", api_key="k", cooldown_seconds=0)
        provider = create_provider(config)
        try:
            assert isinstance(provider, OpenAICompatibleMetadataProvider)
            assert provider.base_url == "http://localhost:8000/v1"
            assert provider.model == "local"
        finally:
            provider.close()

    def test_register_replaces_factory(self):
        sentinel = MockMetadataProvider()
        register_provider(ApiProvider.MOCK, lambda config: sentinel)
        try:
            assert create_provider(ProviderConfig(provider=ApiProvider.MOCK)) is sentinel
        finally:
            register_provider(ApiProvider.MOCK, lambda config: MockMetadataProvider())

    def test_fill_error(self):
        results = fill_error(3, ProviderError.TRANSIENT)
        assert len(results) == 3
        assert all(not r.ok and r.metadata is None for r in results)


class TestResponseParsing:

    def test_items_map_by_index(self):
        text = json.dumps({"items": [
            {"index": 2, "titleJP": "C"},
            {"index": 0, "titleJP": "A"},
            {"index": 9, "titleJP": "out of range"},
            "garbage",
        ]})
        results = parse_items_response(text, 3)
        assert [m.title_jp if m else None for m in results] == ["A", None, "C"]

    def test_fenced_and_thinking_answers(self):
        text = "<think>hmm</think>Here you go:\n```json\n" + ITEMS_TEXT + "\n```"
        results = parse_items_response(text, 1)
        assert results[0].title_jp == "葬送のフリーレン"
        assert results[0].confidence == pytest.approx(0.9)

    def test_unreadable_answer(self):
        assert parse_items_response("no json here", 2) == [None, None]
        assert parse_items_response('{"other": 1}', 1) == [None]
        assert extract_json("") is None

    def test_field_coercion(self):
        text = json.dumps({"items": [{"index": 0, "titleJP": "  ", "year": "2019年", "confidence": 3}]})
        metadata = parse_items_response(text, 1)[0]
        assert metadata.title_jp is None
        assert metadata.year == 2019
        assert metadata.confidence == 1.0
        assert metadata.id == generate_stable_id(None, 2019, None)

    def test_stable_id(self):
        first = generate_stable_id("葬送のフリーレン", 2023, "TV")
        assert first == generate_stable_id(" 葬送のフリーレン ", 2023, "TV")
        assert first != generate_stable_id("葬送のフリーレン", 2024, "TV")
        assert len(first) == 12

    def test_user_prompt_lists_names(self):
        prompt = build_user_prompt(["alpha", "beta"])
        assert '[0] "alpha"' in prompt
        assert '[1] "beta"' in prompt
