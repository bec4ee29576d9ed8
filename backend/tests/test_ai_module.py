"""Tests for the shared AI layer.

Covers:
- json_tools: fence stripping, tolerant parsing, embedded JSON extraction
- providers: factory, mock provider, gateway and Claude HTTP contracts
- router: scope resolution
- audit: hashed AI run metadata
- config: provider allowlist and required settings
"""

import asyncio
import json
import os
import unittest
from unittest.mock import patch

import httpx


class StripCodeFenceTests(unittest.TestCase):
    def test_language_tagged_fence(self):
        from app.services.ai.common.json_tools import strip_code_fence

        self.assertEqual(strip_code_fence('```json\n[{"a": 1}]\n```'), '[{"a": 1}]')

    def test_bare_fence(self):
        from app.services.ai.common.json_tools import strip_code_fence

        self.assertEqual(strip_code_fence('```\n{"a": 1}\n```'), '{"a": 1}')

    def test_single_line_fence(self):
        from app.services.ai.common.json_tools import strip_code_fence

        self.assertEqual(strip_code_fence("```[1, 2]```"), "[1, 2]")

    def test_unterminated_fence(self):
        from app.services.ai.common.json_tools import strip_code_fence

        self.assertEqual(strip_code_fence('```json\n{"a": 1}'), '{"a": 1}')

    def test_surrounding_whitespace_trimmed(self):
        from app.services.ai.common.json_tools import strip_code_fence

        self.assertEqual(strip_code_fence('  \n```json\n[]\n```\n  '), "[]")

    def test_unfenced_text_unchanged(self):
        from app.services.ai.common.json_tools import strip_code_fence

        self.assertEqual(strip_code_fence('{"a": "b"}'), '{"a": "b"}')

    def test_idempotent(self):
        from app.services.ai.common.json_tools import strip_code_fence

        samples = [
            '```json\n[{"title": "x"}]\n```',
            "```\n{}\n```",
            "[1, 2, 3]",
            "```json\n```",
            "plain text",
        ]
        for sample in samples:
            once = strip_code_fence(sample)
            self.assertEqual(strip_code_fence(once), once)


class ParseModelJsonTests(unittest.TestCase):
    def test_fenced_equals_unfenced(self):
        from app.services.ai.common.json_tools import parse_model_json

        payload = '[{"title": "Duplicate charge", "message": "Two identical payments", "type": "warning"}]'
        self.assertEqual(parse_model_json(f"```json\n{payload}\n```"), parse_model_json(payload))
        self.assertEqual(parse_model_json(f"```\n{payload}\n```"), json.loads(payload))

    def test_prose_wrapped_object(self):
        from app.services.ai.common.json_tools import parse_model_json

        result = parse_model_json('Here is your digest: {"summary": "ok", "risk_score": 7} Hope it helps!')
        self.assertEqual(result, {"summary": "ok", "risk_score": 7})

    def test_invalid_returns_none(self):
        from app.services.ai.common.json_tools import parse_model_json

        self.assertIsNone(parse_model_json("{invalid json}"))
        self.assertIsNone(parse_model_json(""))
        self.assertIsNone(parse_model_json("```json\n```"))

    def test_scalar_json_is_returned_as_is(self):
        from app.services.ai.common.json_tools import parse_model_json

        self.assertEqual(parse_model_json("42"), 42)

    def test_citation_before_object_skipped_when_object_expected(self):
        from app.services.ai.common.json_tools import parse_model_json

        text = 'Based on [1]: {"summary": "ok", "risk_score": 6}'
        self.assertEqual(parse_model_json(text, expect=dict), {"summary": "ok", "risk_score": 6})
        self.assertEqual(parse_model_json(text), [1])

    def test_expected_type_missing_returns_none(self):
        from app.services.ai.common.json_tools import parse_model_json

        self.assertIsNone(parse_model_json('Totals: {"net": 5}', expect=list))
        self.assertEqual(parse_model_json('See {"a": 1} then [{"title": "t"}]', expect=list), [{"title": "t"}])


class ExtractJsonTests(unittest.TestCase):
    def test_valid_json_with_prefix(self):
        from app.services.ai.common.json_tools import extract_json

        result = extract_json('Result: {"title": "Spike", "confidence": 0.8}')
        self.assertEqual(result["title"], "Spike")

    def test_nested_braces(self):
        from app.services.ai.common.json_tools import extract_json

        result = extract_json('prefix {"a": {"b": {"c": 1}}} suffix')
        self.assertEqual(result["a"]["b"]["c"], 1)

    def test_json_with_escaped_quotes(self):
        from app.services.ai.common.json_tools import extract_json

        result = extract_json('{"msg": "He said \\"hello\\""}')
        self.assertIn("hello", result["msg"])

    def test_no_json_returns_none(self):
        from app.services.ai.common.json_tools import extract_json

        self.assertIsNone(extract_json("This is plain text with no JSON"))
        self.assertIsNone(extract_json("   "))


class ProviderFactoryTests(unittest.TestCase):
    @patch.dict(os.environ, {"AI_ALLOWED_PROVIDERS": "mock"}, clear=False)
    def test_mock_provider_always_available(self):
        from app.core.config import Settings
        from app.services.ai.common.providers import get_provider
        from app.services.ai.common.providers.mock import MockProvider

        with patch("app.services.ai.common.providers.get_settings", return_value=Settings()):
            self.assertIsInstance(get_provider("mock"), MockProvider)

    @patch.dict(os.environ, {"AI_ALLOWED_PROVIDERS": "gateway", "LOVABLE_API_KEY": "key-123"}, clear=False)
    def test_gateway_provider_with_key(self):
        from app.core.config import Settings
        from app.services.ai.common.providers import get_provider
        from app.services.ai.common.providers.gateway import GatewayProvider

        with patch("app.services.ai.common.providers.get_settings", return_value=Settings()):
            self.assertIsInstance(get_provider("gateway"), GatewayProvider)

    @patch.dict(os.environ, {"AI_ALLOWED_PROVIDERS": "gateway", "LOVABLE_API_KEY": "", "AI_GATEWAY_API_KEY": ""}, clear=False)
    def test_gateway_without_key_raises(self):
        from app.core.config import Settings
        from app.services.ai.common.errors import UpstreamUnavailableError
        from app.services.ai.common.providers import get_provider

        with patch("app.services.ai.common.providers.get_settings", return_value=Settings()):
            with self.assertRaises(UpstreamUnavailableError):
                get_provider("gateway")

    @patch.dict(os.environ, {"AI_ALLOWED_PROVIDERS": "claude", "ANTHROPIC_API_KEY": ""}, clear=False)
    def test_claude_without_key_raises(self):
        from app.core.config import Settings
        from app.services.ai.common.errors import UpstreamUnavailableError
        from app.services.ai.common.providers import get_provider

        with patch("app.services.ai.common.providers.get_settings", return_value=Settings()):
            with self.assertRaises(UpstreamUnavailableError):
                get_provider("claude")

    @patch.dict(os.environ, {"AI_ALLOWED_PROVIDERS": "mock"}, clear=False)
    def test_provider_outside_allowlist_raises(self):
        from app.core.config import Settings
        from app.services.ai.common.errors import UpstreamUnavailableError
        from app.services.ai.common.providers import get_provider

        with patch("app.services.ai.common.providers.get_settings", return_value=Settings()):
            with self.assertRaises(UpstreamUnavailableError):
                get_provider("gateway")
            with self.assertRaises(UpstreamUnavailableError):
                get_provider("nonexistent_provider")


class MockProviderTests(unittest.TestCase):
    def test_mock_generate_returns_canned_text(self):
        from app.services.ai.common.providers.mock import MockProvider

        provider = MockProvider('{"summary": "hi"}')
        result = asyncio.run(provider.generate("test prompt"))
        self.assertEqual(provider.prompts, ["test prompt"])
        self.assertEqual(result.provider, "mock")
        self.assertEqual(result.raw_text, '{"summary": "hi"}')

    def test_mock_generate_respects_model_param(self):
        from app.services.ai.common.providers.mock import MockProvider

        result = asyncio.run(MockProvider().generate("test", model="custom-model"))
        self.assertEqual(result.model, "custom-model")
        self.assertEqual(result.raw_text, "[]")


def _gateway(handler):
    from app.services.ai.common.providers.gateway import GatewayProvider

    return GatewayProvider(
        api_key="secret-token",
        url="https://gateway.test/v1/chat/completions",
        transport=httpx.MockTransport(handler),
    )


class GatewayProviderTests(unittest.TestCase):
    def test_sends_bearer_token_and_messages(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "choices": [{"message": {"role": "assistant", "content": "[]"}}],
                    "usage": {"prompt_tokens": 12, "completion_tokens": 1},
                },
            )

        result = asyncio.run(_gateway(handler).generate("hello", temperature=0.1, max_tokens=64))

        self.assertEqual(seen["auth"], "Bearer secret-token")
        self.assertEqual(seen["body"]["messages"], [{"role": "user", "content": "hello"}])
        self.assertEqual(seen["body"]["temperature"], 0.1)
        self.assertEqual(seen["body"]["max_tokens"], 64)
        self.assertEqual(seen["body"]["model"], "google/gemini-3-flash-preview")
        self.assertEqual(result.raw_text, "[]")
        self.assertEqual(result.prompt_tokens, 12)
        self.assertEqual(result.provider, "gateway")

    def test_non_success_status_raises_upstream_unavailable(self):
        from app.services.ai.common.errors import UpstreamUnavailableError

        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, json={"error": "overloaded"})

        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(_gateway(handler).generate("hello"))
        self.assertEqual(len(calls), 1)

    def test_missing_choice_raises_upstream_unavailable(self):
        from app.services.ai.common.errors import UpstreamUnavailableError

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(_gateway(handler).generate("hello"))

    def test_non_json_body_raises_upstream_unavailable(self):
        from app.services.ai.common.errors import UpstreamUnavailableError

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>bad gateway</html>")

        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(_gateway(handler).generate("hello"))

    def test_transport_error_raises_upstream_unavailable(self):
        from app.services.ai.common.errors import UpstreamUnavailableError

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(_gateway(handler).generate("hello"))


class ClaudeProviderTests(unittest.TestCase):
    def test_joins_text_blocks(self):
        from app.services.ai.common.providers.claude import ClaudeProvider

        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers["x-api-key"]
            seen["version"] = request.headers["anthropic-version"]
            return httpx.Response(
                200,
                json={
                    "content": [
                        {"type": "text", "text": '{"summary": '},
                        {"type": "tool_use", "id": "x"},
                        {"type": "text", "text": '"ok"}'},
                    ],
                    "usage": {"input_tokens": 5, "output_tokens": 3},
                },
            )

        provider = ClaudeProvider(api_key="ak", transport=httpx.MockTransport(handler))
        result = asyncio.run(provider.generate("hi"))

        self.assertEqual(seen["key"], "ak")
        self.assertEqual(seen["version"], "2023-06-01")
        self.assertEqual(result.raw_text, '{"summary": "ok"}')
        self.assertEqual(result.completion_tokens, 3)

    def test_error_status_raises_upstream_unavailable(self):
        from app.services.ai.common.errors import UpstreamUnavailableError
        from app.services.ai.common.providers.claude import ClaudeProvider

        provider = ClaudeProvider(
            api_key="ak",
            transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "bad key"})),
        )
        with self.assertRaises(UpstreamUnavailableError):
            asyncio.run(provider.generate("hi"))


class RouterTests(unittest.TestCase):
    @patch.dict(
        os.environ,
        {"AI_PROVIDER": "mock", "AI_MODEL": "", "AI_ALLOWED_PROVIDERS": "mock", "AI_MAX_TOKENS": "512"},
        clear=False,
    )
    def test_resolve_scope(self):
        from app.core.config import Settings
        from app.services.ai.common.providers.mock import MockProvider
        from app.services.ai.common.router import resolve

        s = Settings()
        with (
            patch("app.services.ai.common.router.get_settings", return_value=s),
            patch("app.services.ai.common.providers.get_settings", return_value=s),
        ):
            config = resolve("anomalies")
            self.assertIsInstance(config.provider, MockProvider)
            self.assertEqual(config.max_tokens, 512)
            self.assertEqual(config.temperature, 0.2)

            instruction = config.instruct("prompt text")
            self.assertEqual(instruction.prompt, "prompt text")
            self.assertEqual(instruction.max_tokens, 512)


class AuditTests(unittest.TestCase):
    def _result(self):
        from app.services.ai.common.providers.base import ProviderResult

        return ProviderResult(raw_text="[]", model="m", provider="mock", prompt_tokens=3, completion_tokens=1)

    @patch.dict(os.environ, {"AI_DEBUG_STORE_RAW": "false"}, clear=False)
    def test_prompt_is_hashed_not_stored(self):
        from app.core.config import Settings
        from app.services.ai.common.audit import log_ai_run

        with patch("app.services.ai.common.audit.get_settings", return_value=Settings()):
            meta = log_ai_run(
                scope="anomalies",
                provider_result=self._result(),
                prompt_text="secret prompt",
                extra_meta={"account_id": "acc-1"},
            )
        self.assertEqual(meta["action"], "AI_ANOMALIES_ANALYZED")
        self.assertEqual(len(meta["prompt_hash"]), 64)
        self.assertNotIn("prompt_raw", meta)
        self.assertEqual(meta["account_id"], "acc-1")

    @patch.dict(os.environ, {"AI_DEBUG_STORE_RAW": "true"}, clear=False)
    def test_raw_text_only_in_debug(self):
        from app.core.config import Settings
        from app.services.ai.common.audit import log_ai_run

        with patch("app.services.ai.common.audit.get_settings", return_value=Settings()):
            meta = log_ai_run(scope="other", provider_result=self._result(), prompt_text="p")
        self.assertEqual(meta["action"], "AI_RUN")
        self.assertEqual(meta["prompt_raw"], "p")
        self.assertEqual(meta["response_raw"], "[]")


class ConfigTests(unittest.TestCase):
    @patch.dict(os.environ, {"AI_ALLOWED_PROVIDERS": "gateway,claude"}, clear=False)
    def test_allowed_providers_force_mock(self):
        from app.core.config import Settings

        providers = Settings().ai_allowed_providers
        self.assertIn("mock", providers)
        self.assertIn("gateway", providers)
        self.assertIn("claude", providers)

    @patch.dict(os.environ, {"CORS_ALLOW_HEADERS": "authorization, content-type"}, clear=False)
    def test_cors_headers_csv(self):
        from app.core.config import Settings

        self.assertEqual(Settings().cors_allow_headers, ["authorization", "content-type"])

    @patch.dict(
        os.environ,
        {
            "DATABASE_URL": "",
            "AI_PROVIDER": "gateway",
            "AI_ALLOWED_PROVIDERS": "gateway",
            "LOVABLE_API_KEY": "",
            "AI_GATEWAY_API_KEY": "",
        },
        clear=False,
    )
    def test_missing_credentials_reported(self):
        from app.core.config import Settings

        errors = Settings().validate_required_config()
        self.assertIn("DATABASE_URL is not configured", errors)
        self.assertIn("LOVABLE_API_KEY not configured", errors)

    @patch.dict(
        os.environ,
        {"DATABASE_URL": "sqlite://", "AI_PROVIDER": "mock", "AI_ALLOWED_PROVIDERS": "mock"},
        clear=False,
    )
    def test_valid_config(self):
        from app.core.config import Settings

        self.assertEqual(Settings().validate_required_config(), [])

