import json
import unittest

import httpx

from app.core.errors import UpstreamError, UpstreamRateLimited
from app.llm.claude_client import ClaudeClient


def make_client(handler) -> ClaudeClient:
    return ClaudeClient(
        api_key="test-key",
        base_url="https://claude.test/",
        model="claude-test",
        max_tokens=8000,
        timeout_s=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestClaudeClient(unittest.IsolatedAsyncioTestCase):
    async def test_complete_parses_text_and_usage(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "model": "claude-test",
                    "content": [{"type": "text", "text": "Hei maailma"}],
                    "usage": {"input_tokens": 12, "output_tokens": 4},
                },
            )

        client = make_client(handler)
        try:
            result = await client.complete("Translate: Hello world")
        finally:
            await client.aclose()

        self.assertEqual(result.text, "Hei maailma")
        self.assertEqual(result.input_tokens, 12)
        self.assertEqual(result.output_tokens, 4)
        self.assertEqual(seen["url"], "https://claude.test/v1/messages")
        self.assertEqual(seen["headers"]["x-api-key"], "test-key")
        self.assertEqual(seen["headers"]["anthropic-version"], "2023-06-01")
        self.assertEqual(seen["body"]["max_tokens"], 8000)
        self.assertEqual(
            seen["body"]["messages"],
            [{"role": "user", "content": "Translate: Hello world"}],
        )

    async def test_usage_missing_falls_back_to_estimate(self):
        def handler(request):
            return httpx.Response(200, json={"content": [{"type": "text", "text": "abcdefgh"}]})

        client = make_client(handler)
        try:
            result = await client.complete("abcd")
        finally:
            await client.aclose()

        self.assertEqual(result.input_tokens, 1)
        self.assertEqual(result.output_tokens, 2)
        self.assertEqual(result.model, "claude-test")

    async def test_429_is_rate_limited_error(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "7"}, json={"error": "slow"})

        client = make_client(handler)
        try:
            with self.assertRaises(UpstreamRateLimited) as ctx:
                await client.complete("hi")
        finally:
            await client.aclose()

        self.assertIsInstance(ctx.exception, UpstreamError)
        self.assertEqual(ctx.exception.upstream_status, 429)
        self.assertEqual(ctx.exception.retry_after, 7.0)

    async def test_server_error_carries_status(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(529, text="overloaded")

        client = make_client(handler)
        try:
            with self.assertRaises(UpstreamError) as ctx:
                await client.complete("hi")
        finally:
            await client.aclose()

        self.assertEqual(ctx.exception.upstream_status, 529)
        self.assertEqual(ctx.exception.code, "upstream_http_error")
        self.assertEqual(len(calls), 1)

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        try:
            with self.assertRaises(UpstreamError) as ctx:
                await client.complete("hi")
        finally:
            await client.aclose()

        self.assertEqual(ctx.exception.code, "upstream_unavailable")
        self.assertIsNone(ctx.exception.upstream_status)

    async def test_malformed_response(self):
        def handler(request):
            return httpx.Response(200, json={"content": []})

        client = make_client(handler)
        try:
            with self.assertRaises(UpstreamError) as ctx:
                await client.complete("hi")
        finally:
            await client.aclose()

        self.assertEqual(ctx.exception.code, "upstream_bad_response")

    async def test_health_reports_configuration(self):
        client = ClaudeClient(api_key=None)
        try:
            self.assertEqual(
                client.health(),
                {"configured": False, "model": "claude-sonnet-4-20250514", "base_url": "https://api.anthropic.com"},
            )
        finally:
            await client.aclose()


if __name__ == "__main__":
    unittest.main()
