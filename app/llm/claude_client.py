from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from app.core.errors import UpstreamError, UpstreamRateLimited
from app.core.logging import get_logger
from app.translate.prompting import estimate_tokens


@dataclass
class ClaudeResult:
    text: str
    model: str
    latency_ms: int
    input_tokens: int
    output_tokens: int
    raw: Dict[str, Any]


class ClaudeClient:
    """Single-shot client for the Anthropic Messages API.

    No retries here: calls are paced by the dispatch queue, and a failure is
    reported once to whoever submitted the call.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: str = "https://api.anthropic.com",
        model: str = "claude-sonnet-4-20250514",
        api_version: str = "2023-06-01",
        max_tokens: int = 8000,
        timeout_s: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_version = api_version
        self.max_tokens = int(max_tokens)

        timeout = httpx.Timeout(timeout_s, connect=min(10.0, timeout_s))
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._log = get_logger("translate.claude")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def aclose(self) -> None:
        await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key or "",
            "anthropic-version": self.api_version,
        }

    def health(self) -> Dict[str, Any]:
        return {"configured": self.configured, "model": self.model, "base_url": self.base_url}

    async def complete(self, prompt: str) -> ClaudeResult:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        t0 = time.perf_counter()
        data = await self._post_json("/v1/messages", payload)
        latency_ms = int((time.perf_counter() - t0) * 1000)

        text = self._extract_text(data)
        usage = data.get("usage") or {}
        in_tok = usage.get("input_tokens")
        out_tok = usage.get("output_tokens")
        return ClaudeResult(
            text=text,
            model=str(data.get("model") or self.model),
            latency_ms=latency_ms,
            input_tokens=in_tok if isinstance(in_tok, int) else estimate_tokens(prompt),
            output_tokens=out_tok if isinstance(out_tok, int) else estimate_tokens(text),
            raw=data,
        )

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self._url(path)
        try:
            r = await self._client.post(url, json=payload, headers=self._headers())
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise UpstreamError(
                detail=f"Claude unreachable: {e}",
                code="upstream_unavailable",
            ) from e

        if r.status_code == 429:
            raise UpstreamRateLimited(
                detail="Claude rate limit exceeded",
                retry_after=self._retry_after(r),
            )

        if not r.is_success:
            self._log.warning("Claude HTTP %s on %s: %s", r.status_code, path, r.text[:500])
            raise UpstreamError(
                detail=f"Claude HTTP error {r.status_code}",
                code="upstream_http_error",
                upstream_status=r.status_code,
            )

        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError(
                detail="Claude returned invalid JSON",
                code="upstream_bad_response",
                upstream_status=r.status_code,
            ) from e
        if not isinstance(data, dict):
            raise UpstreamError(
                detail="Claude returned an unexpected payload",
                code="upstream_bad_response",
                upstream_status=r.status_code,
            )
        return data

    @staticmethod
    def _retry_after(r: httpx.Response) -> Optional[float]:
        ra = r.headers.get("Retry-After")
        try:
            return float(ra) if ra else None
        except ValueError:
            return None

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> str:
        content = data.get("content")
        if isinstance(content, list) and content:
            first = content[0]
            if isinstance(first, dict) and isinstance(first.get("text"), str):
                return first["text"]
        raise UpstreamError(detail="Claude response has no text content", code="upstream_bad_response")
