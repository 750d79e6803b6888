from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List

from app.core.dispatch_queue import DispatchQueue
from app.core.logging import get_logger
from app.llm.claude_client import ClaudeClient, ClaudeResult
from app.translate.prompting import TRANSLATION_TEMPLATE, build_translation_prompt, estimate_tokens

log = get_logger("translate.service")

_TEMPLATE_TOKENS = estimate_tokens(TRANSLATION_TEMPLATE.replace("{text}", ""))


@dataclass
class TranslationResult:
    text: str
    model: str
    latency_ms: int
    upstream_latency_ms: int
    input_tokens: int
    output_tokens: int
    warnings: List[str]


def _preview(text: str, n: int = 100) -> str:
    return text[:n] + ("..." if len(text) > n else "")


class Translator:
    """English→Finnish translation routed through the shared dispatch queue."""

    def __init__(
        self,
        client: ClaudeClient,
        queue: DispatchQueue,
        *,
        large_input_tokens: int = 6000,
        output_tokens_warn: int = 7500,
        line_mismatch_warn: int = 5,
    ) -> None:
        self.client = client
        self.queue = queue
        self.large_input_tokens = large_input_tokens
        self.output_tokens_warn = output_tokens_warn
        self.line_mismatch_warn = line_mismatch_warn

    async def translate(self, text: str) -> TranslationResult:
        est_input = estimate_tokens(text) + _TEMPLATE_TOKENS
        log.info("translating %s chars (~%s input tokens): %r", len(text), est_input, _preview(text))

        warnings: List[str] = []
        if est_input > self.large_input_tokens:
            warnings.append("large_input")
            log.warning("large text detected (~%s tokens); translation may be truncated", est_input)

        prompt = build_translation_prompt(text)
        t0 = time.perf_counter()
        result: ClaudeResult = await self.queue.submit(lambda: self.client.complete(prompt))
        latency_ms = int((time.perf_counter() - t0) * 1000)

        translated = result.text.strip()
        warnings.extend(self.check_output(text, translated, result.output_tokens))

        log.info(
            "translation ok | chars=%s output_tokens=%s upstream_latency_ms=%s total_latency_ms=%s",
            len(translated),
            result.output_tokens,
            result.latency_ms,
            latency_ms,
        )
        return TranslationResult(
            text=translated,
            model=result.model,
            latency_ms=latency_ms,
            upstream_latency_ms=result.latency_ms,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            warnings=warnings,
        )

    def check_output(self, source: str, translated: str, output_tokens: int) -> List[str]:
        """Heuristic completeness checks; they only log, never reject."""
        warnings: List[str] = []
        if output_tokens >= self.output_tokens_warn:
            warnings.append("near_token_limit")
            log.warning("output near token limit (%s tokens); translation may be truncated", output_tokens)

        in_lines = len(source.split("\n"))
        out_lines = len(translated.split("\n"))
        if abs(in_lines - out_lines) > self.line_mismatch_warn:
            warnings.append("line_mismatch")
            log.warning("line count mismatch: input %s lines, output %s lines", in_lines, out_lines)
        return warnings
