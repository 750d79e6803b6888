from __future__ import annotations

import math


TRANSLATION_TEMPLATE = """Translate the following English text to grammatically perfect Finnish, preserving all markdown formatting (e.g. ## headers, \\n line breaks, **bold**, lists - etc).

CRITICAL RULES:
- Do NOT translate code, slugs, markdown syntax, URLs, or HTML
- Preserve ALL formatting exactly as shown
- Use the English text for context before re-writing
- Write as if you were a Finnish native speaker
- For business content: Use professional tone suitable for Finnish B2B market
- Maintain SEO-friendly language for Finnish searches
- IMPORTANT: Translate the COMPLETE text, do not truncate or summarize

English text:
{text}

Finnish translation:"""


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def build_translation_prompt(text: str) -> str:
    # str.replace, not .format: the input may contain braces.
    return TRANSLATION_TEMPLATE.replace("{text}", text)
