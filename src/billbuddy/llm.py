"""LLM providers for extraction and patient-facing prose."""

import json
import re

from llama_index.core.llms import LLM

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-sonnet-4-20250514",
}

_FENCE = re.compile(r"```(?:json)?\s*")


def get_llm(
    provider: str = "openai",
    model: str | None = None,
    temperature: float = 0.1,
    max_tokens: int | None = None,
) -> LLM:
    """Build a llama-index LLM for the named provider."""
    model = model or DEFAULT_MODELS.get(provider)
    if provider == "openai":
        from llama_index.llms.openai import OpenAI

        return OpenAI(model=model, temperature=temperature, max_tokens=max_tokens)
    if provider == "anthropic":
        from llama_index.llms.anthropic import Anthropic

        return Anthropic(
            model=model, temperature=temperature, max_tokens=max_tokens or 4000
        )
    raise ValueError(f"Unsupported LLM provider: {provider}")


def parse_json_response(text: str) -> dict:
    """Parse a JSON object from a model reply, tolerating markdown fences.

    Raises ValueError when no JSON object can be decoded.
    """
    cleaned = _FENCE.sub("", text.strip()).strip()
    if not cleaned.startswith("{"):
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("Response does not contain a JSON object")
        cleaned = cleaned[start : end + 1]
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data
