"""LiteLLM client wrapper for embeddings, completions, and SSE streaming.

All LLM + embedding calls route through this module. LiteLLM's built-in retry
is used for non-streaming calls (num_retries=3, exponential backoff).
Provider failures surface as EmbeddingError / GenerationError so callers never
depend on litellm's exception hierarchy.
"""

from __future__ import annotations

import json
import logging
import os
from functools import partial
from typing import Callable, Iterator

import litellm

litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)

Embedder = Callable[[list[str]], list[list[float]]]

SSE_DONE = "data: [DONE]\n\n"


class EmbeddingError(RuntimeError):
    """Raised when the embedding provider fails or returns a malformed response."""


class GenerationError(RuntimeError):
    """Raised when the generation provider fails (before or during a stream)."""


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "google": "GOOGLE_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "cloudflare": "CLOUDFLARE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


# ------------------------------------------------------------------
# Embeddings
# ------------------------------------------------------------------


def embed_texts(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Embed *texts* in one batched call. Returns one vector per input, in order.

    Raises:
        EmbeddingError: On provider failure or a response of the wrong length.
    """
    if not texts:
        return []
    try:
        response = litellm.embedding(model=model, input=texts, num_retries=num_retries)
        items = sorted(response.data, key=lambda item: item["index"])
        vectors = [list(item["embedding"]) for item in items]
    except Exception as exc:
        raise EmbeddingError(f"Embedding failed ({model}): {exc}") from exc
    if len(vectors) != len(texts):
        raise EmbeddingError(
            f"Embedding returned {len(vectors)} vectors for {len(texts)} inputs ({model})"
        )
    return vectors


def embed(model: str, text: str, num_retries: int = 3) -> list[float]:
    """Embed a single string. See embed_texts()."""
    return embed_texts(model, [text], num_retries=num_retries)[0]


def make_embedder(model: str) -> Embedder:
    """Bind *model* into an ``(texts) -> vectors`` callable."""
    return partial(embed_texts, model)


# ------------------------------------------------------------------
# Generation
# ------------------------------------------------------------------


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.7,
    num_retries: int = 3,
) -> str:
    """Call litellm.completion() with retry/backoff. Returns content string.

    Raises:
        GenerationError: On persistent provider failure after retries.
    """
    try:
        response = litellm.completion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            num_retries=num_retries,
        )
        return response.choices[0].message.content or ""
    except Exception as exc:
        raise GenerationError(f"Generation failed ({model}): {exc}") from exc


def sse_frame(delta: str) -> str:
    """Encode one text delta as an SSE ``data:`` frame."""
    return f"data: {json.dumps({'response': delta})}\n\n"


def stream_sse(
    model: str,
    messages: list[dict],
    max_tokens: int = 2048,
    temperature: float = 0.7,
) -> Iterator[str]:
    """Open a streaming completion and return an iterator of SSE frames.

    The provider stream is opened eagerly so a failure to start raises
    GenerationError here, before any response headers are sent. The returned
    iterator yields ``data: {"response": "<delta>"}`` frames and finishes with
    ``data: [DONE]``; a mid-stream provider failure raises GenerationError from
    the iterator.
    """
    try:
        stream = litellm.completion(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            stream=True,
        )
    except Exception as exc:
        raise GenerationError(f"Generation failed ({model}): {exc}") from exc
    return _frames(stream, model)


def _frames(stream, model: str) -> Iterator[str]:
    try:
        for part in stream:
            if not part.choices:
                continue
            delta = part.choices[0].delta.content
            if delta:
                yield sse_frame(delta)
    except Exception as exc:
        raise GenerationError(f"Stream from {model} failed: {exc}") from exc
    yield SSE_DONE
