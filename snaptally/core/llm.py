"""
Generative-text calls supporting multiple providers (Anthropic, OpenAI, Azure OpenAI).
"""

import base64
import os
from enum import Enum
from typing import Dict, List, Optional

from .errors import LLMError
from .logging import get_logger

logger = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    AZURE_OPENAI = "azure-openai"


# Default models for each provider
DEFAULT_MODELS = {
    LLMProvider.ANTHROPIC: "claude-3-5-haiku-20241022",
    LLMProvider.OPENAI: "gpt-4o-mini",
    LLMProvider.AZURE_OPENAI: "gpt-4o-mini",
}

# Receipts with many items need room for the full JSON
MAX_TOKENS = 4000
TEMPERATURE = 0.1

# Lazily created SDK clients, keyed by provider
_clients: Dict[str, object] = {}


def _create_client(provider: LLMProvider):
    if provider == LLMProvider.ANTHROPIC:
        import anthropic
        return anthropic.Anthropic()  # ANTHROPIC_API_KEY

    import openai
    if provider == LLMProvider.OPENAI:
        return openai.OpenAI()  # OPENAI_API_KEY
    return openai.AzureOpenAI(
        api_key=os.getenv("AZURE_OPENAI_API_KEY"),
        api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview"),
        azure_endpoint=os.getenv("AZURE_OPENAI_ENDPOINT"),
    )


def _client_for(provider: LLMProvider):
    if provider.value not in _clients:
        _clients[provider.value] = _create_client(provider)
    return _clients[provider.value]


def _anthropic_content(prompt: str, image: Optional[bytes], media_type: str) -> List[Dict]:
    content = []
    if image:
        content.append({
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": media_type,
                "data": base64.b64encode(image).decode("ascii"),
            },
        })
    content.append({"type": "text", "text": prompt})
    return content


def _openai_content(prompt: str, image: Optional[bytes], media_type: str):
    if not image:
        return prompt
    data_url = f"data:{media_type};base64,{base64.b64encode(image).decode('ascii')}"
    return [
        {"type": "text", "text": prompt},
        {"type": "image_url", "image_url": {"url": data_url}},
    ]


def _call_anthropic(prompt: str, model: str, image: Optional[bytes], media_type: str) -> str:
    """Call Anthropic API."""
    client = _client_for(LLMProvider.ANTHROPIC)
    response = client.messages.create(
        model=model,
        max_tokens=MAX_TOKENS,
        temperature=TEMPERATURE,
        messages=[{"role": "user", "content": _anthropic_content(prompt, image, media_type)}]
    )
    return "".join(block.text for block in response.content if getattr(block, "type", "") == "text").strip()


def _call_openai_compatible(client, prompt: str, model: str, image: Optional[bytes], media_type: str) -> str:
    response = client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": _openai_content(prompt, image, media_type)}],
        max_tokens=MAX_TOKENS,
        temperature=TEMPERATURE,
        response_format={"type": "json_object"}
    )
    return (response.choices[0].message.content or "").strip()


def _call_openai(prompt: str, model: str, image: Optional[bytes], media_type: str) -> str:
    """Call OpenAI API."""
    return _call_openai_compatible(_client_for(LLMProvider.OPENAI), prompt, model, image, media_type)


def _call_azure_openai(prompt: str, model: str, image: Optional[bytes], media_type: str) -> str:
    """Call Azure OpenAI API."""
    return _call_openai_compatible(_client_for(LLMProvider.AZURE_OPENAI), prompt, model, image, media_type)


def _provider(provider: str) -> LLMProvider:
    try:
        return LLMProvider(provider)
    except ValueError:
        raise LLMError(f"Unsupported LLM provider: {provider}") from None


def resolve_model(provider: str, model: Optional[str] = None) -> str:
    """The model `generate` calls for this provider when given `model`."""
    return model or DEFAULT_MODELS[_provider(provider)]


def generate(prompt: str, provider: str = "openai", model: Optional[str] = None,
             image: Optional[bytes] = None, media_type: str = "image/jpeg") -> str:
    """
    Send a prompt (and optionally the receipt image) to the generative model.

    Args:
        prompt: Parsing prompt text
        provider: LLM provider to use ("openai", "anthropic", "azure-openai")
        model: Model name (uses default for provider if not specified)
        image: Raw image bytes for multimodal models
        media_type: MIME type of `image`

    Returns:
        The model's free-form text response

    Raises:
        LLMError: unsupported provider or an empty response. SDK errors
            (network, auth, rate limit) propagate unchanged.
    """
    provider = _provider(provider)
    model = resolve_model(provider, model)

    logger.debug("Calling %s model %s (image=%s, prompt=%d chars)",
                 provider.value, model, image is not None, len(prompt))

    if provider == LLMProvider.ANTHROPIC:
        response_text = _call_anthropic(prompt, model, image, media_type)
    elif provider == LLMProvider.OPENAI:
        response_text = _call_openai(prompt, model, image, media_type)
    else:
        response_text = _call_azure_openai(prompt, model, image, media_type)

    if not response_text:
        raise LLMError(f"Empty response from {provider.value} model {model}")
    return response_text
