"""
Escalation client for the repair cascade.

When no local repair tier can recover a response, the cascade asks the
upstream generator once more with a stricter prompt. Anything with an
async ``generate(prompt, timeout=None) -> str`` method can play that role;
OllamaGenerator is the HTTP implementation used by the service.
"""

import json
import logging
import math
from typing import Any, Dict, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """The generator could not be reached or returned an unusable reply."""


class TextGenerator(Protocol):
    async def generate(self, prompt: str, timeout: Optional[float] = None) -> str:
        ...


class OllamaGenerator:
    """
    Single-shot Ollama client:
    - format=json so the model is pushed towards strict JSON
    - low temperature for predictable output
    - no retries; transport retries are the caller's business
    """

    def __init__(
        self,
        host: str,
        model: str,
        timeout_s: float = 600.0,
        temperature: float = 0.1,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.host = host.rstrip("/")
        self.model = model
        self.timeout_s = timeout_s
        self.temperature = temperature
        self.transport = transport

    def _payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "keep_alive": "10m",
            "options": {
                "temperature": self.temperature,
            },
        }

    async def generate(self, prompt: str, timeout: Optional[float] = None) -> str:
        url = f"{self.host}/api/generate"
        effective_timeout = timeout if timeout is not None else self.timeout_s

        try:
            async with httpx.AsyncClient(timeout=effective_timeout, transport=self.transport) as client:
                response = await client.post(url, json=self._payload(prompt))
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Generator request to {url} failed: {e}")
            raise GenerationError(str(e)) from e
        except ValueError as e:
            logger.error(f"Generator returned a non-JSON envelope: {e}")
            raise GenerationError("invalid response envelope") from e

        if not isinstance(data, dict):
            raise GenerationError("invalid response envelope")
        return (data.get("response") or "").strip()


def build_strict_prompt(
    schema: Optional[Dict[str, Any]] = None,
    instructions: Optional[str] = None,
    source_text: Optional[str] = None,
    malformed_response: Optional[str] = None,
) -> str:
    """
    Prompt used for the single regeneration attempt.

    The source text is what the generator should extract from. Without it the
    malformed response is sent back to be re-emitted as valid JSON.
    """
    parts = []
    if instructions:
        parts.append(instructions.strip())

    if schema:
        parts.append(
            "I need STRICTLY VALID JSON that follows this schema exactly:\n"
            + json.dumps(schema, indent=2)
        )
    else:
        parts.append("I need STRICTLY VALID JSON.")

    parts.append(
        """CRITICALLY IMPORTANT:
1. Double-check that your JSON is valid and does not contain ANY syntax errors
2. Use double quotes for all strings and property names
3. Do not include trailing commas in arrays or objects
4. Do not include any text before or after the JSON
5. Do not use markdown formatting or code blocks
6. Ensure all array elements are separated by commas
7. Make sure all "attached_media" arrays are properly formatted
8. Every open bracket or brace must have a matching closing one

Return ONLY the raw JSON object."""
    )

    if source_text:
        parts.append(f"Text content:\n{source_text}")
    elif malformed_response:
        parts.append(
            "Rewrite this malformed response as valid JSON. Keep every key and value, "
            f"do not add new data:\n{malformed_response}"
        )

    return "\n\n".join(parts)


def estimate_tokens(text: Optional[str]) -> int:
    """Roughly four characters per token for English text."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)
