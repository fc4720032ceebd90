"""Generator backed by an OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from blacksmith.config import env_float, read_env_value
from blacksmith.errors import GenerationError
from blacksmith.generator import normalize_file_map, parse_json_payload
from blacksmith.generators.prompt import render_input, render_instructions

__all__ = ["OpenAIConfig", "OpenAIGenerator"]

log = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_DEFAULT_MODEL = "gpt-5-nano"
_DEFAULT_TIMEOUT = 600.0

_ENV_API_KEY = "OPENAI_API_KEY"
_ENV_BASE_URL = "OPENAI_BASE_URL"
_ENV_MODEL = "BLACKSMITH_OPENAI_MODEL"
_ENV_TIMEOUT = "BLACKSMITH_OPENAI_TIMEOUT"


@dataclass(frozen=True)
class OpenAIConfig:
    """Connection settings; unset fields fall back to the environment."""

    api_key: str | None = None
    base_url: str | None = None
    model: str | None = None
    timeout: float | None = None
    reasoning_effort: str | None = "low"


class OpenAIGenerator:
    """Asks a chat model for a JSON object mapping file names to contents."""

    def __init__(
        self,
        config: OpenAIConfig | None = None,
        *,
        http_client: httpx.Client | None = None,
    ) -> None:
        resolved = config or OpenAIConfig()
        self._api_key = resolved.api_key or read_env_value(_ENV_API_KEY)
        base_url = resolved.base_url or read_env_value(_ENV_BASE_URL) or _DEFAULT_BASE_URL
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._model = resolved.model or read_env_value(_ENV_MODEL) or _DEFAULT_MODEL
        self._reasoning_effort = resolved.reasoning_effort
        timeout = resolved.timeout or env_float(_ENV_TIMEOUT) or _DEFAULT_TIMEOUT
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    @property
    def model(self) -> str:
        return self._model

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def generate(
        self,
        target: str,
        spec_files: Mapping[str, str],
        current_files: Mapping[str, str],
    ) -> dict[str, str]:
        if not self._api_key:
            msg = f"{_ENV_API_KEY} is required for the openai generator"
            raise GenerationError(msg)

        payload = self._build_payload(target, spec_files, current_files)
        log.debug("Calling %s for %s", self._model, target)
        try:
            response = self._client.post(
                self._url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Model request failed with HTTP {exc.response.status_code}: {exc.response.text}"
            raise GenerationError(msg) from exc
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Model request failed: {exc}"
            raise GenerationError(msg) from exc

        return normalize_file_map(parse_json_payload(_message_content(body)))

    def _build_payload(
        self,
        target: str,
        spec_files: Mapping[str, str],
        current_files: Mapping[str, str],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model,
            "response_format": {"type": "json_object"},
            "messages": [
                {
                    "role": "system",
                    "content": render_instructions(
                        target, has_existing_files=bool(current_files)
                    ),
                },
                {"role": "user", "content": render_input(target, spec_files, current_files)},
            ],
        }
        if self._reasoning_effort:
            payload["reasoning_effort"] = self._reasoning_effort
        return payload


def _message_content(body: Any) -> str:
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        msg = "Model response did not contain a message"
        raise GenerationError(msg) from exc
    if not isinstance(content, str) or not content.strip():
        msg = "Model response was empty"
        raise GenerationError(msg)
    return content
