"""AI oracle: prompt in, JSON object out.

:class:`GeminiOracle` talks to the Generative Language REST API over
aiohttp. Responses that are not a JSON object are wrapped as
``{"raw": text}`` rather than treated as failures; every consumer has to
tolerate that shape.
"""

from __future__ import annotations

import json
import logging
from enum import StrEnum
from typing import Any, Protocol

import aiohttp

from drivepipe._constants import USER_AGENT
from drivepipe._redact import redact_for_log
from drivepipe.config import PipelineConfig
from drivepipe.exceptions import ConfigError, OracleTransportError

_logger = logging.getLogger(__name__)


class Priority(StrEnum):
    """Scheduling hint for an oracle call. Accepted but not acted on yet."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Oracle(Protocol):
    """Structural oracle interface used by jobs, analysis and sweeps."""

    async def invoke(self, prompt: str, priority: Priority = Priority.LOW) -> dict[str, Any]:
        """Full-size model call used for analysis and jobs."""
        ...

    async def invoke_light(self, prompt: str, *, max_output_tokens: int = 2048) -> dict[str, Any]:
        """Cheaper, bounded model call used for baselines."""
        ...


def parse_oracle_text(text: str, *, model: str = "") -> dict[str, Any]:
    """Parse a model's text output as a JSON object, wrapping anything else."""
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed
    _logger.warning("%s response was not a JSON object, wrapping: %s", model or "Oracle", text[:200])
    return {"raw": text}


def _extract_text(body: dict[str, Any]) -> str:
    candidates = body.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))


class GeminiOracle:
    """Oracle backed by the Gemini ``generateContent`` endpoint.

    Parameters
    ----------
    config : PipelineConfig
        Supplies API key, base URL, model ids and sampling settings.
    http_session : aiohttp.ClientSession
        Session used for requests; owned by the caller.
    """

    def __init__(self, config: PipelineConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    async def invoke(self, prompt: str, priority: Priority = Priority.LOW) -> dict[str, Any]:
        _logger.debug("Oracle call model=%s priority=%s", self._config.oracle_pro_model, priority)
        text = await self._generate(
            self._config.oracle_pro_model,
            prompt,
            {
                "responseMimeType": "application/json",
                "temperature": self._config.oracle_pro_temperature,
            },
        )
        return parse_oracle_text(text, model=self._config.oracle_pro_model)

    async def invoke_light(self, prompt: str, *, max_output_tokens: int = 2048) -> dict[str, Any]:
        _logger.debug("Oracle call model=%s max_output_tokens=%d", self._config.oracle_flash_model, max_output_tokens)
        text = await self._generate(
            self._config.oracle_flash_model,
            prompt,
            {
                "responseMimeType": "application/json",
                "temperature": self._config.oracle_flash_temperature,
                "maxOutputTokens": max_output_tokens,
            },
        )
        return parse_oracle_text(text, model=self._config.oracle_flash_model)

    async def _generate(self, model: str, prompt: str, generation_config: dict[str, Any]) -> str:
        api_key = self._config.oracle_api_key
        if not api_key:
            raise ConfigError("Oracle API key is not configured (DRIVEPIPE_ORACLE_API_KEY or GEMINI_API_KEY)")

        url = f"{self._config.oracle_base_url.rstrip('/')}/models/{model}:generateContent"
        headers = {
            "content-type": "application/json",
            "user-agent": USER_AGENT,
            "x-goog-api-key": api_key,
        }
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        _logger.debug("POST %s headers=%s", url, redact_for_log(headers))

        timeout = aiohttp.ClientTimeout(total=self._config.oracle_timeout)
        try:
            async with self._http.post(url, json=payload, headers=headers, timeout=timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise OracleTransportError(
                        f"HTTP {resp.status} from {model}: {text[:200]}",
                        status_code=resp.status,
                        model=model,
                    )
        except OracleTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise OracleTransportError(f"Request to {model} failed: {exc}", model=model) from exc

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise OracleTransportError(f"Invalid JSON envelope from {model}: {text[:200]}", model=model) from exc
        if not isinstance(body, dict):
            raise OracleTransportError(f"Unexpected envelope from {model}", model=model)

        _logger.debug("Oracle response model=%s body=%s", model, redact_for_log(body))
        return _extract_text(body)
