"""Text-completion service backends.

Two ways to reach the model:

- :class:`AnthropicService` posts to the Messages API over ``httpx``.
- :class:`AgentCLIService` shells out to an agent CLI (``claude --print`` by
  default) with the prompt on stdin.

Both raise :class:`~plainness.errors.ServiceError` on any failure and never
retry.
"""

from __future__ import annotations

import logging
import os
import subprocess
from typing import Any, Protocol

import httpx

from plainness.errors import ServiceError

log = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_TIMEOUT = 120


class CompletionService(Protocol):
    def complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> str: ...


def _read_error_body(response: httpx.Response) -> dict[str, Any]:
    """Parse an upstream error payload; anything unreadable becomes ``{}``."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_message(status: int, details: dict[str, Any]) -> str:
    err = details.get("error")
    if isinstance(err, dict) and err.get("message"):
        return f"API error {status}: {err['message']}"
    if isinstance(err, str) and err:
        return f"API error {status}: {err}"
    return f"API error: {status}"


class AnthropicService:
    """Messages API client.

    Parameters
    ----------
    api_key:
        API key sent as ``x-api-key``. A missing key fails on first use.
    model:
        Model id.
    base_url:
        API root; ``/v1/messages`` is appended.
    client:
        Optional pre-built ``httpx.Client`` (tests pass one with a
        ``MockTransport``).
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        anthropic_version: str = DEFAULT_ANTHROPIC_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._url = base_url.rstrip("/") + "/v1/messages"
        self._version = anthropic_version
        self._client = client or httpx.Client(timeout=timeout)

    def complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> str:
        if not self._api_key:
            raise ServiceError("API key not configured", status=None)

        payload = {
            "model": self._model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": messages,
        }
        headers = {
            "content-type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": self._version,
        }
        log.debug("POST %s (model=%s, max_tokens=%d)", self._url, self._model, max_tokens)
        try:
            response = self._client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            log.error("Completion request failed: %s", exc)
            raise ServiceError(f"Request failed: {exc}", status=None) from exc

        if not response.is_success:
            details = _read_error_body(response)
            log.error("Completion service returned %d", response.status_code)
            raise ServiceError(
                _error_message(response.status_code, details),
                status=response.status_code,
                details=details,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ServiceError(
                "Completion service returned a non-JSON body",
                status=response.status_code,
            ) from exc

        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            raise ServiceError(
                "Completion service response has no content blocks",
                status=response.status_code,
                details=data if isinstance(data, dict) else {},
            )
        return "\n".join(
            (block.get("text") or "") for block in blocks if isinstance(block, dict)
        )

    def close(self) -> None:
        self._client.close()


class AgentCLIService:
    """Completion through an agent CLI subprocess.

    Builds the command from ``agent_command`` (split on whitespace) or
    defaults to ``claude --print --model <model> --system-prompt <system>``.
    The conversation is rendered to plain text and passed on stdin.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        agent_command: str | None = None,
        timeout: int = 600,
    ) -> None:
        self._model = model
        self._agent_command = agent_command
        self._timeout = timeout

    def _build_command(self, system: str) -> list[str]:
        if self._agent_command:
            return self._agent_command.split()
        return ["claude", "--print", "--model", self._model, "--system-prompt", system]

    @staticmethod
    def _render_messages(system: str, messages: list[dict[str, str]], custom: bool) -> str:
        parts: list[str] = []
        if custom and system:
            parts.append(system)
        if len(messages) == 1:
            parts.append(messages[0]["content"])
        else:
            for m in messages:
                parts.append(f"{m['role'].upper()}: {m['content']}")
        return "\n\n".join(parts)

    def complete(
        self,
        system: str,
        messages: list[dict[str, str]],
        max_tokens: int,
    ) -> str:
        cmd = self._build_command(system)
        prompt = self._render_messages(system, messages, custom=bool(self._agent_command))

        try:
            result = subprocess.run(
                cmd,
                input=prompt,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            log.error("Agent timed out (%d s)", self._timeout)
            raise ServiceError(f"Agent timed out after {self._timeout}s") from exc
        except FileNotFoundError as exc:
            log.error("Agent command not found: %s", cmd[0])
            raise ServiceError(f"Agent command not found: {cmd[0]}") from exc

        if result.returncode != 0:
            log.error("Agent failed (rc=%d): %s", result.returncode, result.stderr[:500])
            raise ServiceError(
                f"Agent exited with status {result.returncode}: {result.stderr[:500].strip()}",
                status=result.returncode,
            )
        return result.stdout


def create_service(config: dict[str, Any]) -> CompletionService:
    """Build the completion backend selected by ``service.backend``."""
    svc = config.get("service", {})
    model = config.get("model", DEFAULT_MODEL)
    backend = svc.get("backend", "http")

    if backend == "cli":
        return AgentCLIService(
            model=model,
            agent_command=svc.get("agent_command"),
            timeout=int(svc.get("timeout", 600)),
        )
    if backend == "http":
        return AnthropicService(
            api_key=os.environ.get(svc.get("api_key_env", "ANTHROPIC_API_KEY")),
            model=model,
            base_url=svc.get("base_url", DEFAULT_BASE_URL),
            anthropic_version=svc.get("anthropic_version", DEFAULT_ANTHROPIC_VERSION),
            timeout=float(svc.get("timeout", DEFAULT_TIMEOUT)),
        )
    raise ValueError(f"Unknown service backend: {backend}")
