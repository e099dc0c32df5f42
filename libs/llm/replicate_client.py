from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import replicate
import yaml

from libs.core.settings import Settings, get_settings
from .llm_client import LLMClient

# libs/llm/replicate_client.py -> project_root/config/prompts.yaml
DEFAULT_PROMPTS_PATH = Path(__file__).resolve().parents[2] / "config" / "prompts.yaml"


class LLMClientError(Exception):
    """Raised when interaction with LLM fails."""


class ReplicateLLMClient(LLMClient):
    """LLM client powered by Replicate API."""

    def __init__(
        self,
        settings: Settings | None = None,
        prompts_path: str | Path | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.logger = logging.getLogger(__name__)
        self.model: str = getattr(self.settings, "summary_model", "openai/gpt-5-nano")
        self.api_token: str = getattr(self.settings, "replicate_api_token", "")
        self._log_payloads: bool = bool(getattr(self.settings, "llm_log_payloads", False))
        self._max_completion_tokens: int = int(
            getattr(self.settings, "llm_max_completion_tokens", 512)
        )
        self._client: replicate.Client | None = None

        configured = prompts_path or getattr(self.settings, "prompts_path", None)
        self.prompts_path = Path(configured) if configured else DEFAULT_PROMPTS_PATH
        try:
            with self.prompts_path.open("r", encoding="utf-8") as fh:
                self.prompts: Dict[str, Dict[str, str]] = yaml.safe_load(fh) or {}
            self.logger.debug("Prompts loaded from: %s", str(self.prompts_path))
        except FileNotFoundError as exc:
            raise LLMClientError(
                f"Prompts file not found: {self.prompts_path}"
            ) from exc
        except yaml.YAMLError as exc:
            raise LLMClientError("Failed to parse prompts file") from exc

    @property
    def available(self) -> bool:
        return bool(self.api_token)

    def _prompt(self, section: str, key: str) -> str:
        try:
            return self.prompts[section][key]
        except (KeyError, TypeError) as exc:
            raise LLMClientError(
                f"Prompt '{section}.{key}' not found in {self.prompts_path}"
            ) from exc

    def _get_client(self) -> replicate.Client:
        if self._client is None:
            self._client = replicate.Client(api_token=self.api_token)
        return self._client

    @staticmethod
    def _join_output(out: Any) -> str:
        """Normalize Replicate output (str, dict or streamed chunks) into text."""
        if out is None:
            return ""
        if isinstance(out, str):
            return out
        if isinstance(out, dict):
            if isinstance(out.get("text"), str):
                return out["text"]
            return json.dumps(out, ensure_ascii=False)
        try:
            chunks = list(out)
        except TypeError as exc:
            raise LLMClientError("Unexpected streaming output from Replicate") from exc
        return "".join(str(c) for c in chunks)

    def _call(self, messages: List[Dict[str, str]]) -> str:
        input_payload: Dict[str, Any] = {
            "messages": messages,
            "reasoning_effort": "minimal",
            "verbosity": "low",
            "max_completion_tokens": self._max_completion_tokens,
        }
        _lvl = logging.INFO if self._log_payloads else logging.DEBUG
        self.logger.log(
            _lvl,
            "Replicate request | model=%s | input=%s",
            self.model,
            json.dumps(input_payload, ensure_ascii=False, default=str),
        )
        try:
            out = self._get_client().run(self.model, input=input_payload)
            text = self._join_output(out)
        except LLMClientError:
            raise
        except Exception as exc:
            # Ensure failure is visible in logs with stack trace
            self.logger.exception("Replicate request failed: %s", exc)
            raise LLMClientError(f"Replicate request failed: {exc}") from exc
        self.logger.log(_lvl, "Replicate response | model=%s | text=%s", self.model, text)
        return text

    def summarize_week(self, bullet_summary: str) -> Optional[str]:
        if not self.available:
            return None
        user_prompt = self._prompt("weekly_insight", "user").format(bullets=bullet_summary)
        text = self._call(
            [
                {"role": "system", "content": self._prompt("weekly_insight", "system")},
                {"role": "user", "content": user_prompt},
            ]
        )
        text = text.strip()
        return text or None


__all__ = ["ReplicateLLMClient", "LLMClientError"]
