from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

import yaml

from parley.errors import ConfigurationError

DEFAULT_PROMPT = (
    "The following is a conversation that 'User' is having with an AI assistant named 'Bot'. "
    "The assistant is helpful, creative, clever, and very friendly."
)
DEFAULT_YOUR_NAME = "User"
DEFAULT_THEIR_NAME = "Bot"
DEFAULT_MODEL_NAME = "gpt-3.5-turbo-instruct"
DEFAULT_TOKEN_LIMIT = 100
DEFAULT_PROMPT_CONTEXT_LENGTH = 5
DEFAULT_EXPECTED_RESPONSE_MS = 5_000
DEFAULT_INPUT_POLL_MS = 10
DEFAULT_DATABASE_PATH = "chatbot.db"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MODE = "text"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class CompletionSettings:
    api_key: str
    organization_id: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    temperature: float = 0.0


@dataclass(frozen=True)
class Settings:
    completion: CompletionSettings
    your_name: str = DEFAULT_YOUR_NAME
    their_name: str = DEFAULT_THEIR_NAME
    starting_prompt: str = DEFAULT_PROMPT
    model: str = DEFAULT_MODEL_NAME
    token_limit: int = DEFAULT_TOKEN_LIMIT
    prompt_context_length: int = DEFAULT_PROMPT_CONTEXT_LENGTH
    expected_response_time: float = DEFAULT_EXPECTED_RESPONSE_MS / 1000
    input_poll_interval: float = DEFAULT_INPUT_POLL_MS / 1000
    database_path: Path = Path(DEFAULT_DATABASE_PATH)
    resume: bool = False
    mode: str = DEFAULT_MODE
    log_file: Path = Path("debug.log")
    log_level: str = "INFO"


class _Resolver:
    """Looks a value up in CLI overrides, then the environment, then the config file."""

    def __init__(
        self,
        overrides: Mapping[str, Any],
        environ: Mapping[str, str],
        file_values: Mapping[str, Any],
    ) -> None:
        self._overrides = overrides
        self._environ = environ
        self._file_values = file_values

    def get(self, key: str, env_name: Optional[str], default: Any, parse: Callable[[str, Any], Any]) -> Any:
        value = self._overrides.get(key)
        if value is not None:
            return parse(key, value)
        if env_name is not None and env_name in self._environ:
            return parse(env_name, self._environ[env_name])
        if key in self._file_values and self._file_values[key] is not None:
            return parse(key, self._file_values[key])
        return default


def load_settings(
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    config_path: Optional[str | Path] = None,
) -> Settings:
    environ = os.environ if environ is None else environ
    file_values = _load_config_file(config_path, environ) if config_path else {}
    resolve = _Resolver(overrides or {}, environ, file_values).get

    api_key = resolve("api_key", "OPENAI_API_KEY", "", _as_str).strip()
    if not api_key:
        raise ConfigurationError("OPENAI_API_KEY is required")

    completion = CompletionSettings(
        api_key=api_key,
        organization_id=resolve("organization_id", "OPENAI_ORGANIZATION_ID", None, _as_str) or None,
        base_url=resolve("base_url", "OPENAI_BASE_URL", DEFAULT_BASE_URL, _as_str).rstrip("/"),
        timeout_seconds=resolve("timeout_seconds", "OPENAI_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS, _as_positive_float),
    )

    log_level = resolve("log_level", "LOG_LEVEL", "INFO", _as_str).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigurationError(f"Unknown log level: {log_level}")

    return Settings(
        completion=completion,
        your_name=resolve("your_name", "YOUR_NAME", DEFAULT_YOUR_NAME, _as_str),
        their_name=resolve("their_name", "THEIR_NAME", DEFAULT_THEIR_NAME, _as_str),
        starting_prompt=resolve("prompt", "STARTING_PROMPT", DEFAULT_PROMPT, _as_str),
        model=resolve("model", "OPENAI_MODEL_NAME", DEFAULT_MODEL_NAME, _as_str),
        token_limit=resolve("token_limit", "RESPONSE_TOKEN_LIMIT", DEFAULT_TOKEN_LIMIT, _as_positive_int),
        prompt_context_length=resolve(
            "prompt_context_length", "PROMPT_CONTEXT_LENGTH", DEFAULT_PROMPT_CONTEXT_LENGTH, _as_positive_int
        ),
        expected_response_time=resolve(
            "expected_response_time", "EXPECTED_RESPONSE_TIME", DEFAULT_EXPECTED_RESPONSE_MS, _as_millis
        )
        / 1000,
        input_poll_interval=resolve("input_poll_interval", "USER_INPUT_POLL_DURATION", DEFAULT_INPUT_POLL_MS, _as_millis)
        / 1000,
        database_path=Path(resolve("db_path", "DATABASE_FILE_PATH", DEFAULT_DATABASE_PATH, _as_str)),
        resume=resolve("resume", "RESUME", False, _as_bool),
        mode=resolve("mode", None, DEFAULT_MODE, _as_str),
        log_file=Path(resolve("log_file", "LOG_FILE", "debug.log", _as_str)),
        log_level=log_level,
    )


def _load_config_file(path: str | Path, environ: Mapping[str, str]) -> dict[str, Any]:
    config_file = Path(path)
    try:
        raw = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigurationError(f"Unable to read config file {config_file}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_file}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_file} must contain a mapping at the top level")
    return _expand_env(raw, environ)


def _expand_env(value: Any, environ: Mapping[str, str]) -> Any:
    if isinstance(value, dict):
        return {k: _expand_env(v, environ) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v, environ) for v in value]
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return environ.get(value[2:-1], "")
    return value


def _as_str(name: str, value: Any) -> str:
    return str(value)


def _as_positive_int(name: str, value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be positive, got {parsed}")
    return parsed


def _as_millis(name: str, value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a whole number of milliseconds, got {value!r}") from exc
    if parsed < 0:
        raise ConfigurationError(f"{name} cannot be negative, got {parsed}")
    return parsed


def _as_positive_float(name: str, value: Any) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be positive, got {parsed}")
    return parsed


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")
