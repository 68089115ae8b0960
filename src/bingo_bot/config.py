from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

import yaml

from .errors import ConfigError

ENV_PREFIX = "BINGO_BOT_"

# Deployment names used by the compose files; the prefixed names win when both are set.
LEGACY_ENV: Dict[str, str] = {
    "TELEGRAM_BOT_TOKEN": "bot_token",
    "BACKEND_URL": "backend_url",
    "WEB_APP_URL": "web_app_url",
    "WEBHOOK_URL": "webhook_url",
    "TELEGRAM_BOT_PORT": "port",
    "SOCKET_URL": "socket_url",
}

INT_KEYS = {"port", "health_port", "create_game_attempts", "cards_page_size", "reconnect_attempts"}
FLOAT_KEYS = {"request_timeout", "reconnect_delay"}

DEFAULTS: Dict[str, Any] = {
    "backend_url": "http://localhost:5000",
    "web_app_url": "https://bingo.yourdomain.com",
    "socket_url": None,
    "webhook_url": None,
    "port": 3001,
    "health_port": 3002,
    "mode": "polling",
    "support_username": "geezbingo_support",
    "request_timeout": 10.0,
    "create_game_attempts": 3,
    "cards_page_size": 12,
    "reconnect_attempts": 5,
    "reconnect_delay": 1.0,
    "log_level": "INFO",
    "log_format": "text",
    "log_file": None,
}


@dataclass(frozen=True)
class Settings:
    bot_token: str | None
    backend_url: str
    web_app_url: str
    socket_url: str | None
    webhook_url: str | None
    port: int
    health_port: int
    mode: str
    support_username: str
    request_timeout: float
    create_game_attempts: int
    cards_page_size: int
    reconnect_attempts: int
    reconnect_delay: float
    log_level: str
    log_format: str
    log_file: str | None

    @property
    def gateway_url(self) -> str:
        """Socket gateway URL; defaults to the backend host over ws(s)."""
        if self.socket_url:
            return self.socket_url
        base = self.backend_url.rstrip("/")
        if base.startswith("https://"):
            return "wss://" + base[len("https://") :] + "/ws"
        if base.startswith("http://"):
            return "ws://" + base[len("http://") :] + "/ws"
        return base + "/ws"

    @property
    def health_url(self) -> str | None:
        """Where `monitor` finds the bot's own health endpoint."""
        if not self.health_port:
            return None
        return f"http://127.0.0.1:{self.health_port}/health"


def _read_config_file(config_path: Path | None) -> Dict[str, Any]:
    if not config_path:
        return {}
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    suffix = config_path.suffix.lower()
    text = config_path.read_text(encoding="utf-8")
    if suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ConfigError("Top-level YAML config must be a mapping")
        return data
    if suffix == ".json":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ConfigError("Top-level JSON config must be a mapping")
        return data
    raise ConfigError(f"Unsupported config extension: {suffix}")


def _convert(key: str, raw: str) -> Any:
    if key in INT_KEYS:
        try:
            return int(raw)
        except ValueError:
            return raw
    if key in FLOAT_KEYS:
        try:
            return float(raw)
        except ValueError:
            return raw
    return raw


def _collect_env_vars(env: Mapping[str, str]) -> Dict[str, Any]:
    """Map BINGO_BOT_* variables (and the legacy deployment names) to config keys."""
    result: Dict[str, Any] = {}
    for env_key, cfg_key in LEGACY_ENV.items():
        if env.get(env_key):
            result[cfg_key] = _convert(cfg_key, env[env_key])
    for cfg_key in list(DEFAULTS) + ["bot_token"]:
        env_key = f"{ENV_PREFIX}{cfg_key.upper()}"
        if env_key in env:
            result[cfg_key] = _convert(cfg_key, env[env_key])
    return result


def _apply_overrides(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged


def canonical_json_dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=True, sort_keys=True, separators=(",", ":"))


def settings_fingerprint(resolved: Mapping[str, Any]) -> str:
    """Hash of the resolved settings minus secrets, for the startup log line."""
    contract = {k: v for k, v in resolved.items() if k != "bot_token"}
    digest = hashlib.sha256(canonical_json_dumps(contract).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


def _build_settings(merged: Mapping[str, Any]) -> Settings:
    mode = str(merged.get("mode", "polling")).lower()
    if mode not in {"polling", "webhook"}:
        raise ConfigError(f"mode must be 'polling' or 'webhook', got {mode!r}")
    try:
        attempts = int(merged["create_game_attempts"])
        port = int(merged["port"])
        health_port = int(merged.get("health_port") or 0)
        timeout = float(merged["request_timeout"])
        page_size = int(merged["cards_page_size"])
        reconnect_attempts = int(merged["reconnect_attempts"])
        reconnect_delay = float(merged["reconnect_delay"])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc
    if attempts < 1:
        raise ConfigError("create_game_attempts must be >= 1")
    if health_port < 0:
        raise ConfigError("health_port must be >= 0 (0 disables the endpoint)")
    if mode == "webhook" and health_port == port:
        raise ConfigError("health_port must differ from the webhook port")
    return Settings(
        bot_token=merged.get("bot_token") or None,
        backend_url=str(merged["backend_url"]).rstrip("/"),
        web_app_url=str(merged["web_app_url"]).rstrip("/"),
        socket_url=merged.get("socket_url") or None,
        webhook_url=merged.get("webhook_url") or None,
        port=port,
        health_port=health_port,
        mode=mode,
        support_username=str(merged["support_username"]),
        request_timeout=timeout,
        create_game_attempts=attempts,
        cards_page_size=page_size,
        reconnect_attempts=reconnect_attempts,
        reconnect_delay=reconnect_delay,
        log_level=str(merged["log_level"]),
        log_format=str(merged["log_format"]),
        log_file=merged.get("log_file") or None,
    )


def resolve_settings(
    *,
    config_path_str: str | None,
    cli_overrides: Dict[str, Any],
    env: Mapping[str, str] | None = None,
) -> Tuple[Settings, str, Path | None]:
    """Resolve settings with precedence CLI > ENV > config > defaults.

    Returns (settings, fingerprint, config_path)
    """
    config_path = Path(config_path_str).resolve() if config_path_str else None
    file_cfg = _read_config_file(config_path) if config_path else {}
    env_map = _collect_env_vars(os.environ if env is None else env)

    merged = _apply_overrides(DEFAULTS, file_cfg)
    merged = _apply_overrides(merged, env_map)
    merged = _apply_overrides(merged, cli_overrides)

    if merged.get("log_file") and config_path and not Path(str(merged["log_file"])).is_absolute():
        if "log_file" not in cli_overrides:
            merged["log_file"] = str((config_path.parent / str(merged["log_file"])).resolve())

    settings = _build_settings(merged)
    return settings, settings_fingerprint(merged), config_path
