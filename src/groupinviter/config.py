from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_DIRECTORY_FACTORY = "groupinviter.directory:DryRunDirectory"
ENV_ACCOUNT_SLOTS = 10


@dataclass(slots=True)
class PathsConfig:
    log: Path | None


@dataclass(slots=True)
class LoggingConfig:
    level: int = logging.INFO


@dataclass(slots=True)
class DispatchConfig:
    success_delay_ms: int = 30000
    all_throttled_backoff_seconds: float = 5.0

    @property
    def success_delay_seconds(self) -> float:
        return self.success_delay_ms / 1000


@dataclass(slots=True)
class DirectoryConfig:
    factory: str = DEFAULT_DIRECTORY_FACTORY
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AccountConfig:
    name: str
    phone: str = ""
    settings: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AppConfig:
    paths: PathsConfig
    dispatch: DispatchConfig
    directory: DirectoryConfig
    accounts: list[AccountConfig]
    log: LoggingConfig = field(default_factory=LoggingConfig)


def _require(mapping: dict, key: str, section: str) -> object:
    if key not in mapping:
        raise ValueError(f"Missing `{section}.{key}` in config")
    return mapping[key]


def accounts_from_env(environ: Mapping[str, str]) -> list[AccountConfig]:
    accounts: list[AccountConfig] = []
    for slot in range(1, ENV_ACCOUNT_SLOTS + 1):
        api_id = environ.get(f"API_ID_{slot}")
        api_hash = environ.get(f"API_HASH_{slot}")
        session = environ.get(f"SESSION_{slot}")
        if not (api_id and api_hash and session):
            continue
        if not api_id.isdigit():
            raise ValueError(f"`API_ID_{slot}` must be an integer")
        accounts.append(
            AccountConfig(
                name=f"account{slot}",
                phone=environ.get(f"PHONE_{slot}", ""),
                settings={"api_id": int(api_id), "api_hash": api_hash, "session": session},
            )
        )
    return accounts


def load_config(path: str | Path, environ: Mapping[str, str] | None = None) -> AppConfig:
    env = os.environ if environ is None else environ
    config_path = Path(path).expanduser().resolve()
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")

    paths_raw = raw.get("paths", {})
    dispatch_raw = raw.get("dispatch", {})
    directory_raw = raw.get("directory", {})
    accounts_raw = raw.get("accounts") or []

    if not isinstance(paths_raw, dict):
        raise ValueError("`paths` must be a mapping")
    if not isinstance(dispatch_raw, dict):
        raise ValueError("`dispatch` must be a mapping")
    if not isinstance(directory_raw, dict):
        raise ValueError("`directory` must be a mapping")
    if not isinstance(accounts_raw, list):
        raise ValueError("`accounts` must be a list")

    log_raw = paths_raw.get("log", "groupinviter.log")
    log_path: Path | None = None
    if log_raw is not None:
        log_path = Path(str(log_raw)).expanduser()
        if not log_path.is_absolute():
            log_path = config_path.parent / log_path

    logging_raw = raw.get("logging", {}) or {}
    if not isinstance(logging_raw, dict):
        raise ValueError("`logging` must be a mapping")
    level_name = str(logging_raw.get("level", "INFO")).upper()
    level = logging.getLevelNamesMapping().get(level_name)
    if level is None:
        raise ValueError(f"`logging.level` must be a logging level name, found: {level_name}")

    delay_ms = dispatch_raw.get("success_delay_ms", 30000)
    env_delay = env.get("DELAY_MS")
    if env_delay:
        if not env_delay.strip().isdigit():
            raise ValueError(f"`DELAY_MS` must be an integer, found: {env_delay}")
        delay_ms = env_delay
    elif not isinstance(delay_ms, int) or isinstance(delay_ms, bool):
        raise ValueError("`dispatch.success_delay_ms` must be an integer")
    dispatch = DispatchConfig(
        success_delay_ms=int(delay_ms),
        all_throttled_backoff_seconds=float(dispatch_raw.get("all_throttled_backoff_seconds", 5)),
    )
    if dispatch.success_delay_ms < 0:
        raise ValueError("`dispatch.success_delay_ms` must be >= 0")
    if dispatch.all_throttled_backoff_seconds <= 0:
        raise ValueError("`dispatch.all_throttled_backoff_seconds` must be > 0")

    options_raw = directory_raw.get("options", {}) or {}
    if not isinstance(options_raw, dict):
        raise ValueError("`directory.options` must be a mapping")
    directory = DirectoryConfig(
        factory=str(directory_raw.get("factory", DEFAULT_DIRECTORY_FACTORY)),
        options=dict(options_raw),
    )

    accounts: list[AccountConfig] = []
    seen_names: set[str] = set()
    for idx, item in enumerate(accounts_raw):
        if not isinstance(item, dict):
            raise ValueError(f"`accounts[{idx}]` must be a mapping")
        settings = item.get("settings", {}) or {}
        if not isinstance(settings, dict):
            raise ValueError(f"`accounts[{idx}].settings` must be a mapping")
        account = AccountConfig(
            name=str(_require(item, "name", f"accounts[{idx}]")),
            phone=str(item.get("phone", "") or ""),
            settings=dict(settings),
        )
        if account.name in seen_names:
            raise ValueError(f"Duplicate account name: {account.name}")
        seen_names.add(account.name)
        accounts.append(account)
    if not accounts:
        accounts = accounts_from_env(env)

    return AppConfig(
        paths=PathsConfig(log=log_path),
        log=LoggingConfig(level=level),
        dispatch=dispatch,
        directory=directory,
        accounts=accounts,
    )


def ensure_local_paths(config: AppConfig) -> None:
    if config.paths.log is not None:
        config.paths.log.parent.mkdir(parents=True, exist_ok=True)
