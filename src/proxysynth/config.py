from __future__ import annotations

import os
from datetime import date, datetime, time
from pathlib import Path
from typing import Mapping, TypeAlias
import tomllib

from pydantic import ValidationError

from proxysynth.exceptions import ConfigurationError
from proxysynth.schema import EngineSettings

DEFAULT_CONFIG_NAME = "proxysynth.toml"

_CONFLICT_POLICY_ENV = "PROXYSYNTH_CONFLICT_POLICY"
_PUBLISH_ENV = "PROXYSYNTH_PUBLISH_TO_MODULES"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def engine_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("engine", {})
    return section if isinstance(section, dict) else {}


def _env_overrides(environ: Mapping[str, str]) -> TomlTable:
    overrides: TomlTable = {}
    policy = environ.get(_CONFLICT_POLICY_ENV, "").strip().lower()
    if policy:
        overrides["conflict_policy"] = policy
    publish = environ.get(_PUBLISH_ENV, "").strip().lower()
    if publish in _TRUE_VALUES:
        overrides["publish_to_modules"] = True
    elif publish in _FALSE_VALUES:
        overrides["publish_to_modules"] = False
    elif publish:
        raise ConfigurationError(f"{_PUBLISH_ENV} must be a boolean flag, got {publish!r}")
    return overrides


def merge_payload(payload: Mapping[str, TomlValue], defaults: Mapping[str, TomlValue]) -> TomlTable:
    merged: TomlTable = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def settings_from_mapping(values: Mapping[str, TomlValue]) -> EngineSettings:
    try:
        return EngineSettings.model_validate(dict(values))
    except ValidationError as exc:
        raise ConfigurationError(f"invalid engine settings: {exc}") from exc


def load_settings(
    root: Path | None = None,
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    defaults = engine_defaults(root=root, config_path=config_path)
    overrides = _env_overrides(os.environ if environ is None else environ)
    return settings_from_mapping(merge_payload(overrides, defaults))
