"""Configuration loading and validation for the YAML settings file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from btsync.core.errors import ConfigLoadError, ConfigValidationError
from btsync.core.model import AgentSettings, BatterySettings, Settings

LOGGER = logging.getLogger(__name__)

MIN_UPDATE_INTERVAL_S = 1.0


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


# Booleans are normalized explicitly so "on"/"yes" stay strings.
UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedSettings:
    settings: Settings
    warnings: tuple[str, ...]
    source: Path | None = None


def _load_schema_validator() -> Any:
    schema_text = resources.files("btsync.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def config_path() -> tuple[Path, bool]:
    """Config file location and whether it was named explicitly."""
    explicit = os.environ.get("BTSYNC_CONFIG")
    if explicit:
        return Path(explicit), True
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "btsync/config.yaml", False


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ConfigValidationError(f"{context} must be boolean true/false")


def _build_settings(doc: dict[str, Any], source: Path | None) -> Settings:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    defaults = Settings()
    agent_doc = doc.get("agent", {})
    agent = AgentSettings(
        enabled=_normalize_bool(agent_doc.get("enabled", defaults.agent.enabled), context="agent.enabled"),
        path=agent_doc.get("path", defaults.agent.path),
        bus_name=agent_doc.get("bus_name", defaults.agent.bus_name),
        default=_normalize_bool(agent_doc.get("default", defaults.agent.default), context="agent.default"),
    )
    battery = BatterySettings(
        warning_level=int(doc.get("battery", {}).get("warning_level", defaults.battery.warning_level)),
    )
    return Settings(
        bus=doc.get("bus", defaults.bus),
        service=doc.get("service", defaults.service),
        root=doc.get("root", defaults.root),
        timeout_s=float(doc.get("timeout_s", defaults.timeout_s)),
        pair_timeout_s=float(doc.get("pair_timeout_s", defaults.pair_timeout_s)),
        update_interval_s=float(doc.get("update_interval_s", defaults.update_interval_s)),
        agent=agent,
        plugins=tuple(doc.get("plugins", defaults.plugins)),
        battery=battery,
    )


def _settings_warnings(settings: Settings, doc: dict[str, Any]) -> list[str]:
    warnings: list[str] = []
    if settings.update_interval_s < MIN_UPDATE_INTERVAL_S:
        warnings.append(
            f"update_interval_s ({settings.update_interval_s}) is below {MIN_UPDATE_INTERVAL_S}s; "
            "devices will be swept almost continuously"
        )
    if "battery" in doc and "battery" not in settings.plugins:
        warnings.append("'battery' settings are ignored because the battery plugin is not enabled")
    return warnings


def load_settings(path: Path | None = None) -> LoadedSettings:
    explicit = path is not None
    if path is None:
        path, explicit = config_path()

    if not path.exists():
        if explicit:
            raise ConfigLoadError(f"Config file {path} does not exist")
        return LoadedSettings(settings=Settings(), warnings=())

    doc = _read_yaml(path)
    settings = _build_settings(doc, path)
    warnings = _settings_warnings(settings, doc)
    for warning in warnings:
        LOGGER.warning(warning)
    return LoadedSettings(settings=settings, warnings=tuple(warnings), source=path)
