"""Fleet config file loading and settings-layer resolution.

Settings are layered: the top level of the config file is the default
layer, and each repository may carry an override layer.  Layers merge field
by field, override first, and the result must supply every required field.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path

from pydantic import ValidationError

from flakebot.models.settings import FleetConfig, UpdateSettings, UpdateSettingsOverrides

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_BRANCH = "automatic-update"
DEFAULT_DEFAULT_BRANCH = "master"
DEFAULT_TITLE = "Automatically update flake.lock"

REQUIRED_FIELDS = ("author", "cooldown")


class ConfigError(RuntimeError):
    """Base class for fleet config errors."""


class ConfigReadError(ConfigError):
    """The config file could not be read."""


class ConfigParseError(ConfigError):
    """The config file is not valid JSON or does not match the schema."""


class SettingsMissingFieldError(ConfigError):
    """A required settings field is absent from every layer."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Field {field} is missing from the settings")


def merge_settings(
    default: UpdateSettingsOverrides, override: UpdateSettingsOverrides | None
) -> UpdateSettingsOverrides:
    """Merge two layers; each field set in *override* wins."""
    if override is None:
        return default
    merged = default.model_dump()
    merged.update(override.model_dump(exclude_none=True))
    return UpdateSettingsOverrides.model_validate(merged)


def resolve_settings(layer: UpdateSettingsOverrides) -> UpdateSettings:
    """Fill defaults into a merged layer.

    Raises
    ------
    SettingsMissingFieldError
        If ``author`` or ``cooldown`` is not set.
    """
    for field in REQUIRED_FIELDS:
        if getattr(layer, field) is None:
            raise SettingsMissingFieldError(field)

    def pick(value, default):
        return default if value is None else value

    return UpdateSettings(
        author=layer.author,
        update_branch=pick(layer.update_branch, DEFAULT_UPDATE_BRANCH),
        default_branch=pick(layer.default_branch, DEFAULT_DEFAULT_BRANCH),
        title=pick(layer.title, DEFAULT_TITLE),
        extra_body=pick(layer.extra_body, ""),
        cooldown=timedelta(milliseconds=layer.cooldown),
        inputs=tuple(layer.inputs or ()),
        allow_missing_inputs=pick(layer.allow_missing_inputs, False),
        sign_commits=pick(layer.sign_commits, False),
        signing_key=layer.signing_key,
    )


def parse_fleet_config(text: str | bytes) -> FleetConfig:
    try:
        return FleetConfig.model_validate_json(text)
    except ValidationError as exc:
        raise ConfigParseError(f"Unable to parse the configuration file: {exc}") from exc


def load_fleet_config(path: Path) -> FleetConfig:
    """Read and validate the fleet config file at *path*."""
    try:
        text = Path(path).read_bytes()
    except OSError as exc:
        raise ConfigReadError(f"Unable to read the configuration file {path}: {exc}") from exc
    config = parse_fleet_config(text)
    logger.debug("Loaded %d repositories from %s", len(config.repos), path)
    return config
