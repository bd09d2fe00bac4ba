"""Resolve command-line options, environment and config file into a RunConfig."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import dotenv_values
from pydantic import (BaseModel, ConfigDict, Field, ValidationError,
                      field_validator, model_validator)

from post_on_slack.errors import ConfigurationError
from post_on_slack.resolver import select_destination

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
TOKEN_ENV_VAR = "SLACK_TOKEN"
CONFIG_ENV_VAR = "POST_ON_SLACK_CONFIG"
EMOJI_PATTERN = re.compile(r"^:[a-z0-9_+\-]+:$")


def _validate_emoji(v: str | None) -> str | None:
    if v is not None and not EMOJI_PATTERN.match(v):
        raise ValueError(f"icon_emoji must look like :emoji_name:, got {v!r}")
    return v


class RunConfig(BaseModel):
    """Immutable options for a single run."""

    model_config = ConfigDict(frozen=True)

    token: str | None = None
    group: str | None = None
    channel: str | None = None
    message: str | None = None
    file: Path | None = None
    console: bool = False
    wait_for_text: str | None = None
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    as_user: bool = False
    link_names: bool = False
    pin: bool = False
    read: bool = False
    username: str | None = None
    icon_url: str | None = None
    icon_emoji: str | None = None

    @field_validator(
        "token",
        "group",
        "channel",
        "message",
        "wait_for_text",
        "username",
        "icon_url",
        "icon_emoji",
        mode="before",
    )
    @classmethod
    def empty_as_unset(cls, v: Any) -> Any:
        """Treat empty strings as if the option was not given."""
        if isinstance(v, str) and v == "":
            return None
        return v

    @field_validator("icon_emoji")
    @classmethod
    def icon_emoji_format(cls, v: str | None) -> str | None:
        return _validate_emoji(v)

    @model_validator(mode="after")
    def icons_exclusive(self) -> "RunConfig":
        if self.icon_url and self.icon_emoji:
            raise ValueError("icon_url and icon_emoji cannot be used together")
        return self

    @property
    def destination_kind(self) -> Literal["group", "channel"] | None:
        if self.group and not self.channel:
            return "group"
        if self.channel and not self.group:
            return "channel"
        return None

    @property
    def has_action(self) -> bool:
        return bool(
            self.message or self.file or self.console or self.wait_for_text or self.read
        )

    def check(self) -> None:
        """Verify the run has a token, exactly one destination and something to do.

        Raises:
            ConfigurationError: With code ``token_not_found``,
                ``destination_not_found``, ``destination_conflict`` or
                ``nothing_to_do``.
        """
        if not self.token:
            raise ConfigurationError(f"{TOKEN_ENV_VAR} not found", code="token_not_found")
        select_destination(group=self.group, channel=self.channel)
        if not self.has_action:
            raise ConfigurationError("nothing to do", code="nothing_to_do")

    def post_options(self) -> dict[str, str]:
        """Form fields shared by every chat.postMessage call of this run."""
        options: dict[str, str] = {}
        if self.link_names:
            options["link_names"] = "1"
        if self.as_user:
            options["as_user"] = "true"
        if self.username:
            options["username"] = self.username
        if self.icon_url:
            options["icon_url"] = self.icon_url
        if self.icon_emoji:
            options["icon_emoji"] = self.icon_emoji
        return options


class FileConfig(BaseModel):
    """Schema for the optional YAML config file holding per-user defaults."""

    model_config = ConfigDict(extra="forbid")

    token: str | None = None
    channel: str | None = None
    group: str | None = None
    username: str | None = None
    icon_url: str | None = None
    icon_emoji: str | None = None
    as_user: bool = False
    link_names: bool = False
    timeout: float | None = Field(default=None, gt=0)

    @field_validator("icon_emoji")
    @classmethod
    def icon_emoji_format(cls, v: str | None) -> str | None:
        return _validate_emoji(v)


def discover_config_file(explicit: Path | None = None) -> Path | None:
    """Find the config file to load.

    Search order: explicit path, $POST_ON_SLACK_CONFIG, ./.pos.yaml,
    ~/.config/post-on-slack/config.yaml. An explicit path that does not
    exist is an error; missing discovered files are skipped.
    """
    if explicit is not None:
        if not explicit.exists():
            raise ConfigurationError(f"Config file not found: {explicit}")
        return explicit

    env_path = os.environ.get(CONFIG_ENV_VAR)
    candidates = [Path(env_path)] if env_path else []
    candidates += [
        Path.cwd() / ".pos.yaml",
        Path.home() / ".config" / "post-on-slack" / "config.yaml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def load_file_config(path: Path | None) -> FileConfig:
    """Load and validate the YAML config file, or return empty defaults."""
    if path is None:
        return FileConfig()

    logger.debug(f"Loading config file {path}")
    try:
        payload = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid config YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    if payload is None:
        return FileConfig()
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Config file {path} must be a mapping at the top level")

    try:
        return FileConfig(**payload)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config file {path}: {e}") from e


def resolve_token(cli_token: str | None, file_token: str | None) -> str | None:
    """Pick the token: CLI flag, then environment, then .env, then config file."""
    if cli_token:
        return cli_token
    env_token = os.environ.get(TOKEN_ENV_VAR)
    if env_token:
        return env_token
    try:
        dotenv_token = dotenv_values(".env").get(TOKEN_ENV_VAR)
    except OSError as e:
        logger.warning(f"Failed to read .env file: {e}")
        dotenv_token = None
    if dotenv_token:
        return dotenv_token
    return file_token


def load_config(options: dict[str, Any], config_path: Path | None = None) -> RunConfig:
    """Build the RunConfig for this run.

    Args:
        options: Values given on the command line, keyed by RunConfig field
            name. ``None`` means the option was not given.
        config_path: Explicit config file path (overrides discovery).

    Returns:
        The validated, immutable RunConfig.

    Raises:
        ConfigurationError: If the config file or any option is invalid.
    """
    file_config = load_file_config(discover_config_file(config_path))
    given = {k: v for k, v in options.items() if v is not None and v is not False}

    merged: dict[str, Any] = file_config.model_dump(exclude={"token"}, exclude_none=True)
    if "group" in given or "channel" in given:
        # A destination on the command line replaces the configured default.
        merged.pop("group", None)
        merged.pop("channel", None)
    merged.update(given)
    merged["token"] = resolve_token(options.get("token"), file_config.token)

    try:
        config = RunConfig(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid options: {e}", code="invalid_option") from e

    logger.debug(
        "Resolved configuration: %s",
        config.model_dump(exclude={"token"}, exclude_none=True),
    )
    return config
