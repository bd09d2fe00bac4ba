"""Tests for option validation and config loading."""

from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from post_on_slack.config import (DEFAULT_TIMEOUT, FileConfig, RunConfig,
                                  discover_config_file, load_config,
                                  load_file_config)
from post_on_slack.errors import ConfigurationError

NO_FILE = Path("/__nope__/config.yaml")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the real environment, .env and home config out of these tests."""
    monkeypatch.delenv("SLACK_TOKEN", raising=False)
    monkeypatch.delenv("POST_ON_SLACK_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


class TestRunConfig:
    """Test RunConfig validation."""

    def test_defaults(self):
        config = RunConfig()
        assert config.timeout == DEFAULT_TIMEOUT
        assert config.destination_kind is None
        assert not config.has_action

    def test_is_immutable(self):
        config = RunConfig(channel="general")
        with pytest.raises(ValidationError):
            config.channel = "random"

    @pytest.mark.parametrize("emoji", [":rocket:", ":white_check_mark:", ":+1:", ":e-mail:"])
    def test_valid_icon_emoji(self, emoji):
        assert RunConfig(icon_emoji=emoji).icon_emoji == emoji

    @pytest.mark.parametrize("emoji", ["rocket", ":Rocket:", ":rocket", "::", ":two words:"])
    def test_invalid_icon_emoji(self, emoji):
        with pytest.raises(ValidationError, match="icon_emoji must look like"):
            RunConfig(icon_emoji=emoji)

    def test_icon_url_and_emoji_exclusive(self):
        with pytest.raises(ValidationError, match="cannot be used together"):
            RunConfig(icon_url="https://example.com/bot.png", icon_emoji=":robot_face:")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            RunConfig(timeout=0)

    def test_empty_strings_are_unset(self):
        config = RunConfig(group="", channel="general", message="")
        assert config.group is None
        assert config.message is None
        assert config.destination_kind == "channel"

    def test_check_accepts_complete_run(self):
        RunConfig(token="t", group="ops", read=True).check()

    @pytest.mark.parametrize(
        "values, code",
        [
            ({"channel": "general", "message": "hi"}, "token_not_found"),
            ({"token": "t", "message": "hi"}, "destination_not_found"),
            ({"token": "t", "group": "ops", "channel": "general", "message": "hi"},
             "destination_conflict"),
            ({"token": "t", "channel": "general"}, "nothing_to_do"),
        ],
    )
    def test_check_failures(self, values, code):
        with pytest.raises(ConfigurationError) as exc_info:
            RunConfig(**values).check()
        assert exc_info.value.code == code

    def test_post_options(self):
        config = RunConfig(link_names=True, username="bot", icon_url="https://x/i.png")
        assert config.post_options() == {
            "link_names": "1",
            "username": "bot",
            "icon_url": "https://x/i.png",
        }


class TestDiscoverConfigFile:
    """Test config file discovery."""

    def test_explicit_missing_path(self):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            discover_config_file(NO_FILE)

    def test_nothing_found(self):
        assert discover_config_file() is None

    def test_local_file(self, tmp_path):
        local = tmp_path / ".pos.yaml"
        local.write_text("channel: general\n")
        assert discover_config_file() == local

    def test_env_var_wins_over_local(self, tmp_path, monkeypatch):
        (tmp_path / ".pos.yaml").write_text("channel: general\n")
        custom = tmp_path / "custom.yaml"
        custom.write_text("channel: random\n")
        monkeypatch.setenv("POST_ON_SLACK_CONFIG", str(custom))
        assert discover_config_file() == custom

    def test_home_config(self, tmp_path):
        home_config = tmp_path / "home" / ".config" / "post-on-slack" / "config.yaml"
        home_config.parent.mkdir(parents=True)
        home_config.write_text("channel: general\n")
        assert discover_config_file() == home_config


class TestLoadFileConfig:
    """Test YAML config file parsing."""

    def test_no_file(self):
        assert load_file_config(None) == FileConfig()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_file_config(path) == FileConfig()

    def test_valid_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("token: xoxb-file\nchannel: general\nicon_emoji: ':rocket:'\n")
        config = load_file_config(path)
        assert config.token == "xoxb-file"
        assert config.channel == "general"
        assert config.icon_emoji == ":rocket:"

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("chanel: general\n")
        with pytest.raises(ConfigurationError, match="Invalid config file"):
            load_file_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("channel: [general\n")
        with pytest.raises(ConfigurationError, match="Invalid config YAML"):
            load_file_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- general\n")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_file_config(path)


class TestLoadConfig:
    """Test merging CLI options, environment, .env and config file."""

    def test_cli_token_wins(self, monkeypatch):
        monkeypatch.setenv("SLACK_TOKEN", "xoxb-env")
        config = load_config({"token": "xoxb-cli", "channel": "general"})
        assert config.token == "xoxb-cli"

    def test_env_token(self, monkeypatch):
        monkeypatch.setenv("SLACK_TOKEN", "xoxb-env")
        config = load_config({"channel": "general"})
        assert config.token == "xoxb-env"

    def test_dotenv_token(self):
        with patch("post_on_slack.config.dotenv_values") as mock_dotenv:
            mock_dotenv.return_value = {"SLACK_TOKEN": "xoxb-dotenv"}
            config = load_config({"channel": "general"})
        assert config.token == "xoxb-dotenv"

    def test_file_token_is_last_resort(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("token: xoxb-file\n")
        with patch("post_on_slack.config.dotenv_values", return_value={}):
            config = load_config({"channel": "general"}, path)
        assert config.token == "xoxb-file"

    def test_no_token_anywhere(self):
        with patch("post_on_slack.config.dotenv_values", return_value={}):
            config = load_config({"channel": "general", "message": "hi"})
        assert config.token is None

    def test_file_defaults_and_cli_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("channel: general\nusername: deploy-bot\ntimeout: 45\nas_user: true\n")
        config = load_config(
            {"message": "hi", "username": "release-bot", "as_user": False, "timeout": None},
            path,
        )
        assert config.channel == "general"
        assert config.username == "release-bot"
        assert config.timeout == 45
        assert config.as_user is True

    def test_cli_destination_replaces_file_destination(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("channel: general\n")
        config = load_config({"group": "ops", "channel": None}, path)
        assert config.group == "ops"
        assert config.channel is None

    def test_invalid_option_becomes_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config({"channel": "general", "icon_emoji": "rocket"})
        assert exc_info.value.code == "invalid_option"
        assert "icon_emoji must look like" in str(exc_info.value)
