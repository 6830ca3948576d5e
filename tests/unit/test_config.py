"""Tests for configuration management"""

import os
import tempfile
from pathlib import Path

import pytest
import yaml

from app.core.config import DEFAULT_URL_PATTERNS, ConfigService, ToolsConfig, resolve_binary


class TestConfigService:
    """Test ConfigService functionality"""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        """Test loading configuration from YAML file"""
        config_file = tmp_path / "config.yaml"
        config_data = {
            "server": {"host": "127.0.0.1", "port": 9000},
            "logging": {"level": "DEBUG"},
            "fallbacks": {"order": ["ssstik", "ytdlp"]},
        }

        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        service = ConfigService(str(config_file))
        config = service.load()

        assert config.server.host == "127.0.0.1"
        assert config.server.port == 9000
        assert config.logging.level == "DEBUG"
        assert config.fallbacks.order == ["ssstik", "ytdlp"]

    def test_load_with_defaults(self, tmp_path: Path) -> None:
        """Test loading configuration with default values"""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("{}")

        service = ConfigService(str(config_file))
        config = service.load()

        assert config.server.port == 8000
        assert config.timeouts.metadata == 30
        assert config.timeouts.transcode == 600
        assert config.retries.attempts == 3
        assert config.staging.root_dir == os.path.join(tempfile.gettempdir(), "tiktok-downloads")
        assert config.validation.url_patterns == DEFAULT_URL_PATTERNS
        assert config.fallbacks.order == ["ytdlp", "ssstik", "snaptik", "cdn_guess"]
        assert config.fallbacks.ssstik_token == "azW54a"
        assert config.fallbacks.max_redirects == 5
        assert config.transcoder.crf == 18
        assert config.transcoder.audio_bitrate == "192k"

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        service = ConfigService(str(tmp_path / "absent.yaml"))
        config = service.load()

        assert config.server.port == 8000

    def test_config_path_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config_file = tmp_path / "custom.yaml"
        config_file.write_text("server:\n  port: 7001\n")
        monkeypatch.setenv("APP_CONFIG_PATH", str(config_file))

        service = ConfigService()

        assert service.config_path == str(config_file)
        assert service.load().server.port == 7001

    def test_environment_variable_override(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test environment variable overrides YAML configuration"""
        config_file = tmp_path / "config.yaml"
        config_data = {
            "server": {"host": "127.0.0.1", "port": 8000},
        }

        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        monkeypatch.setenv("APP_SERVER_PORT", "9999")

        service = ConfigService(str(config_file))
        config = service.load()

        assert config.server.port == 9999
        assert config.server.host == "127.0.0.1"

    def test_nested_environment_variable_override(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test nested configuration override with environment variables"""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("{}")

        monkeypatch.setenv("APP_STAGING_ROOT_DIR", "/custom/path")
        monkeypatch.setenv("APP_TIMEOUTS_DOWNLOAD", "900")

        service = ConfigService(str(config_file))
        config = service.load()

        assert config.staging.root_dir == "/custom/path"
        assert config.timeouts.download == 900

    def test_validation_negative_timeout(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump({"timeouts": {"download": -1}}, f)

        service = ConfigService(str(config_file))
        with pytest.raises(ValueError, match="timeouts must be zero or positive"):
            service.load()

    def test_validation_retry_attempts(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump({"retries": {"attempts": 0}}, f)

        service = ConfigService(str(config_file))
        with pytest.raises(ValueError, match="attempts must be at least 1"):
            service.load()

    def test_validation_log_level(self, tmp_path: Path) -> None:
        """Test log level validation"""
        config_file = tmp_path / "config.yaml"
        config_data = {"logging": {"level": "INVALID"}}

        with open(config_file, "w") as f:
            yaml.dump(config_data, f)

        service = ConfigService(str(config_file))
        with pytest.raises(ValueError, match="level must be one of"):
            service.load()

    def test_validate_rejects_unknown_strategy(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump({"fallbacks": {"order": ["ytdlp", "savefrom"]}}, f)

        service = ConfigService(str(config_file))
        service.load()

        with pytest.raises(ValueError, match="Unknown retrieval strategies"):
            service.validate()

    def test_validate_requires_url_patterns(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        with open(config_file, "w") as f:
            yaml.dump({"validation": {"url_patterns": []}}, f)

        service = ConfigService(str(config_file))
        service.load()

        with pytest.raises(ValueError, match="At least one URL pattern"):
            service.validate()

    def test_validate_defaults_pass(self, tmp_path: Path) -> None:
        service = ConfigService(str(tmp_path / "absent.yaml"))
        service.load()

        assert service.validate() is True

    def test_config_property_before_load(self, tmp_path: Path) -> None:
        service = ConfigService(str(tmp_path / "config.yaml"))

        with pytest.raises(ValueError, match="Configuration not loaded"):
            _ = service.config


class TestToolPaths:
    """Binary resolution for yt-dlp and ffmpeg"""

    def test_explicit_setting_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("YTDLP_PATH", "/from/env/yt-dlp")

        assert resolve_binary("/opt/yt-dlp", "YTDLP_PATH", "yt-dlp") == "/opt/yt-dlp"

    def test_conventional_env_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FFMPEG_PATH", "/usr/local/bin/ffmpeg")

        assert ToolsConfig().ffmpeg == "/usr/local/bin/ffmpeg"

    def test_path_lookup_then_bare_name(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("YTDLP_PATH", raising=False)
        monkeypatch.setattr("app.core.config.shutil.which", lambda cmd: None)

        assert ToolsConfig().ytdlp == "yt-dlp"

        monkeypatch.setattr("app.core.config.shutil.which", lambda cmd: f"/usr/bin/{cmd}")

        assert ToolsConfig().ytdlp == "/usr/bin/yt-dlp"

    def test_app_prefixed_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_TOOLS_YTDLP_PATH", "/srv/bin/yt-dlp")

        assert ToolsConfig().ytdlp == "/srv/bin/yt-dlp"
