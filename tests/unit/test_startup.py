"""Tests for startup validation.

This module tests the startup validation system including:
- Component availability checks (yt-dlp, ffmpeg)
- Staging directory validation
- Degraded mode behavior
- Resource warnings
"""

import asyncio
from pathlib import Path
from typing import Iterator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.checks import CheckResult, check_ffmpeg, check_ytdlp
from app.core.config import Config, SecurityConfig, StagingConfig
from app.core.resources import ResourceCheckResult, ResourceUsage
from app.core.startup import ComponentCheckResult, StartupResult, StartupValidator

# =============================================================================
# Fixtures
# =============================================================================


def make_config(tmp_path: Path, degraded: bool) -> Config:
    return Config(
        security=SecurityConfig(allow_degraded_start=degraded),
        staging=StagingConfig(root_dir=str(tmp_path / "staging")),
    )


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Strict configuration: every failure blocks startup."""
    return make_config(tmp_path, degraded=False)


@pytest.fixture
def config_degraded(tmp_path: Path) -> Config:
    """Configuration with degraded mode enabled."""
    return make_config(tmp_path, degraded=True)


@pytest.fixture
def ytdlp_ok() -> CheckResult:
    return CheckResult(name="ytdlp", available=True, version="2025.01.15")


@pytest.fixture
def ffmpeg_ok() -> CheckResult:
    return CheckResult(name="ffmpeg", available=True, version="6.1")


@pytest.fixture(autouse=True)
def plenty_of_resources() -> Iterator[MagicMock]:
    """Keep host resource readings out of the assertions."""
    usage = ResourceUsage(
        memory_total_gb=16.0,
        memory_available_gb=8.0,
        memory_percent=50.0,
        disk_path="/",
        disk_total_gb=100.0,
        disk_available_gb=50.0,
        disk_percent=50.0,
    )
    with patch(
        "app.core.startup.check_minimum_resources",
        return_value=ResourceCheckResult(passed=True, usage=usage),
    ) as mock_check:
        yield mock_check


def patch_tools(ytdlp: CheckResult, ffmpeg: CheckResult):
    return (
        patch("app.core.startup.check_ytdlp", new=AsyncMock(return_value=ytdlp)),
        patch("app.core.startup.check_ffmpeg", new=AsyncMock(return_value=ffmpeg)),
    )


# =============================================================================
# Shared check utilities
# =============================================================================


def make_process(returncode: int = 0, stdout: bytes = b"") -> MagicMock:
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, b""))
    process.wait = AsyncMock(return_value=returncode)
    return process


class TestCheckUtilities:
    @pytest.mark.asyncio
    async def test_check_ytdlp_available(self) -> None:
        with patch("asyncio.create_subprocess_exec") as mock_subprocess:
            mock_subprocess.return_value = make_process(stdout=b"2025.01.15\n")

            result = await check_ytdlp("/opt/yt-dlp")

        assert result.available is True
        assert result.version == "2025.01.15"
        assert result.details == {"path": "/opt/yt-dlp"}
        assert mock_subprocess.call_args[0] == ("/opt/yt-dlp", "--version")

    @pytest.mark.asyncio
    async def test_check_ytdlp_missing(self) -> None:
        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError()):
            result = await check_ytdlp()

        assert result.available is False
        assert result.error == "yt-dlp not found or not executable"

    @pytest.mark.asyncio
    async def test_check_ffmpeg_parses_version(self) -> None:
        stdout = b"ffmpeg version 6.1.1-static Copyright (c) 2000-2023\n"
        with patch("asyncio.create_subprocess_exec") as mock_subprocess:
            mock_subprocess.return_value = make_process(stdout=stdout)

            result = await check_ffmpeg()

        assert result.available is True
        assert result.version == "6.1.1-static"

    @pytest.mark.asyncio
    async def test_check_ffmpeg_non_zero_exit(self) -> None:
        with patch("asyncio.create_subprocess_exec") as mock_subprocess:
            mock_subprocess.return_value = make_process(returncode=1)

            result = await check_ffmpeg("ffmpeg")

        assert result.available is False
        assert result.error == "ffmpeg -version exited with code 1: no output"

    @pytest.mark.asyncio
    async def test_check_timeout_kills_process(self) -> None:
        process = make_process()
        process.communicate = AsyncMock(side_effect=asyncio.TimeoutError())

        with patch("asyncio.create_subprocess_exec", return_value=process):
            result = await check_ytdlp(timeout=0.1)

        assert result.available is False
        assert result.error == "yt-dlp did not answer in 0.1s"
        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_check_ytdlp_without_version_output(self) -> None:
        with patch("asyncio.create_subprocess_exec", return_value=make_process(stdout=b"\n")):
            result = await check_ytdlp()

        assert result.available is False
        assert result.error == "yt-dlp printed no version"

    @pytest.mark.asyncio
    async def test_check_ffmpeg_unrecognised_banner(self) -> None:
        stdout = b"custom build 2024\n"
        with patch("asyncio.create_subprocess_exec", return_value=make_process(stdout=stdout)):
            result = await check_ffmpeg()

        assert result.available is True
        assert result.version == "unknown"

    @pytest.mark.asyncio
    async def test_cancelled_check_kills_process(self) -> None:
        process = make_process()
        process.returncode = None
        process.communicate = AsyncMock(side_effect=asyncio.CancelledError())

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(asyncio.CancelledError):
                await check_ffmpeg()

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()


# =============================================================================
# Component checks
# =============================================================================


class TestComponentChecks:
    @pytest.mark.asyncio
    async def test_ytdlp_check_passed(self, config: Config, ytdlp_ok: CheckResult) -> None:
        with patch("app.core.startup.check_ytdlp", new=AsyncMock(return_value=ytdlp_ok)):
            result = await StartupValidator(config).check_ytdlp()

        assert result.passed is True
        assert result.critical is True
        assert result.version == "2025.01.15"

    @pytest.mark.asyncio
    async def test_ytdlp_uses_configured_binary(self, config: Config, ytdlp_ok: CheckResult) -> None:
        mock_check = AsyncMock(return_value=ytdlp_ok)
        with patch("app.core.startup.check_ytdlp", new=mock_check):
            await StartupValidator(config).check_ytdlp()

        mock_check.assert_awaited_once_with(config.tools.ytdlp)

    @pytest.mark.asyncio
    async def test_ytdlp_failure_strict_keeps_strategy(self, config: Config) -> None:
        failed = CheckResult(name="ytdlp", available=False, error="yt-dlp not found")
        validator = StartupValidator(config)
        with patch("app.core.startup.check_ytdlp", new=AsyncMock(return_value=failed)):
            result = await validator.check_ytdlp()

        assert result.passed is False
        assert result.message == "yt-dlp not found"
        assert validator.disabled_providers == []

    @pytest.mark.asyncio
    async def test_staging_writable_leaves_nothing_behind(self, config: Config) -> None:
        result = await StartupValidator(config).check_staging()

        assert result.passed is True
        assert not Path(config.staging.root_dir).exists()

    @pytest.mark.asyncio
    async def test_staging_existing_root_kept(self, config: Config) -> None:
        root = Path(config.staging.root_dir)
        root.mkdir()

        result = await StartupValidator(config).check_staging()

        assert result.passed is True
        assert root.is_dir()
        assert list(root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_staging_not_writable(self, config: Config) -> None:
        with patch.object(Path, "touch", side_effect=PermissionError("denied")):
            result = await StartupValidator(config).check_staging()

        assert result.passed is False
        assert "Cannot write to staging directory" in result.message

    @pytest.mark.asyncio
    async def test_staging_cannot_be_created(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        config = Config(staging=StagingConfig(root_dir=str(blocker / "staging")))

        result = await StartupValidator(config).check_staging()

        assert result.passed is False
        assert result.message.startswith("Staging check failed")


# =============================================================================
# Full validation
# =============================================================================


class TestValidateAll:
    @pytest.mark.asyncio
    async def test_all_checks_pass(
        self, config: Config, ytdlp_ok: CheckResult, ffmpeg_ok: CheckResult
    ) -> None:
        ytdlp_patch, ffmpeg_patch = patch_tools(ytdlp_ok, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch:
            result = await StartupValidator(config).validate_all()

        assert isinstance(result, StartupResult)
        assert result.success is True
        assert result.degraded_mode is False
        assert [c.name for c in result.checks] == ["ytdlp", "ffmpeg", "staging"]
        assert result.disabled_providers == []
        assert result.enhance_disabled is False
        assert result.errors == []
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_strict_mode_missing_ytdlp_fails(
        self, config: Config, ffmpeg_ok: CheckResult
    ) -> None:
        missing = CheckResult(name="ytdlp", available=False, error="yt-dlp not found")
        ytdlp_patch, ffmpeg_patch = patch_tools(missing, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch:
            result = await StartupValidator(config).validate_all()

        assert result.success is False
        assert result.errors == ["ytdlp: yt-dlp not found"]

    @pytest.mark.asyncio
    async def test_degraded_missing_ytdlp_disables_strategy(
        self, config_degraded: Config, ffmpeg_ok: CheckResult
    ) -> None:
        missing = CheckResult(name="ytdlp", available=False, error="yt-dlp not found")
        ytdlp_patch, ffmpeg_patch = patch_tools(missing, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch:
            result = await StartupValidator(config_degraded).validate_all()

        assert result.success is True
        assert result.degraded_mode is True
        assert result.disabled_providers == ["ytdlp"]
        assert result.enhance_disabled is False
        assert "ytdlp: yt-dlp not found" in result.warnings

    @pytest.mark.asyncio
    async def test_degraded_missing_ffmpeg_disables_enhancement(
        self, config_degraded: Config, ytdlp_ok: CheckResult
    ) -> None:
        missing = CheckResult(name="ffmpeg", available=False, error="ffmpeg not found")
        ytdlp_patch, ffmpeg_patch = patch_tools(ytdlp_ok, missing)
        with ytdlp_patch, ffmpeg_patch:
            result = await StartupValidator(config_degraded).validate_all()

        assert result.success is True
        assert result.degraded_mode is True
        assert result.enhance_disabled is True
        assert result.disabled_providers == []

    @pytest.mark.asyncio
    async def test_staging_failure_blocks_even_degraded(
        self, config_degraded: Config, ytdlp_ok: CheckResult, ffmpeg_ok: CheckResult
    ) -> None:
        ytdlp_patch, ffmpeg_patch = patch_tools(ytdlp_ok, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch, patch.object(
            Path, "touch", side_effect=PermissionError("denied")
        ):
            result = await StartupValidator(config_degraded).validate_all()

        assert result.success is False
        assert result.degraded_mode is False
        assert len(result.errors) == 1
        assert result.errors[0].startswith("staging:")

    @pytest.mark.asyncio
    async def test_results_reset_between_runs(
        self, config_degraded: Config, ytdlp_ok: CheckResult, ffmpeg_ok: CheckResult
    ) -> None:
        validator = StartupValidator(config_degraded)
        missing = CheckResult(name="ytdlp", available=False, error="yt-dlp not found")

        ytdlp_patch, ffmpeg_patch = patch_tools(missing, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch:
            await validator.validate_all()

        ytdlp_patch, ffmpeg_patch = patch_tools(ytdlp_ok, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch:
            result = await validator.validate_all()

        assert result.disabled_providers == []
        assert result.warnings == []
        assert result.degraded_mode is False


class TestResourceWarnings:
    @pytest.mark.asyncio
    async def test_low_resources_are_warnings_only(
        self,
        config: Config,
        ytdlp_ok: CheckResult,
        ffmpeg_ok: CheckResult,
        plenty_of_resources: MagicMock,
    ) -> None:
        plenty_of_resources.return_value = ResourceCheckResult(
            passed=False,
            usage=plenty_of_resources.return_value.usage,
            errors=["Insufficient disk space under /: 0.5GB available, minimum 1.0GB required"],
            warnings=["Low memory: 0.40GB available, recommended 0.50GB"],
        )
        ytdlp_patch, ffmpeg_patch = patch_tools(ytdlp_ok, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch:
            result = await StartupValidator(config).validate_all()

        assert result.success is True
        assert len(result.warnings) == 2
        plenty_of_resources.assert_called_once_with(
            config.staging.root_dir, StartupValidator.RESOURCE_REQUIREMENTS
        )

    @pytest.mark.asyncio
    async def test_resource_read_failure_ignored(
        self,
        config: Config,
        ytdlp_ok: CheckResult,
        ffmpeg_ok: CheckResult,
        plenty_of_resources: MagicMock,
    ) -> None:
        plenty_of_resources.side_effect = OSError("no /proc")
        ytdlp_patch, ffmpeg_patch = patch_tools(ytdlp_ok, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch:
            result = await StartupValidator(config).validate_all()

        assert result.success is True
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_not_checked_when_startup_fails(
        self, config: Config, ffmpeg_ok: CheckResult, plenty_of_resources: MagicMock
    ) -> None:
        missing = CheckResult(name="ytdlp", available=False, error="yt-dlp not found")
        ytdlp_patch, ffmpeg_patch = patch_tools(missing, ffmpeg_ok)
        with ytdlp_patch, ffmpeg_patch:
            await StartupValidator(config).validate_all()

        plenty_of_resources.assert_not_called()


def test_component_check_result_defaults() -> None:
    result = ComponentCheckResult(name="staging", passed=True, critical=True)

    assert result.details == {}
    assert result.version is None
