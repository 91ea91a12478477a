"""
Unit tests for the click CLI
"""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from unifi_video_mqtt.cli import main
from unifi_video_mqtt.errors import NvrError, StartupError

from fakes import make_camera


@pytest.fixture(autouse=True)
def no_logging_setup():
    # CliRunner swaps stdout; keep root handlers off its stream
    with patch("unifi_video_mqtt.cli.setup_structured_logging"):
        yield


def test_cameras_lists_slug_and_mode():
    nvr = MagicMock()
    nvr.__enter__.return_value = nvr
    nvr.list_cameras.return_value = [
        make_camera("cam-b", "Garage"),
        make_camera("cam-a", "Front Door", full_time=True),
    ]

    with patch("unifi_video_mqtt.cli.UniFiVideoClient", return_value=nvr):
        result = CliRunner().invoke(main, ["cameras", "--nvr-host", "https://nvr.local:7443"])

    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert lines[0].split()[:3] == ["front-door", "always", "cam-a"]
    assert lines[1].split()[:3] == ["garage", "none", "cam-b"]


def test_cameras_reports_nvr_error():
    nvr = MagicMock()
    nvr.__enter__.return_value = nvr
    nvr.list_cameras.side_effect = NvrError("connection refused")

    with patch("unifi_video_mqtt.cli.UniFiVideoClient", return_value=nvr):
        result = CliRunner().invoke(main, ["cameras", "--nvr-host", "https://nvr.local:7443"])

    assert result.exit_code == 1


def test_run_rejects_invalid_config():
    result = CliRunner().invoke(
        main, ["run", "--nvr-host", "https://nvr.local:7443", "--refresh-interval", "0"]
    )
    assert result.exit_code != 0
    assert "refresh_interval" in result.output


def test_run_reads_environment_and_exits_on_startup_error():
    service = MagicMock()
    service.start.side_effect = StartupError("Initial camera sync failed: refused")

    with patch("unifi_video_mqtt.bridge.service.UniFiVideoMqttService", return_value=service) as factory:
        result = CliRunner().invoke(
            main,
            ["run"],
            env={"UNIFI_VIDEO_HOST": "https://nvr.local:7443", "UNIFI_VIDEO_NVR_NAME": "home"},
        )

    assert result.exit_code == 1
    config = factory.call_args[0][0]
    assert config.topic_root == "unifi/video/home"
    service.join.assert_not_called()


def test_run_blocks_in_join():
    service = MagicMock()

    with patch("unifi_video_mqtt.bridge.service.UniFiVideoMqttService", return_value=service):
        result = CliRunner().invoke(
            main, ["run", "--nvr-host", "https://nvr.local:7443", "--mqtt-client-id", "bridge-1"]
        )

    assert result.exit_code == 0, result.output
    service.install_signal_handlers.assert_called_once()
    service.start.assert_called_once()
    service.join.assert_called_once()
