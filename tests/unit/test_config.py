"""
Unit tests for BridgeConfig validation
"""

import pytest

from unifi_video_mqtt.bridge.config import BridgeConfig, ConfigValidationError


def make_config(**overrides):
    kwargs = {"nvr_host": "https://nvr.local:7443", "nvr_name": "home"}
    kwargs.update(overrides)
    return BridgeConfig(**kwargs)


class TestDefaults:
    def test_defaults(self):
        config = make_config()
        assert config.refresh_interval == 60.0
        assert config.detect_motion_refresh_interval == 1.0
        assert config.motion_window_seconds == 1800
        assert config.mqtt_port == 1883
        assert config.mqtt_qos == 1
        assert config.mqtt_client_id.startswith("unifi-video-")

    def test_topic_root(self):
        assert make_config().topic_root == "unifi/video/home"

    def test_status_dict_omits_secrets(self):
        status = make_config(nvr_password="secret", mqtt_password="hunter2").to_status_dict()
        assert "secret" not in status.values()
        assert "hunter2" not in status.values()
        assert status["topic_root"] == "unifi/video/home"


class TestValidation:
    @pytest.mark.parametrize("host", ["", "nvr.local", "ftp://nvr.local", "https://"])
    def test_invalid_host(self, host):
        with pytest.raises(ConfigValidationError, match="Invalid NVR host"):
            make_config(nvr_host=host)

    @pytest.mark.parametrize("name", ["", "a/b", "home+", "#"])
    def test_invalid_nvr_name(self, name):
        with pytest.raises(ConfigValidationError, match="single topic level"):
            make_config(nvr_name=name)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("refresh_interval", 0),
            ("detect_motion_refresh_interval", -1),
            ("motion_window_seconds", 0),
            ("http_timeout", 0),
        ],
    )
    def test_non_positive_intervals(self, field, value):
        with pytest.raises(ConfigValidationError, match="must be > 0"):
            make_config(**{field: value})

    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_port(self, port):
        with pytest.raises(ConfigValidationError, match="Invalid MQTT port"):
            make_config(mqtt_port=port)

    def test_invalid_qos(self):
        with pytest.raises(ConfigValidationError, match="mqtt_qos"):
            make_config(mqtt_qos=3)

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            make_config(mqtt_port=0)
