"""
CLI entry point for unifi-video-mqtt
"""

import sys

import click

from unifi_video_mqtt.bridge.camera_store import camera_slug
from unifi_video_mqtt.bridge.config import BridgeConfig, ConfigValidationError
from unifi_video_mqtt.errors import NvrError, StartupError
from unifi_video_mqtt.logging_utils import setup_structured_logging
from unifi_video_mqtt.nvr.client import UniFiVideoClient


def _nvr_options(func):
    options = [
        click.option("--nvr-host", envvar="UNIFI_VIDEO_HOST", required=True,
                     help="NVR base URL, e.g. https://nvr.local:7443 (env: UNIFI_VIDEO_HOST)"),
        click.option("--nvr-username", envvar="UNIFI_VIDEO_USERNAME", default="",
                     help="NVR username (env: UNIFI_VIDEO_USERNAME)"),
        click.option("--nvr-password", envvar="UNIFI_VIDEO_PASSWORD", default="",
                     help="NVR password (env: UNIFI_VIDEO_PASSWORD)"),
        click.option("--nvr-disable-ssl-check", envvar="UNIFI_VIDEO_DISABLE_SSL_CHECK", is_flag=True, default=False,
                     help="Skip TLS certificate verification (env: UNIFI_VIDEO_DISABLE_SSL_CHECK)"),
        click.option("--http-timeout", envvar="UNIFI_VIDEO_HTTP_TIMEOUT", type=float, default=10.0,
                     help="NVR request timeout in seconds"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--log-level", envvar="LOG_LEVEL", default="INFO", help="Log level (env: LOG_LEVEL)")
@click.option("--json-logs", envvar="JSON_LOGS", is_flag=True, default=False,
              help="Output logs in JSON format for log aggregation (env: JSON_LOGS)")
@click.option("--log-file", envvar="LOG_FILE", default=None, help="Log to a rotating file instead of stdout")
def main(log_level, json_logs, log_file):
    """UniFi Video <-> MQTT bridge"""
    setup_structured_logging(level=log_level, json_format=json_logs, output_file=log_file)


@main.command()
@_nvr_options
@click.option("--nvr-name", envvar="UNIFI_VIDEO_NVR_NAME", default="default",
              help="NVR name used as topic root: unifi/video/{name} (env: UNIFI_VIDEO_NVR_NAME)")
@click.option("--refresh-interval", envvar="UNIFI_VIDEO_REFRESH_INTERVAL", type=float, default=60.0,
              help="Seconds between camera attribute refreshes")
@click.option("--motion-refresh-interval", envvar="UNIFI_VIDEO_MOTION_REFRESH_INTERVAL", type=float, default=1.0,
              help="Seconds between motion detection refreshes")
@click.option("--mqtt-host", envvar="MQTT_HOST", default="localhost", help="MQTT broker host")
@click.option("--mqtt-port", envvar="MQTT_PORT", type=int, default=1883, help="MQTT broker port")
@click.option("--mqtt-username", envvar="MQTT_USERNAME", default=None, help="MQTT broker username")
@click.option("--mqtt-password", envvar="MQTT_PASSWORD", default=None, help="MQTT broker password")
@click.option("--mqtt-client-id", envvar="MQTT_CLIENT_ID", default=None,
              help="MQTT client id (default: auto-generated unifi-video-{random})")
def run(nvr_host, nvr_username, nvr_password, nvr_disable_ssl_check, http_timeout, nvr_name,
        refresh_interval, motion_refresh_interval, mqtt_host, mqtt_port, mqtt_username,
        mqtt_password, mqtt_client_id):
    """Run the bridge until SIGINT/SIGTERM"""
    from unifi_video_mqtt.bridge.service import UniFiVideoMqttService

    config_kwargs = {
        "nvr_host": nvr_host,
        "nvr_username": nvr_username,
        "nvr_password": nvr_password,
        "nvr_disable_ssl_check": nvr_disable_ssl_check,
        "http_timeout": http_timeout,
        "nvr_name": nvr_name,
        "refresh_interval": refresh_interval,
        "detect_motion_refresh_interval": motion_refresh_interval,
        "mqtt_host": mqtt_host,
        "mqtt_port": mqtt_port,
        "mqtt_username": mqtt_username,
        "mqtt_password": mqtt_password,
    }

    # Only set client id if explicitly provided (allows default_factory to work)
    if mqtt_client_id is not None:
        config_kwargs["mqtt_client_id"] = mqtt_client_id

    try:
        config = BridgeConfig(**config_kwargs)
    except ConfigValidationError as e:
        raise click.BadParameter(str(e))

    service = UniFiVideoMqttService(config)
    service.install_signal_handlers()

    try:
        service.start()
    except StartupError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"📡 Publishing to {config.topic_root}/camera/<camera>/{{motion,recordMode}}")
    click.echo(f"🎛️  Commands on {config.topic_root}/camera/<camera>/recordMode/set (always|motion|none)")
    click.echo("⌨️  Press Ctrl+C to exit")

    service.join()


@main.command()
@_nvr_options
def cameras(nvr_host, nvr_username, nvr_password, nvr_disable_ssl_check, http_timeout):
    """List NVR cameras with their topic slug and record mode"""
    try:
        with UniFiVideoClient(
            host=nvr_host,
            username=nvr_username,
            password=nvr_password,
            disable_ssl_check=nvr_disable_ssl_check,
            timeout=http_timeout,
        ) as nvr:
            camera_list = nvr.list_cameras()
    except NvrError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    for camera in sorted(camera_list, key=lambda c: c.name.lower()):
        click.echo(f"{camera_slug(camera):<24} {camera.record_mode.value:<8} {camera.id}  {camera.name}")


if __name__ == "__main__":
    main()
