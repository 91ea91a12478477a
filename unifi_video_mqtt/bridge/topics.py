"""
MQTT Topic Utilities
====================

Topic naming conventions for the bridge:

    unifi/video/{nvr_name}/camera/{slug}/motion              (published)
    unifi/video/{nvr_name}/camera/{slug}/recordMode          (published)
    unifi/video/{nvr_name}/camera/{slug}/{subtopic}/set      (subscribed)
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Optional

TOPIC_PREFIX = "unifi/video"

MOTION_SUBTOPIC = "motion"
RECORD_MODE_SUBTOPIC = "recordMode"
SET_SUFFIX = "set"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """
    Turn a camera display name into a topic-safe token.

    Examples:
        >>> slugify("Front Door")
        'front-door'
        >>> slugify("front-door ")
        'front-door'
        >>> slugify("Garage (Côté Nord)")
        'garage-cote-nord'
    """
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", ascii_text.lower()).strip("-")


def topic_root(nvr_name: str) -> str:
    """
    Topic root for one NVR instance.

    >>> topic_root("home")
    'unifi/video/home'
    """
    return f"{TOPIC_PREFIX}/{nvr_name}"


def camera_topic(root: str, slug: str, subtopic: str) -> str:
    """
    State topic of one camera attribute.

    >>> camera_topic("unifi/video/home", "front-door", "motion")
    'unifi/video/home/camera/front-door/motion'
    """
    return f"{root}/camera/{slug}/{subtopic}"


def command_subscription(root: str) -> str:
    """Wildcard subscription covering every camera command topic."""
    return f"{root}/camera/+/+/{SET_SUFFIX}"


@dataclass(frozen=True)
class CommandTopic:
    """Addressing parsed from an inbound command topic"""

    slug: str
    subtopic: str


def parse_command_topic(topic: str, root: str) -> Optional[CommandTopic]:
    """
    Parse {root}/camera/{slug}/{subtopic}/set.

    Returns:
        CommandTopic, or None if the topic does not have that exact shape

    Examples:
        >>> parse_command_topic("unifi/video/home/camera/porch/recordMode/set", "unifi/video/home")
        CommandTopic(slug='porch', subtopic='recordMode')
        >>> parse_command_topic("unifi/video/home/camera/porch/motion", "unifi/video/home") is None
        True
    """
    prefix = f"{root}/camera/"
    if not topic.startswith(prefix):
        return None

    parts = topic[len(prefix):].split("/")
    if len(parts) != 3 or parts[2] != SET_SUFFIX:
        return None

    slug, subtopic = parts[0], parts[1]
    if not slug or not subtopic:
        return None
    return CommandTopic(slug=slug, subtopic=subtopic)
