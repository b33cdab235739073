"""Content-type classification for video-feed items."""

import re

from feedwatch.upstream.schemas import ContentType

SHORT_FORM_MAX_SECONDS = 120

# Only the time part is used by the upstream for uploads; days are accepted
# so multi-day premieres do not parse as zero.
_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)

BROADCAST_NONE = "none"
BROADCAST_LIVE = "live"
BROADCAST_UPCOMING = "upcoming"


def parse_iso8601_duration(duration: str | None) -> int:
    """
    Convert an ISO-8601 duration (e.g. ``PT1H2M3S``) to seconds.

    Unparsable or empty values return 0.
    """
    if not duration:
        return 0
    match = _DURATION_PATTERN.match(duration.strip())
    if not match:
        return 0
    parts = {k: int(v) if v else 0 for k, v in match.groupdict().items()}
    return (
        parts["days"] * 86400
        + parts["hours"] * 3600
        + parts["minutes"] * 60
        + parts["seconds"]
    )


def classify_video(
    duration: str | None,
    broadcast_state: str | None,
    short_form_max_seconds: int = SHORT_FORM_MAX_SECONDS,
) -> ContentType:
    """
    Classify a video-feed item.

    upcoming -> premiere, live -> live; otherwise short-form when the
    duration is at most ``short_form_max_seconds``, normal when longer.
    """
    state = (broadcast_state or BROADCAST_NONE).lower()
    if state == BROADCAST_UPCOMING:
        return ContentType.PREMIERE
    if state == BROADCAST_LIVE:
        return ContentType.LIVE
    if parse_iso8601_duration(duration) <= short_form_max_seconds:
        return ContentType.SHORT_FORM
    return ContentType.NORMAL
