"""Message templating for webhook notifications.

``render`` is a pure single-pass substitution of ``{name}`` placeholders.
Placeholders without a provided value are left verbatim, and substituted
values are never re-scanned, so rendering is deterministic.

The per-platform variable builders supply every expected key, using the
empty string for anything the upstream did not report.
"""

import re
from collections.abc import Mapping
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from feedwatch.upstream.schemas import FetchedItem, Platform

PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")

VIDEO_FEED_PLACEHOLDERS = ("title", "link", "published")
LIVE_STREAM_PLACEHOLDERS = ("streamer", "title", "link", "started")

DEFAULT_TEMPLATES: dict[Platform, str] = {
    Platform.VIDEO_FEED: "New upload: **{title}**\n{link}",
    Platform.LIVE_STREAM: "{streamer} is live!\n**{title}**\n{link}\n\nStarted: {started}",
}


def render(template: str, variables: Mapping[str, str]) -> str:
    """Substitute ``{name}`` placeholders with values from ``variables``."""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def format_timestamp(
    value: datetime | None,
    timezone_name: str = "UTC",
    date_format: str = "%Y-%m-%d %H:%M",
) -> str:
    """Format a timestamp for display; None renders as the empty string."""
    if value is None:
        return ""
    try:
        tz = ZoneInfo(timezone_name)
    except ZoneInfoNotFoundError:
        tz = ZoneInfo("UTC")
    return value.astimezone(tz).strftime(date_format)


def build_variables(
    item: FetchedItem,
    timezone_name: str = "UTC",
    date_format: str = "%Y-%m-%d %H:%M",
) -> dict[str, str]:
    """Template variables for ``item`` according to its platform."""
    when = format_timestamp(item.published_datetime, timezone_name, date_format)

    if item.platform == Platform.LIVE_STREAM:
        return {
            "streamer": item.author or "",
            "title": item.title,
            "link": item.url,
            "started": when,
        }

    return {
        "title": item.title,
        "link": item.url,
        "published": when,
    }


def render_item(
    template: str,
    item: FetchedItem,
    timezone_name: str = "UTC",
    date_format: str = "%Y-%m-%d %H:%M",
) -> str:
    """Render a target's template for a fetched item (default template when blank)."""
    if not template.strip():
        template = DEFAULT_TEMPLATES[item.platform]
    return render(template, build_variables(item, timezone_name, date_format))
