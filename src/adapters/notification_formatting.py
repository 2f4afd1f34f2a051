"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
import re

from core.models import Notification

DIVIDER = "──────────────"

# [label](url) links in field values are rendered per output mode.
_LINK = re.compile(r"\[([^\]]+)\]\((https?://[^)\s]+)\)")


def _format_timestamp(notification: Notification) -> str:
    if notification.timestamp is None:
        return ""
    return notification.timestamp.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()


def _format_markdown(notification: Notification) -> str:
    """Create the Markdown body used by the Telethon client adapter."""

    # Telethon's Markdown parser only needs these characters escaped.
    def escape_md(value: str) -> str:
        for ch in r"*[`":
            value = value.replace(ch, f"\\{ch}")
        return value

    def render_links(value: str) -> str:
        parts = []
        last = 0
        for match in _LINK.finditer(value):
            parts.append(escape_md(value[last : match.start()]))
            parts.append(f"[{escape_md(match.group(1))}]({match.group(2)})")
            last = match.end()
        parts.append(escape_md(value[last:]))
        return "".join(parts)

    lines = []
    if notification.mention_user_id is not None:
        lines.append(f"[🔔](tg://user?id={notification.mention_user_id}) **{escape_md(notification.title)}**")
    else:
        lines.append(f"**{escape_md(notification.title)}**")
    if notification.author:
        lines.append(f"__{escape_md(notification.author)}__")
    lines.append(DIVIDER)
    if notification.body:
        lines.extend(["", render_links(notification.body)])
    if notification.fields:
        lines.append("")
        for name, value in notification.fields:
            lines.append(f"**{escape_md(name)}:** {render_links(value)}")
    if notification.url:
        lines.extend(["", "**Link:**", notification.url])
    if notification.image_url:
        lines.append(f"[​]({notification.image_url})")

    footer_parts = [part for part in (notification.footer, _format_timestamp(notification)) if part]
    if footer_parts:
        lines.extend([DIVIDER, escape_md(" • ".join(footer_parts))])
    return "\n".join(lines)


def _format_html(notification: Notification) -> str:
    """Create the HTML body used by the Bot API adapter."""

    def render_links(value: str) -> str:
        parts = []
        last = 0
        for match in _LINK.finditer(value):
            parts.append(html.escape(value[last : match.start()]))
            parts.append(f"<a href=\"{html.escape(match.group(2))}\">{html.escape(match.group(1))}</a>")
            last = match.end()
        parts.append(html.escape(value[last:]))
        return "".join(parts)

    title = html.escape(notification.title)
    if notification.url:
        title = f"<a href=\"{html.escape(notification.url)}\">{title}</a>"
    if notification.mention_user_id is not None:
        title = f"<a href=\"tg://user?id={notification.mention_user_id}\">🔔</a> <b>{title}</b>"
    else:
        title = f"<b>{title}</b>"

    parts = [title]
    if notification.author:
        parts.append(f"<i>{html.escape(notification.author)}</i>")
    parts.append(DIVIDER)
    if notification.body:
        parts.extend(["", render_links(notification.body)])
    if notification.fields:
        parts.append("")
        for name, value in notification.fields:
            parts.append(f"<b>{html.escape(name)}:</b> {render_links(value)}")
    if notification.image_url:
        safe_image = html.escape(notification.image_url)
        parts.extend(["", f"<a href=\"{safe_image}\">🖼 Image</a>"])

    footer_parts = [part for part in (notification.footer, _format_timestamp(notification)) if part]
    if footer_parts:
        parts.extend([DIVIDER, html.escape(" • ".join(footer_parts))])
    return "\n".join(parts)


def format_notification(notification: Notification, mode: str) -> str:
    """Return the notification formatted for the requested mode."""

    if mode == "markdown":
        return _format_markdown(notification)
    if mode == "html":
        return _format_html(notification)
    raise ValueError(f"Unsupported notification format: {mode}")
