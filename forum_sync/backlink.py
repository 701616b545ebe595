"""
Back-links embedded in GitHub issue and comment bodies.

Every issue or comment this cog writes to GitHub carries a link to the Discord
message it was mirrored from. Reading that link back is how the registry is
rebuilt on startup and how GitHub webhooks for our own writes are recognised.
"""

from __future__ import annotations

import re
from typing import Iterable, NamedTuple, Optional

DISCORD_HOST = "discord.com"
DISCORD_CDN = "https://cdn.discordapp.com"

# Only the channel and message groups are used; the guild is informational.
BACKLINK_RE = re.compile(r"https://discord\.com/channels/(\d+)/(\d+)/(\d+)(?=\))")

MIRRORED_IMAGE_TYPES = ("image/png", "image/jpeg")


class BackLink(NamedTuple):
    channel_id: int
    message_id: int


def message_url(guild_id: int, channel_id: int, message_id: int) -> str:
    return f"https://{DISCORD_HOST}/channels/{guild_id}/{channel_id}/{message_id}"


def avatar_url(author) -> str:
    avatar = getattr(author, "avatar", None)
    if avatar is None:
        return str(author.default_avatar.url)
    return f"{DISCORD_CDN}/avatars/{author.id}/{avatar.key}.webp?size=40"


def attachments_to_markdown(attachments: Iterable) -> str:
    md = ""
    for attachment in attachments:
        if attachment.content_type in MIRRORED_IMAGE_TYPES:
            md += f'![{attachment.filename}]({attachment.url} "{attachment.filename}")'
    return md


def embed_backlink(message) -> str:
    """Render a Discord message as a GitHub body that links back to it.

    The header layout is matched by ``BACKLINK_RE`` and by every issue this
    cog has written before, so it must not change.
    """
    author = message.author
    name = getattr(author, "global_name", None) or author.name
    url = message_url(message.guild.id, message.channel.id, message.id)
    return (
        f"<kbd>[![{name}]({avatar_url(author)})]({url})</kbd> [{name}]({url})  `BOT`\n\n"
        f"{message.content}\n"
        f"{attachments_to_markdown(message.attachments)}\n"
    )


def extract_backlink(body: Optional[str]) -> Optional[BackLink]:
    if not body:
        return None
    match = BACKLINK_RE.search(body)
    if not match:
        return None
    _, channel_id, message_id = match.groups()
    return BackLink(int(channel_id), int(message_id))
