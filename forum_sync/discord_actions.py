from __future__ import annotations

import logging
from typing import Any, Dict, List

import discord

from .helpers import THREAD_NAME_LIMIT, format_github_message, format_thread_name
from .logs import Action, Triggerer, discord_url, log_action
from .store import Thread, ThreadStore

log = logging.getLogger("red.forum_sync.discord")

# Discord rejects more than five applied tags on a forum post.
MAX_APPLIED_TAGS = 5


class DiscordActions:
    """Mutations on the Discord side of the bridge."""

    def __init__(self, bot, store: ThreadStore) -> None:
        self.bot = bot
        self.store = store

    async def _get_channel(self, channel_id: int):
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            channel = await self.bot.fetch_channel(channel_id)
        return channel

    def _info(self, action: Action, channel) -> None:
        guild = getattr(channel, "guild", None)
        log_action(log, Triggerer.GITHUB, action, discord_url(getattr(guild, "id", None), channel.id))

    @staticmethod
    def _forum_tags(forum, tag_ids: List[int]) -> List[discord.ForumTag]:
        tags = [forum.get_tag(tag_id) for tag_id in tag_ids]
        resolved = [tag for tag in tags if tag is not None]
        if len(resolved) > MAX_APPLIED_TAGS:
            log.warning("Discord 5-tag limit: dropped %d tags", len(resolved) - MAX_APPLIED_TAGS)
        return resolved[:MAX_APPLIED_TAGS]

    async def fetch_available_tags(self, forum_id: int) -> List[discord.ForumTag]:
        forum = await self._get_channel(forum_id)
        return list(getattr(forum, "available_tags", []))

    async def create_thread(self, forum_id: int, issue: Dict[str, Any], tag_ids: List[int]) -> Thread:
        """Open a forum post for a GitHub issue and register it as bound."""
        forum = await self._get_channel(forum_id)
        title = issue.get("title") or "Untitled issue"
        name = format_thread_name(issue["number"], title) or title[:THREAD_NAME_LIMIT]
        content = format_github_message(issue.get("user") or {}, issue.get("body"))

        applied = self._forum_tags(forum, tag_ids)
        created = await forum.create_thread(name=name, content=content, applied_tags=applied)
        channel = created.thread

        # on_thread_create may already have registered this post
        thread = self.store.add(Thread(id=channel.id, title=title, applied_tags=[tag.id for tag in applied]))
        thread.bind_issue(issue["number"], issue["node_id"], issue.get("body") or "")
        self._info(Action.CREATED, channel)
        return thread

    async def rename_with_number(self, thread: Thread, number: int) -> None:
        channel = await self._get_channel(thread.id)
        if channel.name.startswith(f"#{number}:"):
            return
        new_name = format_thread_name(number, channel.name)
        if new_name is None:
            return
        await channel.edit(name=new_name)
        self._info(Action.RENAMED, channel)

    async def post_message(self, thread: Thread, content: str) -> int:
        channel = await self._get_channel(thread.id)
        message = await channel.send(content)
        return message.id

    async def delete_message(self, thread: Thread, message_id: int) -> None:
        try:
            channel = await self._get_channel(thread.id)
            await channel.get_partial_message(message_id).delete()
        except discord.HTTPException:
            log.exception("Failed to delete message %s in thread %s", message_id, thread.id)

    async def set_tags(self, thread: Thread, tag_ids: List[int]) -> None:
        channel = await self._get_channel(thread.id)
        applied = self._forum_tags(channel.parent, tag_ids)
        await channel.edit(applied_tags=applied)
        thread.applied_tags = [tag.id for tag in applied]
        self._info(Action.UPDATED_TAGS, channel)

    async def add_tag(self, thread: Thread, tag_id: int) -> None:
        if tag_id in thread.applied_tags:
            return
        await self.set_tags(thread, thread.applied_tags + [tag_id])

    async def remove_tag(self, thread: Thread, tag_id: int) -> None:
        if tag_id not in thread.applied_tags:
            return
        await self.set_tags(thread, [t for t in thread.applied_tags if t != tag_id])

    async def set_archived(self, thread: Thread, archived: bool) -> None:
        channel = await self._get_channel(thread.id)
        await channel.edit(archived=archived)
        thread.archived = archived
        self._info(Action.ARCHIVED if archived else Action.UNARCHIVED, channel)

    async def set_locked(self, thread: Thread, locked: bool) -> None:
        channel = await self._get_channel(thread.id)
        # An archived post only accepts edits that also unarchive it.
        if channel.archived:
            await channel.edit(archived=False, locked=locked)
            await channel.edit(archived=True)
        else:
            await channel.edit(locked=locked)
        thread.locked = locked
        self._info(Action.LOCKED if locked else Action.UNLOCKED, channel)

    async def delete_thread(self, thread: Thread) -> None:
        try:
            channel = await self._get_channel(thread.id)
            await channel.delete()
        except discord.HTTPException:
            log.exception("Failed to delete thread %s", thread.id)
            return
        self._info(Action.DELETED, channel)
