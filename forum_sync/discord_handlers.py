"""
Discord -> GitHub handlers for the ForumSync cog.
"""

from __future__ import annotations

from typing import Optional

from .backlink import extract_backlink
from .helpers import tags_changed
from .store import Thread


class DiscordHandlersMixin:
    """Reacts to gateway events on the bound forum and drives GitHub mutations.

    Expects ``store``, ``github``, ``discord``, ``forum_channel_id`` and ``log``
    on the host class.
    """

    # Archiving a forum post makes Discord lock it as well, so mirroring these
    # two flags bounces straight back through the GitHub handlers. Leave off
    # until that coupling is handled.
    sync_thread_state = False

    def _in_forum(self, parent_id: Optional[int]) -> bool:
        return self.forum_channel_id is not None and parent_id == self.forum_channel_id

    async def handle_ready(self) -> None:
        """Load forum tags, then rebuild the registry from GitHub."""
        try:
            tags = await self.discord.fetch_available_tags(self.forum_channel_id)
            self.store.vocabulary.refresh(tags)
        except Exception:
            self.log.exception("Failed to load tags for forum %s", self.forum_channel_id)

        try:
            threads = await self.github.fetch_threads()
        except Exception:
            self.log.exception("Failed to load issues from GitHub")
            return
        self.store.replace(threads)

        linked = 0
        try:
            linked = await self.github.fetch_comment_links(self.store)
        except Exception:
            self.log.exception("Failed to load issue comments from GitHub")

        self.log.info("Issues loaded: %d threads, %d comments", len(self.store), linked)

    async def handle_thread_create(self, channel) -> None:
        if not self._in_forum(channel.parent_id):
            return
        async with self.store.serialize(channel.id):
            self.store.add(
                Thread(
                    id=channel.id,
                    title=channel.name,
                    applied_tags=[tag.id for tag in channel.applied_tags],
                )
            )
            self.log.debug("Tracking new forum post %s", channel.id)

    async def handle_thread_update(self, channel) -> None:
        if not self._in_forum(channel.parent_id):
            return
        async with self.store.serialize(channel.id):
            thread = self.store.get(channel.id)
            if thread is None:
                return
            try:
                current = [tag.id for tag in channel.applied_tags]
                if tags_changed(thread.applied_tags, current):
                    thread.applied_tags = current
                    await self.github.update_labels(thread)

                if self.sync_thread_state:
                    await self._sync_thread_state(thread, channel)
            except Exception:
                self.log.exception("Failed to handle update of thread %s", channel.id)

    async def _sync_thread_state(self, thread: Thread, channel) -> None:
        if channel.locked != thread.locked:
            thread.locked = channel.locked
            if channel.locked:
                await self.github.lock_issue(thread)
            else:
                await self.github.unlock_issue(thread)
        if channel.archived != thread.archived:
            thread.archived = channel.archived
            if channel.archived:
                await self.github.close_issue(thread)
            else:
                await self.github.open_issue(thread)

    async def handle_channel_update(self, channel) -> None:
        if self.forum_channel_id is None or channel.id != self.forum_channel_id:
            return
        tags = getattr(channel, "available_tags", None)
        if tags is None:
            return
        self.store.vocabulary.refresh(tags)
        self.log.debug("Forum tags refreshed: %d tags", len(self.store.vocabulary))

    async def handle_message_create(self, message) -> None:
        if message.author.bot:
            return
        thread_id = message.channel.id
        if thread_id not in self.store:
            return
        async with self.store.serialize(thread_id):
            thread = self.store.get(thread_id)
            if thread is None:
                return
            try:
                if thread.body is None:
                    await self.github.create_issue(thread, message)
                else:
                    await self.github.create_comment(thread, message)
            except Exception:
                self.log.exception("Failed to mirror message %s in thread %s", message.id, thread_id)

    async def handle_message_edit(self, before, after) -> None:
        if after.author.bot or before.content == after.content:
            return
        thread_id = after.channel.id
        if thread_id not in self.store:
            return
        async with self.store.serialize(thread_id):
            thread = self.store.get(thread_id)
            if thread is None:
                return
            try:
                link = thread.find_comment(message_id=after.id)
                if link is not None:
                    await self.github.edit_comment(thread, link.github_id, after)
                    return
                origin = extract_backlink(thread.body)
                if origin is not None and origin.message_id == after.id:
                    await self.github.edit_issue_body(thread, after)
            except Exception:
                self.log.exception("Failed to mirror edit of message %s in thread %s", after.id, thread_id)

    async def handle_message_delete(self, channel_id: int, message_id: int) -> None:
        if channel_id not in self.store:
            return
        async with self.store.serialize(channel_id):
            thread = self.store.get(channel_id)
            if thread is None:
                return
            link = thread.unlink_comment(message_id=message_id)
            if link is None:
                return
            await self.github.delete_comment(thread, link.github_id)

    async def handle_thread_delete(self, thread_id: int, parent_id: Optional[int]) -> None:
        if not self._in_forum(parent_id):
            return
        async with self.store.serialize(thread_id):
            thread = self.store.remove(thread_id)
            if thread is None:
                return
            # The record stays removed even if GitHub refuses the delete.
            await self.github.delete_issue(thread)
