"""
GitHub -> Discord handlers for the ForumSync cog.

Payloads are GitHub webhook deliveries for the ``issues`` and
``issue_comment`` events, already decoded to dicts.
"""

from __future__ import annotations

import contextlib
from typing import Any, AsyncIterator, Dict, Optional

from .backlink import extract_backlink
from .helpers import format_github_message, map_github_labels_to_discord_tags
from .store import Thread

ACKNOWLEDGEMENT = "GitHub Issue: <{url}>\nThank you for your report!"


class GitHubHandlersMixin:
    """Reacts to GitHub webhook deliveries and drives Discord mutations."""

    GITHUB_EVENTS = {
        ("issues", "opened"): "handle_issue_opened",
        ("issues", "closed"): "handle_issue_closed",
        ("issues", "reopened"): "handle_issue_reopened",
        ("issues", "locked"): "handle_issue_locked",
        ("issues", "unlocked"): "handle_issue_unlocked",
        ("issues", "deleted"): "handle_issue_deleted",
        ("issues", "labeled"): "handle_issue_labeled",
        ("issues", "unlabeled"): "handle_issue_unlabeled",
        ("issue_comment", "created"): "handle_comment_created",
        ("issue_comment", "deleted"): "handle_comment_deleted",
    }

    async def handle_github_event(self, event: str, payload: Dict[str, Any]) -> None:
        action = payload.get("action")
        name = self.GITHUB_EVENTS.get((event, action))
        if name is None:
            self.log.debug("Ignoring GitHub event %s/%s", event, action)
            return
        try:
            await getattr(self, name)(payload)
        except Exception:
            self.log.exception("Failed to handle GitHub event %s/%s", event, action)

    def _find_thread(self, issue: Dict[str, Any]) -> Optional[Thread]:
        return self.store.by_node_id(issue.get("node_id")) or self.store.by_number(issue.get("number"))

    def _lock_key(self, issue: Dict[str, Any]) -> Optional[int]:
        thread = self._find_thread(issue)
        if thread is not None:
            return thread.id
        # The issue may still be in flight from Discord; wait on that thread.
        link = extract_backlink(issue.get("body"))
        if link is not None and link.channel_id in self.store:
            return link.channel_id
        return None

    @contextlib.asynccontextmanager
    async def _bound_thread(self, payload: Dict[str, Any]) -> AsyncIterator[Optional[Thread]]:
        """Yield the thread bound to the payload's issue, holding its lock."""
        issue = payload.get("issue") or {}
        key = self._lock_key(issue)
        if key is not None:
            async with self.store.serialize(key):
                yield self._find_thread(issue)
            return

        node_id = issue.get("node_id")
        if not node_id:
            yield None
            return
        # handle_issue_opened holds this key while it creates the forum post.
        async with self.store.serialize(("issue", node_id)):
            thread = self._find_thread(issue)
            if thread is None:
                yield None
                return
            async with self.store.serialize(thread.id):
                yield self._find_thread(issue)

    async def handle_issue_opened(self, payload: Dict[str, Any]) -> None:
        issue = payload.get("issue")
        if not issue:
            return

        link = extract_backlink(issue.get("body"))
        if link is not None and link.channel_id in self.store:
            async with self.store.serialize(link.channel_id):
                thread = self.store.get(link.channel_id)
                if thread is None:
                    return
                await self.discord.rename_with_number(thread, issue["number"])
                await self.discord.post_message(thread, ACKNOWLEDGEMENT.format(url=issue["html_url"]))
            return

        node_id = issue.get("node_id")
        async with self.store.serialize(("issue", node_id)):
            if self._find_thread(issue) is not None:
                self.log.debug("Issue #%s already has a forum post", issue.get("number"))
                return
            tags = map_github_labels_to_discord_tags(self.store.vocabulary, issue.get("labels") or [])
            await self.discord.create_thread(self.forum_channel_id, issue, tags)

    async def handle_comment_created(self, payload: Dict[str, Any]) -> None:
        comment = payload.get("comment")
        if not comment:
            return
        # Comments carrying a back-link were written by us from Discord.
        if extract_backlink(comment.get("body")) is not None:
            return
        async with self._bound_thread(payload) as thread:
            if thread is None:
                return
            await self.discord.post_message(
                thread, format_github_message(comment.get("user") or {}, comment.get("body"))
            )

    async def handle_comment_deleted(self, payload: Dict[str, Any]) -> None:
        comment = payload.get("comment") or {}
        async with self._bound_thread(payload) as thread:
            if thread is None:
                return
            link = thread.unlink_comment(github_id=comment.get("id"))
            if link is None:
                return
            await self.discord.delete_message(thread, link.message_id)

    async def handle_issue_closed(self, payload: Dict[str, Any]) -> None:
        async with self._bound_thread(payload) as thread:
            if thread is not None:
                await self.discord.set_archived(thread, True)

    async def handle_issue_reopened(self, payload: Dict[str, Any]) -> None:
        async with self._bound_thread(payload) as thread:
            if thread is not None:
                await self.discord.set_archived(thread, False)

    async def handle_issue_locked(self, payload: Dict[str, Any]) -> None:
        async with self._bound_thread(payload) as thread:
            if thread is not None:
                await self.discord.set_locked(thread, True)

    async def handle_issue_unlocked(self, payload: Dict[str, Any]) -> None:
        async with self._bound_thread(payload) as thread:
            if thread is not None:
                await self.discord.set_locked(thread, False)

    async def handle_issue_deleted(self, payload: Dict[str, Any]) -> None:
        async with self._bound_thread(payload) as thread:
            if thread is None:
                return
            self.store.remove(thread.id)
            await self.discord.delete_thread(thread)

    async def handle_issue_labeled(self, payload: Dict[str, Any]) -> None:
        tag_id = self.store.vocabulary.id_for((payload.get("label") or {}).get("name"))
        if tag_id is None:
            return
        async with self._bound_thread(payload) as thread:
            if thread is not None:
                await self.discord.add_tag(thread, tag_id)

    async def handle_issue_unlabeled(self, payload: Dict[str, Any]) -> None:
        tag_id = self.store.vocabulary.id_for((payload.get("label") or {}).get("name"))
        if tag_id is None:
            return
        async with self._bound_thread(payload) as thread:
            if thread is not None:
                await self.discord.remove_tag(thread, tag_id)
