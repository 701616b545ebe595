from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .backlink import embed_backlink, extract_backlink
from .helpers import map_discord_tags_to_github_labels
from .logs import Action, Triggerer, github_url, log_action
from .store import TagVocabulary, Thread, ThreadStore

log = logging.getLogger("red.forum_sync.github")

GRAPHQL_URL = "https://api.github.com/graphql"

DELETE_ISSUE_MUTATION = """
mutation($issueId: ID!) {
  deleteIssue(input: {issueId: $issueId}) {
    clientMutationId
  }
}
"""

LOCK_REASON = "resolved"


class GitHubActions:
    """
    Mutations on the GitHub side of the bridge.

    PyGithub is blocking, so every REST call runs in a worker thread. Registry
    fields derived from a call are only written once that call has returned.
    """

    def __init__(self, repo, token: str, vocabulary: TagVocabulary) -> None:
        self.repo = repo
        self.token = token
        self.vocabulary = vocabulary

    # ----------------------
    # Blocking-to-thread helpers for PyGithub calls
    # ----------------------
    async def _gh_list(self, fn_noargs):
        return await asyncio.to_thread(lambda: list(fn_noargs()))

    async def _gh_call(self, fn_noargs):
        return await asyncio.to_thread(fn_noargs)

    async def _get_issue(self, number: int):
        return await self._gh_call(lambda: self.repo.get_issue(number=number))

    def _info(self, action: Action, thread: Thread) -> None:
        log_action(log, Triggerer.DISCORD, action, github_url(self.repo.full_name, thread.number))

    async def _graphql_request(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }
        payload = {"query": query, "variables": variables or {}}

        async with aiohttp.ClientSession() as session:
            async with session.post(GRAPHQL_URL, headers=headers, json=payload) as response:
                if response.status != 200:
                    log.error("GraphQL request failed with status %d: %s", response.status, await response.text())
                    return None
                data = await response.json()
                if "errors" in data:
                    log.error("GraphQL errors: %s", [e.get("message", str(e))[:100] for e in data["errors"][:3]])
                    return None
                return data.get("data")

    # ----------------------
    # Startup reconciliation
    # ----------------------
    async def fetch_threads(self) -> List[Thread]:
        """Rebuild thread records from every issue whose body links back to Discord."""
        issues = await self._gh_list(lambda: self.repo.get_issues(state="all"))
        threads: Dict[int, Thread] = {}
        for issue in issues:
            if issue.pull_request is not None or not issue.body:
                continue
            link = extract_backlink(issue.body)
            if link is None or link.channel_id in threads:
                continue
            threads[link.channel_id] = Thread(
                id=link.channel_id,
                title=issue.title,
                number=issue.number,
                node_id=issue.node_id,
                body=issue.body,
                applied_tags=self.vocabulary.tags_for(label.name for label in issue.labels),
                archived=issue.state == "closed",
                locked=bool(issue.locked),
            )
        log.debug("Rebuilt %d threads from %d issues", len(threads), len(issues))
        return list(threads.values())

    async def fetch_comment_links(self, store: ThreadStore) -> int:
        comments = await self._gh_list(self.repo.get_issues_comments)
        linked = 0
        for comment in comments:
            link = extract_backlink(comment.body)
            if link is None:
                continue
            thread = store.get(link.channel_id)
            if thread is not None and thread.link_comment(link.message_id, comment.id):
                linked += 1
        return linked

    # ----------------------
    # Issues
    # ----------------------
    async def create_issue(self, thread: Thread, message) -> bool:
        if thread.number is not None:
            log.debug("Thread %s already has issue #%s, not creating another", thread.id, thread.number)
            return False

        labels = map_discord_tags_to_github_labels(self.vocabulary, thread.applied_tags)
        body = embed_backlink(message)
        issue = await self._gh_call(
            lambda: self.repo.create_issue(title=thread.title, body=body, labels=labels)
        )
        thread.bind_issue(issue.number, issue.node_id, issue.body or body)
        self._info(Action.CREATED, thread)
        return True

    async def edit_issue_body(self, thread: Thread, message) -> None:
        if thread.number is None:
            return
        body = embed_backlink(message)
        issue = await self._get_issue(thread.number)
        await self._gh_call(lambda: issue.edit(body=body))
        thread.body = body
        self._info(Action.EDITED, thread)

    async def update_labels(self, thread: Thread) -> None:
        if thread.number is None:
            return
        labels = map_discord_tags_to_github_labels(self.vocabulary, thread.applied_tags)
        issue = await self._get_issue(thread.number)
        await self._gh_call(lambda: issue.set_labels(*labels))
        self._info(Action.UPDATED_TAGS, thread)

    async def _set_state(self, thread: Thread, state: str, action: Action) -> None:
        if thread.number is None:
            return
        issue = await self._get_issue(thread.number)
        await self._gh_call(lambda: issue.edit(state=state))
        self._info(action, thread)

    async def close_issue(self, thread: Thread) -> None:
        await self._set_state(thread, "closed", Action.CLOSED)

    async def open_issue(self, thread: Thread) -> None:
        await self._set_state(thread, "open", Action.REOPENED)

    async def lock_issue(self, thread: Thread) -> None:
        if thread.number is None:
            return
        issue = await self._get_issue(thread.number)
        await self._gh_call(lambda: issue.lock(LOCK_REASON))
        self._info(Action.LOCKED, thread)

    async def unlock_issue(self, thread: Thread) -> None:
        if thread.number is None:
            return
        issue = await self._get_issue(thread.number)
        await self._gh_call(issue.unlock)
        self._info(Action.UNLOCKED, thread)

    async def delete_issue(self, thread: Thread) -> None:
        # Deleting needs the GraphQL node id; REST can only close.
        if not thread.node_id:
            return
        self._info(Action.DELETED, thread)
        try:
            await self._graphql_request(DELETE_ISSUE_MUTATION, {"issueId": thread.node_id})
        except Exception:
            log.exception("Failed to delete issue #%s (%s)", thread.number, thread.node_id)

    # ----------------------
    # Comments
    # ----------------------
    async def create_comment(self, thread: Thread, message) -> Optional[int]:
        if thread.number is None:
            return None
        body = embed_backlink(message)
        issue = await self._get_issue(thread.number)
        comment = await self._gh_call(lambda: issue.create_comment(body))
        thread.link_comment(message.id, comment.id)
        self._info(Action.COMMENTED, thread)
        return comment.id

    async def edit_comment(self, thread: Thread, github_id: int, message) -> None:
        if thread.number is None:
            return
        body = embed_backlink(message)
        issue = await self._get_issue(thread.number)
        comment = await self._gh_call(lambda: issue.get_comment(github_id))
        await self._gh_call(lambda: comment.edit(body))
        self._info(Action.EDITED_COMMENT, thread)

    async def delete_comment(self, thread: Thread, github_id: int) -> None:
        if thread.number is None:
            return
        try:
            issue = await self._get_issue(thread.number)
            comment = await self._gh_call(lambda: issue.get_comment(github_id))
            await self._gh_call(comment.delete)
        except Exception:
            log.exception("Failed to delete comment %s on issue #%s", github_id, thread.number)
            return
        self._info(Action.DELETED_COMMENT, thread)
