import itertools
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from forum_sync.discord_actions import DiscordActions
from forum_sync.discord_handlers import DiscordHandlersMixin
from forum_sync.github_actions import GitHubActions
from forum_sync.github_handlers import GitHubHandlersMixin
from forum_sync.store import Thread, ThreadStore

GUILD_ID = 100
FORUM_ID = 200
OTHER_FORUM_ID = 201

BUG = SimpleNamespace(id=501, name="bug")
FEATURE = SimpleNamespace(id=502, name="feature")
QUESTION = SimpleNamespace(id=503, name="question")

_ids = itertools.count(9000)


def make_message(message_id, channel_id, content, *, bot=False, attachments=(), global_name="Alice"):
    author = SimpleNamespace(
        id=42,
        name="alice",
        global_name=global_name,
        avatar=SimpleNamespace(key="a1b2"),
        default_avatar=SimpleNamespace(url="https://cdn.discordapp.com/embed/avatars/0.png"),
        bot=bot,
    )
    return SimpleNamespace(
        id=message_id,
        content=content,
        author=author,
        guild=SimpleNamespace(id=GUILD_ID),
        channel=SimpleNamespace(id=channel_id),
        attachments=list(attachments),
    )


def issue_payload(action, issue, **extra):
    payload = {"action": action, "issue": issue}
    payload.update(extra)
    return payload


def github_issue(number=42, *, body="It crashes.", labels=(), title="Crash on start"):
    return {
        "number": number,
        "node_id": f"I_{number}",
        "title": title,
        "body": body,
        "html_url": f"https://github.com/owner/repo/issues/{number}",
        "labels": [{"name": name} for name in labels],
        "user": {"login": "bob", "html_url": "https://github.com/bob"},
    }


# ----------------------
# Discord fakes
# ----------------------
class FakeThread:
    def __init__(self, thread_id, name, parent, applied_tags=(), archived=False, locked=False):
        self.id = thread_id
        self.name = name
        self.parent = parent
        self.parent_id = parent.id
        self.guild = parent.guild
        self.applied_tags = list(applied_tags)
        self.archived = archived
        self.locked = locked
        self.sent = []
        self.deleted_messages = []
        self.edit = AsyncMock(side_effect=self._edit)
        self.send = AsyncMock(side_effect=self._send)
        self.delete = AsyncMock()

    async def _edit(self, **kwargs):
        for key, value in kwargs.items():
            setattr(self, key, value)
        return self

    async def _send(self, content):
        self.sent.append(content)
        return SimpleNamespace(id=next(_ids), content=content)

    def get_partial_message(self, message_id):
        return SimpleNamespace(
            id=message_id,
            delete=AsyncMock(side_effect=lambda: self.deleted_messages.append(message_id)),
        )


class FakeForum:
    def __init__(self, forum_id, bot, tags=()):
        self.id = forum_id
        self.bot = bot
        self.guild = SimpleNamespace(id=GUILD_ID)
        self.available_tags = list(tags)
        self.create_thread = AsyncMock(side_effect=self._create_thread)

    def get_tag(self, tag_id):
        return next((tag for tag in self.available_tags if tag.id == tag_id), None)

    async def _create_thread(self, *, name, content, applied_tags):
        thread = FakeThread(next(_ids), name, self, applied_tags)
        thread.starter_content = content
        self.bot.channels[thread.id] = thread
        return SimpleNamespace(thread=thread, message=SimpleNamespace(id=thread.id))


class FakeBot:
    def __init__(self):
        self.channels = {}
        self.fetch_channel = AsyncMock(side_effect=self._fetch_channel)

    def get_channel(self, channel_id):
        return self.channels.get(channel_id)

    async def _fetch_channel(self, channel_id):
        if channel_id not in self.channels:
            raise discord.NotFound(SimpleNamespace(status=404, reason="Not Found"), "Unknown Channel")
        return self.channels[channel_id]


# ----------------------
# GitHub fakes (PyGithub-shaped)
# ----------------------
class FakeComment:
    def __init__(self, comment_id, body):
        self.id = comment_id
        self.body = body
        self.edit = MagicMock()
        self.delete = MagicMock()


class FakeIssue:
    def __init__(self, repo, number, title, body, *, state="open", labels=(), locked=False, pull_request=None):
        self.repo = repo
        self.number = number
        self.node_id = f"I_{number}"
        self.title = title
        self.body = body
        self.state = state
        self.labels = [SimpleNamespace(name=name) for name in labels]
        self.locked = locked
        self.pull_request = pull_request
        self.edit = MagicMock()
        self.set_labels = MagicMock()
        self.lock = MagicMock()
        self.unlock = MagicMock()
        self.create_comment = MagicMock(side_effect=repo.add_comment)
        self.get_comment = MagicMock(side_effect=lambda comment_id: repo.comments[comment_id])


class FakeRepo:
    full_name = "owner/repo"

    def __init__(self):
        self.issues = {}
        self.comments = {}
        self._numbers = itertools.count(1)
        self._comment_ids = itertools.count(1000)
        self.create_issue = MagicMock(side_effect=self._create_issue)
        self.get_issue = MagicMock(side_effect=lambda number: self.issues[number])
        self.get_issues = MagicMock(side_effect=lambda state="open": list(self.issues.values()))
        self.get_issues_comments = MagicMock(side_effect=lambda: list(self.comments.values()))

    def add_issue(self, title, body, **kwargs):
        issue = FakeIssue(self, next(self._numbers), title, body, **kwargs)
        self.issues[issue.number] = issue
        return issue

    def add_comment(self, body):
        comment = FakeComment(next(self._comment_ids), body)
        self.comments[comment.id] = comment
        return comment

    def _create_issue(self, title, body, labels=()):
        return self.add_issue(title, body, labels=labels)


class Harness(DiscordHandlersMixin, GitHubHandlersMixin):
    """Both handler sets wired to real adapters over fake transports."""

    def __init__(self):
        self.log = logging.getLogger("red.forum_sync.tests")
        self.store = ThreadStore()
        self.bot = FakeBot()
        self.forum = FakeForum(FORUM_ID, self.bot, tags=[BUG, FEATURE, QUESTION])
        self.bot.channels[FORUM_ID] = self.forum
        self.repo = FakeRepo()
        self.github = GitHubActions(self.repo, "token", self.store.vocabulary)
        self.discord = DiscordActions(self.bot, self.store)
        self.forum_channel_id = FORUM_ID
        self.store.vocabulary.refresh(self.forum.available_tags)

    def open_thread(self, thread_id, name="Crash on start", tags=(), parent=None):
        channel = FakeThread(thread_id, name, parent or self.forum, applied_tags=tags)
        self.bot.channels[thread_id] = channel
        return channel

    def bound_thread(self, thread_id=300, name="Crash on start", tags=()):
        """A forum post that already has its issue, as after startup."""
        channel = self.open_thread(thread_id, name, tags)
        issue = self.repo.add_issue(name, "body")
        thread = self.store.add(
            Thread(id=thread_id, title=name, applied_tags=[tag.id for tag in tags])
        )
        thread.bind_issue(issue.number, issue.node_id, issue.body)
        return channel, thread, issue


@pytest.fixture
def harness():
    return Harness()
