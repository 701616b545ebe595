"""
In-memory registry of forum threads and the GitHub issues they mirror.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Hashable, Iterable, Iterator, List, Optional


@dataclass
class CommentLink:
    message_id: int
    github_id: int


@dataclass
class Thread:
    """One forum thread and, once created, its GitHub issue."""

    id: int
    title: str
    number: Optional[int] = None
    node_id: Optional[str] = None
    body: Optional[str] = None
    applied_tags: List[int] = field(default_factory=list)
    archived: bool = False
    locked: bool = False
    comments: List[CommentLink] = field(default_factory=list)

    def bind_issue(self, number: int, node_id: str, body: str) -> bool:
        """Attach the GitHub issue; refuses if one is already attached."""
        if self.number is not None:
            return False
        self.number = number
        self.node_id = node_id
        self.body = body
        return True

    def find_comment(self, *, message_id: Optional[int] = None, github_id: Optional[int] = None) -> Optional[CommentLink]:
        for link in self.comments:
            if message_id is not None and link.message_id == message_id:
                return link
            if github_id is not None and link.github_id == github_id:
                return link
        return None

    def link_comment(self, message_id: int, github_id: int) -> bool:
        if self.find_comment(message_id=message_id) is not None:
            return False
        self.comments.append(CommentLink(message_id, github_id))
        return True

    def unlink_comment(self, *, message_id: Optional[int] = None, github_id: Optional[int] = None) -> Optional[CommentLink]:
        link = self.find_comment(message_id=message_id, github_id=github_id)
        if link is not None:
            self.comments.remove(link)
        return link


class TagVocabulary:
    """Forum tag id <-> name table shared by every handler.

    Refreshed at startup and whenever the bound forum channel is updated.
    Readers tolerate it being briefly stale.
    """

    def __init__(self, tags: Iterable = ()) -> None:
        self._names: Dict[int, str] = {}
        self.refresh(tags)

    def refresh(self, tags: Iterable) -> None:
        self._names = {int(tag.id): tag.name for tag in tags}

    def __len__(self) -> int:
        return len(self._names)

    def name_for(self, tag_id: int) -> str:
        return self._names.get(tag_id, "")

    def id_for(self, name: str) -> Optional[int]:
        for tag_id, tag_name in self._names.items():
            if tag_name == name:
                return tag_id
        return None

    def labels_for(self, tag_ids: Iterable[int]) -> List[str]:
        return [self.name_for(tag_id) for tag_id in tag_ids]

    def tags_for(self, labels: Iterable[str]) -> List[int]:
        result: List[int] = []
        for label in labels:
            tag_id = self.id_for(label)
            if tag_id is not None:
                result.append(tag_id)
        return result


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._locks

    @contextlib.asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class ThreadStore:
    def __init__(self) -> None:
        self._threads: Dict[int, Thread] = {}
        self._locks = KeyedLock()
        self.vocabulary = TagVocabulary()

    def __len__(self) -> int:
        return len(self._threads)

    def __iter__(self) -> Iterator[Thread]:
        return iter(list(self._threads.values()))

    def __contains__(self, thread_id: int) -> bool:
        return thread_id in self._threads

    def serialize(self, key: Hashable):
        """Hold the per-thread lock for ``key`` across a read-act-write."""
        return self._locks.hold(key)

    def get(self, thread_id: int) -> Optional[Thread]:
        return self._threads.get(thread_id)

    def by_node_id(self, node_id: Optional[str]) -> Optional[Thread]:
        if not node_id:
            return None
        for thread in self._threads.values():
            if thread.node_id == node_id:
                return thread
        return None

    def by_number(self, number: Optional[int]) -> Optional[Thread]:
        if number is None:
            return None
        for thread in self._threads.values():
            if thread.number == number:
                return thread
        return None

    def add(self, thread: Thread) -> Thread:
        """Insert ``thread`` unless its id is known; returns the stored record."""
        return self._threads.setdefault(thread.id, thread)

    def remove(self, thread_id: int) -> Optional[Thread]:
        return self._threads.pop(thread_id, None)

    def replace(self, threads: Iterable[Thread]) -> None:
        self._threads = {}
        for thread in threads:
            self.add(thread)
