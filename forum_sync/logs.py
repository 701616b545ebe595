import logging
from enum import Enum
from typing import Optional

from .backlink import DISCORD_HOST


class Triggerer(str, Enum):
    DISCORD = "Discord"
    GITHUB = "GitHub"


class Action(str, Enum):
    CREATED = "created"
    COMMENTED = "commented"
    EDITED = "edited"
    EDITED_COMMENT = "edited comment"
    CLOSED = "closed"
    REOPENED = "reopened"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    UPDATED_TAGS = "updated tags"
    DELETED = "deleted"
    DELETED_COMMENT = "deleted comment"
    RENAMED = "renamed"
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"


def github_url(repo_name: str, number: Optional[int]) -> str:
    return f"https://github.com/{repo_name}/issues/{number}"


def discord_url(guild_id: Optional[int], thread_id: int) -> str:
    return f"https://{DISCORD_HOST}/channels/{guild_id}/{thread_id}"


def log_action(log: logging.Logger, triggerer: Triggerer, action: Action, url: str) -> None:
    log.info("%s | %s | %s", triggerer.value, action.value, url)
