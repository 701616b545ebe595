from typing import List, Optional

from .store import TagVocabulary

THREAD_NAME_LIMIT = 100
MESSAGE_LIMIT = 2000


def map_discord_tags_to_github_labels(vocabulary: TagVocabulary, applied: List[int]) -> List[str]:
    # Stale tag ids come back as "" and GitHub rejects blank label names.
    return [name for name in vocabulary.labels_for(applied) if name]


def map_github_labels_to_discord_tags(vocabulary: TagVocabulary, labels: List[dict]) -> List[int]:
    return vocabulary.tags_for(label["name"] for label in labels)


def build_discord_message_prefix(
    author_name: str, author_url: Optional[str] = None
) -> str:
    if author_url:
        return f"**[{author_name}]({author_url})** on GitHub\n\n"
    return f"**{author_name}** on GitHub\n\n"


def clean_discord_text(text: Optional[str], limit: int = MESSAGE_LIMIT) -> str:
    if not text:
        return ""
    cleaned = text.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n").strip()
    if len(cleaned) > limit:
        cleaned = cleaned[: limit - 3].rstrip() + "..."
    return cleaned


def format_github_message(author: dict, body: Optional[str]) -> str:
    prefix = build_discord_message_prefix(author.get("login", "ghost"), author.get("html_url"))
    return prefix + clean_discord_text(body, MESSAGE_LIMIT - len(prefix))


def format_thread_name(number: int, name: str) -> Optional[str]:
    """``#N: name`` or None when that would not fit in a thread name."""
    new_name = f"#{number}: {name}"
    if len(new_name) > THREAD_NAME_LIMIT:
        return None
    return new_name


def tags_changed(stored: List[int], current: List[int]) -> bool:
    return set(stored) != set(current)
