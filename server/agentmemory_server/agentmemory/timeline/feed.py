"""Mapping of loosely-typed social feed payloads onto ``FeedItem``.

Feed APIs return the same post in several shapes: flat
(``{"id", "text", "userId", ...}``) or nested under ``legacy`` / ``core``.
Every fallback lives here and is applied once; business logic only ever
sees a fully populated ``FeedItem``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from agentmemory.models import FeedItem

logger = logging.getLogger(__name__)

_CREATED_AT_FORMAT = "%a %b %d %H:%M:%S %z %Y"


def _dig(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, Mapping):
            return None
        data = data.get(key)
    return data


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _parse_timestamp(raw: Mapping[str, Any]) -> Optional[float]:
    value = raw.get("timestamp")
    if isinstance(value, (int, float)):
        return float(value)
    created_at = _dig(raw, "legacy", "created_at")
    if isinstance(created_at, str):
        try:
            return datetime.strptime(created_at, _CREATED_AT_FORMAT).timestamp()
        except ValueError:
            logger.debug("Unparseable created_at %r", created_at)
    return None


def parse_feed_item(raw: Mapping[str, Any]) -> Optional[FeedItem]:
    """Return a ``FeedItem`` or ``None`` when the payload has no usable identity."""
    if not isinstance(raw, Mapping):
        return None

    item_id = _str_or_none(_first(raw.get("id"), raw.get("rest_id"), raw.get("id_str")))
    user_id = _str_or_none(
        _first(raw.get("userId"), _dig(raw, "legacy", "user_id_str"), _dig(raw, "user", "id_str"))
    )
    if item_id is None or user_id is None:
        return None

    screen_name = _dig(raw, "core", "user_results", "result", "legacy", "screen_name")
    username = _first(raw.get("username"), screen_name, _dig(raw, "user", "screen_name"))
    permanent_url = raw.get("permanentUrl")
    if permanent_url is None and screen_name and raw.get("rest_id"):
        permanent_url = f"https://x.com/{screen_name}/status/{raw['rest_id']}"

    return FeedItem(
        id=item_id,
        # A post that starts a conversation is its own conversation.
        conversation_id=str(
            _first(raw.get("conversationId"), _dig(raw, "legacy", "conversation_id_str"), item_id)
        ),
        user_id=user_id,
        text=_first(raw.get("text"), _dig(raw, "legacy", "full_text")) or "",
        username=username,
        name=_first(
            raw.get("name"),
            _dig(raw, "user_results", "result", "legacy", "name"),
            _dig(raw, "core", "user_results", "result", "legacy", "name"),
            _dig(raw, "user", "name"),
        ),
        permanent_url=permanent_url,
        in_reply_to_id=_str_or_none(
            _first(raw.get("inReplyToStatusId"), _dig(raw, "legacy", "in_reply_to_status_id_str"))
        ),
        timestamp=_parse_timestamp(raw),
        raw=dict(raw),
    )


def parse_feed_items(raws: Iterable[Mapping[str, Any]]) -> List[FeedItem]:
    items: List[FeedItem] = []
    for raw in raws:
        item = parse_feed_item(raw)
        if item is None:
            logger.debug("Dropping feed payload without id/author")
            continue
        items.append(item)
    return items
