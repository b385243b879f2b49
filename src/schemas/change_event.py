"""
Typed change events and parsing of realtime `postgres_changes` payloads.

Payload shape delivered by the change feed:

    {"table": "bookmarks", "eventType": "UPDATE", "new": {...row...}, "old": {"id": "..."}}

Insert and update events carry the full row in `new`; delete events only carry the
identifier in `old`. Anything that does not fit is treated as noise.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import ValidationError

from schemas.bookmark import Bookmark
from schemas.collection import Collection

logger = logging.getLogger(__name__)

EntityKind = Literal["bookmark", "collection"]
EventKind = Literal["insert", "update", "delete"]

Entity = Bookmark | Collection

TABLE_ENTITY_KINDS: dict[str, EntityKind] = {
    "bookmarks": "bookmark",
    "collections": "collection",
}

ENTITY_MODELS: dict[EntityKind, type[Entity]] = {
    "bookmark": Bookmark,
    "collection": Collection,
}

EVENT_KINDS: dict[str, EventKind] = {
    "INSERT": "insert",
    "UPDATE": "update",
    "DELETE": "delete",
}


@dataclass(frozen=True)
class ChangeEvent:
    """A single insert/update/delete notification for one entity."""

    entity_kind: EntityKind
    event_kind: EventKind
    identifier: str
    entity: Entity | None = None


def entity_kind_of(entity: Entity) -> EntityKind:
    """Return the entity kind for a bookmark or collection instance."""
    if isinstance(entity, Bookmark):
        return "bookmark"
    return "collection"


def parse_change_event(payload: Any) -> ChangeEvent | None:
    """
    Parse a realtime payload into a ChangeEvent.

    Returns:
        The parsed event, or None when the payload is malformed or refers to an
        unknown table or event type.
    """
    if not isinstance(payload, Mapping):
        logger.debug("Dropping non-mapping change payload: %r", type(payload).__name__)
        return None

    entity_kind = TABLE_ENTITY_KINDS.get(payload.get("table"))
    event_kind = EVENT_KINDS.get(str(payload.get("eventType", "")).upper())
    if entity_kind is None or event_kind is None:
        logger.debug(
            "Dropping change payload for table=%r eventType=%r",
            payload.get("table"),
            payload.get("eventType"),
        )
        return None

    if event_kind == "delete":
        old = payload.get("old")
        identifier = old.get("id") if isinstance(old, Mapping) else None
        if identifier is None or identifier == "":
            logger.debug("Dropping %s delete payload without an id", entity_kind)
            return None
        return ChangeEvent(entity_kind, event_kind, str(identifier))

    row = payload.get("new")
    if not isinstance(row, Mapping):
        logger.debug("Dropping %s %s payload without a row", entity_kind, event_kind)
        return None
    try:
        entity = ENTITY_MODELS[entity_kind].model_validate(dict(row))
    except ValidationError as e:
        logger.debug("Dropping invalid %s %s payload: %s", entity_kind, event_kind, e)
        return None
    return ChangeEvent(entity_kind, event_kind, entity.id, entity)
