"""catalog_etl.ids

Opaque identifier generation, one prefix per catalog entity.
"""

from __future__ import annotations

import uuid

from catalog_etl.catalog_store import Entity

_PREFIXES = {
    Entity.EVENT_SERIES:       "es",
    Entity.EVENT:              "ev",
    Entity.CIRCLE:             "ci",
    Entity.ARTIST:             "ar",
    Entity.RELEASE:            "re",
    Entity.TRACK:              "tr",
    Entity.TRACK_CREDIT:       "tc",
    Entity.TRACK_OFFICIAL_SONG: "to",
}


def create_id(entity: Entity) -> str:
    """Return a new globally unique id such as ``ev_3f2b...``."""
    try:
        prefix = _PREFIXES[entity]
    except KeyError:
        raise ValueError(f"entity {entity.value!r} has no generated id") from None
    return f"{prefix}_{uuid.uuid4().hex}"
