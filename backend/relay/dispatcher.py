"""
Relay dispatcher.

Maps an upgrade request path to a relay modality. Pure routing:
no I/O, no session logic.

    /api/ai/text      -> TEXT
    /api/ai/voice     -> VOICE
    /api/ai/realtime  -> TEXT   (legacy endpoint)
    anything else     -> None   (caller rejects the upgrade)
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from relay.modality import Modality
from spec import RELAY_LEGACY_PATH, RELAY_TEXT_PATH, RELAY_VOICE_PATH


RELAY_ROUTES: Mapping[str, Modality] = MappingProxyType({
    RELAY_TEXT_PATH: Modality.TEXT,
    RELAY_VOICE_PATH: Modality.VOICE,
    RELAY_LEGACY_PATH: Modality.TEXT,
})


def resolve_modality(path: str) -> Modality | None:
    """Return the modality for `path`, or None if the path is not a relay route."""
    normalized = path.rstrip("/") or "/"
    return RELAY_ROUTES.get(normalized)
