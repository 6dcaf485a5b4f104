"""Catalog content kinds.

Comments, reports and audit entries point at catalog rows through a
``(kind, id)`` pair. The set of kinds is closed.
"""

from dataclasses import dataclass
from enum import Enum


class ContentKind(str, Enum):
    """Closed set of catalog content kinds."""

    ANIME = "anime"
    MANGA = "manga"
    NOVEL = "novel"
    DONGHUA = "donghua"
    MANHUA = "manhua"
    MANHWA = "manhwa"
    FAN_COMIC = "fan_comic"

    @classmethod
    def parse(cls, value: str) -> "ContentKind":
        """Parse a kind from API or legacy input; raises ValueError if unknown."""
        normalized = (value or "").strip().lower().replace("-", "_")
        normalized = _ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unknown content kind: {value!r}") from None


_ALIASES = {
    "novels": "novel",
    "fan_comics": "fan_comic",
    "fancomic": "fan_comic",
}


@dataclass(frozen=True)
class ContentRef:
    """Reference to one catalog row."""

    kind: ContentKind
    id: int

    @classmethod
    def parse(cls, kind: str, content_id: int) -> "ContentRef":
        if content_id <= 0:
            raise ValueError("Content id must be positive")
        return cls(kind=ContentKind.parse(kind), id=content_id)
