"""Schema definitions for topic tagging."""

from dataclasses import dataclass, field
from datetime import datetime

VALID_TOPIC_LEVELS: frozenset[int] = frozenset({1, 2, 3})


@dataclass
class Topic:
    """A node of the three-level topic taxonomy."""

    id: int
    slug: str
    name: str
    level: int
    parent_id: int | None = None

    def __post_init__(self) -> None:
        if self.level not in VALID_TOPIC_LEVELS:
            raise ValueError(f"Invalid topic level {self.level}. Must be 1, 2 or 3.")


@dataclass
class TaggingResult:
    """Output of the tagging capability for one text.

    ``done`` is the capability's own success flag; a result with
    ``done=False`` is treated as a tagging failure by callers.
    """

    l1: str | None = None
    l2: str | None = None
    l3: list[str] = field(default_factory=list)
    done: bool = True

    @property
    def slugs(self) -> list[str]:
        out = [s for s in (self.l1, self.l2) if s]
        out.extend(self.l3)
        return out


@dataclass
class ResolvedTags:
    """Tagging output mapped onto the taxonomy, ready to store on a drop."""

    tags: list[str] = field(default_factory=list)
    l1_topic_id: int | None = None
    l2_topic_id: int | None = None


@dataclass
class TaggingParam:
    """One entry of the operator-editable tagging parameter store."""

    key: str
    value: str
    updated_at: datetime | None = None
