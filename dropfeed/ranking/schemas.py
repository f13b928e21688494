"""Schema definitions for ranked feeds."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from dropfeed.drops.schemas import Drop

VALID_TIERS: frozenset[str] = frozenset({"cold", "warm", "mature"})


def drop_to_dict(drop: Drop) -> dict[str, Any]:
    data = asdict(drop)
    data["published_at"] = drop.published_at.isoformat()
    data["created_at"] = drop.created_at.isoformat() if drop.created_at else None
    return data


def drop_from_dict(data: dict[str, Any]) -> Drop:
    values = dict(data)
    values["published_at"] = datetime.fromisoformat(values["published_at"])
    if values.get("created_at"):
        values["created_at"] = datetime.fromisoformat(values["created_at"])
    return Drop(**values)


@dataclass
class RankedDrop:
    """A drop placed in a user's feed.

    Attributes:
        score: Weighted sum of the components for the user's tier.
        components: Unweighted component values (topic_match, catalog,
            similarity, feedback) plus the catalog parts (recency, trust,
            popularity).
    """

    drop: Drop
    score: float
    reason_for_ranking: str
    components: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "drop": drop_to_dict(self.drop),
            "score": self.score,
            "reason_for_ranking": self.reason_for_ranking,
            "components": dict(self.components),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RankedDrop":
        return cls(
            drop=drop_from_dict(data["drop"]),
            score=data["score"],
            reason_for_ranking=data["reason_for_ranking"],
            components=dict(data.get("components") or {}),
        )


@dataclass
class FeedResult:
    """An assembled feed.

    ``constraints_applied`` records which post-filters changed the
    outcome (video floor, per-source cap, sponsored placement, negative
    feedback exclusion).
    """

    items: list[RankedDrop]
    tier: str
    total_candidates: int = 0
    constraints_applied: dict[str, Any] = field(default_factory=dict)
    from_cache: bool = False

    def __post_init__(self) -> None:
        if self.tier not in VALID_TIERS:
            raise ValueError(
                f"Invalid tier {self.tier!r}. Must be one of: {sorted(VALID_TIERS)}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "tier": self.tier,
            "total_candidates": self.total_candidates,
            "constraints_applied": dict(self.constraints_applied),
            "from_cache": self.from_cache,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedResult":
        return cls(
            items=[RankedDrop.from_dict(i) for i in data.get("items", [])],
            tier=data["tier"],
            total_candidates=data.get("total_candidates", 0),
            constraints_applied=dict(data.get("constraints_applied") or {}),
            from_cache=data.get("from_cache", False),
        )
