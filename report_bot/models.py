from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Literal, Mapping

EventKind = Literal["text", "selection"]
ChannelStatus = Literal["succeeded", "failed", "skipped"]


@dataclass(slots=True)
class Session:
    user_id: int
    current_key: str
    started_at: datetime
    updated_at: datetime
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Report:
    user_id: int
    values: Mapping[str, Any]
    created_at: datetime
    id: int | None = None
    author: str | None = None

    def __post_init__(self) -> None:
        # Read-only view over a private copy so callers cannot mutate a stored report.
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "author": self.author,
            "created_at": self.created_at.isoformat(),
            "values": dict(self.values),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Report:
        return cls(
            id=int(payload["id"]) if payload.get("id") is not None else None,
            user_id=int(payload["user_id"]),
            author=payload.get("author"),
            created_at=datetime.fromisoformat(str(payload["created_at"])),
            values=dict(payload.get("values") or {}),
        )


@dataclass(slots=True)
class Aggregate:
    total_reports: int
    unique_users: int
    totals: dict[str, float]
    last_activity: datetime | None


@dataclass(slots=True)
class UserSummary:
    user_id: int
    name: str
    reports_count: int
    last_activity: datetime
    last_customer: str | None


@dataclass(frozen=True, slots=True)
class ChoiceOption:
    value: Any
    label: str


@dataclass(frozen=True, slots=True)
class InboundEvent:
    user_id: int
    kind: EventKind
    payload: str
    author: str | None = None


@dataclass(frozen=True, slots=True)
class Reply:
    text: str
    options: tuple[ChoiceOption, ...] = ()
    field_key: str | None = None


@dataclass(frozen=True, slots=True)
class Submit:
    report: Report


Effect = Reply | Submit


@dataclass(slots=True)
class Transition:
    state: str
    effects: list[Effect] = field(default_factory=list)

    @property
    def report(self) -> Report | None:
        for effect in self.effects:
            if isinstance(effect, Submit):
                return effect.report
        return None


@dataclass(frozen=True, slots=True)
class ChannelResult:
    status: ChannelStatus
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(slots=True)
class DistributionOutcome:
    report: Report | None
    per_channel: dict[str, ChannelResult] = field(default_factory=dict)

    @property
    def report_id(self) -> int | None:
        return self.report.id if self.report is not None else None

    @property
    def persisted(self) -> bool:
        return self.report is not None
