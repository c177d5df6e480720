from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Literal, Union


ErrorKind = Literal["transport", "malformed_response", "local_store", "unexpected"]


@dataclass
class SyncCounters:
    io_errors: int = 0
    auth_errors: int = 0
    lists_uploaded: int = 0
    items_uploaded: int = 0
    items_downloaded: int = 0
    conflicts_dropped: int = 0
    items_skipped: int = 0


@dataclass(frozen=True)
class SyncSuccess:
    mode: str
    counters: SyncCounters = field(default_factory=SyncCounters)
    committed: bool = True
    status: Literal["success"] = "success"


@dataclass(frozen=True)
class SyncLoginFailure:
    mode: str
    counters: SyncCounters = field(default_factory=SyncCounters)
    status: Literal["login_failure"] = "login_failure"


@dataclass(frozen=True)
class SyncError:
    mode: str
    kind: ErrorKind
    cause: str
    counters: SyncCounters = field(default_factory=SyncCounters)
    status: Literal["error"] = "error"


SyncOutcome = Union[SyncSuccess, SyncLoginFailure, SyncError]


def outcome_to_dict(outcome: SyncOutcome) -> dict[str, object]:
    return asdict(outcome)
