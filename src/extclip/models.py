import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ObservationMode(str, Enum):
    PUSH = "push"
    POLL = "poll"


class Verdict(str, Enum):
    ACCEPT = "accept"
    IGNORE = "ignore"


class Reason(str, Enum):
    UNPRIMED = "unprimed"
    PRIMING = "priming"
    UNCHANGED = "unchanged"
    SELF_COPY = "self_copy"
    SUPPRESSED = "suppressed"
    NEW_CLIP = "new_clip"


@dataclass(frozen=True)
class ClipboardSample:
    text: str
    observed_at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class SelfCopyGuard:
    text: str
    expires_at: float


@dataclass
class WatcherState:
    last_observed_text: str = ""
    primed: bool = False
    self_copy_guard: SelfCopyGuard | None = None
    suppress_until: float = 0.0
    suppressed_text: str = ""


@dataclass(frozen=True)
class Decision:
    verdict: Verdict
    reason: Reason
    text: str | None = None

    @property
    def accepted(self) -> bool:
        return self.verdict == Verdict.ACCEPT

    @classmethod
    def ignore(cls, reason: Reason) -> "Decision":
        return cls(Verdict.IGNORE, reason)

    @classmethod
    def accept(cls, text: str) -> "Decision":
        return cls(Verdict.ACCEPT, Reason.NEW_CLIP, text)


@dataclass(frozen=True)
class AttributedClip:
    text: str
    source_app: str | None = None


@dataclass
class Clip:
    """A clip as recorded by the local store."""

    id: int | None
    content: str
    content_hash: str
    created_at: datetime
    from_app_name: str | None = None
