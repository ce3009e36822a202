"""Self-copy bookkeeping for a watcher session.

When the app writes to the clipboard itself, the next observation of that
text must not come back as a new clip. Two deadlines cover this: an
exact-text guard that is consumed on its first match, and a longer
window that catches a late or OS-normalized echo of the same text.
"""

from dataclasses import replace

from extclip.config import GUARD_DURATION, SUPPRESS_DURATION
from extclip.models import SelfCopyGuard, WatcherState
from extclip.utils import normalize_clip_text


def mark_self_copy(
    state: WatcherState,
    text: str,
    now: float,
    guard_duration: float = GUARD_DURATION,
    suppress_duration: float = SUPPRESS_DURATION,
) -> WatcherState:
    """Arm the guard for ``text`` and return the state as it was before.

    Only one guard slot exists, so a new mark overwrites the previous one.
    """
    previous = replace(state)
    state.self_copy_guard = SelfCopyGuard(text=text, expires_at=now + guard_duration)
    state.last_observed_text = text
    state.suppress_until = now + suppress_duration
    state.suppressed_text = normalize_clip_text(text)
    return previous


def revert_self_copy(state: WatcherState, previous: WatcherState, text: str) -> None:
    """Undo a mark for ``text`` whose clipboard write never happened.

    Nothing changes once the guard was consumed or replaced by a later mark.
    """
    guard = state.self_copy_guard
    if guard is None or guard.text != text:
        return
    state.self_copy_guard = previous.self_copy_guard
    state.last_observed_text = previous.last_observed_text
    state.suppress_until = previous.suppress_until
    state.suppressed_text = previous.suppressed_text


def consume_guard(state: WatcherState, text: str, now: float) -> bool:
    """Return True and free the guard if it is live and holds ``text``."""
    guard = state.self_copy_guard
    if guard is None:
        return False
    if now > guard.expires_at:
        state.self_copy_guard = None
        return False
    if guard.text != text:
        return False
    state.self_copy_guard = None
    return True


def within_suppress_window(state: WatcherState, text: str, now: float) -> bool:
    if now > state.suppress_until or not state.suppressed_text:
        return False
    return normalize_clip_text(text) == state.suppressed_text
