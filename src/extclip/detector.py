import logging

from extclip.guard import consume_guard, within_suppress_window
from extclip.models import ClipboardSample, Decision, Reason, WatcherState

logger = logging.getLogger(__name__)


def evaluate(sample: ClipboardSample, state: WatcherState) -> Decision:
    """Decide whether ``sample`` is a new external clip, updating ``state``.

    Rules run in order: priming, unchanged, self-copy guard, suppress
    window, accept. The guard is checked before the window because it is
    the exact record of what we wrote and must be freed once matched.
    """
    text = sample.text
    now = sample.observed_at

    if not state.primed:
        if not text:
            return Decision.ignore(Reason.UNPRIMED)
        state.last_observed_text = text
        state.primed = True
        return Decision.ignore(Reason.PRIMING)

    if not text or text == state.last_observed_text:
        return Decision.ignore(Reason.UNCHANGED)

    if consume_guard(state, text, now):
        state.last_observed_text = text
        return Decision.ignore(Reason.SELF_COPY)

    if within_suppress_window(state, text, now):
        state.last_observed_text = text
        return Decision.ignore(Reason.SUPPRESSED)

    state.last_observed_text = text
    logger.debug("New clip detected (%d chars)", len(text))
    return Decision.accept(text)


def prime(state: WatcherState, text: str) -> None:
    """Absorb ``text`` as already seen and mark the session primed.

    Used when subscribing to push events, which only fire on real changes,
    so the first event must not be swallowed by the priming rule.
    """
    state.last_observed_text = text
    state.primed = True
