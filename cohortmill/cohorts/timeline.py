"""Per-window states and transitions for a whole date range.

``build_timeline`` runs the classifier over every generated window in one
pass and pairs consecutive windows for transitions. The first window is
compared against a full-size lookback window ending at ``start_date`` so
``retained`` and ``churned`` are meaningful from the first report row.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from .states import CohortState, classify_active, count_states
from .transitions import compute_transitions
from .windows import generate_windows, lookback_window

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from .states import ActivityHistory, UserStates
    from .transitions import TransitionCounts, TransitionLabels
    from .windows import Window


@dataclasses.dataclass(frozen=True, slots=True)
class WindowPair:
    """Transition results between two adjacent windows."""

    earlier: Window
    later: Window
    labels: TransitionLabels
    counts: TransitionCounts


@dataclasses.dataclass(frozen=True, slots=True)
class CohortTimeline:
    """Classified states and transitions for every window in a range.

    Attributes
    ----------
    windows
        Generated windows in chronological order.
    states
        ``states[i]`` maps each user active in ``windows[i]`` to a state.
    churned
        ``churned[i]`` holds users active in the preceding window (the
        lookback window for ``i == 0``) but absent from ``windows[i]``.
    pairs
        Transitions for each adjacent pair; ``len(windows) - 1`` entries.

    """

    windows: tuple[Window, ...]
    states: tuple[UserStates, ...]
    churned: tuple[frozenset[str], ...]
    pairs: tuple[WindowPair, ...]

    def state_counts(self, index: int) -> dict[str, int]:
        """Return ordered state counts for ``windows[index]``."""
        return count_states(self.states[index], churned=len(self.churned[index]))


def _pair(
    earlier: Window,
    later: Window,
    prev_states: cabc.Mapping[str, CohortState],
    curr_states: cabc.Mapping[str, CohortState],
) -> WindowPair:
    labels, counts = compute_transitions(prev_states, curr_states)
    return WindowPair(earlier=earlier, later=later, labels=labels, counts=counts)


def build_timeline(
    history: ActivityHistory,
    *,
    start_date: dt.date,
    end_date: dt.date,
    window_size: int,
    on_window: cabc.Callable[[Window, UserStates], None] | None = None,
) -> CohortTimeline:
    """Classify every window between ``start_date`` and ``end_date``.

    Parameters
    ----------
    history
        Scoped qualifying activity before ``end_date`` together with
        ecosystem-wide first activity timestamps.
    start_date, end_date
        Range covered by the generated windows, ``[start_date, end_date)``.
    window_size
        Window length in days.
    on_window
        Optional progress callback invoked after each window is classified.

    Raises
    ------
    InvalidRangeError
        Propagated from window generation for unusable parameters.

    """
    windows = generate_windows(start_date, end_date, window_size)
    lookback = lookback_window(windows[0], window_size)
    active = history.active_sets((lookback, *windows))

    states: list[UserStates] = []
    churned: list[frozenset[str]] = []
    for window, previously_active, now_active in zip(
        windows, active, active[1:], strict=True
    ):
        window_states = classify_active(
            window,
            history,
            active=now_active,
            previously_active=previously_active,
        )
        states.append(window_states)
        churned.append(previously_active - now_active)
        if on_window is not None:
            on_window(window, window_states)

    pairs = tuple(
        _pair(windows[i], windows[i + 1], states[i], states[i + 1])
        for i in range(len(windows) - 1)
    )
    return CohortTimeline(
        windows=windows,
        states=tuple(states),
        churned=tuple(churned),
        pairs=pairs,
    )


__all__ = ["CohortTimeline", "WindowPair", "build_timeline"]
