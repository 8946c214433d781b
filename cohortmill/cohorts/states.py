"""Lifecycle state classification for contributors within a window.

Classification is a pure function of a window, the window that precedes it,
and an explicit activity history. The history carries each user's qualifying
timestamps for the scope being reported plus their ecosystem-wide first
qualifying timestamp, which decides the ``new`` state even when the scope is
a single repository.
"""

from __future__ import annotations

import bisect
import collections
import dataclasses
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from .windows import Window


class CohortState(enum.StrEnum):
    """Growth-accounting lifecycle states."""

    NEW = "new"
    RETAINED = "retained"
    RESURRECTED = "resurrected"
    CHURNED = "churned"


# Reporting order for state counts.
STATE_ORDER: tuple[CohortState, ...] = (
    CohortState.NEW,
    CohortState.RETAINED,
    CohortState.RESURRECTED,
    CohortState.CHURNED,
)

type UserStates = dict[str, CohortState]


@dataclasses.dataclass(frozen=True, slots=True)
class ActivityHistory:
    """Qualifying activity per user, sorted chronologically.

    Attributes
    ----------
    events
        Scoped qualifying timestamps keyed by user, ascending.
    first_seen
        Ecosystem-wide first qualifying timestamp keyed by user. Users
        missing here fall back to their earliest scoped timestamp.

    """

    events: cabc.Mapping[str, tuple[dt.datetime, ...]]
    first_seen: cabc.Mapping[str, dt.datetime] = dataclasses.field(
        default_factory=dict
    )

    @classmethod
    def from_pairs(
        cls,
        pairs: cabc.Iterable[tuple[str, dt.datetime]],
        first_seen: cabc.Mapping[str, dt.datetime] | None = None,
    ) -> ActivityHistory:
        """Group ``(user_id, occurred_at)`` pairs into a history."""
        grouped: dict[str, list[dt.datetime]] = collections.defaultdict(list)
        for user_id, occurred_at in pairs:
            grouped[user_id].append(occurred_at)
        return cls(
            events={user: tuple(sorted(stamps)) for user, stamps in grouped.items()},
            first_seen=dict(first_seen or {}),
        )

    @property
    def users(self) -> frozenset[str]:
        """Every user with scoped activity."""
        return frozenset(self.events)

    def first_activity(self, user_id: str) -> dt.datetime | None:
        """Return the earliest known qualifying timestamp for ``user_id``."""
        candidates: list[dt.datetime] = []
        if (known := self.first_seen.get(user_id)) is not None:
            candidates.append(known)
        if scoped := self.events.get(user_id):
            candidates.append(scoped[0])
        return min(candidates, default=None)

    def active_in(self, user_id: str, window: Window) -> bool:
        """Return True when ``user_id`` has scoped activity in ``window``."""
        stamps = self.events.get(user_id, ())
        idx = bisect.bisect_left(stamps, window.start_at)
        return idx < len(stamps) and stamps[idx] < window.end_at

    def users_active_in(self, window: Window) -> frozenset[str]:
        """Return users with at least one scoped event in ``window``."""
        return frozenset(user for user in self.events if self.active_in(user, window))

    def active_sets(
        self, windows: cabc.Sequence[Window]
    ) -> tuple[frozenset[str], ...]:
        """Bucket every user into the contiguous ``windows`` in one pass."""
        if not windows:
            return ()
        starts = [window.start_at for window in windows]
        upper = windows[-1].end_at
        buckets: list[set[str]] = [set() for _ in windows]
        for user, stamps in self.events.items():
            lo = bisect.bisect_left(stamps, starts[0])
            hi = bisect.bisect_left(stamps, upper)
            for stamp in stamps[lo:hi]:
                buckets[bisect.bisect_right(starts, stamp) - 1].add(user)
        return tuple(frozenset(bucket) for bucket in buckets)


def classify_user(
    *,
    first_activity: dt.datetime,
    window: Window,
    was_active_before: bool,
) -> CohortState:
    """Assign the state of a user known to be active in ``window``."""
    if window.contains(first_activity):
        return CohortState.NEW
    if was_active_before:
        return CohortState.RETAINED
    return CohortState.RESURRECTED


def classify_active(
    window: Window,
    history: ActivityHistory,
    *,
    active: cabc.Iterable[str],
    previously_active: cabc.Container[str],
) -> UserStates:
    """Classify users already known to be active in ``window``.

    Users are emitted in sorted order so the resulting mapping iterates
    deterministically.
    """
    states: UserStates = {}
    for user in sorted(active):
        first = history.first_activity(user)
        if first is None:  # pragma: no cover - active users always have history
            continue
        states[user] = classify_user(
            first_activity=first,
            window=window,
            was_active_before=user in previously_active,
        )
    return states


def classify(
    window: Window,
    history: ActivityHistory,
    *,
    previous: Window,
) -> UserStates:
    """Return the lifecycle state of every user active in ``window``.

    Only activity before ``window.end`` is consulted. Users without activity
    in the window are absent from the mapping; ``churned`` is derived when
    transitions are computed.

    Parameters
    ----------
    window
        Window being classified.
    history
        Scoped activity and global first-activity timestamps.
    previous
        The window immediately before ``window``.

    Returns
    -------
    dict[str, CohortState]
        Mapping of user id to ``new``, ``retained`` or ``resurrected``.

    """
    return classify_active(
        window,
        history,
        active=history.users_active_in(window),
        previously_active=history.users_active_in(previous),
    )


def count_states(states: UserStates, *, churned: int = 0) -> dict[str, int]:
    """Count users per state, keyed in ``STATE_ORDER`` with zeros included."""
    counter = collections.Counter(states.values())
    counts = {state.value: counter.get(state, 0) for state in STATE_ORDER}
    counts[CohortState.CHURNED.value] += churned
    return counts


__all__ = [
    "STATE_ORDER",
    "ActivityHistory",
    "CohortState",
    "UserStates",
    "classify",
    "classify_active",
    "classify_user",
    "count_states",
]
