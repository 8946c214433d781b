"""Cohort state-transition engine.

Public API
----------
EligibilityFilter / ActorFlags
    Decide which events count toward engagement.
generate_windows
    Gapless, ordered windows for a date range.
classify / ActivityHistory / CohortState
    Per-window lifecycle states.
compute_transitions
    Transition labels and counts between adjacent windows.
build_timeline
    States and transitions for every window in a range.
CohortScope
    Repository, organization or combined aggregation scope.

"""

from __future__ import annotations

from .eligibility import (
    PASSIVE_EVENT_TYPES,
    ActorFlags,
    EligibilityFilter,
    is_qualifying,
)
from .errors import InvalidRangeError, InvalidScopeError
from .scopes import COMBINED_SCOPE_TOKEN, CohortScope, ScopeKind
from .states import STATE_ORDER, ActivityHistory, CohortState, classify, count_states
from .timeline import CohortTimeline, WindowPair, build_timeline
from .transitions import NONE_STATE, compute_transitions, transition_label
from .windows import Window, generate_windows, lookback_window

__all__ = [
    "COMBINED_SCOPE_TOKEN",
    "NONE_STATE",
    "PASSIVE_EVENT_TYPES",
    "STATE_ORDER",
    "ActivityHistory",
    "ActorFlags",
    "CohortScope",
    "CohortState",
    "CohortTimeline",
    "EligibilityFilter",
    "InvalidRangeError",
    "InvalidScopeError",
    "ScopeKind",
    "Window",
    "WindowPair",
    "build_timeline",
    "classify",
    "compute_transitions",
    "count_states",
    "generate_windows",
    "is_qualifying",
    "lookback_window",
    "transition_label",
]
