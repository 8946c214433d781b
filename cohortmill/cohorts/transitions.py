"""Transitions between lifecycle states across adjacent windows."""

from __future__ import annotations

import collections
import typing as typ

from .states import CohortState

if typ.TYPE_CHECKING:
    import collections.abc as cabc

# Placeholder "from" state for users absent from the earlier window.
NONE_STATE = "none"

type TransitionLabels = dict[str, str]
type TransitionCounts = dict[str, int]


def transition_label(from_state: str, to_state: str) -> str:
    """Return the ``<from>_to_<to>`` label for a state pair."""
    return f"{from_state}_to_{to_state}"


def order_counts(counts: cabc.Mapping[str, int]) -> TransitionCounts:
    """Order labels by descending count, then lexicographically."""
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


def compute_transitions(
    prev_states: cabc.Mapping[str, str],
    curr_states: cabc.Mapping[str, str],
) -> tuple[TransitionLabels, TransitionCounts]:
    """Label every user seen in either window and count identical labels.

    Users only in ``prev_states`` transition to ``churned`` unless they were
    already ``churned`` there, in which case they have left and are not
    reported again. Users only in ``curr_states`` transition from ``none``.

    Returns
    -------
    tuple[dict[str, str], dict[str, int]]
        Per-user labels (sorted by user id) and label counts ordered by
        descending count with lexicographic tie-breaks.

    """
    labels: TransitionLabels = {}
    for user in sorted(set(prev_states) | set(curr_states)):
        before = prev_states.get(user)
        after = curr_states.get(user)
        if after is None:
            if before == CohortState.CHURNED:
                continue
            labels[user] = transition_label(str(before), CohortState.CHURNED.value)
        elif before is None:
            labels[user] = transition_label(NONE_STATE, str(after))
        else:
            labels[user] = transition_label(str(before), str(after))

    return labels, order_counts(collections.Counter(labels.values()))


__all__ = [
    "NONE_STATE",
    "TransitionCounts",
    "TransitionLabels",
    "compute_transitions",
    "order_counts",
    "transition_label",
]
