"""Eligibility rules deciding which activity counts toward engagement.

An event qualifies when a human, non-core contributor performed it and its
kind is not one of the passive kinds (stars, membership changes, visibility
changes). Actor flags are snapshotted once per run into an ``ActorFlags``
lookup so retroactive flag updates in the ledger cannot change results
mid-computation.
"""

from __future__ import annotations

import dataclasses
import typing as typ

PASSIVE_EVENT_TYPES: frozenset[str] = frozenset(
    {"WatchEvent", "MemberEvent", "PublicEvent"}
)


def _normalise_login(login: str) -> str:
    return login.strip().lower()


def is_qualifying(
    event_kind: str,
    *,
    actor_is_bot: bool | None,
    actor_is_core: bool | None,
) -> bool:
    """Return True when an event with these attributes counts as engagement.

    ``None`` flags are treated as ``False``: an unknown actor is assumed to
    be an external human.
    """
    if actor_is_bot or actor_is_core:
        return False
    return event_kind not in PASSIVE_EVENT_TYPES


@dataclasses.dataclass(frozen=True, slots=True)
class ActorFlags:
    """Immutable snapshot of which actors are bots or core team members."""

    bots: frozenset[str] = frozenset()
    core: frozenset[str] = frozenset()

    @classmethod
    def from_logins(
        cls,
        *,
        bots: typ.Iterable[str] = (),
        core: typ.Iterable[str] = (),
    ) -> ActorFlags:
        """Build a snapshot from raw logins, normalising case and whitespace."""
        return cls(
            bots=frozenset(_normalise_login(b) for b in bots if b.strip()),
            core=frozenset(_normalise_login(c) for c in core if c.strip()),
        )

    def is_bot(self, actor: str) -> bool:
        """Return True when ``actor`` is a known bot."""
        return _normalise_login(actor) in self.bots

    def is_core(self, actor: str) -> bool:
        """Return True when ``actor`` belongs to the maintaining team."""
        return _normalise_login(actor) in self.core


class EventAttributes(typ.Protocol):
    """Attributes of a stored event the eligibility filter inspects."""

    @property
    def actor(self) -> str: ...

    @property
    def event_type(self) -> str: ...

    @property
    def bot(self) -> bool | None: ...

    @property
    def core(self) -> bool | None: ...


@dataclasses.dataclass(frozen=True, slots=True)
class EligibilityFilter:
    """Qualifying-event predicate bound to one actor flag snapshot.

    The per-event ``bot``/``core`` flags recorded in the ledger are combined
    with the snapshot: an actor flagged in either place is excluded.
    """

    flags: ActorFlags = ActorFlags()

    def qualifies(
        self,
        *,
        actor: str,
        event_kind: str,
        actor_is_bot: bool | None = None,
        actor_is_core: bool | None = None,
    ) -> bool:
        """Return True when the described event counts toward engagement."""
        return is_qualifying(
            event_kind,
            actor_is_bot=bool(actor_is_bot) or self.flags.is_bot(actor),
            actor_is_core=bool(actor_is_core) or self.flags.is_core(actor),
        )

    def qualifies_event(self, event: EventAttributes) -> bool:
        """Evaluate a stored event row."""
        return self.qualifies(
            actor=event.actor,
            event_kind=event.event_type,
            actor_is_bot=event.bot,
            actor_is_core=event.core,
        )


__all__ = [
    "PASSIVE_EVENT_TYPES",
    "ActorFlags",
    "EligibilityFilter",
    "EventAttributes",
    "is_qualifying",
]
