from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Iterator, Sequence

from solver.domains import Domains
from solver.errors import SearchBudgetExhausted
from solver.types import DEFAULT_EXPECTED_ENROLLMENT, Candidate, ConstraintState, PlacedEntry, Session
from solver.validator import check_candidate


logger = logging.getLogger(__name__)


@dataclass
class _Frame:
    """One level of the descent: a session, the domains it sees and what is left to try."""

    index: int
    domains: Domains
    candidates: Iterator[Candidate]
    entry: PlacedEntry | None = None


class BacktrackingSearch:
    """Depth-first search with forward checking over an ordered list of sessions.

    Each level assigns one session, prunes the domains of every later session against the
    extended partial schedule, and descends. Pruned domains are new lists in a shallow copy
    of the parent's mapping, so untouched lists are shared and the parent's view never
    changes. The descent keeps its own stack of frames, so the number of sessions is not
    bounded by the interpreter's recursion limit. Every assignment is applied to and
    reverted from `state` in strict LIFO order; any exit other than a full schedule leaves
    the state as it found it.
    """

    def __init__(
        self,
        sessions: Sequence[Session],
        state: ConstraintState,
        *,
        rng: random.Random,
        session_cap: int,
        default_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT,
        max_nodes: int | None = None,
        created_by: str | None = None,
    ):
        self.sessions = list(sessions)
        self.state = state
        self.rng = rng
        self.session_cap = session_cap
        self.default_enrollment = default_enrollment
        self.max_nodes = max_nodes
        self.created_by = created_by
        self.nodes = 0

    def run(self, domains: Domains) -> bool:
        """Search from the first session. On success the placements stay in `state`.

        Raises SearchBudgetExhausted when `max_nodes` is exceeded; the state is fully
        unwound by then.
        """
        self.nodes = 0
        stack: list[_Frame] = []
        try:
            index = self._next_open(0)
            if index == len(self.sessions):
                return True
            stack.append(self._frame(index, domains))

            while stack:
                frame = stack[-1]
                if frame.entry is not None:
                    self.state.revert(frame.entry)
                    frame.entry = None

                candidate = next(frame.candidates, None)
                if candidate is None:
                    stack.pop()
                    continue

                self.nodes += 1
                if self.max_nodes is not None and self.nodes > self.max_nodes:
                    raise SearchBudgetExhausted(f"explored more than {self.max_nodes} placements")

                frame.entry = PlacedEntry.for_session(
                    self.sessions[frame.index], candidate, created_by=self.created_by
                )
                self.state.apply(frame.entry)
                pruned = self._forward_check(frame.index, frame.domains)
                if pruned is None:
                    continue

                index = self._next_open(frame.index + 1)
                if index == len(self.sessions):
                    return True
                stack.append(self._frame(index, pruned))
            return False
        except BaseException:
            for frame in reversed(stack):
                if frame.entry is not None:
                    self.state.revert(frame.entry)
            raise

    def _is_capped(self, session: Session) -> bool:
        return self.state.session_count[session.activity_id] >= self.session_cap

    def _next_open(self, index: int) -> int:
        """First position at or after `index` whose activity is still below the cap."""
        while index < len(self.sessions) and self._is_capped(self.sessions[index]):
            index += 1
        return index

    def _frame(self, index: int, domains: Domains) -> _Frame:
        candidates = list(domains.get(self.sessions[index].key, ()))
        self.rng.shuffle(candidates)
        return _Frame(index=index, domains=domains, candidates=iter(candidates))

    def _forward_check(self, index: int, domains: Domains) -> Domains | None:
        """Filter later domains against the current state; None signals a dead end."""
        pruned = dict(domains)
        for later in self.sessions[index + 1 :]:
            current = domains.get(later.key, [])
            kept = [
                c
                for c in current
                if check_candidate(later, c, self.state, default_enrollment=self.default_enrollment) is not None
            ]
            # A session whose activity already hit its cap will be skipped, so an empty
            # domain there is not a dead end.
            if not kept and not self._is_capped(later):
                return None
            pruned[later.key] = kept
        return pruned
