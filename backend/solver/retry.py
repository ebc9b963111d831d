from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from solver.domains import TimeslotIndex, build_domains, order_sessions
from solver.errors import InfeasibleError, SearchBudgetExhausted
from solver.reconcile import find_conflicts
from solver.search import BacktrackingSearch
from solver.types import DEFAULT_EXPECTED_ENROLLMENT, ConstraintState, PlacedEntry, RoomData, Session, TimeslotData


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolveOptions:
    max_retries: int = 100
    session_cap: int = 4
    max_nodes_per_attempt: int | None = 20000
    default_expected_enrollment: int = DEFAULT_EXPECTED_ENROLLMENT

    @classmethod
    def from_settings(cls, settings: Any, *, reschedule: bool = False) -> "SolveOptions":
        return cls(
            max_retries=settings.solver_max_retries,
            session_cap=settings.solver_session_cap_reschedule if reschedule else settings.solver_session_cap_full,
            max_nodes_per_attempt=settings.solver_max_nodes_per_attempt,
            default_expected_enrollment=settings.default_expected_enrollment,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "session_cap": self.session_cap,
            "max_nodes_per_attempt": self.max_nodes_per_attempt,
            "default_expected_enrollment": self.default_expected_enrollment,
        }


@dataclass
class SolveResult:
    entries: list[PlacedEntry]
    attempts: int


def solve_with_retries(
    sessions: Sequence[Session],
    rooms: Sequence[RoomData],
    timeslots: Sequence[TimeslotData],
    *,
    options: SolveOptions,
    rng: random.Random,
    fixed_entries: Sequence[PlacedEntry] = (),
    created_by: str | None = None,
    on_attempt: Callable[[int], None] | None = None,
) -> SolveResult:
    """Run the backtracking search until it succeeds or the retry budget runs out.

    Every attempt starts from a fresh constraint state seeded with `fixed_entries`,
    re-orders the sessions (randomised ties after the first attempt) and rebuilds the
    domains. Only the newly placed entries are returned.
    """
    index = TimeslotIndex(timeslots)

    for attempt in range(options.max_retries):
        if on_attempt is not None:
            on_attempt(attempt)

        ordered = order_sessions(
            sessions,
            rooms,
            index,
            randomize=attempt > 0,
            rng=rng,
            default_enrollment=options.default_expected_enrollment,
        )
        state = ConstraintState()
        state.seed(fixed_entries)
        domains = build_domains(
            ordered,
            rooms,
            index,
            state,
            default_enrollment=options.default_expected_enrollment,
        )

        search = BacktrackingSearch(
            ordered,
            state,
            rng=rng,
            session_cap=options.session_cap,
            default_enrollment=options.default_expected_enrollment,
            max_nodes=options.max_nodes_per_attempt,
            created_by=created_by,
        )
        try:
            found = search.run(domains)
        except SearchBudgetExhausted as exc:
            logger.info("Attempt %d/%d abandoned: %s", attempt + 1, options.max_retries, exc)
            continue

        if not found:
            logger.info("Attempt %d/%d failed: no valid schedule found", attempt + 1, options.max_retries)
            continue

        conflicts = find_conflicts(state.entries)
        if conflicts:
            logger.warning(
                "Attempt %d/%d produced %d occupancy conflicts; discarding",
                attempt + 1,
                options.max_retries,
                len(conflicts),
            )
            continue

        logger.info(
            "Schedule found on attempt %d/%d (%d sessions placed, %d nodes)",
            attempt + 1,
            options.max_retries,
            len(state.placed_entries),
            search.nodes,
        )
        return SolveResult(entries=list(state.placed_entries), attempts=attempt + 1)

    raise InfeasibleError(
        f"No feasible schedule found after {options.max_retries} attempts",
        details={"attempts": options.max_retries, "sessions": len(sessions)},
    )
