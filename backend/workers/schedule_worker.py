from __future__ import annotations

import logging
import random
import signal
import uuid
from typing import Any, Callable

from sqlalchemy.orm import sessionmaker

from core.config import settings
from core.database import create_db_engine
from core.logging import setup_logging
from services.run_ledger import finish_run, start_run
from services.scheduling_service import generate_schedule, regenerate_schedule
from solver.errors import InfeasibleError, SchedulerError, SolveTimeoutError, ValidationError
from solver.retry import SolveOptions


logger = logging.getLogger(__name__)

Emit = Callable[[dict[str, Any]], None]


def _failed(error: str, error_type: str) -> dict[str, Any]:
    return {"status": "failed", "error": error, "error_type": error_type}


def _options_for(message: dict[str, Any], *, reschedule: bool) -> SolveOptions:
    overrides = message.get("options")
    if overrides:
        return SolveOptions(**overrides)
    return SolveOptions.from_settings(settings, reschedule=reschedule)


def run_schedule_job(message: dict[str, Any], emit: Emit, session_factory: Callable[[], Any]) -> dict[str, Any]:
    """Run one generate/regenerate job and emit its messages.

    `message` keys: run_id, semester, scope ("FULL" or "PARTIAL"), activity_ids,
    created_by, seed and optional solver `options`. Emits `running` progress updates and
    exactly one terminal message, which is also returned. Every outcome is written to the
    run ledger.
    """
    run_id = uuid.UUID(str(message["run_id"]))
    semester = message["semester"]
    scope = message.get("scope") or "FULL"
    actor_id = message.get("created_by")
    seed = message.get("seed")
    activity_ids = [uuid.UUID(str(a)) for a in (message.get("activity_ids") or [])]
    reschedule = scope == "PARTIAL"
    options = _options_for(message, reschedule=reschedule)
    rng = random.Random(seed)

    def progress(value: int) -> None:
        emit({"status": "running", "progress": value})

    with session_factory() as db:
        start_run(
            db,
            run_id=run_id,
            semester=semester,
            scope=scope,
            created_by=actor_id,
            seed=seed,
            parameters={
                "activity_ids": [str(a) for a in activity_ids],
                "options": options.as_dict(),
            },
        )
        emit({"status": "running", "progress": 0})

        status = "ERROR"
        try:
            if reschedule:
                outcome = regenerate_schedule(
                    db,
                    semester=semester,
                    activity_ids=activity_ids,
                    actor_id=actor_id,
                    options=options,
                    rng=rng,
                    progress=progress,
                )
            else:
                outcome = generate_schedule(
                    db,
                    semester=semester,
                    actor_id=actor_id,
                    options=options,
                    rng=rng,
                    progress=progress,
                )
        except ValidationError as exc:
            status = "VALIDATION_FAILED"
            terminal = _failed(str(exc), exc.code)
        except InfeasibleError as exc:
            status = "INFEASIBLE"
            terminal = _failed(str(exc), exc.code)
        except SolveTimeoutError as exc:
            logger.warning("Schedule run %s timed out: %s", run_id, exc)
            db.rollback()
            status = "TIMEOUT"
            terminal = _failed(str(exc), exc.code)
        except SchedulerError as exc:
            logger.error("Schedule run %s failed: %s", run_id, exc)
            terminal = _failed(str(exc), exc.code)
        except Exception as exc:
            logger.exception("Schedule run %s crashed", run_id)
            db.rollback()
            terminal = _failed(str(exc) or exc.__class__.__name__, "ERROR")
        else:
            finish_run(
                db,
                run_id=run_id,
                status="COMPLETED",
                attempts=outcome.attempts,
                entries_written=outcome.entries_written,
            )
            logger.info("Schedule run %s completed (%d entries)", run_id, outcome.entries_written)
            terminal = {"status": "completed", "progress": 100, "result": outcome.grouped}
            emit(terminal)
            return terminal

        finish_run(db, run_id=run_id, status=status, notes=terminal["error"])
        logger.info("Schedule run %s ended as %s", run_id, status)
        emit(terminal)
        return terminal


def worker_main(database_url: str, message: dict[str, Any], queue: Any) -> None:
    """Child-process entry point.

    Owns its own engine; the parent's pooled connections are never used here.
    """
    setup_logging(environment=settings.environment)

    def _on_sigterm(signum, _frame):
        logger.warning("Schedule worker received signal %s; exiting", signum)
        # The parent stops reading once it terminates us, so do not block on the pipe.
        queue.cancel_join_thread()
        raise SystemExit(128 + signum)

    signal.signal(signal.SIGTERM, _on_sigterm)

    max_runtime = message.get("max_runtime_seconds")
    if max_runtime and hasattr(signal, "setitimer"):

        def _on_alarm(_signum, _frame):
            raise SolveTimeoutError(f"Worker exceeded maximum runtime of {max_runtime:g} seconds")

        signal.signal(signal.SIGALRM, _on_alarm)
        signal.setitimer(signal.ITIMER_REAL, float(max_runtime))

    engine = create_db_engine(database_url)
    session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    try:
        run_schedule_job(message, queue.put, session_factory)
    except SolveTimeoutError as exc:
        # The alarm went off outside the solve, e.g. while the ledger was written.
        logger.warning("Schedule worker timed out: %s", exc)
        queue.put(_failed(str(exc), exc.code))
    except Exception as exc:
        logger.exception("Schedule worker crashed")
        queue.put(_failed(str(exc) or exc.__class__.__name__, "WORKER_CRASHED"))
    finally:
        if max_runtime and hasattr(signal, "setitimer"):
            signal.setitimer(signal.ITIMER_REAL, 0)
        engine.dispose()
