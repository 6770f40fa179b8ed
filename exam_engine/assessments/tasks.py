"""
Assessment Tasks Module

Background bookkeeping for assessments. The sweep marks definitions whose
window has closed and, when enabled, consumes in-progress attempts that ran
past their deadline without being submitted.

The periodic loop runs as an asyncio task owned by the application lifespan.
"""

import asyncio
from typing import Dict, Optional

from exam_engine.assessments.service import AssessmentEngine
from exam_engine.common.logger import app_logger, log_execution_time, with_context

# Set up logging
logger = app_logger.getChild("assessments.tasks")


@log_execution_time(logger)
async def run_sweep(engine: AssessmentEngine, expire_attempts: bool = False) -> Dict[str, int]:
    """
    Run one sweep pass.

    Args:
        engine: The assessment engine to sweep
        expire_attempts: Also finalize overdue in-progress attempts

    Returns:
        Counts of closed assessments and expired attempts
    """
    return await engine.sweep(expire_attempts=expire_attempts)


async def periodic_sweep(engine: AssessmentEngine, interval_seconds: float,
                         expire_attempts: bool = False) -> None:
    """Sweep every ``interval_seconds`` until cancelled."""
    task_logger = with_context("exam_engine.assessments.tasks", task="sweep", interval=interval_seconds)
    task_logger.info("Periodic sweep started")

    while True:
        try:
            await run_sweep(engine, expire_attempts)
        except Exception as e:
            # Keep the loop alive; the next pass retries.
            task_logger.error(f"Sweep failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)


def start_sweep_task(engine: AssessmentEngine, interval_seconds: float,
                     expire_attempts: bool = False) -> Optional[asyncio.Task]:
    """Schedule the periodic sweep, or return None when disabled (interval <= 0)."""
    if interval_seconds <= 0:
        logger.info("Periodic sweep disabled")
        return None
    return asyncio.create_task(
        periodic_sweep(engine, interval_seconds, expire_attempts),
        name="assessment-sweep"
    )


async def stop_sweep_task(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Periodic sweep stopped")
