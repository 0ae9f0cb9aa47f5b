"""
CPU detection and worker-count resolution for dmrcombp.

Per-chromosome work is dispatched to a process pool; the number of workers
requested by the user is resolved here against the hardware concurrency of
the host.
"""

import logging
import os

import psutil

logger = logging.getLogger("dmrcombp")


def detect_cpu_count() -> int:
    """
    Detect the number of logical CPUs available to this process.

    Returns:
        Number of logical CPU cores (fallback to 1 if detection fails)
    """
    try:
        cores = psutil.cpu_count(logical=True)
        if cores:
            return cores
    except Exception as e:
        logger.debug(f"psutil.cpu_count(logical=True) failed: {e}")

    # Fallback to os.cpu_count
    cores = os.cpu_count()
    if cores:
        return cores

    logger.warning("Could not detect CPU count, running with a single worker")
    return 1


def resolve_workers(requested: int, n_tasks: int | None = None) -> int:
    """
    Resolve a requested worker count to the number of processes actually used.

    A request above the hardware concurrency is clamped silently (logged at
    DEBUG only). ``-1`` (or any value < 1) means "all available cores". When
    ``n_tasks`` is given the result never exceeds the number of tasks.

    Args:
        requested: Worker count from the configuration
        n_tasks: Number of independent work items (chromosomes)

    Returns:
        Worker count in ``[1, cpu_count]``
    """
    available = detect_cpu_count()
    if requested < 1:
        workers = available
    elif requested > available:
        logger.debug(f"Requested {requested} workers, clamping to {available} available CPUs")
        workers = available
    else:
        workers = requested

    if n_tasks is not None:
        workers = max(1, min(workers, n_tasks))
    return workers
