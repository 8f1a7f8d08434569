"""
Permutation draws and the iteration runner shared by both procedures.

Reproducibility:
    A single SeedSequence is spawned into one child per iteration, and
    iteration i always draws from child i. A fixed seed therefore gives
    identical null distributions whether iterations run sequentially or
    on a worker pool, and in whatever order they complete.

Parallelism:
    Iterations are independent and each writes to its own slot of the
    caller's output array, so no locking is needed. Worker threads are
    used because the heavy lifting (least squares, t-distribution tails)
    happens in numpy/scipy code that releases the GIL.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable

import numpy as np
from numpy.typing import NDArray

from permcorr.exceptions import PermutationCancelled

logger = logging.getLogger(__name__)


def generate_permutation(values: NDArray, rng: np.random.Generator) -> NDArray:
    """
    Return a shuffled copy of values (along the first axis).

    Every element is used exactly once; the input is left untouched.

    Args:
        values: Array to shuffle.
        rng: NumPy random generator.

    Returns:
        Permuted copy of values.
    """
    return rng.permutation(values)


def spawn_iteration_seeds(
    seed: int | np.random.SeedSequence | None,
    n_iterations: int,
) -> list[np.random.SeedSequence]:
    """
    Spawn one independent seed sequence per iteration.

    Args:
        seed: Root seed. None draws fresh OS entropy. A SeedSequence is
            not advanced, so passing the same one again repeats the streams.
        n_iterations: Number of child sequences.

    Returns:
        List of child SeedSequence objects, one per iteration.
    """
    if isinstance(seed, np.random.SeedSequence):
        # spawn() advances the parent's child counter; spawn from a copy
        root = np.random.SeedSequence(
            seed.entropy, spawn_key=seed.spawn_key, pool_size=seed.pool_size
        )
    else:
        root = np.random.SeedSequence(seed)
    return root.spawn(n_iterations)


def resolve_n_jobs(n_jobs: int) -> int:
    """Translate n_jobs (-1 = all cores) into a worker count."""
    if n_jobs == -1:
        return os.cpu_count() or 1
    return n_jobs


def run_iterations(
    task: Callable[[int], None],
    n_iterations: int,
    n_jobs: int = 1,
    cancel_event: threading.Event | None = None,
    description: str = "permutation",
) -> None:
    """
    Run task(i) for every iteration index i in [0, n_iterations).

    Args:
        task: Callable run once per iteration index. Must write its output
            only to storage owned by that index.
        n_iterations: Number of iterations.
        n_jobs: Worker threads (1 = run inline, -1 = all cores).
        cancel_event: Optional event checked before every iteration.
        description: Label used in log and cancellation messages.

    Raises:
        PermutationCancelled: If cancel_event is set before all iterations
            have started.
    """
    n_workers = min(resolve_n_jobs(n_jobs), n_iterations)
    progress_step = max(1, n_iterations // 10)
    completed = 0
    completed_lock = threading.Lock()

    def _run(i: int) -> None:
        nonlocal completed
        if cancel_event is not None and cancel_event.is_set():
            raise PermutationCancelled(
                f"{description} run cancelled before iteration {i + 1}/{n_iterations}"
            )
        task(i)
        with completed_lock:
            completed += 1
            done = completed
        if done % progress_step == 0:
            logger.debug("%s iteration %d/%d", description.capitalize(), done, n_iterations)

    if n_workers <= 1:
        for i in range(n_iterations):
            _run(i)
        return

    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = [executor.submit(_run, i) for i in range(n_iterations)]
        try:
            for future in as_completed(futures):
                future.result()
        except BaseException:
            for future in futures:
                future.cancel()
            raise
