"""
Independent replications of a simulated design.

Monte-Carlo studies need many datasets from one specification. Each
replication gets its own random stream spawned from a single
``SeedSequence``, so replications are uncorrelated, reproducible from one
seed, and identical whether they run sequentially or in parallel.
"""

import warnings
from typing import Any, Callable, List, Optional, Union

import numpy as np

from ..progress import ReplicationProgress, Reporter, SimulationCancelled
from ..utils.validators import _validate_count, _validate_parallel_settings


def _run_one(
    seed_seq: np.random.SeedSequence,
    simulate_fn: Callable[..., Any],
    analyze_fn: Optional[Callable[[Any], Any]],
    kwargs: dict,
) -> Any:
    data = simulate_fn(rng=np.random.default_rng(seed_seq), **kwargs)
    return analyze_fn(data) if analyze_fn is not None else data


class ReplicationRunner:
    """Runs a simulation function repeatedly with independent streams.

    Example:
        >>> runner = ReplicationRunner(100, seed=2137)
        >>> datasets = runner.run(simulate_nested, fixed="~1 + time", ...)
    """

    def __init__(
        self,
        n_replications: int,
        seed: Union[None, int, np.random.SeedSequence] = None,
        parallel: bool = False,
        n_cores: Optional[int] = 1,
    ):
        """Initialise the runner.

        Args:
            n_replications: Number of datasets to generate.
            seed: Root seed; replication ``i`` uses the ``i``-th spawned
                child stream.
            parallel: Run replications with joblib (loky backend).
            n_cores: Worker count for parallel runs (``None`` for half
                the available cores).
        """
        _validate_count(n_replications, "n_replications").raise_if_invalid()
        settings, result = _validate_parallel_settings(parallel, n_cores)
        result.raise_if_invalid()

        self.n_replications = n_replications
        self.seed = seed
        self.parallel, self.n_cores = settings

    def seed_sequences(self) -> List[np.random.SeedSequence]:
        """Child seed sequences, one per replication."""
        if isinstance(self.seed, np.random.SeedSequence):
            # fresh copy so repeated runs spawn the same children
            root = np.random.SeedSequence(self.seed.entropy, spawn_key=self.seed.spawn_key, pool_size=self.seed.pool_size)
        else:
            root = np.random.SeedSequence(self.seed)
        return root.spawn(self.n_replications)

    def run(
        self,
        simulate_fn: Callable[..., Any],
        analyze_fn: Optional[Callable[[Any], Any]] = None,
        progress: Optional[Reporter] = None,
        cancel_check: Optional[Callable[[], bool]] = None,
        **kwargs,
    ) -> List[Any]:
        """Generate every replication.

        Args:
            simulate_fn: Assembler (or any callable accepting ``rng=``).
            analyze_fn: Optional callback applied to each dataset; its
                results are returned instead of the datasets.
            progress: Reporter called with a :class:`ProgressUpdate`
                (``PrintReporter``, ``TqdmReporter`` or any callable).
            cancel_check: Callable returning ``True`` to abort.
            **kwargs: Passed to *simulate_fn*.

        Returns:
            One dataset (or analysis result) per replication, in order.

        Raises:
            SimulationCancelled: If *cancel_check* requests cancellation.
        """
        tracker = ReplicationProgress(self.n_replications, progress) if progress is not None else None
        if tracker is not None:
            tracker.start()

        seeds = self.seed_sequences()
        results = None

        if self.parallel and self.n_cores > 1:
            from joblib import Parallel, delayed

            try:
                outputs = Parallel(
                    n_jobs=self.n_cores,
                    backend="loky",
                    verbose=0,
                    return_as="generator",
                )(delayed(_run_one)(seq, simulate_fn, analyze_fn, kwargs) for seq in seeds)
                results = []
                for output in outputs:
                    self._check_cancelled(cancel_check, len(results))
                    results.append(output)
                    if tracker is not None:
                        tracker.advance()
            except Exception as e:
                if isinstance(e, SimulationCancelled):
                    raise
                warnings.warn(f"Parallel execution failed ({e}). Falling back to sequential.", stacklevel=2)
                results = None
                if tracker is not None:
                    tracker.start()

        if results is None:
            results = []
            for seq in seeds:
                self._check_cancelled(cancel_check, len(results))
                results.append(_run_one(seq, simulate_fn, analyze_fn, kwargs))
                if tracker is not None:
                    tracker.advance()

        if tracker is not None:
            tracker.finish()
        return results

    def _check_cancelled(self, cancel_check: Optional[Callable[[], bool]], completed: int) -> None:
        if cancel_check is not None and cancel_check():
            raise SimulationCancelled(completed, self.n_replications)
