"""
Tests for independent replications.
"""

from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest

from simreg.errors import ConfigurationError
from tests.config import N_REPLICATIONS, SEED


def _joblib_available():
    """Check if joblib is available."""
    import importlib.util

    return importlib.util.find_spec("joblib") is not None


SIM_KWARGS = dict(
    fixed="~1 + time",
    fixed_param=[1.0, 0.5],
    variables={"time": {"var_type": "time"}},
    n=4,
    p=3,
    random={"int": {"variance": 2}},
)


def _mean_response(data):
    return float(data["sim_data"].mean())


class TestReplicationRunner:
    """Sequential replications."""

    def test_returns_one_dataset_per_replication(self):
        from simreg import ReplicationRunner, simulate_nested

        datasets = ReplicationRunner(N_REPLICATIONS, seed=SEED).run(simulate_nested, **SIM_KWARGS)
        assert len(datasets) == N_REPLICATIONS
        assert all(len(d) == 12 for d in datasets)

    def test_replications_differ(self):
        from simreg import ReplicationRunner, simulate_nested

        datasets = ReplicationRunner(2, seed=SEED).run(simulate_nested, **SIM_KWARGS)
        assert not np.allclose(datasets[0]["sim_data"], datasets[1]["sim_data"])

    def test_reproducible_from_root_seed(self):
        from simreg import ReplicationRunner, simulate_nested

        a = ReplicationRunner(3, seed=SEED).run(simulate_nested, **SIM_KWARGS)
        b = ReplicationRunner(3, seed=SEED).run(simulate_nested, **SIM_KWARGS)
        for left, right in zip(a, b):
            pd.testing.assert_frame_equal(left, right)

    def test_matches_direct_call_with_spawned_stream(self):
        from simreg import ReplicationRunner, simulate_nested

        runner = ReplicationRunner(2, seed=SEED)
        second = runner.run(simulate_nested, **SIM_KWARGS)[1]
        expected = simulate_nested(rng=np.random.default_rng(runner.seed_sequences()[1]), **SIM_KWARGS)
        pd.testing.assert_frame_equal(second, expected)

    def test_analyze_fn(self):
        from simreg import ReplicationRunner, simulate_nested

        results = ReplicationRunner(N_REPLICATIONS, seed=SEED).run(
            simulate_nested, analyze_fn=_mean_response, **SIM_KWARGS
        )
        assert len(results) == N_REPLICATIONS
        assert all(isinstance(r, float) for r in results)

    def test_progress_reporter(self):
        from simreg import ReplicationRunner, simulate_nested

        reporter = MagicMock()
        ReplicationRunner(N_REPLICATIONS, seed=SEED).run(simulate_nested, progress=reporter, **SIM_KWARGS)
        updates = [call.args[0] for call in reporter.call_args_list]
        assert updates[0].completed == 0
        assert updates[-1].completed == N_REPLICATIONS
        assert updates[-1].total == N_REPLICATIONS
        assert updates[-1].done

    def test_cancellation(self):
        from simreg import ReplicationRunner, SimulationCancelled, simulate_nested

        calls = []

        def cancel_after_two():
            calls.append(1)
            return len(calls) > 2

        with pytest.raises(SimulationCancelled) as exc_info:
            ReplicationRunner(N_REPLICATIONS, seed=SEED).run(simulate_nested, cancel_check=cancel_after_two, **SIM_KWARGS)
        assert exc_info.value.completed == 2
        assert exc_info.value.total == N_REPLICATIONS

    def test_configuration_errors_propagate(self):
        from simreg import ReplicationRunner, simulate_nested

        kwargs = dict(SIM_KWARGS, fixed_param=[1.0])
        with pytest.raises(ConfigurationError, match="1 parameters specified for 2 variables"):
            ReplicationRunner(2, seed=SEED).run(simulate_nested, **kwargs)

    def test_invalid_count(self):
        from simreg import ReplicationRunner

        with pytest.raises(ConfigurationError):
            ReplicationRunner(0)


@pytest.mark.skipif(not _joblib_available(), reason="joblib not installed")
class TestParallelReplications:
    """Parallel replications through joblib."""

    def test_parallel_matches_sequential(self):
        from simreg import ReplicationRunner, simulate_nested

        sequential = ReplicationRunner(N_REPLICATIONS, seed=SEED).run(simulate_nested, **SIM_KWARGS)
        parallel = ReplicationRunner(N_REPLICATIONS, seed=SEED, parallel=True, n_cores=2).run(
            simulate_nested, **SIM_KWARGS
        )
        assert len(parallel) == len(sequential)
        for left, right in zip(sequential, parallel):
            np.testing.assert_array_equal(left["sim_data"].to_numpy(), right["sim_data"].to_numpy())
