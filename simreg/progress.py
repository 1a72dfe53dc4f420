"""
Progress reporting for batches of replications.

:class:`~simreg.core.replications.ReplicationRunner` describes the state of
a batch with a :class:`ProgressUpdate` and hands it to a reporter, any
callable taking one update. Updates are throttled by wall-clock time, so a
batch of fast replications reports a few times per second at most, while
the first and the final update of a batch always go through.
"""

import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional

# Minimum seconds between two reported updates of one batch
DEFAULT_INTERVAL = 0.2


@dataclass(frozen=True)
class ProgressUpdate:
    """State of a batch of replications.

    Attributes:
        completed: Replications finished so far.
        total: Replications in the batch.
        elapsed: Seconds since the batch started.
    """

    completed: int
    total: int
    elapsed: float

    @property
    def fraction(self) -> float:
        return self.completed / self.total if self.total else 1.0

    @property
    def done(self) -> bool:
        return self.completed >= self.total

    @property
    def remaining(self) -> Optional[float]:
        """Estimated seconds left, from the mean time per finished replication."""
        if self.completed == 0:
            return None
        return self.elapsed / self.completed * (self.total - self.completed)


Reporter = Callable[[ProgressUpdate], None]


class SimulationCancelled(Exception):
    """Raised when a batch of replications is cancelled by the caller.

    Attributes:
        completed: Replications finished before the cancellation.
        total: Replications requested.
    """

    def __init__(self, completed: int, total: int):
        super().__init__(f"Replications cancelled after {completed} of {total}")
        self.completed = completed
        self.total = total


class ReplicationProgress:
    """Counts finished replications and forwards throttled updates.

    Args:
        total: Replications in the batch.
        reporter: Called with a :class:`ProgressUpdate`.
        min_interval: Minimum seconds between two forwarded updates.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        total: int,
        reporter: Reporter,
        min_interval: float = DEFAULT_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total = total
        self.min_interval = min_interval
        self._reporter = reporter
        self._clock = clock
        self._started = 0.0
        self._completed = 0
        self._last_time: Optional[float] = None
        self._last_completed: Optional[int] = None

    @property
    def completed(self) -> int:
        return self._completed

    def start(self):
        """Begin (or begin again) counting from zero and report it."""
        self._started = self._clock()
        self._completed = 0
        self._emit(self._started)

    def advance(self):
        """Record one finished replication."""
        self._completed += 1
        now = self._clock()
        if self._completed >= self.total or now - self._last_time >= self.min_interval:
            self._emit(now)

    def finish(self):
        """Report the completed batch unless that update already went out."""
        self._completed = self.total
        if self._last_completed != self.total:
            self._emit(self._clock())

    def _emit(self, now: float):
        self._reporter(ProgressUpdate(self._completed, self.total, now - self._started))
        self._last_time = now
        self._last_completed = self._completed


def _format_seconds(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


class PrintReporter:
    """Console reporter on stderr, e.g. ``Replications: 45/1000 (4.5%) | 12s elapsed | ~4m 20s left``."""

    def __call__(self, update: ProgressUpdate):
        if update.total <= 0:
            return
        line = (
            f"\rReplications: {update.completed}/{update.total} ({100.0 * update.fraction:.1f}%)"
            f" | {_format_seconds(update.elapsed)} elapsed"
        )
        if not update.done and update.remaining is not None:
            line += f" | ~{_format_seconds(update.remaining)} left"
        sys.stderr.write(line)
        if update.done:
            sys.stderr.write("\n")
        sys.stderr.flush()


class TqdmReporter:
    """Optional tqdm progress bar (imported lazily).

    Usage::

        from simreg import ReplicationRunner, TqdmReporter
        ReplicationRunner(500, seed=1).run(simulate_nested, progress=TqdmReporter(), ...)
    """

    def __init__(self, **tqdm_kwargs):
        self._tqdm_kwargs = tqdm_kwargs
        self._bar = None

    def __call__(self, update: ProgressUpdate):
        from tqdm import tqdm

        if self._bar is None or update.completed < self._bar.n:
            if self._bar is not None:
                self._bar.close()
            self._bar = tqdm(total=update.total, unit="rep", **self._tqdm_kwargs)

        delta = update.completed - self._bar.n
        if delta > 0:
            self._bar.update(delta)

        if update.done:
            self._bar.close()
            self._bar = None
