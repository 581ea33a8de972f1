"""Stage timing for simulation and correction runs.

Opt-in: a disabled monitor turns every call into a no-op.

Usage:
    from metacomm.perf import PerfMonitor

    perf = PerfMonitor(enabled=True)
    result = simulate_metacommunity(..., perf=perf)
    correction = correct_metacommunity(result, perf=perf)
    print(perf.report())

Stages recorded by the package: covariates, effects, occurrence,
detection (one call per simulation) and fit (one call per species).
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict


@dataclass
class StageStats:
    """Timing statistics for a single named stage."""
    total_time: float = 0.0
    call_count: int = 0
    min_time: float = float('inf')
    max_time: float = 0.0

    @property
    def mean_time(self) -> float:
        return self.total_time / self.call_count if self.call_count > 0 else 0.0

    def add(self, elapsed: float) -> None:
        self.total_time += elapsed
        self.call_count += 1
        self.min_time = min(self.min_time, elapsed)
        self.max_time = max(self.max_time, elapsed)


class PerfMonitor:
    """Wall-clock timer keyed by stage name.

    Safe to share across the worker threads of a correction run.
    """

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self._stats: Dict[str, StageStats] = defaultdict(StageStats)
        self._lock = threading.Lock()

    @contextmanager
    def track(self, stage: str):
        """Context manager timing one execution of a stage."""
        if not self.enabled:
            yield
            return

        t0 = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - t0
            with self._lock:
                self._stats[stage].add(elapsed)

    def get_stats(self) -> Dict[str, StageStats]:
        """Return raw stage statistics."""
        with self._lock:
            return dict(self._stats)

    def report(self) -> str:
        """Stage timing table in draw order, fit stage last.

        Simulation stages run once per call; 'fit' runs once per
        corrected species, so its row also shows the slowest species.
        """
        stats = self.get_stats()
        order = ["covariates", "effects", "occurrence", "detection", "fit"]
        names = [n for n in order if n in stats] + sorted(set(stats) - set(order))
        total = sum(s.total_time for s in stats.values())

        lines = [f"{'stage':<12} {'calls':>6} {'total s':>9} {'mean ms':>9} {'max ms':>9}"]
        for name in names:
            s = stats[name]
            lines.append(
                f"{name:<12} {s.call_count:>6} {s.total_time:>9.4f} "
                f"{s.mean_time * 1000:>9.2f} {s.max_time * 1000:>9.2f}"
            )
        lines.append(f"{'total':<12} {'':>6} {total:>9.4f}")
        return '\n'.join(lines)

    def reset(self) -> None:
        """Clear all accumulated statistics."""
        with self._lock:
            self._stats.clear()
