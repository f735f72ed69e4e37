import sys
import time
from collections import OrderedDict
from contextlib import contextmanager


class Timer:
    """Accumulate elapsed time per named operation.

    Repeated operations with the same name add up, so a report shows the
    total spent pruning each architecture or compiling each unit.
    """

    def __init__(self, enabled=False):
        self.enabled = enabled
        self.timings = OrderedDict()  # Operation name -> total elapsed time
        self.counts = OrderedDict()  # Operation name -> number of runs

    @contextmanager
    def time_operation(self, operation_name):
        if not self.enabled:
            yield
            return

        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.timings[operation_name] = self.timings.get(operation_name, 0.0) + elapsed
            self.counts[operation_name] = self.counts.get(operation_name, 0) + 1

    def get_elapsed(self, operation_name):
        return self.timings.get(operation_name, 0.0)

    @staticmethod
    def format_time(seconds):
        """Format time in microseconds for precision."""
        microseconds = seconds * 1_000_000
        if microseconds < 1000:
            return f"{microseconds:.0f}µs"
        elif microseconds < 1_000_000:
            return f"{microseconds / 1000:.1f}ms"
        return f"{seconds:.1f}s"

    def report(self, verbose_level, file=None):
        if not self.enabled or not self.timings:
            return
        if file is None:
            file = sys.stderr

        print(f"Total timed: {self.format_time(sum(self.timings.values()))}", file=file)
        if verbose_level < 1:
            return
        for name, elapsed in sorted(self.timings.items(), key=lambda x: x[1], reverse=True):
            runs = self.counts[name]
            suffix = f" ({runs} runs)" if runs > 1 else ""
            print(f"  {name}: {self.format_time(elapsed)}{suffix}", file=file)


# Global timer instance for use throughout archsplit
_global_timer = Timer()


def get_timer():
    return _global_timer


def initialize_timer(enabled=False):
    global _global_timer
    _global_timer = Timer(enabled)


def time_operation(operation_name):
    """Context manager for timing operations with the global timer."""
    return _global_timer.time_operation(operation_name)


def report_timing(verbose_level, file=None):
    _global_timer.report(verbose_level, file)
