"""
Progress reporting for validation runs.

The validator itself performs no I/O. It calls a reporter before every pass,
at every time slice, at the end of every pass and once with the finished
field. The reporters here cover the usual needs: a tqdm bar, console
messages for long sequences, and a heartbeat file that lets an external
supervisor see that a long validation is still alive.
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import numpy as np
from tqdm import tqdm

if TYPE_CHECKING:
    from piv_validate.field import DisplacementField
    from piv_validate.init_config import ValidationParams


class ProgressReporter(Protocol):
    def on_pass_start(self, kpass: int, n_passes: int, n_slices: int) -> None:
        ...

    def on_slice(self, kpass: int, n_passes: int, kt: int, n_slices: int) -> None:
        ...

    def on_pass_end(self, kpass: int, n_passes: int, n_slices: int) -> None:
        ...

    def finish(self, field: "DisplacementField") -> None:
        ...


class NullProgress:
    """Reporter that does nothing."""

    def on_pass_start(self, kpass, n_passes, n_slices):
        pass

    def on_slice(self, kpass, n_passes, kt, n_slices):
        pass

    def on_pass_end(self, kpass, n_passes, n_slices):
        pass

    def finish(self, field):
        pass


class TqdmProgress(NullProgress):
    """Progress bar over all (pass, slice) steps."""

    def __init__(self, desc: str = "Validating vectors  ", disable: bool = False):
        self.desc = desc
        self.disable = disable
        self._bar: tqdm | None = None

    def on_slice(self, kpass, n_passes, kt, n_slices):
        if self._bar is None:
            self._bar = tqdm(total=n_passes * n_slices, desc=self.desc,
                             disable=self.disable)
        self._bar.update(1)

    def finish(self, field):
        if self._bar is not None:
            self._bar.close()
            self._bar = None


class ConsoleProgress(NullProgress):
    """
    Console messages while a sequence is validated, plus a final summary.

    Pass durations are timed from `on_pass_start`, i.e. before any slice
    of the pass is evaluated, also when slices run on several threads.

    Args:
        exp_name (str): Name shown in the messages; "???" if empty.
        every (int): Report every `every` time slices.
        verbose (bool): If True, print the summary line at the end.
    """

    def __init__(self, exp_name: str = "", every: int = 5, verbose: bool = True):
        self.exp_name = exp_name or "???"
        self.every = every
        self.verbose = verbose
        self._t_block = 0.0
        self._t_pass = 0.0

    def on_pass_start(self, kpass, n_passes, n_slices):
        self._t_pass = time.perf_counter()
        self._t_block = self._t_pass

    def on_slice(self, kpass, n_passes, kt, n_slices):
        if n_slices <= 1 or kt % self.every:
            return
        if kt > 0:
            elapsed = time.perf_counter() - self._t_block
            print(f" Average time {elapsed / self.every:.2f} s per time slice.")
        print(f"Validation of vectors in a sequence ({self.exp_name}): "
              f"pass {kpass + 1} of {n_passes}, time slice {kt + 1} of {n_slices}...",
              end="")
        self._t_block = time.perf_counter()

    def on_pass_end(self, kpass, n_passes, n_slices):
        if n_slices > 1:
            print(f" Validation pass finished in "
                  f"{time.perf_counter() - self._t_pass:.2f} s.")

    def finish(self, field):
        if not self.verbose:
            return
        n_spurious = int(np.sum(field.spurious_n)) if field.spurious_n is not None else 0
        total = int(np.size(field.u))
        print(f"Post-processing: median test flagged {n_spurious}/{total} vectors as spurious")


class HeartbeatProgress(NullProgress):
    """
    Rewrite a lock file while a sequence is validated.

    Args:
        lock_file (str | Path): Heartbeat file; an empty path disables writing.
        every (int): Write every `every` time slices.
    """

    def __init__(self, lock_file: str | Path, every: int = 5):
        self.lock_file = Path(lock_file) if str(lock_file) else None
        self.every = every

    def on_slice(self, kpass, n_passes, kt, n_slices):
        if self.lock_file is None or n_slices <= 1 or kt % self.every:
            return
        stamp = datetime.now().strftime("%d-%b-%Y %H:%M:%S")
        self.lock_file.write_text(f"{stamp}\nValidating sequence...",
                                  encoding="utf-8")


class CompositeProgress(NullProgress):
    """Forward every notification to several reporters in order."""

    def __init__(self, *reporters: ProgressReporter):
        self.reporters = list(reporters)

    def on_pass_start(self, kpass, n_passes, n_slices):
        for reporter in self.reporters:
            reporter.on_pass_start(kpass, n_passes, n_slices)

    def on_slice(self, kpass, n_passes, kt, n_slices):
        for reporter in self.reporters:
            reporter.on_slice(kpass, n_passes, kt, n_slices)

    def on_pass_end(self, kpass, n_passes, n_slices):
        for reporter in self.reporters:
            reporter.on_pass_end(kpass, n_passes, n_slices)

    def finish(self, field):
        for reporter in self.reporters:
            reporter.finish(field)


def reporter_from_params(params: "ValidationParams", *, show_bar: bool = False, verbose: bool = True) -> CompositeProgress:
    """Console (and heartbeat, if a lock file is set) reporting for `params`."""
    reporters: list[ProgressReporter] = [
        ConsoleProgress(params.exp_name, verbose=verbose)]
    if params.an_lock_file:
        reporters.append(HeartbeatProgress(params.an_lock_file))
    if show_bar:
        reporters.append(TqdmProgress())
    return CompositeProgress(*reporters)
