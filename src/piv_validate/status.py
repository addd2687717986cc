"""
Status bit protocol shared between PIV processing stages.

Every grid point carries a bit field recording its processing history.
Bits are numbered from 1 (value = 2 ** (bit - 1)):

    1 (bit 1) ... masked (set upstream by interrogation)
    2 (bit 2) ... cross-correlation failed
    4 (bit 3) ... peak detection failed
    8 (bit 4) ... spurious by median test on an image pair (set here)
   16 (bit 5) ... interpolated (set downstream by replacement)
   32 (bit 6) ... smoothed (set downstream)
   64 (bit 7) ... spurious by median test on an image sequence (set here)
  128 (bit 8) ... interpolated within an image sequence
  256 (bit 9) ... smoothed within an image sequence

The validator only ever writes bits 4 and 7. The helpers below return new
arrays and never touch the status field they are given.
"""

from __future__ import annotations

from enum import IntFlag

import numpy as np


class Status(IntFlag):
    MASKED = 1
    CORR_FAILED = 2
    PEAK_FAILED = 4
    SPURIOUS = 8
    INTERPOLATED = 16
    SMOOTHED = 32
    SPURIOUS_SEQ = 64
    INTERPOLATED_SEQ = 128
    SMOOTHED_SEQ = 256


SMOOTHED_ANY = Status.SMOOTHED | Status.SMOOTHED_SEQ
SPURIOUS_ANY = Status.SPURIOUS | Status.SPURIOUS_SEQ
ALL_BITS = 511

STATUS_DTYPE = np.uint16


def as_status_array(status) -> np.ndarray:
    """
    Widen a status field to an unsigned array able to hold all nine bits.

    Args:
        status (array_like): Integer status field of any shape.

    Returns:
        np.ndarray: Copy of the status field as uint16.
    """
    status = np.asarray(status)
    if status.dtype.kind not in "biu":
        if status.dtype.kind == "f" and np.all(np.isfinite(status)) \
                and np.all(status == np.round(status)):
            status = status.astype(np.int64)
        else:
            raise ValueError(
                f"status must hold integer bit flags, got dtype {status.dtype}")
    if status.size and (status.min() < 0 or status.max() > ALL_BITS):
        raise ValueError(
            f"status values must lie in [0, {ALL_BITS}], got "
            f"[{status.min()}, {status.max()}]")
    return status.astype(STATUS_DTYPE)


def has_flag(status: np.ndarray, flag: Status | int) -> np.ndarray:
    """Boolean mask of cells where any bit of `flag` is set."""
    return (np.asarray(status) & int(flag)) != 0


def cleared_for_comparison(status: np.ndarray) -> np.ndarray:
    """Status with both "smoothed" bits cleared.

    Smoothing does not make a vector invalid, so these bits are ignored
    when deciding which cells may feed a neighbourhood statistic.
    """
    status = np.asarray(status)
    # Wide enough for all nine bits, whatever the input dtype
    status = status.astype(np.result_type(status.dtype, STATUS_DTYPE), copy=False)
    return status & status.dtype.type(~int(SMOOTHED_ANY) & ALL_BITS)


def is_owned_invalid(status: np.ndarray) -> np.ndarray:
    """Cells already known invalid: masked, failed, spurious or interpolated."""
    return cleared_for_comparison(status) != 0


def spurious_mask(status: np.ndarray) -> np.ndarray:
    """Cells flagged spurious in either pair or sequence mode."""
    return has_flag(status, SPURIOUS_ANY)


def set_spurious(status: np.ndarray, where: np.ndarray, flag: Status) -> np.ndarray:
    """
    Return a copy of `status` with a spurious bit set at `where`.

    Args:
        status (np.ndarray): Status field.
        where (np.ndarray): Boolean mask with the same shape as `status`.
        flag (Status): Either Status.SPURIOUS or Status.SPURIOUS_SEQ.

    Returns:
        np.ndarray: Updated status; bits are only ever added.
    """
    if flag not in (Status.SPURIOUS, Status.SPURIOUS_SEQ):
        raise ValueError(
            f"Only spurious bits may be set by validation, got {flag!r}")
    out = np.array(status, copy=True)
    out[where] |= out.dtype.type(int(flag))
    return out
