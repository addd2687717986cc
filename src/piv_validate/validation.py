"""
Validation of PIV displacement fields by a local median test.

For every vector that is not already invalid, the median of its
neighbourhood and the rms deviation of the neighbours from that median
are computed. A vector is marked spurious if

    |value - median| > tresh * rms + epsi

for either displacement component. The test runs in several passes;
vectors flagged in one pass no longer contribute to the neighbourhood
statistics of the next. Finally all spurious vectors are replaced by NaN
so that a replacement stage can interpolate them.

Neighbourhoods are (2*dist_xy+1) x (2*dist_xy+1) x (2*dist_t+1) boxes on a
NaN-padded copy of the field, so cells at the border simply see fewer
valid neighbours.
"""

from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from piv_validate.field import DisplacementField
from piv_validate.init_config import (
    ModeParams, ValidationMode, ValidationParams, select_mode)
from piv_validate.progress import NullProgress, ProgressReporter
from piv_validate.status import (
    as_status_array, is_owned_invalid, set_spurious, spurious_mask)


def mask_invalid(values: np.ndarray, status: np.ndarray) -> np.ndarray:
    """
    Working copy of a displacement component with invalid cells set to NaN.

    Args:
        values (np.ndarray): Displacement component.
        status (np.ndarray): Status field of the same shape.

    Returns:
        np.ndarray: Float copy; NaN wherever the status (ignoring the
            "smoothed" bits) is nonzero.
    """
    out = np.array(values, dtype=float, copy=True)
    out[is_owned_invalid(status)] = np.nan
    return out


def pad_field(values: np.ndarray, dist_xy: int, dist_t: int = 0) -> np.ndarray:
    """Pad a (rows, cols, slices) array with NaN borders."""
    values = np.asarray(values, dtype=float)
    if values.ndim != 3:
        raise ValueError(
            f"Expected a 3D array (rows, cols, slices), got shape {values.shape}")
    pad = ((dist_xy, dist_xy), (dist_xy, dist_xy), (dist_t, dist_t))
    return np.pad(values, pad, mode="constant", constant_values=np.nan)


def _nanmedian(flat: np.ndarray, n_valid: np.ndarray) -> np.ndarray:
    """Median over the last axis ignoring NaNs; NaN where nothing is valid."""
    # NaNs sort to the end, so the valid values occupy the first n_valid slots
    ordered = np.sort(flat, axis=-1)
    n_valid = np.asarray(n_valid)
    lo = np.asarray(np.maximum((n_valid - 1) // 2, 0))
    hi = np.asarray(n_valid // 2)
    median = 0.5 * (np.take_along_axis(ordered, lo[..., None], axis=-1)[..., 0]
                    + np.take_along_axis(ordered, hi[..., None], axis=-1)[..., 0])
    return np.asarray(np.where(n_valid == 0, np.nan, median))


def window_stats(windows: np.ndarray, n_axes: int = 3) -> tuple[np.ndarray, np.ndarray]:
    """
    Median and rms deviation from the median for a stack of windows.

    The median is taken over all non-NaN values of each window. The centre
    value is then excluded, and the spread is

        sqrt(sum((x - median)^2) / n)

    over the n remaining non-NaN values. Note the denominator n rather than
    n - 1; thresholds are tuned against this estimator.

    Args:
        windows (np.ndarray): Array whose trailing `n_axes` axes are the
            window; every window axis must have odd length.
        n_axes (int): Number of trailing window axes.

    Returns:
        tuple[np.ndarray, np.ndarray]: (median, spread), each with the
            leading shape of `windows`. Windows without valid values give NaN.
    """
    windows = np.asarray(windows, dtype=float)
    win_shape = windows.shape[windows.ndim - n_axes:]
    if any(s % 2 == 0 for s in win_shape):
        raise ValueError(f"Window axes must have odd length, got {win_shape}")

    flat = windows.reshape(windows.shape[:windows.ndim - n_axes] + (-1,))
    median = _nanmedian(flat, np.count_nonzero(~np.isnan(flat), axis=-1))

    # Deviations from the median, without the vector under test
    dev = flat - median[..., None]
    center = np.ravel_multi_index(tuple(s // 2 for s in win_shape), win_shape)
    dev[..., center] = np.nan

    valid = ~np.isnan(dev)
    n = np.count_nonzero(valid, axis=-1)
    sum_sq = np.sum(np.where(valid, dev, 0.0) ** 2, axis=-1)
    with np.errstate(invalid="ignore", divide="ignore"):
        spread = np.sqrt(sum_sq / n)

    return median, spread


def neighbourhood_stats(padded: np.ndarray, center: tuple[int, int, int], dist_xy: int, dist_t: int = 0) -> tuple[float, float]:
    """
    Median and spread for one cell of a padded field.

    Args:
        padded (np.ndarray): Field padded by `pad_field` with the same
            half-widths.
        center (tuple[int, int, int]): (row, col, slice) of the cell in
            unpadded coordinates.
        dist_xy (int): Spatial half-width of the neighbourhood.
        dist_t (int): Temporal half-width of the neighbourhood.

    Returns:
        tuple[float, float]: (median, spread); NaN if undefined.
    """
    row, col, kt = center
    window = padded[row:row + 2 * dist_xy + 1,
                    col:col + 2 * dist_xy + 1,
                    kt:kt + 2 * dist_t + 1]
    median, spread = window_stats(window)
    return float(median), float(spread)


def _slice_stats(padded: np.ndarray, kt: int, dist_xy: int, dist_t: int) -> tuple[np.ndarray, np.ndarray]:
    """Statistics for every cell of time slice kt, shape (rows, cols)."""
    shape = (2 * dist_xy + 1, 2 * dist_xy + 1, 2 * dist_t + 1)
    block = padded[:, :, kt:kt + shape[2]]
    windows = np.lib.stride_tricks.sliding_window_view(block, shape)[:, :, 0]
    return window_stats(windows)


def _run_pass(u: np.ndarray, v: np.ndarray, status: np.ndarray, params: ModeParams, mode: ValidationMode, kpass: int, progress: ProgressReporter, n_jobs: int) -> np.ndarray:
    """One median test pass; returns the updated status."""
    n_slices = u.shape[2]

    # Frozen snapshot for this pass
    padded_u = pad_field(mask_invalid(u, status), params.dist_xy, params.dist_t)
    padded_v = pad_field(mask_invalid(v, status), params.dist_xy, params.dist_t)
    unflagged = status == 0

    def evaluate(kt: int) -> np.ndarray:
        med_u, rms_u = _slice_stats(padded_u, kt, params.dist_xy, params.dist_t)
        med_v, rms_v = _slice_stats(padded_v, kt, params.dist_xy, params.dist_t)
        # Comparisons against NaN statistics are False: no basis, no flag
        with np.errstate(invalid="ignore"):
            out_u = np.abs(u[:, :, kt] - med_u) > params.tresh * rms_u + params.epsi
            out_v = np.abs(v[:, :, kt] - med_v) > params.tresh * rms_v + params.epsi
        return unflagged[:, :, kt] & (out_u | out_v)

    spurious = np.zeros(u.shape, dtype=bool)
    progress.on_pass_start(kpass, params.passes, n_slices)
    if n_jobs > 1 and n_slices > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as executor:
            for kt, flagged in enumerate(executor.map(evaluate, range(n_slices))):
                progress.on_slice(kpass, params.passes, kt, n_slices)
                spurious[:, :, kt] = flagged
    else:
        for kt in range(n_slices):
            progress.on_slice(kpass, params.passes, kt, n_slices)
            spurious[:, :, kt] = evaluate(kt)

    progress.on_pass_end(kpass, params.passes, n_slices)
    return set_spurious(status, spurious, mode.status_flag)


def validate(field: DisplacementField, params: ValidationParams, *, mode: ValidationMode | str | None = None, progress: ProgressReporter | None = None, n_jobs: int | None = 1) -> DisplacementField:
    """
    Detect spurious vectors with a multi-pass local median test.

    Args:
        field (DisplacementField): Input field; not modified.
        params (ValidationParams): Settings for both modes.
        mode (ValidationMode | str | None): 'pair' or 'sequence'. If None,
            a single slice is validated as a pair, several as a sequence.
        progress (ProgressReporter | None): Collaborator notified before
            every pass, at every slice, at the end of every pass and with
            the final field. With n_jobs > 1 the slice notifications arrive
            as finished slices are collected, not when work starts.
        n_jobs (int | None): Threads used to evaluate the slices of a pass.
            None uses all CPUs.

    Returns:
        DisplacementField: New field with spurious vectors replaced by NaN
            (and, if at least one pass ran, every other vector already
            invalid on entry to the last pass), uint16 status with bit 4
            (pair) or bit 7 (sequence) set for new spurious vectors, and
            the spurious summary. In pair mode
            spurious_n is an int and spurious_x/y/u/v hold positions and
            original values; in sequence mode spurious_n holds one count
            per slice and the detail arrays are None.
    """
    field.check_shapes()
    progress = progress if progress is not None else NullProgress()
    if n_jobs is None:
        n_jobs = os.cpu_count() or 4

    was_2d = np.ndim(field.u) == 2
    u = np.array(field.u, dtype=float, copy=True)
    v = np.array(field.v, dtype=float, copy=True)
    status = as_status_array(field.status)
    if was_2d:
        u, v, status = u[:, :, np.newaxis], v[:, :, np.newaxis], status[:, :, np.newaxis]

    n_slices = u.shape[2]
    mode = select_mode(n_slices, mode)
    mode_params = params.for_mode(mode, n_slices)

    u_out = u.copy()
    v_out = v.copy()
    for kpass in range(mode_params.passes):
        # Output carries the masked working copy of the last pass
        u_out = mask_invalid(u, status)
        v_out = mask_invalid(v, status)
        status = _run_pass(u, v, status, mode_params, mode, kpass,
                           progress, n_jobs)

    # Null flagged vectors of either mode; a field may carry flags from
    # an earlier run in the other mode.
    spurious = spurious_mask(status)
    u_out[spurious] = np.nan
    v_out[spurious] = np.nan

    if mode is ValidationMode.PAIR:
        spur_2d = spurious[:, :, 0]
        summary = dict(
            spurious_n=int(np.count_nonzero(spur_2d)),
            spurious_x=np.asarray(field.x)[spur_2d],
            spurious_y=np.asarray(field.y)[spur_2d],
            spurious_u=u[:, :, 0][spur_2d],
            spurious_v=v[:, :, 0][spur_2d],
        )
    else:
        summary = dict(
            spurious_n=np.count_nonzero(spurious, axis=(0, 1)),
            spurious_x=None, spurious_y=None,
            spurious_u=None, spurious_v=None,
        )

    if was_2d:
        u_out, v_out, status = u_out[:, :, 0], v_out[:, :, 0], status[:, :, 0]

    result = field.with_results(
        x=np.array(field.x, copy=True), y=np.array(field.y, copy=True),
        u=u_out, v=v_out, status=status, **summary)
    progress.finish(result)
    return result
