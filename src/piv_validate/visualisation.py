"""Diagnostic plots for validated displacement fields.

Kept separate from the validator so that plotting stays optional and
never runs inside the computation.
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
from matplotlib import pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure

from piv_validate.field import DisplacementField
from piv_validate.status import has_flag, Status


def plot_spurious(
    field: DisplacementField,
    *,
    slice_index: int = 0,
    ax: Axes | None = None,
    title: str | None = None,
    output_path: Path | None = None,
) -> tuple[Figure, Axes]:
    """Quiver plot of remaining vectors with spurious positions marked.

    Notes:
    - Pair and sequence spurious flags are drawn with different markers.
    - Positions come from the status field, so this also works for
      sequence results, which carry no spurious_x/spurious_y arrays.
    """

    field.check_shapes()
    u = np.asarray(field.u, dtype=float)
    v = np.asarray(field.v, dtype=float)
    status = np.asarray(field.status)
    if u.ndim == 3:
        if not 0 <= slice_index < u.shape[2]:
            raise ValueError(
                f"slice_index {slice_index} out of range for {u.shape[2]} slices")
        u, v, status = (u[:, :, slice_index], v[:, :, slice_index],
                        status[:, :, slice_index])

    x = np.asarray(field.x, dtype=float)
    y = np.asarray(field.y, dtype=float)

    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 5))
    else:
        fig = ax.figure

    ax.quiver(x, y, u, v, color="k", angles="xy", label="Valid")

    pair = has_flag(status, Status.SPURIOUS)
    seq = has_flag(status, Status.SPURIOUS_SEQ)
    if np.any(pair):
        ax.plot(x[pair], y[pair], "rx", label="Spurious (pair)")
    if np.any(seq):
        ax.plot(x[seq], y[seq], "m+", label="Spurious (sequence)")

    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_title(title or f"Median test: {int(np.count_nonzero(pair | seq))} spurious vectors")
    ax.legend(loc="upper right")
    ax.set_aspect("equal")

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=200)

    return fig, ax
