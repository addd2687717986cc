"""
Displacement field record passed between PIV processing stages.

A field holds window positions (x, y) on a rows x cols grid, the
displacement components (u, v) and the status bit field on a
rows x cols x slices grid. A single image pair has one slice; a
sequence has one slice per image pair. Two-dimensional u/v/status
arrays are accepted and treated as one slice.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dc_field, fields, replace
from typing import Any, Mapping

import numpy as np

from piv_validate.status import as_status_array


class ShapeMismatchError(ValueError):
    """Raised when the arrays of a displacement field disagree in shape."""


# Keys used by the shared pivData record
_PIV_DATA_KEYS = {
    "x": "X",
    "y": "Y",
    "u": "U",
    "v": "V",
    "status": "Status",
    "spurious_n": "spuriousN",
    "spurious_x": "spuriousX",
    "spurious_y": "spuriousY",
    "spurious_u": "spuriousU",
    "spurious_v": "spuriousV",
}


@dataclass
class DisplacementField:
    x: np.ndarray
    y: np.ndarray
    u: np.ndarray
    v: np.ndarray
    status: np.ndarray
    spurious_n: int | np.ndarray | None = None
    spurious_x: np.ndarray | None = None
    spurious_y: np.ndarray | None = None
    spurious_u: np.ndarray | None = None
    spurious_v: np.ndarray | None = None
    extra: dict[str, Any] = dc_field(default_factory=dict, repr=False)

    @property
    def n_slices(self) -> int:
        u = np.asarray(self.u)
        return 1 if u.ndim == 2 else int(u.shape[2])

    @property
    def grid_shape(self) -> tuple[int, int]:
        return tuple(np.asarray(self.u).shape[:2])  # type: ignore[return-value]

    def check_shapes(self) -> None:
        """
        Verify that x, y, u, v and status describe the same grid.

        Raises:
            ShapeMismatchError: naming the first array that disagrees.
        """
        u = np.asarray(self.u)
        if u.ndim not in (2, 3):
            raise ShapeMismatchError(
                f"u must be 2D (rows, cols) or 3D (rows, cols, slices), got shape {u.shape}")

        for name in ("v", "status"):
            shape = np.shape(getattr(self, name))
            if shape != u.shape:
                raise ShapeMismatchError(
                    f"{name} has shape {shape}, expected {u.shape} (shape of u)")

        for name in ("x", "y"):
            shape = np.shape(getattr(self, name))
            if shape != u.shape[:2]:
                raise ShapeMismatchError(
                    f"{name} has shape {shape}, expected {u.shape[:2]} (grid of u)")

    def copy(self) -> "DisplacementField":
        """Deep copy of all arrays."""
        copied = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray):
                value = value.copy()
            elif isinstance(value, dict):
                value = dict(value)
            copied[f.name] = value
        return DisplacementField(**copied)

    def with_results(self, **changes: Any) -> "DisplacementField":
        """New field with `changes` applied; `extra` is copied, not shared."""
        changes.setdefault("extra", dict(self.extra))
        return replace(self, **changes)

    @classmethod
    def from_piv_data(cls, piv_data: Mapping[str, Any]) -> "DisplacementField":
        """
        Build a field from a pivData-style mapping.

        Args:
            piv_data (Mapping): Must contain X, Y, U, V and Status. Optional
                spurious* summary keys are picked up; any other keys are kept
                in `extra` so they survive a round trip.

        Returns:
            DisplacementField: Field with float u/v and uint16 status.
        """
        missing = [key for key in ("X", "Y", "U", "V", "Status")
                   if key not in piv_data]
        if missing:
            raise KeyError(f"pivData is missing required fields: {missing}")

        kwargs: dict[str, Any] = {}
        for attr, key in _PIV_DATA_KEYS.items():
            if key in piv_data:
                kwargs[attr] = piv_data[key]
        kwargs["x"] = np.asarray(kwargs["x"], dtype=float)
        kwargs["y"] = np.asarray(kwargs["y"], dtype=float)
        kwargs["u"] = np.asarray(kwargs["u"], dtype=float)
        kwargs["v"] = np.asarray(kwargs["v"], dtype=float)
        kwargs["status"] = as_status_array(kwargs["status"])

        known = set(_PIV_DATA_KEYS.values())
        kwargs["extra"] = {k: v for k, v in piv_data.items() if k not in known}
        return cls(**kwargs)

    def to_piv_data(self) -> dict[str, Any]:
        """Export as a pivData-style dict; summary keys only when present."""
        out = dict(self.extra)
        for attr, key in _PIV_DATA_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        return out
