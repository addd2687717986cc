"""Validation parameters and configuration loading for piv-validate.

Parameters can come from two places:
- a pivPar-style mapping of option names (``vlTresh``, ``vlDistSeq``, ...),
  parsed by :meth:`ValidationParams.from_options`;
- a TOML file, loaded by :func:`read_file`, which is deep-merged over the
  packaged ``config/default_config.toml``.

The TOML route is "defaults-driven": ``default_config.toml`` is the single
source of truth for defaults, and the Python code does not hard-code
fallbacks with ``.get(..., default)``. The mapping route has no defaults
apart from ``vlDistTSeq`` (0); missing options for the active mode are an
error when the mode is selected.
"""

from __future__ import annotations

import tomllib
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from piv_validate.status import Status


class ValidationMode(Enum):
    """Which median test is run; decides parameter set and status bit."""

    PAIR = "pair"
    SEQUENCE = "sequence"

    @property
    def status_flag(self) -> Status:
        if self is ValidationMode.PAIR:
            return Status.SPURIOUS
        return Status.SPURIOUS_SEQ


@dataclass(frozen=True)
class ModeParams:
    """Parameter set held fixed across all passes of one invocation."""

    dist_xy: int
    passes: int
    tresh: float
    epsi: float
    dist_t: int = 0


# Option name -> (attribute, parser)
_OPTIONS: dict[str, tuple[str, Any]] = {
    "vlTresh": ("vl_tresh", float),
    "vlEps": ("vl_eps", float),
    "vlDist": ("vl_dist", int),
    "vlPasses": ("vl_passes", int),
    "vlTreshSeq": ("vl_tresh_seq", float),
    "vlEpsSeq": ("vl_eps_seq", float),
    "vlDistSeq": ("vl_dist_seq", int),
    "vlPassesSeq": ("vl_passes_seq", int),
    "vlDistTSeq": ("vl_dist_t_seq", int),
    "expName": ("exp_name", str),
    "anLockFile": ("an_lock_file", str),
}


@dataclass(frozen=True)
class ValidationParams:
    """
    Median test settings for both validation modes.

    Attributes:
        vl_tresh, vl_eps, vl_dist, vl_passes: Image pair settings. A vector is
            spurious if |value - median| > vl_tresh * rms + vl_eps, with the
            median and rms taken over a (2*vl_dist+1)^2 kernel.
        vl_tresh_seq, vl_eps_seq, vl_dist_seq, vl_passes_seq: Same for an
            image sequence.
        vl_dist_t_seq: Temporal half-width of the sequence kernel (0 means
            only the current time slice).
        exp_name: Display name for progress messages.
        an_lock_file: Heartbeat file path for progress reporting.
    """

    vl_tresh: float | None = None
    vl_eps: float | None = None
    vl_dist: int | None = None
    vl_passes: int | None = None
    vl_tresh_seq: float | None = None
    vl_eps_seq: float | None = None
    vl_dist_seq: int | None = None
    vl_passes_seq: int | None = None
    vl_dist_t_seq: int = 0
    exp_name: str = ""
    an_lock_file: str = ""

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "ValidationParams":
        """Parse a pivPar-style mapping; unrecognised keys are ignored."""
        kwargs: dict[str, Any] = {}
        for key, (attr, parser) in _OPTIONS.items():
            value = options.get(key)
            if value is None:
                continue
            try:
                kwargs[attr] = parser(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    f"Option {key} has invalid value {value!r}") from exc
        return cls(**kwargs)

    def for_mode(self, mode: ValidationMode, n_slices: int) -> ModeParams:
        """
        Select the parameter set for one invocation.

        Args:
            mode (ValidationMode): Active mode.
            n_slices (int): Number of time slices in the field.

        Returns:
            ModeParams: Kernel half-widths, pass count, threshold and floor.
        """
        if mode is ValidationMode.PAIR:
            names = ("vlDist", "vlPasses", "vlTresh", "vlEps")
            values = (self.vl_dist, self.vl_passes, self.vl_tresh, self.vl_eps)
        else:
            names = ("vlDistSeq", "vlPassesSeq", "vlTreshSeq", "vlEpsSeq")
            values = (self.vl_dist_seq, self.vl_passes_seq,
                      self.vl_tresh_seq, self.vl_eps_seq)

        missing = [n for n, v in zip(names, values) if v is None]
        if missing:
            raise ValueError(
                f"Missing validation parameters for {mode.value} mode: {missing}")

        dist_xy, passes, tresh, epsi = values
        if mode is ValidationMode.PAIR or n_slices == 1:
            dist_t = 0
        else:
            dist_t = self.vl_dist_t_seq

        if dist_xy < 0:
            raise ValueError(f"{names[0]} must be >= 0, got {dist_xy}")
        if passes < 0:
            raise ValueError(f"{names[1]} must be >= 0, got {passes}")
        if dist_t < 0:
            raise ValueError(f"vlDistTSeq must be >= 0, got {dist_t}")

        return ModeParams(dist_xy=int(dist_xy), passes=int(passes),
                          tresh=float(tresh), epsi=float(epsi),
                          dist_t=int(dist_t))


def select_mode(n_slices: int, mode: ValidationMode | str | None = None) -> ValidationMode:
    """
    Resolve the validation mode once, at the boundary.

    An explicit mode always wins; otherwise one slice means an image pair
    and several slices mean a sequence.
    """
    if mode is None:
        return ValidationMode.PAIR if n_slices == 1 else ValidationMode.SEQUENCE

    if isinstance(mode, str):
        try:
            mode = ValidationMode(mode.strip().lower())
        except ValueError as exc:
            raise ValueError(
                f"Unknown validation mode: {mode!r}. Use 'pair' or 'sequence'.") from exc

    if mode is ValidationMode.PAIR and n_slices != 1:
        raise ValueError(
            f"Pair mode needs a single time slice, got {n_slices} slices")
    return mode


def read_file(config_file: Path | str) -> ValidationParams:
    """Load a TOML config over the packaged defaults and return the parameters."""

    config_path = Path(config_file)
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file {config_path} does not exist.")

    with config_path.open("rb") as fp:
        user_cfg = tomllib.load(fp)

    merged = _deep_merge(_read_packaged_default_config(), user_cfg)
    validation = merged["validation"]
    progress = merged["progress"]

    return ValidationParams(
        vl_tresh=float(validation["vl_tresh"]),
        vl_eps=float(validation["vl_eps"]),
        vl_dist=int(validation["vl_dist"]),
        vl_passes=int(validation["vl_passes"]),
        vl_tresh_seq=float(validation["vl_tresh_seq"]),
        vl_eps_seq=float(validation["vl_eps_seq"]),
        vl_dist_seq=int(validation["vl_dist_seq"]),
        vl_passes_seq=int(validation["vl_passes_seq"]),
        vl_dist_t_seq=int(validation["vl_dist_t_seq"]),
        exp_name=str(progress["exp_name"]),
        an_lock_file=str(progress["an_lock_file"]),
    )


def _read_packaged_default_config() -> dict[str, Any]:
    """Load packaged defaults from default_config.toml."""
    try:
        from importlib.resources import files

        default_path = files("piv_validate").joinpath(
            "config/default_config.toml")
        with default_path.open("rb") as fp:
            return tomllib.load(fp)
    except (OSError, tomllib.TOMLDecodeError) as exc:  # pragma: no cover
        raise RuntimeError(
            "Failed to load packaged default_config.toml. "
            "Make sure it is included as package data."
        ) from exc


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base, returning a new dict."""
    out = deepcopy(base)
    for key, value in override.items():
        if key in out and isinstance(out[key], dict) and isinstance(value, dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = deepcopy(value)
    return out
