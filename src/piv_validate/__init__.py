"""PIV vector validation package.

Local median test for displacement fields produced by PIV
cross-correlation. Vectors that deviate too much from their
neighbourhood are flagged in the status bit field and replaced by NaN,
ready for a replacement (interpolation) stage.

Usage:
    import piv_validate as pv

    field = pv.DisplacementField(x, y, u, v, status)
    params = pv.ValidationParams.from_options(
        {"vlTresh": 2, "vlEps": 0.1, "vlDist": 2, "vlPasses": 2})
    result = pv.validate(field, params)
"""

__version__ = "1.0.0"

from .status import (
    Status, as_status_array, cleared_for_comparison, has_flag, is_owned_invalid,
    set_spurious, spurious_mask)
from .field import DisplacementField, ShapeMismatchError
from .init_config import (
    ModeParams, ValidationMode, ValidationParams, read_file, select_mode)
from .progress import (
    CompositeProgress, ConsoleProgress, HeartbeatProgress, NullProgress,
    TqdmProgress, reporter_from_params)
from .validation import (
    mask_invalid, neighbourhood_stats, pad_field, validate, window_stats)

__all__ = [
    # Status bits
    'Status', 'as_status_array', 'cleared_for_comparison', 'has_flag',
    'is_owned_invalid', 'set_spurious', 'spurious_mask',

    # Data record
    'DisplacementField', 'ShapeMismatchError',

    # Parameters
    'ModeParams', 'ValidationMode', 'ValidationParams', 'read_file', 'select_mode',

    # Progress reporting
    'CompositeProgress', 'ConsoleProgress', 'HeartbeatProgress', 'NullProgress',
    'TqdmProgress', 'reporter_from_params',

    # Validation
    'mask_invalid', 'neighbourhood_stats', 'pad_field', 'validate', 'window_stats',
]
