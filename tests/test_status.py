import numpy as np
import pytest

from piv_validate.status import (
    SMOOTHED_ANY,
    Status,
    as_status_array,
    cleared_for_comparison,
    has_flag,
    is_owned_invalid,
    set_spurious,
    spurious_mask,
)


class TestStatusBits:
    def test_bit_values(self):
        assert [int(s) for s in Status] == [2 ** k for k in range(9)]
        assert Status.SPURIOUS == 8
        assert Status.SPURIOUS_SEQ == 64

    def test_smoothed_bits_ignored_for_comparison(self):
        status = np.array([0, 32, 256, 288, 33, 16, 8, 64], dtype=np.uint16)

        cleared = cleared_for_comparison(status)

        assert np.all(cleared == [0, 0, 0, 0, 1, 16, 8, 64])
        assert np.all(is_owned_invalid(status)
                      == [False, False, False, False, True, True, True, True])
        # input untouched
        assert status[1] == 32

    def test_narrow_signed_dtype(self):
        status = np.array([1, 32, 0], dtype=np.int8)

        assert np.all(is_owned_invalid(status) == [True, False, False])
        assert np.all(cleared_for_comparison(status) == [1, 0, 0])

    def test_wide_dtype_kept(self):
        status = np.array([288, 64], dtype=np.int64)

        cleared = cleared_for_comparison(status)

        assert cleared.dtype == np.int64
        assert np.all(cleared == [0, 64])

    def test_spurious_mask_either_mode(self):
        status = np.array([0, 8, 64, 72, 1, 32], dtype=np.uint16)
        assert np.all(spurious_mask(status) == [False, True, True, True, False, False])

    def test_has_flag(self):
        status = np.array([0, 32, 256, 5])
        assert np.all(has_flag(status, SMOOTHED_ANY) == [False, True, True, False])
        assert np.all(has_flag(status, Status.PEAK_FAILED) == [False, False, False, True])


class TestSetSpurious:
    def test_returns_new_array(self):
        status = np.array([[0, 1], [32, 8]], dtype=np.uint16)
        where = np.array([[True, True], [True, False]])

        out = set_spurious(status, where, Status.SPURIOUS_SEQ)

        assert np.all(out == [[64, 65], [96, 8]])
        assert np.all(status == [[0, 1], [32, 8]])

    def test_setting_twice_is_noop(self):
        status = np.zeros(3, dtype=np.uint16)
        where = np.array([True, False, True])

        once = set_spurious(status, where, Status.SPURIOUS)
        twice = set_spurious(once, where, Status.SPURIOUS)

        assert np.all(once == twice)

    def test_only_spurious_bits_allowed(self):
        with pytest.raises(ValueError):
            set_spurious(np.zeros(2, dtype=np.uint16), np.ones(2, bool), Status.MASKED)


class TestAsStatusArray:
    def test_widens_to_uint16(self):
        out = as_status_array(np.array([0, 1, 255], dtype=np.uint8))
        assert out.dtype == np.uint16
        assert np.all(out == [0, 1, 255])

    def test_integral_floats_accepted(self):
        out = as_status_array(np.array([0.0, 8.0, 256.0]))
        assert out.dtype == np.uint16
        assert np.all(out == [0, 8, 256])

    @pytest.mark.parametrize("bad", [np.array([-1, 0]), np.array([512]), np.array([0.5]), np.array([np.nan])])
    def test_invalid_values_rejected(self, bad):
        with pytest.raises(ValueError):
            as_status_array(bad)
