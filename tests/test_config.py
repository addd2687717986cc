import pytest

from piv_validate.init_config import (
    ModeParams,
    ValidationMode,
    ValidationParams,
    _deep_merge,
    read_file,
    select_mode,
)
from piv_validate.status import Status


class TestFromOptions:
    def test_recognised_options(self):
        params = ValidationParams.from_options({
            "vlTresh": "2.5", "vlEps": 0.2, "vlDist": 2, "vlPasses": 3,
            "vlTreshSeq": 3, "vlEpsSeq": 0.1, "vlDistSeq": 1, "vlPassesSeq": 1,
            "vlDistTSeq": 2, "expName": "jet", "anLockFile": "run.lock",
            "ccWindow": 32,
        })

        assert params.vl_tresh == 2.5
        assert params.vl_passes == 3
        assert params.vl_dist_t_seq == 2
        assert params.exp_name == "jet"
        assert params.an_lock_file == "run.lock"

    def test_defaults(self):
        params = ValidationParams.from_options({})
        assert params.vl_dist_t_seq == 0
        assert params.vl_tresh is None

    def test_invalid_value(self):
        with pytest.raises(ValueError, match="vlDist"):
            ValidationParams.from_options({"vlDist": "two"})


class TestForMode:
    params = ValidationParams.from_options({
        "vlTresh": 2, "vlEps": 0.1, "vlDist": 2, "vlPasses": 2,
        "vlTreshSeq": 3, "vlEpsSeq": 0.2, "vlDistSeq": 1, "vlPassesSeq": 1,
        "vlDistTSeq": 1,
    })

    def test_pair(self):
        assert self.params.for_mode(ValidationMode.PAIR, 1) == ModeParams(
            dist_xy=2, passes=2, tresh=2.0, epsi=0.1, dist_t=0)

    def test_sequence(self):
        assert self.params.for_mode(ValidationMode.SEQUENCE, 5) == ModeParams(
            dist_xy=1, passes=1, tresh=3.0, epsi=0.2, dist_t=1)

    def test_sequence_single_slice_has_no_temporal_extent(self):
        assert self.params.for_mode(ValidationMode.SEQUENCE, 1).dist_t == 0

    def test_missing(self):
        with pytest.raises(ValueError, match="vlPassesSeq"):
            ValidationParams(vl_tresh_seq=1, vl_eps_seq=1, vl_dist_seq=1).for_mode(
                ValidationMode.SEQUENCE, 3)

    @pytest.mark.parametrize("options", [
        {"vlDist": -1, "vlPasses": 1, "vlTresh": 2, "vlEps": 0.1},
        {"vlDist": 1, "vlPasses": -1, "vlTresh": 2, "vlEps": 0.1},
    ])
    def test_negative(self, options):
        with pytest.raises(ValueError):
            ValidationParams.from_options(options).for_mode(ValidationMode.PAIR, 1)

    def test_status_flags(self):
        assert ValidationMode.PAIR.status_flag is Status.SPURIOUS
        assert ValidationMode.SEQUENCE.status_flag is Status.SPURIOUS_SEQ


class TestSelectMode:
    def test_inferred(self):
        assert select_mode(1) is ValidationMode.PAIR
        assert select_mode(4) is ValidationMode.SEQUENCE

    def test_explicit(self):
        assert select_mode(1, "Sequence") is ValidationMode.SEQUENCE
        assert select_mode(1, ValidationMode.PAIR) is ValidationMode.PAIR

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown validation mode"):
            select_mode(1, "triplet")

    def test_pair_needs_single_slice(self):
        with pytest.raises(ValueError):
            select_mode(3, "pair")


class TestReadFile:
    def test_merged_over_defaults(self, tmp_path):
        config = tmp_path / "config.toml"
        config.write_text(
            "[validation]\nvl_tresh = 3.5\nvl_dist_t_seq = 1\n\n"
            "[progress]\nexp_name = \"jet 04\"\n",
            encoding="utf-8")

        params = read_file(config)

        assert params.vl_tresh == 3.5
        assert params.vl_dist_t_seq == 1
        assert params.exp_name == "jet 04"
        # from packaged defaults
        assert params.vl_eps == 0.1
        assert params.vl_dist == 2
        assert params.vl_passes == 2
        assert params.vl_passes_seq == 1
        assert params.an_lock_file == ""

    def test_empty_file_gives_defaults(self, tmp_path):
        config = tmp_path / "empty.toml"
        config.write_text("", encoding="utf-8")

        params = read_file(config)

        assert params.for_mode(ValidationMode.SEQUENCE, 3).dist_t == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_file(tmp_path / "nope.toml")

    def test_deep_merge(self):
        base = {"a": 1, "t": {"x": 1, "y": 2}}
        out = _deep_merge(base, {"t": {"y": 3}, "b": 4})
        assert out == {"a": 1, "b": 4, "t": {"x": 1, "y": 3}}
        assert base["t"]["y"] == 2
