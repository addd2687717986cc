import numpy as np
import pytest
from matplotlib import pyplot as plt

from piv_validate import ValidationParams, validate
from piv_validate.visualisation import plot_spurious


class TestPlotSpurious:
    def test_pair_result(self, field_factory, center_outlier_u, pair_params, tmp_path):
        result = validate(field_factory(center_outlier_u), pair_params)
        output = tmp_path / "plots" / "spurious.png"

        fig, ax = plot_spurious(result, output_path=output)

        assert output.is_file()
        assert ax.get_title() == "Median test: 1 spurious vectors"
        labels = [line.get_label() for line in ax.get_lines()]
        assert labels == ["Spurious (pair)"]
        plt.close(fig)

    def test_sequence_slice(self, field_factory, center_outlier_u):
        u = np.stack([np.ones((3, 3)), center_outlier_u], axis=-1)
        params = ValidationParams.from_options(
            {"vlDistSeq": 1, "vlPassesSeq": 1, "vlTreshSeq": 3, "vlEpsSeq": 0.1})
        result = validate(field_factory(u), params)

        fig, ax = plt.subplots()
        out_fig, out_ax = plot_spurious(result, slice_index=1, ax=ax, title="slice 2")

        assert out_ax is ax and out_fig is fig
        assert [line.get_label() for line in ax.get_lines()] == ["Spurious (sequence)"]
        assert ax.get_title() == "slice 2"
        plt.close(fig)

    def test_slice_out_of_range(self, field_factory):
        with pytest.raises(ValueError):
            plot_spurious(field_factory(np.ones((3, 3, 2))), slice_index=2)
