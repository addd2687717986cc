import matplotlib
import numpy as np
import pytest

from piv_validate import DisplacementField, ValidationParams

matplotlib.use("Agg")


def make_field(u, v=None, status=None):
    u = np.asarray(u, dtype=float)
    v = np.ones_like(u) if v is None else np.asarray(v, dtype=float)
    status = np.zeros(u.shape, dtype=np.uint16) if status is None else np.asarray(status)
    rows, cols = u.shape[:2]
    x, y = np.meshgrid(np.arange(cols) * 16.0 + 8, np.arange(rows) * 16.0 + 8)
    return DisplacementField(x=x, y=y, u=u, v=v, status=status)


@pytest.fixture
def field_factory():
    return make_field


@pytest.fixture
def center_outlier_u():
    u = np.ones((3, 3))
    u[1, 1] = 100.0
    return u


@pytest.fixture
def pair_params():
    return ValidationParams.from_options(
        {"vlDist": 1, "vlPasses": 1, "vlTresh": 3, "vlEps": 0.1})


@pytest.fixture
def seq_params():
    return ValidationParams.from_options(
        {"vlDistSeq": 1, "vlPassesSeq": 1, "vlTreshSeq": 3, "vlEpsSeq": 0.1})
