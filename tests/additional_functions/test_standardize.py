import numpy as np
import pytest
from sklearn.preprocessing import StandardScaler

from ensemblepkg.additional_functions.standardize import Standardizer


def _data():
    rng = np.random.default_rng(0)
    x = rng.normal(loc=[1.0, -3.0, 10.0], scale=[0.5, 2.0, 4.0], size=(40, 3))
    y = x @ np.array([1.0, 0.5, -0.2]) + 3.0 + rng.normal(size=40)
    return x, y


def test_standardized_columns_have_zero_mean_unit_variance() -> None:
    x, y = _data()
    x_std, y_cen = Standardizer().fit_transform(x, y)
    np.testing.assert_allclose(x_std.mean(axis=0), 0.0, atol=1e-12)
    np.testing.assert_allclose(x_std.std(axis=0), 1.0, atol=1e-12)
    assert abs(y_cen.mean()) < 1e-12
    # y is only centered
    np.testing.assert_allclose(y_cen.std(), y.std())


def test_zero_variance_column_gets_unit_scale() -> None:
    x, y = _data()
    x[:, 1] = 7.0
    st = Standardizer().fit(x, y)
    x_std, _ = st.transform(x, y)
    assert st.scale_x[1] == 1.0
    assert np.all(x_std[:, 1] == 0.0)
    assert np.all(np.isfinite(x_std))


def test_restore_is_exact_inverse() -> None:
    x, y = _data()
    st = Standardizer().fit(x, y)
    x_std, _ = st.transform(x, y)

    rng = np.random.default_rng(1)
    betas_std = rng.normal(size=(3, 2, 4))
    betas, intercepts = st.restore(betas_std)

    assert betas.shape == (3, 2, 4)
    assert intercepts.shape == (1, 2, 4)
    for g in range(2):
        for k in range(4):
            pred_std = x_std @ betas_std[:, g, k] + st.mean_y
            pred_orig = x @ betas[:, g, k] + intercepts[0, g, k]
            np.testing.assert_allclose(pred_orig, pred_std, rtol=1e-12, atol=1e-10)


def test_transform_before_fit_raises() -> None:
    x, y = _data()
    with pytest.raises(ValueError, match="must be fitted"):
        Standardizer().transform(x, y)


def test_transform_matches_scikit_learn_and_is_fortran_ordered() -> None:
    x, y = _data()
    st = Standardizer().fit(x, y)
    x_new = x[:7] * 2.0 + 1.0
    x_std, _ = st.transform(x_new, y[:7])
    np.testing.assert_allclose(x_std, StandardScaler().fit(x).transform(x_new))
    np.testing.assert_allclose(x_std, (x_new - st.mean_x) / st.scale_x)
    assert x_std.flags.f_contiguous
