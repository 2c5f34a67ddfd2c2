import dataclasses

import numpy as np
import pandas as pd
import pytest

from ensemblepkg.predict import EnsembleENResult, average_groups, coefficients, predict


def _result() -> EnsembleENResult:
    # p = 2 features, G = 2 groups, L = 3 sparsity values
    betas = np.zeros((2, 2, 3))
    betas[:, 0, 1] = [1.0, 0.0]
    betas[:, 1, 1] = [0.0, 2.0]
    betas[:, 0, 2] = [1.0, 1.0]
    betas[:, 1, 2] = [3.0, 1.0]
    intercepts = np.array([[[5.0, 4.0, 3.0], [5.0, 2.0, 1.0]]])
    return EnsembleENResult(
        betas=betas,
        intercepts=intercepts,
        index_opt=1,
        lambda_sparsity_opt=0.5,
        lambda_diversity_opt=0.0,
        lambdas_sparsity=np.array([1.0, 0.5, 0.25]),
        lambdas_diversity=np.array([0.0, 1.0]),
        cv_mse_sparsity=np.array([3.0, 1.0, 2.0]),
        cv_mse_diversity=np.array([1.0, 1.5]),
        cv_opt=1.0,
        cv_errors=np.array([[3.0, 1.0, 2.0], [3.0, 1.5, 2.5]]),
        cv_nonconverged=np.zeros((2, 3), dtype=int),
        converged=np.ones(3, dtype=bool),
        n_iter=np.ones(3, dtype=int),
        feature_names=("a", "b"),
        permutation=np.arange(4),
    )


def test_average_groups() -> None:
    values = np.arange(12.0).reshape(2, 3, 2)
    np.testing.assert_allclose(average_groups(values), values.mean(axis=1))


def test_coefficients_at_optimum() -> None:
    res = _result()
    coefs = coefficients(res)
    np.testing.assert_allclose(coefs, [3.0, 0.5, 1.0])
    assert coefs.shape == (res.num_features + 1,)


def test_coefficients_for_several_indices() -> None:
    coefs = _result().coef(index=[0, 2])
    assert coefs.shape == (3, 2)
    np.testing.assert_allclose(coefs[:, 0], [5.0, 0.0, 0.0])
    np.testing.assert_allclose(coefs[:, 1], [2.0, 2.0, 1.0])


def test_predict_response() -> None:
    res = _result()
    newx = np.array([[1.0, 1.0], [2.0, 0.0]])
    np.testing.assert_allclose(predict(res, newx), [4.5, 4.0])

    out = res.predict(newx, index=[1, 2])
    assert out.shape == (2, 2)
    np.testing.assert_allclose(out[:, 1], [5.0, 6.0])


def test_predict_vector_and_dataframe() -> None:
    res = _result()
    np.testing.assert_allclose(res.predict(np.array([1.0, 1.0])), [4.5])
    np.testing.assert_allclose(res.predict(pd.DataFrame({"a": [2.0], "b": [0.0]})), [4.0])


def test_coefficients_type_ignores_newx() -> None:
    res = _result()
    np.testing.assert_allclose(res.predict(np.ones((7, 9)), type="coefficients"), [3.0, 0.5, 1.0])


@pytest.mark.parametrize("index", [3, -1, [0, 5], 1.5, []])
def test_out_of_range_index_raises(index) -> None:
    with pytest.raises(ValueError, match="index has to"):
        coefficients(_result(), index=index)


def test_predict_argument_errors() -> None:
    res = _result()
    with pytest.raises(ValueError, match="newx value has to be supplied"):
        res.predict()
    with pytest.raises(ValueError, match="newx does not have the right number of elements"):
        res.predict(np.ones((3, 3)))
    with pytest.raises(ValueError, match="type should be one of"):
        res.predict(np.ones((3, 2)), type="link")


def test_result_is_immutable() -> None:
    res = _result()
    with pytest.raises(ValueError):
        res.betas[0, 0, 0] = 10.0
    with pytest.raises(dataclasses.FrozenInstanceError):
        res.index_opt = 0


def test_coef_frame_and_cv_table() -> None:
    res = _result()
    frame = res.coef_frame(index=[1, 2])
    assert list(frame.index) == ["intercept", "a", "b"]
    assert list(frame.columns) == [0.5, 0.25]
    assert frame.loc["b", 0.5] == 1.0

    table = res.cv_table()
    assert list(table.columns) == ["lambda_diversity", "lambda_sparsity", "cv_mse", "nonconverged_folds"]
    assert len(table) == 6
    row = table[(table["lambda_diversity"] == 1.0) & (table["lambda_sparsity"] == 0.5)]
    assert float(row["cv_mse"].iloc[0]) == 1.5
