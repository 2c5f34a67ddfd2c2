import numpy as np

from ensemblepkg.additional_functions.lambda_grid import build_diversity_grid, build_sparsity_grid
from ensemblepkg.additional_functions.standardize import Standardizer
from ensemblepkg.cross_validation import contiguous_folds, cross_validate, cv_fold_errors, select_optimum
from ensemblepkg.solver import SolverConfig


def _data(n=45, p=5, seed=0):
    rng = np.random.default_rng(seed)
    x = rng.normal(size=(n, p))
    y = x[:, 0] - 0.5 * x[:, 1] + rng.normal(size=n)
    return Standardizer().fit_transform(x, y)


def test_contiguous_folds_last_takes_remainder() -> None:
    splits = contiguous_folds(23, 5)
    sizes = [len(test_idx) for _, test_idx in splits]
    assert sizes == [4, 4, 4, 4, 7]

    np.testing.assert_array_equal(np.concatenate([test_idx for _, test_idx in splits]), np.arange(23))
    for train_idx, test_idx in splits:
        assert len(np.intersect1d(train_idx, test_idx)) == 0
        assert len(train_idx) + len(test_idx) == 23
        # contiguous block
        assert np.all(np.diff(test_idx) == 1)


def test_contiguous_folds_even_split() -> None:
    splits = contiguous_folds(12, 4)
    assert len(splits) == 4
    for k, (train_idx, test_idx) in enumerate(splits):
        np.testing.assert_array_equal(test_idx, np.arange(3 * k, 3 * k + 3))
        np.testing.assert_array_equal(train_idx, np.setdiff1d(np.arange(12), test_idx))


def test_select_optimum_prefers_larger_sparsity_then_smaller_diversity() -> None:
    errors = np.array(
        [
            [3.0, 2.0, 1.0, 1.0],
            [3.0, 1.0, 1.5, 1.0],
            [3.0, 1.0, 1.0, 4.0],
        ]
    )
    assert select_optimum(errors) == (1, 1)

    errors = np.array([[2.0, 0.5], [0.7, 0.6]])
    assert select_optimum(errors) == (0, 1)


def test_fold_error_at_lambda_max_is_null_model_error() -> None:
    x, y = _data()
    cfg = SolverConfig(alpha=1.0)
    lambdas_sparsity = build_sparsity_grid(x, y, 1.0, 5)
    train_idx, test_idx = contiguous_folds(x.shape[0], 3)[1]

    fold_id, sq_err, failed = cv_fold_errors(
        1, x, y, train_idx, test_idx, lambdas_sparsity, np.array([0.0, 1.0]), 2, cfg
    )
    assert fold_id == 1
    assert sq_err.shape == (2, 5)
    assert not failed.any()
    big = np.array([1e6])
    _, sq_big, _ = cv_fold_errors(1, x, y, train_idx, test_idx, big, np.array([0.0]), 2, cfg)
    np.testing.assert_allclose(sq_big[0, 0], np.sum(y[test_idx] ** 2))


def test_cross_validate_shapes_and_thread_independence() -> None:
    x, y = _data()
    cfg = SolverConfig(alpha=1.0, tolerance=1e-9)
    lambdas_sparsity = build_sparsity_grid(x, y, 1.0, 8)
    lambdas_diversity = build_diversity_grid(x, y, lambdas_sparsity, 3, 4, cfg=cfg)

    results = [
        cross_validate(x, y, lambdas_sparsity, lambdas_diversity, 3, 5, cfg, num_threads=t)
        for t in (1, 2, 4)
    ]
    for cv in results:
        assert cv.errors.shape == (4, 8)
        assert cv.nonconverged.shape == (4, 8)
        assert cv.fold_sizes == (9, 9, 9, 9, 9)
        assert np.all(np.isfinite(cv.errors))
        np.testing.assert_array_equal(cv.errors, results[0].errors)
        assert select_optimum(cv.errors) == select_optimum(results[0].errors)


def test_cross_validate_counts_non_converged_folds() -> None:
    x, y = _data()
    cfg = SolverConfig(alpha=1.0, tolerance=1e-12, max_iter=1)
    lambdas_sparsity = build_sparsity_grid(x, y, 1.0, 4)
    cv = cross_validate(x, y, lambdas_sparsity, np.array([0.0, 0.5]), 2, 3, cfg)

    assert np.all(cv.nonconverged <= 3)
    assert cv.nonconverged[:, -1].max() == 3
