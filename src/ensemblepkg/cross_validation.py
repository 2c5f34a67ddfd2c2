"""K-fold cross-validation of the ensemble over the (lambda_diversity, lambda_sparsity) grid."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from sklearn.model_selection import PredefinedSplit

from ensemblepkg.predict import average_groups
from ensemblepkg.solver import SolverConfig, solve_path


@dataclass(frozen=True, eq=False)
class CVResult:
    errors: np.ndarray  # (D, L) mean squared prediction error
    nonconverged: np.ndarray  # (D, L) number of folds whose solve hit max_iter
    fold_sizes: Tuple[int, ...]


def contiguous_folds(n: int, num_folds: int) -> List[Tuple[np.ndarray, np.ndarray]]:
    """Split rows 0..n-1 into `num_folds` contiguous blocks; the last block takes the remainder.

    Returns a list of (train_idx, test_idx) pairs ordered by fold.
    """
    test_fold = np.minimum(np.arange(n) // (n // num_folds), num_folds - 1)
    return list(PredefinedSplit(test_fold=test_fold).split())


def cv_fold_errors(
    fold_id: int,
    x: np.ndarray,
    y: np.ndarray,
    train_idx: np.ndarray,
    test_idx: np.ndarray,
    lambdas_sparsity: np.ndarray,
    lambdas_diversity: np.ndarray,
    num_groups: int,
    cfg: SolverConfig,
) -> Tuple[int, np.ndarray, np.ndarray]:
    """Squared held-out error of one fold over the whole grid.

    Notes
    -----
    Safe for threaded parallelism: `x` and `y` are only read, and every array
    written here is owned by this call.

    Returns (fold_id, summed squared errors (D, L), non-converged flags (D, L)).
    """
    x_train = np.asfortranarray(x[train_idx])
    y_train = y[train_idx]
    x_test = x[test_idx]
    y_test = y[test_idx]

    sq_err = np.zeros((len(lambdas_diversity), len(lambdas_sparsity)), dtype=float)
    failed = np.zeros_like(sq_err, dtype=bool)

    for d, lam_div in enumerate(lambdas_diversity):
        betas, _, converged = solve_path(x_train, y_train, lambdas_sparsity, lam_div, num_groups, cfg)
        pred = x_test @ average_groups(betas)
        sq_err[d] = np.sum((y_test[:, None] - pred) ** 2, axis=0)
        failed[d] = ~converged

    return fold_id, sq_err, failed


def cross_validate(
    x: np.ndarray,
    y: np.ndarray,
    lambdas_sparsity: np.ndarray,
    lambdas_diversity: np.ndarray,
    num_groups: int,
    num_folds: int,
    cfg: SolverConfig,
    num_threads: int = 1,
    verbose: bool = False,
) -> CVResult:
    """Run every fold (in a thread pool when `num_threads` > 1) and average the errors.

    Fold results are summed in fold order whatever order they finish in.
    """
    splits = contiguous_folds(x.shape[0], num_folds)

    def _run(fold_id: int, train_idx: np.ndarray, test_idx: np.ndarray):
        out = cv_fold_errors(fold_id, x, y, train_idx, test_idx, lambdas_sparsity, lambdas_diversity, num_groups, cfg)
        if verbose:
            print(f"Fold {fold_id + 1}/{num_folds} done ({len(test_idx)} held-out rows)")
        return out

    if num_threads > 1:
        with ThreadPoolExecutor(max_workers=num_threads) as ex:
            futs = [ex.submit(_run, fold_id, train_idx, test_idx) for fold_id, (train_idx, test_idx) in enumerate(splits)]
            out = [f.result() for f in futs]
    else:
        out = [_run(fold_id, train_idx, test_idx) for fold_id, (train_idx, test_idx) in enumerate(splits)]

    # Keep ordering stable by fold_id
    out.sort(key=lambda t: t[0])

    total = np.zeros((len(lambdas_diversity), len(lambdas_sparsity)), dtype=float)
    nonconverged = np.zeros(total.shape, dtype=int)
    for _, sq_err, failed in out:
        total += sq_err
        nonconverged += failed

    return CVResult(
        errors=total / x.shape[0],
        nonconverged=nonconverged,
        fold_sizes=tuple(len(test_idx) for _, test_idx in splits),
    )


def select_optimum(errors: np.ndarray) -> Tuple[int, int]:
    """Return (diversity index, sparsity index) of the smallest CV error.

    Ties go to the larger sparsity penalty (smaller index), then to the smaller
    diversity penalty.
    """
    d_idx, l_idx = np.nonzero(errors == np.min(errors))
    best = np.lexsort((d_idx, l_idx))[0]
    return int(d_idx[best]), int(l_idx[best])
