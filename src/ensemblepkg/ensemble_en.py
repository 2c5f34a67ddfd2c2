"""
ensemble_en.py
==============

Ensembles of elastic-net linear models with a sparsity and a diversity penalty.

`num_groups` (G) linear models b_1, ..., b_G are fitted jointly by minimizing

    sum_g (1/2n)||y - X b_g||^2 + lambda_s * ((1 - alpha)/2 ||b_g||_2^2 + alpha ||b_g||_1)
          + (lambda_d / 2) * sum_{h != g} sum_j |b_jh * b_jg|

Larger lambda_s gives sparser models, larger lambda_d gives more diverse ones.
With lambda_d = 0 every model equals the elastic-net estimator at lambda_s.

Both penalties are chosen by K-fold cross-validation, the prediction of the
ensemble being the simple average of its members. X and y are standardized
(X to zero mean and unit variance, y centered) before any computation; the
returned coefficients are on the original scale.

Main steps of `EnsembleEN.fit`
------------------------------
1. Validate inputs and permute the rows (seedable).
2. Standardize.
3. Build the sparsity and diversity grids.
4. Cross-validate over the grid (folds in parallel).
5. Refit on the full data along the sparsity path at the optimal diversity penalty.
"""

from __future__ import annotations

import functools
import time
import warnings
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
from sklearn.exceptions import ConvergenceWarning

from ensemblepkg.additional_functions.lambda_grid import build_diversity_grid, build_sparsity_grid
from ensemblepkg.additional_functions.standardize import Standardizer
from ensemblepkg.additional_functions.validation import (
    check_choice,
    check_design_matrix,
    check_num_folds,
    check_open_unit,
    check_positive_int,
    check_response,
)
from ensemblepkg.cross_validation import CVResult, cross_validate, select_optimum
from ensemblepkg.predict import EnsembleENResult, IndexLike
from ensemblepkg.solver import SOLVER_METHODS, SolverConfig, solve_path


# -----------------------------------------------------------------------------
# Small utilities
# -----------------------------------------------------------------------------

_INDENT_LEVEL = 0


def time_it(func):
    """Decorator printing execution time with indentation for nested calls (verbose instances only)."""
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if not getattr(self, "verbose", False):
            return func(self, *args, **kwargs)
        global _INDENT_LEVEL
        _INDENT_LEVEL += 1
        tabs = "\t" * (_INDENT_LEVEL - 1)
        t0 = time.time()
        print(f"{tabs}Executing <{func.__name__}>")
        try:
            return func(self, *args, **kwargs)
        finally:
            dt = time.time() - t0
            mins = int(dt // 60)
            secs = dt % 60
            print(f"{tabs}Function <{func.__name__}> execution time : {mins:.0f} minutes and {secs:.0f} seconds")
            _INDENT_LEVEL -= 1
    return wrapper


# -----------------------------------------------------------------------------
# Estimator
# -----------------------------------------------------------------------------

class EnsembleEN:
    """Ensemble of elastic-net models with cross-validated sparsity and diversity penalties.

    Parameters
    ----------
    num_lambdas_sparsity:
        Number of penalty parameters for the individual coefficients.
    num_lambdas_diversity:
        Number of penalty parameters for the interactions between groups.
    alpha:
        Elastic-net mixing constant in (0, 1]. 1 is the lasso.
    num_groups:
        Number of models in the ensemble.
    tolerance:
        Stop cycling over the groups when no coefficient moves more than this, in (0, 1).
    max_iter:
        Maximum number of cycles over the groups per solve.
    num_folds:
        Number of cross-validation folds.
    num_threads:
        Number of folds processed concurrently.
    random_state:
        Seed (or Generator) of the row permutation applied before fitting.
    shuffle:
        Set to False to fit on the rows in the order given.
    solver:
        "cd" (coordinate descent) or "cvxpy" (block descent, exact group solves; slow).
    verbose:
        Print progress and timings.
    """

    def __init__(
        self,
        num_lambdas_sparsity: int = 100,
        num_lambdas_diversity: int = 100,
        alpha: float = 1.0,
        num_groups: int = 10,
        tolerance: float = 1e-7,
        max_iter: int = 100000,
        num_folds: int = 10,
        num_threads: int = 1,
        random_state=None,
        shuffle: bool = True,
        solver: str = "cd",
        verbose: bool = False,
    ):
        self.num_lambdas_sparsity = check_positive_int(num_lambdas_sparsity, "num_lambdas_sparsity")
        self.num_lambdas_diversity = check_positive_int(num_lambdas_diversity, "num_lambdas_diversity")
        self.alpha = check_open_unit(alpha, "alpha", include_upper=True)
        self.num_groups = check_positive_int(num_groups, "num_groups")
        self.tolerance = check_open_unit(tolerance, "tolerance")
        self.max_iter = check_positive_int(max_iter, "max_iter")
        self.num_folds = check_positive_int(num_folds, "num_folds")
        self.num_threads = check_positive_int(num_threads, "num_threads")
        self.random_state = random_state
        self.shuffle = bool(shuffle)
        self.solver = check_choice(solver, "solver", SOLVER_METHODS)
        self.verbose = bool(verbose)

        self.solver_cfg = SolverConfig(alpha=self.alpha, tolerance=self.tolerance, max_iter=self.max_iter, method=self.solver)
        self.result_: Optional[EnsembleENResult] = None

    # -------------------------
    # Public API
    # -------------------------

    @time_it
    def fit(self, x, y) -> "EnsembleEN":
        x_arr, feature_names = check_design_matrix(x)
        n = x_arr.shape[0]
        y_arr = check_response(y, n)
        num_folds = check_num_folds(self.num_folds, n)

        if self.shuffle:
            permutation = np.random.default_rng(self.random_state).permutation(n)
        else:
            permutation = np.arange(n)

        # Means do not depend on the row order
        self.standardizer = Standardizer().fit(x_arr, y_arr)
        x_std, y_cen = self.standardizer.transform(x_arr[permutation], y_arr[permutation])

        lambdas_sparsity, lambdas_diversity = self._build_grids(x_std, y_cen)
        cv = self._cross_validate(x_std, y_cen, lambdas_sparsity, lambdas_diversity, num_folds)
        d_opt, l_opt = select_optimum(cv.errors)

        if self.verbose:
            print(
                f"Optimal lambda sparsity = {lambdas_sparsity[l_opt]:.6g} (index {l_opt}), "
                f"lambda diversity = {lambdas_diversity[d_opt]:.6g}, CV MSE = {cv.errors[d_opt, l_opt]:.6g}"
            )

        betas_std, n_iter, converged = self._refit(x_std, y_cen, lambdas_sparsity, float(lambdas_diversity[d_opt]))
        betas, intercepts = self.standardizer.restore(betas_std)

        if not (np.all(np.isfinite(betas)) and np.all(np.isfinite(intercepts))):
            raise FloatingPointError("The fitted coefficients contain non-finite values")
        self._warn_convergence(cv, converged)

        self.result_ = EnsembleENResult(
            betas=betas,
            intercepts=intercepts,
            index_opt=l_opt,
            lambda_sparsity_opt=float(lambdas_sparsity[l_opt]),
            lambda_diversity_opt=float(lambdas_diversity[d_opt]),
            lambdas_sparsity=lambdas_sparsity,
            lambdas_diversity=lambdas_diversity,
            cv_mse_sparsity=cv.errors[d_opt, :].copy(),
            cv_mse_diversity=cv.errors[:, l_opt].copy(),
            cv_opt=float(cv.errors[d_opt, l_opt]),
            cv_errors=cv.errors,
            cv_nonconverged=cv.nonconverged,
            converged=converged,
            n_iter=n_iter,
            feature_names=feature_names,
            permutation=permutation,
        )
        return self

    def predict(self, newx=None, index: Optional[IndexLike] = None, type: str = "response"):
        return self._fitted().predict(newx, index=index, type=type)

    def coef(self, index: Optional[IndexLike] = None):
        return self._fitted().coef(index=index)

    def plot_curve(self, show: bool = True):
        """Plot the CV curves of the fitted ensemble."""
        return plot_cv_curves(self._fitted(), show=show)

    # -------------------------
    # Steps of the fit
    # -------------------------

    def _fitted(self) -> EnsembleENResult:
        if self.result_ is None:
            raise ValueError("This EnsembleEN instance is not fitted yet; call fit(x, y) first")
        return self.result_

    @time_it
    def _build_grids(self, x_std: np.ndarray, y_cen: np.ndarray):
        lambdas_sparsity = build_sparsity_grid(x_std, y_cen, self.alpha, self.num_lambdas_sparsity)
        lambdas_diversity = build_diversity_grid(
            x_std, y_cen, lambdas_sparsity, self.num_groups, self.num_lambdas_diversity, cfg=self.solver_cfg
        )
        if self.verbose:
            print(f"Lambda sparsity grid : {lambdas_sparsity[0]:.6g} -> {lambdas_sparsity[-1]:.6g} ({len(lambdas_sparsity)} values)")
            print(f"Lambda diversity grid : 0 -> {lambdas_diversity[-1]:.6g} ({len(lambdas_diversity)} values)")
        return lambdas_sparsity, lambdas_diversity

    @time_it
    def _cross_validate(self, x_std, y_cen, lambdas_sparsity, lambdas_diversity, num_folds) -> CVResult:
        return cross_validate(
            x_std,
            y_cen,
            lambdas_sparsity,
            lambdas_diversity,
            self.num_groups,
            num_folds,
            self.solver_cfg,
            num_threads=self.num_threads,
            verbose=self.verbose,
        )

    @time_it
    def _refit(self, x_std, y_cen, lambdas_sparsity, lambda_diversity):
        return solve_path(x_std, y_cen, lambdas_sparsity, lambda_diversity, self.num_groups, self.solver_cfg)

    def _warn_convergence(self, cv: CVResult, converged: np.ndarray) -> None:
        n_cv_failed = int(cv.nonconverged.sum())
        n_final_failed = int(np.sum(~converged))
        if n_cv_failed or n_final_failed:
            warnings.warn(
                f"Coordinate descent did not converge within max_iter={self.max_iter} cycles for "
                f"{n_cv_failed} cross-validation solve(s) and {n_final_failed} of {len(converged)} "
                f"solve(s) of the final path. Consider increasing max_iter or tolerance.",
                ConvergenceWarning,
            )


def ensemble_en(
    x,
    y,
    num_lambdas_sparsity: int = 100,
    num_lambdas_diversity: int = 100,
    alpha: float = 1.0,
    num_groups: int = 10,
    tolerance: float = 1e-7,
    max_iter: int = 100000,
    num_folds: int = 10,
    num_threads: int = 1,
    random_state=None,
    shuffle: bool = True,
    solver: str = "cd",
    verbose: bool = False,
) -> EnsembleENResult:
    """Fit an ensemble of elastic-net models; see `EnsembleEN` for the parameters."""
    model = EnsembleEN(
        num_lambdas_sparsity=num_lambdas_sparsity,
        num_lambdas_diversity=num_lambdas_diversity,
        alpha=alpha,
        num_groups=num_groups,
        tolerance=tolerance,
        max_iter=max_iter,
        num_folds=num_folds,
        num_threads=num_threads,
        random_state=random_state,
        shuffle=shuffle,
        solver=solver,
        verbose=verbose,
    )
    return model.fit(x, y).result_


# -----------------------------------------------------------------------------
# Plotting
# -----------------------------------------------------------------------------

def plot_cv_curves(result: EnsembleENResult, show: bool = True):
    """Two panels: CV MSE over lambda_sparsity (at the optimal lambda_diversity) and over lambda_diversity."""
    fig, (ax_s, ax_d) = plt.subplots(1, 2, figsize=(12, 5))

    ax_s.plot(np.log(result.lambdas_sparsity), result.cv_mse_sparsity, marker="o", markersize=3)
    ax_s.axvline(np.log(result.lambda_sparsity_opt), color="red", linestyle="--", label="optimum")
    ax_s.set_xlabel("log(lambda sparsity)")
    ax_s.set_ylabel("CV MSE")
    ax_s.set_title(f"Sparsity path at lambda diversity = {result.lambda_diversity_opt:.3g}")
    ax_s.legend()

    ax_d.plot(result.lambdas_diversity, result.cv_mse_diversity, marker="o", markersize=3)
    ax_d.axvline(result.lambda_diversity_opt, color="red", linestyle="--", label="optimum")
    if np.any(result.lambdas_diversity > 0):
        ax_d.set_xscale("symlog", linthresh=float(np.min(result.lambdas_diversity[result.lambdas_diversity > 0])))
    ax_d.set_xlabel("lambda diversity")
    ax_d.set_ylabel("CV MSE")
    ax_d.set_title(f"Diversity grid at lambda sparsity = {result.lambda_sparsity_opt:.3g}")
    ax_d.legend()

    fig.tight_layout()
    if show:
        plt.show()
    return fig
