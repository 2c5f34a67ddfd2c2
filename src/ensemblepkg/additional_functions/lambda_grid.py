"""This is the module building the grids of sparsity and diversity penalties."""

import warnings

import numpy as np
from sklearn.exceptions import ConvergenceWarning

from ensemblepkg.solver import SolverConfig, solve_ensemble

EPS_SPARSITY = 1e-4
EPS_DIVERSITY = 1e-3
DIVERSITY_START = 0.1
DIVERSITY_MAX_STEPS = 15
# relative slack on lambda_max so that rounding in the solver cannot leave
# a coefficient a few ulps above the threshold
LAMBDA_MAX_MARGIN = 1e-9


def lambda_sparsity_max(x, y, alpha):
    """
    Smallest sparsity penalty for which every coefficient of every group is zero.

    At beta = 0 the diversity weights vanish, so the usual elastic-net bound applies
    whatever the diversity penalty:

        lambda_max = max_j |x_j' y| / (n * alpha)

    The value is inflated by `LAMBDA_MAX_MARGIN` so that the all-zero solution
    also holds in floating point.

    Parameters
    ----------
    x : numpy.ndarray
        Standardized design matrix (n, p).
    y : numpy.ndarray
        Centered response (n,).
    alpha : float
        Elastic-net mixing parameter in (0, 1].

    Returns
    -------
    float
    """
    n = x.shape[0]
    return float(np.max(np.abs(x.T @ y)) / (n * alpha) * (1.0 + LAMBDA_MAX_MARGIN))


def build_sparsity_grid(x, y, alpha, num_lambdas, eps=EPS_SPARSITY):
    """
    Decreasing geometric grid from lambda_max down to lambda_max * eps.

    If x'y is zero (e.g. constant response) lambda_max is 0 and there is nothing
    to select; the grid is then built from 1 so that it stays strictly decreasing
    and positive. Every fit on it is the zero vector.
    """
    lam_max = lambda_sparsity_max(x, y, alpha)
    if lam_max <= 0:
        lam_max = 1.0
    if num_lambdas == 1:
        return np.array([lam_max])
    return np.geomspace(lam_max, lam_max * eps, num_lambdas)


def supports_are_disjoint(betas):
    """
    True when no feature has a non-zero coefficient in more than one group.

    Parameters
    ----------
    betas : numpy.ndarray
        Coefficients, shape (p, G).
    """
    return bool(np.all(np.count_nonzero(betas, axis=1) <= 1))


def lambda_diversity_max(x, y, lambda_sparsity, num_groups, cfg, start=DIVERSITY_START, max_steps=DIVERSITY_MAX_STEPS):
    """
    Find a diversity penalty beyond which the ensemble degenerates.

    Starting at `start`, the ensemble is fitted at `lambda_sparsity` (warm-started) and
    the penalty is multiplied by 10 until the group supports are pairwise disjoint:
    the first group then carries the elastic-net fit and the other groups are pushed
    off its features.

    At most `max_steps` penalties are tried. If none separates the groups, the
    last one tried is returned with a `ConvergenceWarning`.
    """
    lam = float(start)
    if num_groups == 1:
        return lam

    betas = None
    for step in range(max_steps):
        if step > 0:
            lam *= 10
        betas, _, _ = solve_ensemble(x, y, lambda_sparsity, lam, num_groups, cfg, betas_init=betas)
        if supports_are_disjoint(betas):
            return lam

    warnings.warn(
        f"The group supports still overlap at lambda diversity = {lam:.6g} after {max_steps} steps; "
        "using it as the largest diversity penalty.",
        ConvergenceWarning,
    )
    return lam


def build_diversity_grid(x, y, lambdas_sparsity, num_groups, num_lambdas, cfg=None, eps=EPS_DIVERSITY):
    """
    Grid of diversity penalties: 0 followed by an increasing geometric sequence.

    The upper end comes from `lambda_diversity_max` evaluated at the smallest sparsity
    penalty, where the groups overlap the most.

    Returns
    -------
    numpy.ndarray
        ``[0]`` when `num_lambdas` is 1, else
        ``[0, lam_max * eps, ..., lam_max]`` of length `num_lambdas`.
    """
    if num_lambdas == 1:
        return np.zeros(1)
    if cfg is None:
        cfg = SolverConfig()
    lam_max = lambda_diversity_max(x, y, float(np.min(lambdas_sparsity)), num_groups, cfg)
    if num_lambdas == 2:
        return np.array([0.0, lam_max])
    return np.concatenate(([0.0], np.geomspace(lam_max * eps, lam_max, num_lambdas - 1)))
