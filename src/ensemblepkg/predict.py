"""
predict.py
==========

Fitted ensemble object and the ensemble predictor.

Predictions and coefficients are obtained by simple averaging over the
ensemble members: for each requested index of the sparsity path, the G
coefficient vectors and the G intercepts are averaged, and the response is
``intercept + newx @ coef``.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass, fields
from typing import Optional, Tuple, Union

import numpy as np
import pandas as pd

PREDICTION_TYPES = ("response", "coefficients")

IndexLike = Union[int, np.integer, list, tuple, np.ndarray]


def average_groups(values: np.ndarray) -> np.ndarray:
    """Average a (rows, G, L) array over the group axis, giving (rows, L)."""
    return np.asarray(values, dtype=float).mean(axis=1)


@dataclass(frozen=True, eq=False)
class EnsembleENResult:
    """Output of an ensemble elastic-net fit. Arrays are read-only.

    Attributes
    ----------
    betas:
        Coefficients on the original scale, shape (p, num_groups, L), along the
        sparsity path at the optimal diversity penalty.
    intercepts:
        Intercepts, shape (1, num_groups, L).
    index_opt:
        0-based index of the optimal sparsity penalty in `lambdas_sparsity`.
    cv_errors:
        Full CV MSE surface, shape (len(lambdas_diversity), L).
    cv_nonconverged:
        Number of folds whose solve hit `max_iter`, same shape as `cv_errors`.
    """

    betas: np.ndarray
    intercepts: np.ndarray
    index_opt: int
    lambda_sparsity_opt: float
    lambda_diversity_opt: float
    lambdas_sparsity: np.ndarray
    lambdas_diversity: np.ndarray
    cv_mse_sparsity: np.ndarray
    cv_mse_diversity: np.ndarray
    cv_opt: float
    cv_errors: np.ndarray
    cv_nonconverged: np.ndarray
    converged: np.ndarray
    n_iter: np.ndarray
    feature_names: Tuple[str, ...]
    permutation: np.ndarray

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray):
                value.flags.writeable = False

    @property
    def num_features(self) -> int:
        return self.betas.shape[0]

    @property
    def num_groups(self) -> int:
        return self.betas.shape[1]

    @property
    def num_lambdas(self) -> int:
        return self.betas.shape[2]

    def predict(self, newx=None, index: Optional[IndexLike] = None, type: str = "response"):
        return predict(self, newx, index=index, type=type)

    def coef(self, index: Optional[IndexLike] = None):
        return coefficients(self, index=index)

    def coef_frame(self, index: Optional[IndexLike] = None) -> pd.DataFrame:
        """Averaged coefficients as a DataFrame, one column per requested lambda_sparsity."""
        idx, _ = _check_index(self.index_opt if index is None else index, self.num_lambdas)
        coefs = coefficients(self, index=idx)
        return pd.DataFrame(
            coefs,
            index=["intercept", *self.feature_names],
            columns=[float(v) for v in self.lambdas_sparsity[idx]],
        )

    def cv_table(self) -> pd.DataFrame:
        """CV surface in long format, sorted by lambda_diversity then decreasing lambda_sparsity."""
        n_div, n_sp = self.cv_errors.shape
        return pd.DataFrame(
            {
                "lambda_diversity": np.repeat(self.lambdas_diversity, n_sp),
                "lambda_sparsity": np.tile(self.lambdas_sparsity, n_div),
                "cv_mse": self.cv_errors.ravel(),
                "nonconverged_folds": self.cv_nonconverged.ravel(),
            }
        )


# -----------------------------------------------------------------------------
# Argument checks
# -----------------------------------------------------------------------------

def _check_index(index: IndexLike, n_lambdas: int) -> Tuple[np.ndarray, bool]:
    """Return (indices as int array, scalar flag). Out-of-range values are an error, never clamped."""
    scalar = isinstance(index, numbers.Number) and not isinstance(index, (bool, np.bool_))
    idx = np.atleast_1d(np.asarray(index))
    if idx.ndim != 1 or idx.size == 0:
        raise ValueError("index has to be a non-empty integer or 1-dimensional sequence of integers")
    if idx.dtype == bool or not np.issubdtype(idx.dtype, np.number):
        raise ValueError(f"index has to contain integers, got dtype {idx.dtype}")
    if not np.all(np.isfinite(idx)) or np.any(idx != np.floor(idx)):
        raise ValueError("index has to contain integers")
    if np.any(idx < 0) or np.any(idx >= n_lambdas):
        raise ValueError(
            f"index has to be between 0 and {n_lambdas - 1} (the length of the grid for the sparsity "
            f"penalties minus one), got {idx.tolist()}"
        )
    return idx.astype(int), scalar


def _check_newx(newx, p: int) -> np.ndarray:
    if newx is None:
        raise ValueError("newx value has to be supplied when type is 'response'")
    if isinstance(newx, (pd.DataFrame, pd.Series)):
        newx = newx.to_numpy()
    newx = np.asarray(newx)
    if not (np.issubdtype(newx.dtype, np.number) or newx.dtype == bool):
        raise ValueError(f"newx has to be a numeric vector or matrix, got dtype {newx.dtype}")
    newx = newx.astype(float)
    if newx.ndim == 1:
        newx = newx.reshape(1, -1)
    elif newx.ndim != 2:
        raise ValueError(f"newx has to be a vector or a matrix, got {newx.ndim} dimensions")
    if newx.shape[1] != p:
        raise ValueError(f"newx does not have the right number of elements: expected {p} columns, got {newx.shape[1]}")
    return newx


# -----------------------------------------------------------------------------
# Predictor
# -----------------------------------------------------------------------------

def predict(result: EnsembleENResult, newx=None, index: Optional[IndexLike] = None, type: str = "response"):
    """Predict from a fitted ensemble.

    Parameters
    ----------
    result:
        Fitted ensemble.
    newx:
        Matrix (n_new, p) or vector (p,) of new observations. Ignored when
        `type` is "coefficients".
    index:
        Index or indices into `result.lambdas_sparsity`. Defaults to `result.index_opt`.
    type:
        "response" for predictions, "coefficients" for [intercept, coefficients].

    Returns
    -------
    numpy.ndarray
        For a scalar index, a vector: n_new predictions or p + 1 coefficients.
        For a sequence of indices, a matrix with one column per index.
    """
    if type not in PREDICTION_TYPES:
        raise ValueError(f"type should be one of {list(PREDICTION_TYPES)}, got {type!r}")
    idx, scalar = _check_index(result.index_opt if index is None else index, result.num_lambdas)

    coef = average_groups(result.betas[:, :, idx])
    intercept = average_groups(result.intercepts[:, :, idx])[0]

    if type == "response":
        newx = _check_newx(newx, result.num_features)
        output = intercept[None, :] + newx @ coef
    else:
        output = np.vstack((intercept[None, :], coef))

    return output[:, 0] if scalar else output


def coefficients(result: EnsembleENResult, index: Optional[IndexLike] = None):
    """Averaged [intercept, coefficients] at the requested index (or indices)."""
    return predict(result, index=index, type="coefficients")
