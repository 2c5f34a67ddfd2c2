"""Centering / scaling of the design matrix and response, and its exact inversion."""

from __future__ import annotations

from typing import Tuple

import numpy as np
from sklearn.preprocessing import StandardScaler


class Standardizer:
    """
    Standardize X to zero mean and unit (population) variance per column, and center y.

    Zero-variance columns keep a scale factor of 1: after centering they are all
    zeros, and the solver leaves their coefficients at 0.

    Attributes
    ----------
    mean_x : numpy.ndarray
        Per-feature means, shape (p,).
    scale_x : numpy.ndarray
        Per-feature standard deviations (ddof=0), 1 for constant columns.
    mean_y : float
        Mean of the response.
    """

    def __init__(self):
        self._scaler = StandardScaler(with_mean=True, with_std=True)
        self.mean_x = None
        self.scale_x = None
        self.mean_y = None

    def fit(self, x: np.ndarray, y: np.ndarray) -> "Standardizer":
        self._scaler.fit(x)
        self.mean_x = np.asarray(self._scaler.mean_, dtype=float)
        self.scale_x = np.asarray(self._scaler.scale_, dtype=float)
        self.mean_y = float(np.mean(y))
        return self

    def transform(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return (standardized x, centered y). The x output is Fortran-ordered for column access."""
        if self.mean_x is None:
            raise ValueError("Standardizer must be fitted before calling transform")
        x_std = np.asfortranarray(self._scaler.transform(np.asarray(x, dtype=float)))
        y_cen = np.asarray(y, dtype=float) - self.mean_y
        return x_std, y_cen

    def fit_transform(self, x: np.ndarray, y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        return self.fit(x, y).transform(x, y)

    def restore(self, betas_std: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Map standardized coefficients back to the original scale.

        Parameters
        ----------
        betas_std:
            Coefficients in standardized space, shape (p, G, L).

        Returns
        -------
        betas:
            ``betas_std / scale_x`` broadcast over groups and path, shape (p, G, L).
        intercepts:
            ``mean_y - mean_x · betas``, shape (1, G, L).
        """
        if self.mean_x is None:
            raise ValueError("Standardizer must be fitted before calling restore")
        betas_std = np.asarray(betas_std, dtype=float)
        betas = betas_std / self.scale_x[:, None, None]
        intercepts = self.mean_y - np.einsum("j,jgl->gl", self.mean_x, betas)
        return betas, intercepts[None, :, :]
