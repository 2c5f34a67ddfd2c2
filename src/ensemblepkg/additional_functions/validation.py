"""Input checks run before any fitting or prediction work starts."""

import numbers

import numpy as np
import pandas as pd


def _is_integer_like(value):
    """
    Return True for integers and for floats holding an integral value (e.g. 1e5).
    Booleans are rejected.
    """
    if isinstance(value, (bool, np.bool_)):
        return False
    if isinstance(value, numbers.Integral):
        return True
    if isinstance(value, numbers.Real):
        return np.isfinite(value) and float(value) == np.floor(value)
    return False


def check_positive_int(value, name):
    """
    Check that `value` is a positive integer and return it as a Python int.

    Parameters
    ----------
    value : int or float
        Value to check. Integral floats such as ``1e5`` are accepted.
    name : str
        Parameter name used in the error message.

    Returns
    -------
    int
    """
    if not isinstance(value, numbers.Real) or isinstance(value, (bool, np.bool_)):
        raise TypeError(f"{name} should be numeric, got {type(value).__name__}")
    if not _is_integer_like(value) or value <= 0:
        raise ValueError(f"{name} should be a positive integer, got {value!r}")
    return int(value)


def check_open_unit(value, name, include_upper=False):
    """
    Check that `value` lies in (0, 1), or in (0, 1] when `include_upper` is True.
    """
    if not isinstance(value, numbers.Real) or isinstance(value, (bool, np.bool_)):
        raise TypeError(f"{name} should be numeric, got {type(value).__name__}")
    value = float(value)
    upper_ok = value <= 1 if include_upper else value < 1
    if not (value > 0 and upper_ok):
        interval = "(0, 1]" if include_upper else "(0, 1)"
        raise ValueError(f"{name} should be in {interval}, got {value!r}")
    return value


def check_design_matrix(x):
    """
    Validate the design matrix.

    Parameters
    ----------
    x : numpy.ndarray or pandas.DataFrame
        Two-dimensional numeric matrix without missing, infinite or nan values.

    Returns
    -------
    x_arr : numpy.ndarray
        The matrix as a float64 array.
    feature_names : tuple of str
        DataFrame column names, or ``x0, x1, ...`` for arrays.
    """
    if isinstance(x, pd.DataFrame):
        feature_names = tuple(str(c) for c in x.columns)
        non_numeric = [c for c in x.columns if not pd.api.types.is_numeric_dtype(x[c])]
        if non_numeric:
            raise TypeError(f"x should only contain numeric columns, got non-numeric columns {non_numeric}")
        x_arr = x.to_numpy(dtype=float)
    elif isinstance(x, np.ndarray):
        if x.ndim != 2:
            raise ValueError(f"x should be a 2-dimensional matrix, got {x.ndim} dimension(s)")
        if not (np.issubdtype(x.dtype, np.number) or x.dtype == bool):
            raise TypeError(f"x should be numeric, got dtype {x.dtype}")
        x_arr = np.asarray(x, dtype=float)
        feature_names = tuple(f"x{j}" for j in range(x_arr.shape[1]))
    else:
        raise TypeError(f"x should belong to one of the following classes: numpy.ndarray, pandas.DataFrame, got {type(x).__name__}")

    if x_arr.shape[0] == 0 or x_arr.shape[1] == 0:
        raise ValueError(f"x should have at least one row and one column, got shape {x_arr.shape}")
    if not np.all(np.isfinite(x_arr)):
        raise ValueError("x should not have missing, infinite or nan values")
    return x_arr, feature_names


def check_response(y, n_rows):
    """
    Validate the response and coerce it to a 1-D float64 array of length `n_rows`.

    A 2-D input with a single column is flattened; more columns are rejected.
    """
    if isinstance(y, pd.DataFrame):
        y = y.to_numpy()
    elif isinstance(y, pd.Series):
        y = y.to_numpy()
    elif isinstance(y, (list, tuple)):
        y = np.asarray(y)
    elif not isinstance(y, np.ndarray):
        raise TypeError(f"y should belong to one of the following classes: numpy.ndarray, pandas.Series, list, got {type(y).__name__}")

    if not (np.issubdtype(y.dtype, np.number) or y.dtype == bool):
        raise TypeError(f"y should be numeric, got dtype {y.dtype}")
    if y.ndim == 2:
        if y.shape[1] > 1:
            raise ValueError(f"y should be a vector, got a matrix with {y.shape[1]} columns")
        y = y[:, 0]
    elif y.ndim != 1:
        raise ValueError(f"y should be a vector, got {y.ndim} dimension(s)")

    y = np.asarray(y, dtype=float)
    if not np.all(np.isfinite(y)):
        raise ValueError("y should not have missing, infinite or nan values")
    if y.shape[0] != n_rows:
        raise ValueError(f"y and x should have the same number of rows, got {y.shape[0]} and {n_rows}")
    return y


def check_num_folds(num_folds, n_rows):
    """Number of folds must be an integer in [2, n_rows]."""
    num_folds = check_positive_int(num_folds, "num_folds")
    if num_folds < 2 or num_folds > n_rows:
        raise ValueError(f"num_folds should be an integer between 2 and the number of rows ({n_rows}), got {num_folds}")
    return num_folds


def check_choice(value, name, choices):
    """Check that `value` is one of `choices`."""
    if value not in choices:
        raise ValueError(f"{name} should be one of {list(choices)}, got {value!r}")
    return value
