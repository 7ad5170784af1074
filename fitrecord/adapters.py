"""
Adapters from scipy fitters to fit records.

`record_from_optimize_result` turns a finished `scipy.optimize.minimize` run
into a populated `ParameterRecord` and a `DenseCovariance` built from the
inverse-Hessian approximation. The covariance is returned rather than
extracted, so that the caller chooses when (and with which configuration)
to fill the correlation matrix.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import OptimizeResult

from fitrecord.covariance import DenseCovariance
from fitrecord.params import ParameterCollection, ParameterSnapshot
from fitrecord.result import ParameterRecord


def _dense_hess_inv(hess_inv: Any) -> np.ndarray:
    # L-BFGS-B returns a LinearOperator instead of an array.
    if hasattr(hess_inv, "todense"):
        hess_inv = hess_inv.todense()
    return np.atleast_2d(np.asarray(hess_inv, dtype=float))


def estimated_distance_to_minimum(gradient: Optional[np.ndarray], covariance: np.ndarray) -> float:
    """
    MINUIT-style EDM: 0.5 * g^T V g, with V the covariance (inverse Hessian).
    """
    if gradient is None:
        return float("nan")
    g = np.asarray(gradient, dtype=float).ravel()
    if int(g.shape[0]) != int(covariance.shape[0]):
        return float("nan")
    return float(0.5 * g @ covariance @ g)


def record_from_optimize_result(
    result: OptimizeResult,
    names: Sequence[str],
    initial: Sequence[float],
    *,
    constants: Optional[ParameterCollection] = None,
    name: str = "",
    title: str = "",
) -> Tuple[ParameterRecord, DenseCovariance]:
    """
    Build a fit record from a scipy minimization result.

    Args:
        result: Finished `scipy.optimize.minimize` result carrying `hess_inv`.
        names: Floating parameter names, in the order of `result.x`.
        initial: Starting point passed to the minimizer.
        constants: Optional constant parameters (see `snapshot`).
        name: Record name.
        title: Record title.

    Returns:
        Tuple of (record with parameter lists and fit quality set, covariance
        source for `ParameterRecord.fill_correlation_matrix`).

    Raises:
        ValueError: If the result carries no inverse Hessian or lengths disagree.
    """
    names = [str(n) for n in names]
    x = np.atleast_1d(np.asarray(result.x, dtype=float))
    x0 = np.atleast_1d(np.asarray(initial, dtype=float))
    if len(names) != int(x.shape[0]) or len(names) != int(x0.shape[0]):
        raise ValueError(
            f"names ({len(names)}), result.x ({x.shape[0]}) and initial ({x0.shape[0]}) "
            "must have the same length"
        )

    hess_inv = result.get("hess_inv")
    if hess_inv is None:
        raise ValueError("OptimizeResult has no 'hess_inv'; use a method that provides it (e.g. BFGS)")
    cov = _dense_hess_inv(hess_inv)
    if cov.shape != (len(names), len(names)):
        raise ValueError(f"hess_inv has shape {cov.shape}, expected {(len(names), len(names))}")

    errors = np.sqrt(np.abs(np.diag(cov)))
    edm = estimated_distance_to_minimum(result.get("jac"), cov)

    record = ParameterRecord(
        name=name,
        title=title,
        objective_value=float(result.fun),
        edm=edm,
    )
    record.set_constant_parameters(constants or [])
    record.set_initial_parameters(
        [ParameterSnapshot(n, float(v)) for n, v in zip(names, x0)]
    )
    record.set_final_parameters(
        [ParameterSnapshot(n, float(v), float(e)) for n, v, e in zip(names, x, errors)]
    )
    return record, DenseCovariance(cov)
