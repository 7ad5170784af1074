"""
Covariance sources for correlation extraction.

Minimizers expose their error matrix in different shapes. MINUIT-style
minimizers keep a packed lower-triangular buffer plus an internal-to-external
parameter permutation and precomputed global correlation coefficients;
scipy-style fitters return a dense covariance matrix. This module defines the
narrow `CovarianceSource` protocol that the extractor reads from, and
adapters for both layouts:

  - `PackedCovariance`: packed lower triangle, row-major, 1-based packed index
    m*(m-1)/2 + n for m >= n.
  - `DenseCovariance`: dense symmetric matrix; global correlations are derived
    from the inverse when not supplied.

All positions in the protocol are 0-based internal positions.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np
from scipy import linalg

from fitrecord.diagnostics import warn


@runtime_checkable
class CovarianceSource(Protocol):
    """
    Read-only view of a finished minimizer's error matrix.
    """

    def parameter_count(self) -> int:
        ...

    def covariance(self, i: int, j: int) -> float:
        ...

    def external_index(self, i: int) -> int:
        ...

    def global_correlation(self, i: int) -> float:
        ...


def packed_index(i: int, j: int) -> int:
    """
    1-based flat index of logical entry (i, j) in packed lower-triangular storage.

    Both i and j are 1-based; the entry is symmetric so the order does not matter.
    """
    i = int(i)
    j = int(j)
    if i < 1 or j < 1:
        raise ValueError("packed indices are 1-based")
    m = max(i, j)
    n = min(i, j)
    return m * (m - 1) // 2 + n


def packed_size(n: int) -> int:
    n = int(n)
    return n * (n + 1) // 2


def _size_from_packed_length(length: int) -> int:
    # Solve n(n+1)/2 == length for integer n.
    n = int((np.sqrt(8.0 * float(length) + 1.0) - 1.0) / 2.0)
    while packed_size(n) < length:
        n += 1
    if packed_size(n) != length:
        raise ValueError(
            f"Packed buffer length {length} is not a triangular number n(n+1)/2"
        )
    return n


def pack_lower_triangle(matrix: np.ndarray) -> np.ndarray:
    """
    Pack the lower triangle (diagonal included) of a square matrix row by row.
    """
    a = np.asarray(matrix, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError("matrix must be square")
    rows, cols = np.tril_indices(a.shape[0])
    # tril_indices walks row-major, which is the packed order.
    return a[rows, cols].copy()


def unpack_lower_triangle(buffer: Sequence[float]) -> np.ndarray:
    """
    Expand a packed lower-triangular buffer into a dense symmetric matrix.
    """
    b = np.asarray(buffer, dtype=float)
    if b.ndim != 1:
        raise ValueError("packed buffer must be 1D")
    n = _size_from_packed_length(int(b.shape[0]))
    out = np.zeros((n, n), dtype=float)
    rows, cols = np.tril_indices(n)
    out[rows, cols] = b
    out[cols, rows] = b
    return out


def _validate_permutation(external_indices: Optional[Sequence[int]], n: int) -> np.ndarray:
    if external_indices is None:
        return np.arange(n, dtype=int)
    perm = np.asarray(external_indices, dtype=int)
    if perm.ndim != 1 or int(perm.shape[0]) != n:
        raise ValueError(f"external_indices must have length {n}")
    if sorted(perm.tolist()) != list(range(n)):
        raise ValueError("external_indices must be a permutation of range(n)")
    return perm


def _validate_global(global_correlations: Optional[Sequence[float]], n: int) -> Optional[np.ndarray]:
    if global_correlations is None:
        return None
    g = np.asarray(global_correlations, dtype=float)
    if g.ndim != 1 or int(g.shape[0]) != n:
        raise ValueError(f"global_correlations must have length {n}")
    return g


class PackedCovariance:
    """
    Adapter over a MINUIT-style packed covariance workspace.

    Args:
        buffer: Packed lower triangle of the N×N covariance, row-major.
        external_indices: For each internal position i, the position of that
            parameter in the caller's (external) ordering. Identity if omitted.
        global_correlations: Precomputed global correlation coefficient per
            internal position. Zeros if omitted.

    The buffer is copied on construction, so the adapter never aliases
    (or mutates) the minimizer's workspace.
    """

    def __init__(
        self,
        buffer: Sequence[float],
        *,
        external_indices: Optional[Sequence[int]] = None,
        global_correlations: Optional[Sequence[float]] = None,
    ) -> None:
        b = np.array(buffer, dtype=float)
        if b.ndim != 1:
            raise ValueError("packed buffer must be 1D")
        self._buffer = b
        self._n = _size_from_packed_length(int(b.shape[0]))
        self._perm = _validate_permutation(external_indices, self._n)
        g = _validate_global(global_correlations, self._n)
        self._globcc = np.zeros(self._n, dtype=float) if g is None else g.copy()

    def parameter_count(self) -> int:
        return int(self._n)

    def covariance(self, i: int, j: int) -> float:
        return float(self._buffer[packed_index(int(i) + 1, int(j) + 1) - 1])

    def external_index(self, i: int) -> int:
        return int(self._perm[int(i)])

    def global_correlation(self, i: int) -> float:
        return float(self._globcc[int(i)])

    def to_dense(self) -> np.ndarray:
        return unpack_lower_triangle(self._buffer)


def global_correlation_coefficients(matrix: np.ndarray) -> np.ndarray:
    """
    MINUIT global correlation coefficients of a covariance matrix.

    g_i = sqrt(1 - 1 / (V_ii * (V^-1)_ii)), clipped to 0 when the radicand is
    negative. A singular matrix yields zeros and a `FitResultWarning`.
    """
    v = np.asarray(matrix, dtype=float)
    n = int(v.shape[0])
    try:
        vinv = linalg.inv(v)
    except (linalg.LinAlgError, ValueError):
        vinv = None
    if vinv is None or not np.all(np.isfinite(vinv)):
        warn("Covariance matrix is singular, global correlations set to 0")
        return np.zeros(n, dtype=float)

    with np.errstate(divide="ignore", invalid="ignore"):
        denom = np.diag(v) * np.diag(vinv)
        radicand = 1.0 - 1.0 / denom
    radicand = np.where(np.isfinite(radicand) & (radicand > 0.0), radicand, 0.0)
    return np.sqrt(radicand)


class DenseCovariance:
    """
    Adapter over a dense covariance matrix (e.g. scipy's `pcov` or `hess_inv`).
    """

    def __init__(
        self,
        matrix: np.ndarray,
        *,
        external_indices: Optional[Sequence[int]] = None,
        global_correlations: Optional[Sequence[float]] = None,
    ) -> None:
        v = np.array(matrix, dtype=float)
        if v.ndim != 2 or v.shape[0] != v.shape[1]:
            raise ValueError("covariance matrix must be square")
        self._matrix = v
        self._n = int(v.shape[0])
        self._perm = _validate_permutation(external_indices, self._n)
        g = _validate_global(global_correlations, self._n)
        if g is None:
            g = global_correlation_coefficients(v) if self._n > 0 else np.zeros(0, dtype=float)
        self._globcc = np.array(g, dtype=float)

    def parameter_count(self) -> int:
        return int(self._n)

    def covariance(self, i: int, j: int) -> float:
        return float(self._matrix[int(i), int(j)])

    def external_index(self, i: int) -> int:
        return int(self._perm[int(i)])

    def global_correlation(self, i: int) -> float:
        return float(self._globcc[int(i)])

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix.copy()

    def to_packed(self) -> PackedCovariance:
        return PackedCovariance(
            pack_lower_triangle(self._matrix),
            external_indices=self._perm,
            global_correlations=self._globcc,
        )
