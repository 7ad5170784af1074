"""
Fit-result container.

`ParameterRecord` holds the input and output of a single fit:

  - values of all constant parameters
  - initial and final values of the floating parameters, with errors
  - correlation matrix and global correlation coefficients
  - objective value and estimated distance to minimum (EDM) at the minimum

No references to the fitted model, the data, or the live parameter objects
are stored. Correlation queries are best-effort: an unknown parameter name
issues a `FitResultWarning` and yields a neutral value instead of raising,
so that a reporting pipeline is never aborted by a bad lookup.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

import numpy as np

from fitrecord.config import ExtractionConfig
from fitrecord.covariance import CovarianceSource
from fitrecord.diagnostics import ExtractionReport, warn
from fitrecord.extract import CorrelationExtractor
from fitrecord.params import ParameterCollection, ParameterSnapshot, names_of, snapshot


class ParameterRecord:
    """
    Container for the outcome of a minimization over named parameters.

    Attributes:
        name: Short identifier of the fit.
        title: Human-readable description.
    """

    def __init__(
        self,
        name: str = "",
        title: str = "",
        *,
        objective_value: float = float("nan"),
        edm: float = float("nan"),
    ) -> None:
        self.name = str(name)
        self.title = str(title)
        self._objective_value = float(objective_value)
        self._edm = float(edm)

        self._constant: Optional[Tuple[ParameterSnapshot, ...]] = None
        self._initial: Optional[Tuple[ParameterSnapshot, ...]] = None
        self._final: Optional[Tuple[ParameterSnapshot, ...]] = None

        self._corr_matrix: Optional[np.ndarray] = None
        self._global_corr: Optional[np.ndarray] = None
        # name -> position in the initial floating list
        self._positions: Dict[str, int] = {}

    # ---- fit quality -------------------------------------------------------

    @property
    def objective_value(self) -> float:
        """Minimized objective function value (e.g. NLL)."""
        return self._objective_value

    @property
    def edm(self) -> float:
        """Estimated distance to minimum."""
        return self._edm

    # ---- parameter lists ---------------------------------------------------

    def set_constant_parameters(self, params: ParameterCollection) -> None:
        self._constant = snapshot(params)

    def set_initial_parameters(self, params: ParameterCollection) -> None:
        """
        Store the initial values of the floating parameters.

        The initial list defines the external ordering of the correlation
        matrix, so any previously extracted correlation data is discarded.
        """
        self._initial = snapshot(params)
        self._positions = {p.name: i for i, p in enumerate(self._initial)}
        self.clear_correlations()

    def set_final_parameters(self, params: ParameterCollection) -> None:
        self._final = snapshot(params)

    @property
    def constant_parameters(self) -> Optional[Tuple[ParameterSnapshot, ...]]:
        return self._constant

    @property
    def initial_parameters(self) -> Optional[Tuple[ParameterSnapshot, ...]]:
        return self._initial

    @property
    def final_parameters(self) -> Optional[Tuple[ParameterSnapshot, ...]]:
        return self._final

    @property
    def floating_names(self) -> Tuple[str, ...]:
        return names_of(self._initial)

    # ---- correlation data --------------------------------------------------

    def fill_correlation_matrix(
        self,
        source: CovarianceSource,
        config: Optional[ExtractionConfig] = None,
    ) -> ExtractionReport:
        """
        Extract the correlation matrix and global correlations from `source`.

        See `CorrelationExtractor.fill` for the skip conditions.
        """
        return CorrelationExtractor(config).fill(self, source, stacklevel=3)

    def store_correlations(self, matrix: np.ndarray, global_corr: np.ndarray) -> None:
        """
        Replace the correlation data with `matrix` and `global_corr`, both in
        initial-parameter order.

        Raises:
            ValueError: If the shapes do not match the floating parameter count.
        """
        n = len(self.floating_names)
        m = np.array(matrix, dtype=float)
        g = np.array(global_corr, dtype=float)
        if m.shape != (n, n):
            raise ValueError(f"correlation matrix has shape {m.shape}, expected {(n, n)}")
        if g.shape != (n,):
            raise ValueError(f"global correlations have shape {g.shape}, expected {(n,)}")
        self._corr_matrix = m
        self._global_corr = g

    def clear_correlations(self) -> None:
        self._corr_matrix = None
        self._global_corr = None

    @property
    def has_correlations(self) -> bool:
        return self._corr_matrix is not None

    @property
    def correlation_matrix(self) -> np.ndarray:
        """
        Copy of the dense correlation matrix in initial-parameter order.

        Shape (0, 0) when no correlation data has been extracted.
        """
        if self._corr_matrix is None:
            return np.zeros((0, 0), dtype=float)
        return self._corr_matrix.copy()

    @property
    def global_correlations(self) -> Dict[str, float]:
        if self._global_corr is None:
            return {}
        return {n: float(g) for n, g in zip(self.floating_names, self._global_corr)}

    @staticmethod
    def _unknown(name: str) -> str:
        return f"Variable {name!r} is not a floating parameter in the fit"

    def correlation_row(self, name: str) -> Optional[Dict[str, float]]:
        """
        Correlation coefficients of `name` with every floating parameter.

        Returns:
            Ordered mapping of parameter name to coefficient (including the
            self-correlation), or None when `name` is not a floating parameter
            or no correlation matrix has been filled.
        """
        pos = self._positions.get(str(name))
        if pos is None:
            warn(self._unknown(name))
            return None
        if self._corr_matrix is None:
            warn("Correlation matrix has not been filled")
            return None
        return {n: float(c) for n, c in zip(self.floating_names, self._corr_matrix[pos])}

    def correlation(self, name_a: str, name_b: str) -> float:
        """
        Correlation coefficient between two floating parameters.

        Returns 0.0 when either name is unknown or no matrix has been filled.
        """
        pos_a = self._positions.get(str(name_a))
        if pos_a is None:
            warn(self._unknown(name_a))
            return 0.0
        if self._corr_matrix is None:
            warn("Correlation matrix has not been filled")
            return 0.0
        pos_b = self._positions.get(str(name_b))
        if pos_b is None:
            warn(self._unknown(name_b))
            return 0.0
        return float(self._corr_matrix[pos_a, pos_b])

    def global_correlation(self, name: str) -> float:
        """
        Global correlation coefficient of `name`, 0.0 when unavailable.
        """
        pos = self._positions.get(str(name))
        if pos is None:
            warn(self._unknown(name))
            return 0.0
        if self._global_corr is None:
            warn("Global correlations have not been filled")
            return 0.0
        return float(self._global_corr[pos])

    def __repr__(self) -> str:
        return (
            f"ParameterRecord(name={self.name!r}, n_floating={len(self.floating_names)}, "
            f"objective_value={self._objective_value:.6g}, edm={self._edm:.3g})"
        )
