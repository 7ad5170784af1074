"""
Correlation extraction from a minimizer's covariance data.

The extractor walks the covariance source in the minimizer's internal order,
normalises every entry by the diagonal variances, and scatters the result
into the external (initial-parameter) order through the source's
internal-to-external permutation. Global correlation coefficients are copied
from the source, not recomputed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

from fitrecord.config import ExtractionConfig
from fitrecord.covariance import CovarianceSource
from fitrecord.diagnostics import (
    STATUS_BAD_PERMUTATION,
    STATUS_COUNT_MISMATCH,
    STATUS_NO_PARAMETERS,
    STATUS_OK,
    STATUS_TOO_FEW_PARAMETERS,
    ExtractionReport,
    warn,
)
from fitrecord.params import names_of

if TYPE_CHECKING:
    from fitrecord.result import ParameterRecord


def external_indices(source: CovarianceSource) -> Optional[np.ndarray]:
    """
    Internal-to-external permutation of `source`, or None when it is not a
    permutation of range(n) (repeated or out-of-range indices).
    """
    n = int(source.parameter_count())
    ext = [int(source.external_index(i)) for i in range(n)]
    if sorted(ext) != list(range(n)):
        return None
    return np.array(ext, dtype=int)


def correlation_from_source(source: CovarianceSource) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the dense correlation matrix and global coefficients in external order.

    corr(i, j) = cov(i, j) / sqrt(|cov(i, i) * cov(j, j)|)

    The absolute value guards against a slightly negative variance product
    near a singular covariance. No further sanity check is applied: zero
    variances give inf/nan and |corr| > 1 is passed through unchanged.

    Returns:
        Tuple of (matrix with shape (n, n), global coefficients with shape (n,)).

    Raises:
        ValueError: If the source's external indices are not a permutation.
    """
    ext = external_indices(source)
    if ext is None:
        raise ValueError("external indices of the covariance source are not a permutation of range(n)")

    n = int(source.parameter_count())
    cov = np.empty((n, n), dtype=float)
    for i in range(n):
        for j in range(i + 1):
            c = float(source.covariance(i, j))
            cov[i, j] = c
            cov[j, i] = c

    var = np.diag(cov)
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        corr_internal = cov / np.sqrt(np.abs(np.outer(var, var)))

    matrix = np.full((n, n), np.nan, dtype=float)
    matrix[np.ix_(ext, ext)] = corr_internal

    globcc = np.full(n, np.nan, dtype=float)
    globcc[ext] = [float(source.global_correlation(i)) for i in range(n)]
    return matrix, globcc


class CorrelationExtractor:
    """
    Fill a `ParameterRecord`'s correlation data from a covariance source.

    Extraction never raises for degenerate input: it is skipped, the record's
    correlation data is cleared, a `FitResultWarning` is issued, and the
    returned `ExtractionReport` carries the reason.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None) -> None:
        self.config = config or ExtractionConfig()
        self.config.validate()

    def _skip_reason(self, record: "ParameterRecord", source: CovarianceSource, n: int) -> Optional[Tuple[str, str]]:
        if n < int(self.config.min_floating):
            return (
                STATUS_TOO_FEW_PARAMETERS,
                f"Number of floating parameters is {n} (<{int(self.config.min_floating)}), "
                "correlation matrix not filled",
            )

        floating = record.initial_parameters
        if floating is None:
            return (
                STATUS_NO_PARAMETERS,
                "List of initial parameters must be filled before the correlation matrix",
            )

        if len(floating) != n:
            return (
                STATUS_COUNT_MISMATCH,
                f"Covariance source has {n} parameters but {len(floating)} "
                "initial floating parameters are set, correlation matrix not filled",
            )

        if external_indices(source) is None:
            return (
                STATUS_BAD_PERMUTATION,
                "External indices of the covariance source are not a permutation "
                f"of range({n}), correlation matrix not filled",
            )
        return None

    def fill(
        self,
        record: "ParameterRecord",
        source: CovarianceSource,
        *,
        stacklevel: int = 2,
    ) -> ExtractionReport:
        """
        Extract correlations from `source` into `record`.

        `stacklevel` is forwarded to the warnings issued here and follows the
        `warnings.warn` convention relative to this method (2 is the caller).
        """
        n = int(source.parameter_count())

        reason = self._skip_reason(record, source, n)
        if reason is not None:
            status, message = reason
            record.clear_correlations()
            if self.config.emit_warnings:
                warn(message, stacklevel=stacklevel)
            return ExtractionReport(status=status, message=message, n_parameters=n)

        if self.config.list_mismatch == "warn" and self.config.emit_warnings:
            final = record.final_parameters
            if final is not None and names_of(final) != names_of(record.initial_parameters):
                warn(
                    "Initial and final floating parameter lists differ in length or order; "
                    "correlations are indexed by the initial list",
                    stacklevel=stacklevel,
                )

        matrix, globcc = correlation_from_source(source)
        record.store_correlations(matrix, globcc)
        return ExtractionReport(status=STATUS_OK, message="ok", n_parameters=n)
