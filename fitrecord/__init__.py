"""
Fit-result container with correlation-matrix extraction.

This package records the outcome of a numerical minimization over named
parameters and derives a correlation matrix and global correlation
coefficients from the minimizer's covariance data.
"""

from fitrecord.adapters import estimated_distance_to_minimum, record_from_optimize_result
from fitrecord.config import ExtractionConfig
from fitrecord.covariance import (
    CovarianceSource,
    DenseCovariance,
    PackedCovariance,
    global_correlation_coefficients,
    pack_lower_triangle,
    packed_index,
    unpack_lower_triangle,
)
from fitrecord.diagnostics import ExtractionReport, FitResultWarning
from fitrecord.extract import CorrelationExtractor, correlation_from_source, external_indices
from fitrecord.params import ParameterSnapshot, snapshot
from fitrecord.result import ParameterRecord

__all__ = [
    "ParameterRecord",
    "ParameterSnapshot",
    "snapshot",
    "CorrelationExtractor",
    "correlation_from_source",
    "external_indices",
    "ExtractionConfig",
    "ExtractionReport",
    "FitResultWarning",
    "CovarianceSource",
    "PackedCovariance",
    "DenseCovariance",
    "global_correlation_coefficients",
    "pack_lower_triangle",
    "unpack_lower_triangle",
    "packed_index",
    "record_from_optimize_result",
    "estimated_distance_to_minimum",
]
