"""
Unit tests for correlation extraction from covariance sources.
"""

from __future__ import annotations

import warnings

import numpy as np
import pytest

from fitrecord.config import ExtractionConfig
from fitrecord.covariance import DenseCovariance, PackedCovariance, pack_lower_triangle
from fitrecord.diagnostics import FitResultWarning
from fitrecord.extract import CorrelationExtractor, correlation_from_source
from fitrecord.params import ParameterSnapshot
from fitrecord.result import ParameterRecord


EXAMPLE_BUFFER = [4.0, 2.0, 9.0, 1.0, 3.0, 16.0]


def _record(names, *, with_final: bool = True) -> ParameterRecord:
    rec = ParameterRecord("fit", "test fit", objective_value=12.5, edm=1e-6)
    rec.set_initial_parameters([ParameterSnapshot(n, 0.0) for n in names])
    if with_final:
        rec.set_final_parameters([ParameterSnapshot(n, 1.0, 0.1) for n in names])
    return rec


def _positive_definite(n: int, seed: int) -> np.ndarray:
    rng = np.random.default_rng(int(seed))
    m = rng.normal(size=(n, n))
    return m @ m.T + float(n) * np.eye(n)


def test_worked_example_three_parameters() -> None:
    rec = _record(["A", "B", "C"])
    report = CorrelationExtractor().fill(rec, PackedCovariance(EXAMPLE_BUFFER))

    assert report.ok
    assert report.n_parameters == 3
    assert np.isclose(rec.correlation("A", "B"), 2.0 / np.sqrt(4.0 * 9.0))
    assert np.isclose(rec.correlation("A", "C"), 0.125)
    assert np.isclose(rec.correlation("B", "C"), 0.25)
    for n in ("A", "B", "C"):
        assert np.isclose(rec.correlation(n, n), 1.0)


@pytest.mark.parametrize("n", [2, 3, 6])
def test_matrix_is_symmetric_with_unit_diagonal(n: int) -> None:
    cov = _positive_definite(n, seed=10 + n)
    matrix, _ = correlation_from_source(PackedCovariance(pack_lower_triangle(cov)))
    assert matrix.shape == (n, n)
    assert np.allclose(matrix, matrix.T)
    assert np.allclose(np.diag(matrix), 1.0)
    assert np.all(np.abs(matrix) <= 1.0 + 1e-12)


def test_permutation_places_rows_in_external_order() -> None:
    # External order is A, B, C; the minimizer stores C, A, B internally.
    cov_ext = np.array(
        [
            [4.0, 2.0, 1.0],
            [2.0, 9.0, 3.0],
            [1.0, 3.0, 16.0],
        ]
    )
    ext = [2, 0, 1]
    cov_int = cov_ext[np.ix_(ext, ext)]
    src = PackedCovariance(
        pack_lower_triangle(cov_int),
        external_indices=ext,
        global_correlations=[0.3, 0.1, 0.2],
    )

    rec = _record(["A", "B", "C"])
    assert rec.fill_correlation_matrix(src).ok
    assert np.isclose(rec.correlation("A", "B"), 1.0 / 3.0)
    assert np.isclose(rec.correlation("C", "A"), 0.125)
    assert np.isclose(rec.correlation("B", "C"), 0.25)
    assert rec.global_correlations == {"A": 0.1, "B": 0.2, "C": 0.3}


def test_global_correlations_are_copied_verbatim() -> None:
    # Implausible values are not recomputed or clipped.
    src = PackedCovariance(EXAMPLE_BUFFER, global_correlations=[0.5, 1.5, -0.2])
    rec = _record(["A", "B", "C"])
    rec.fill_correlation_matrix(src)
    assert rec.global_correlation("B") == 1.5
    assert rec.global_correlation("C") == -0.2


def test_negative_variance_product_uses_absolute_value() -> None:
    src = PackedCovariance([-4.0, 2.0, 9.0])
    rec = _record(["A", "B"])
    rec.fill_correlation_matrix(src)
    assert np.isclose(rec.correlation("A", "B"), 2.0 / 6.0)
    # The self-correlation of a negative variance is passed through.
    assert np.isclose(rec.correlation("A", "A"), -1.0)


def test_zero_variance_passes_non_finite_values_through() -> None:
    src = PackedCovariance([0.0, 1.0, 4.0])
    rec = _record(["A", "B"])
    assert rec.fill_correlation_matrix(src).ok
    assert not np.isfinite(rec.correlation("A", "B"))


class TestGuards:
    def test_single_parameter_is_skipped(self) -> None:
        rec = _record(["A"])
        with pytest.warns(FitResultWarning):
            report = rec.fill_correlation_matrix(PackedCovariance([4.0]))
        assert report.status == "too_few_parameters"
        assert not report.ok
        assert rec.correlation_matrix.shape == (0, 0)
        assert rec.global_correlations == {}
        with pytest.warns(FitResultWarning):
            assert rec.correlation_row("A") is None

    def test_zero_parameters_is_skipped(self) -> None:
        rec = ParameterRecord()
        with pytest.warns(FitResultWarning):
            report = rec.fill_correlation_matrix(PackedCovariance([]))
        assert report.status == "too_few_parameters"

    def test_missing_initial_parameters_is_skipped(self) -> None:
        rec = ParameterRecord()
        with pytest.warns(FitResultWarning):
            report = rec.fill_correlation_matrix(PackedCovariance(EXAMPLE_BUFFER))
        assert report.status == "no_parameters"
        assert not rec.has_correlations

    def test_count_mismatch_is_skipped(self) -> None:
        rec = _record(["A", "B"])
        with pytest.warns(FitResultWarning):
            report = rec.fill_correlation_matrix(PackedCovariance(EXAMPLE_BUFFER))
        assert report.status == "count_mismatch"
        assert rec.correlation_matrix.shape == (0, 0)

    def test_skip_clears_previous_data(self) -> None:
        rec = _record(["A", "B", "C"])
        rec.fill_correlation_matrix(PackedCovariance(EXAMPLE_BUFFER))
        assert rec.has_correlations
        with pytest.warns(FitResultWarning):
            rec.fill_correlation_matrix(PackedCovariance([1.0]))
        assert not rec.has_correlations

    def test_warnings_can_be_silenced(self) -> None:
        rec = _record(["A"])
        extractor = CorrelationExtractor(ExtractionConfig(emit_warnings=False))
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            report = extractor.fill(rec, PackedCovariance([4.0]))
        assert report.status == "too_few_parameters"


class TestListMismatch:
    def test_mismatched_final_list_warns_but_extracts(self) -> None:
        rec = _record(["A", "B", "C"], with_final=False)
        rec.set_final_parameters([ParameterSnapshot("B", 1.0), ParameterSnapshot("A", 1.0)])
        with pytest.warns(FitResultWarning):
            report = rec.fill_correlation_matrix(PackedCovariance(EXAMPLE_BUFFER))
        assert report.ok
        assert np.isclose(rec.correlation("A", "C"), 0.125)

    def test_mismatch_policy_ignore_is_silent(self) -> None:
        rec = _record(["A", "B", "C"], with_final=False)
        rec.set_final_parameters([ParameterSnapshot("A", 1.0)])
        config = ExtractionConfig(list_mismatch="ignore")
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert rec.fill_correlation_matrix(PackedCovariance(EXAMPLE_BUFFER), config).ok

    def test_matching_lists_are_silent(self) -> None:
        rec = _record(["A", "B", "C"])
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            assert rec.fill_correlation_matrix(PackedCovariance(EXAMPLE_BUFFER)).ok


def test_reextraction_reflects_only_latest_input() -> None:
    rec = _record(["A", "B", "C"])
    rec.fill_correlation_matrix(PackedCovariance(EXAMPLE_BUFFER))
    first = rec.correlation_matrix

    cov = np.array(
        [
            [1.0, -0.5, 0.0],
            [-0.5, 1.0, 0.2],
            [0.0, 0.2, 1.0],
        ]
    )
    rec.fill_correlation_matrix(DenseCovariance(cov))
    second = rec.correlation_matrix

    assert second.shape == (3, 3)
    assert np.allclose(second, cov)
    assert not np.allclose(first, second)


def test_source_is_not_mutated() -> None:
    buf = np.array(EXAMPLE_BUFFER)
    src = PackedCovariance(buf)
    rec = _record(["A", "B", "C"])
    rec.fill_correlation_matrix(src)
    assert buf.tolist() == EXAMPLE_BUFFER
    assert src.to_dense()[2, 2] == 16.0


def test_invalid_config_is_rejected() -> None:
    with pytest.raises(ValueError):
        CorrelationExtractor(ExtractionConfig(min_floating=1))


class _ListSource:
    # Hand-written CovarianceSource backed by a dense matrix and an unchecked permutation.
    def __init__(self, cov, external, global_corr=None) -> None:
        self._cov = np.asarray(cov, dtype=float)
        self._external = list(external)
        self._global = list(global_corr) if global_corr is not None else [0.0] * len(self._external)

    def parameter_count(self) -> int:
        return int(self._cov.shape[0])

    def covariance(self, i: int, j: int) -> float:
        return float(self._cov[i, j])

    def external_index(self, i: int) -> int:
        return self._external[i]

    def global_correlation(self, i: int) -> float:
        return float(self._global[i])


class TestExternalPermutation:
    COV = [[4.0, 2.0], [2.0, 9.0]]

    def test_repeated_index_is_skipped(self) -> None:
        rec = _record(["A", "B"])
        with pytest.warns(FitResultWarning, match="permutation"):
            report = rec.fill_correlation_matrix(_ListSource(self.COV, [0, 0], [0.5, 0.5]))
        assert report.status == "bad_permutation"
        assert not report.ok
        assert not rec.has_correlations
        assert rec.global_correlations == {}

    def test_out_of_range_index_is_skipped(self) -> None:
        rec = _record(["A", "B"])
        with pytest.warns(FitResultWarning):
            report = CorrelationExtractor().fill(rec, _ListSource(self.COV, [0, 2]))
        assert report.status == "bad_permutation"
        assert rec.correlation_matrix.shape == (0, 0)

    def test_bad_permutation_clears_previous_data(self) -> None:
        rec = _record(["A", "B"])
        assert rec.fill_correlation_matrix(_ListSource(self.COV, [1, 0])).ok
        with pytest.warns(FitResultWarning):
            rec.fill_correlation_matrix(_ListSource(self.COV, [1, 1]))
        assert not rec.has_correlations

    def test_valid_custom_source_is_extracted(self) -> None:
        rec = _record(["A", "B"])
        report = rec.fill_correlation_matrix(_ListSource(self.COV, [1, 0], [0.2, 0.7]))
        assert report.ok
        assert np.isclose(rec.correlation("A", "B"), 2.0 / 6.0)
        assert rec.global_correlations == {"A": 0.7, "B": 0.2}

    def test_correlation_from_source_rejects_non_permutation(self) -> None:
        with pytest.raises(ValueError):
            correlation_from_source(_ListSource(self.COV, [0, 0]))


class TestWarningLocation:
    def test_skip_through_record_points_at_caller(self) -> None:
        rec = _record(["A"])
        with pytest.warns(FitResultWarning) as caught:
            rec.fill_correlation_matrix(PackedCovariance([4.0]))
        assert caught[0].filename == __file__

    def test_skip_through_extractor_points_at_caller(self) -> None:
        rec = ParameterRecord()
        with pytest.warns(FitResultWarning) as caught:
            CorrelationExtractor().fill(rec, PackedCovariance(EXAMPLE_BUFFER))
        assert caught[0].filename == __file__

    def test_list_mismatch_points_at_caller(self) -> None:
        rec = _record(["A", "B", "C"], with_final=False)
        rec.set_final_parameters([ParameterSnapshot("A", 1.0)])
        with pytest.warns(FitResultWarning) as caught:
            rec.fill_correlation_matrix(PackedCovariance(EXAMPLE_BUFFER))
        assert caught[0].filename == __file__
