#!/usr/bin/env python3
"""
Tests for sparse CCA.

Usage:
    pytest canon_word/test_cca.py
"""

import warnings

import numpy as np
import pytest

from canon_word.cca import SparseCCASolver, choose_smoothing
from canon_word.errors import MalformedInputError, NumericalDegeneracy, PreconditionViolation
from canon_word.sparse import SparseMatrix


def cca_statistics():
    """Counts from 9 paired observations over 5 x items and 6 y items."""
    covariance_xy = {
        0: {0: 3.0},
        1: {1: 1.0},
        2: {3: 1.0, 2: 1.0},
        3: {1: 1.0},
        4: {1: 1.0},
        5: {4: 1.0},
    }
    variance_x = {0: 3.0, 1: 3.0, 2: 1.0, 3: 1.0, 4: 1.0}
    variance_y = {0: 3.0, 1: 1.0, 2: 2.0, 3: 1.0, 4: 1.0, 5: 1.0}
    return covariance_xy, variance_x, variance_y


def cca_samples():
    """The same observations as one-hot pairs."""
    pairs = [(0, 0)] * 3 + [(1, 1), (3, 2), (2, 2), (1, 3), (1, 4), (4, 5)]
    examples_x = [{x: 1.0} for x, _ in pairs]
    examples_y = [{y: 1.0} for _, y in pairs]
    return examples_x, examples_y


def test_cca_from_statistics():
    solver = SparseCCASolver(cca_dim=2, smoothing_term=1.0)
    result = solver.perform_cca(*cca_statistics())

    assert result.rank == 2
    assert solver.cca_correlations[0] == pytest.approx(0.75, abs=1e-3)
    assert solver.cca_correlations[1] == pytest.approx(0.6124, abs=1e-3)
    assert result.projection_x.shape == (2, 5)
    assert result.projection_y.shape == (2, 6)


def test_cca_from_samples_matches_statistics():
    solver = SparseCCASolver(cca_dim=2, smoothing_term=1.0)
    result = solver.perform_cca_on_samples(*cca_samples())

    direct = SparseCCASolver(cca_dim=2, smoothing_term=1.0).perform_cca(*cca_statistics())
    np.testing.assert_allclose(result.correlations, direct.correlations, atol=1e-10)
    assert result.correlations[0] == pytest.approx(0.75, abs=1e-3)
    assert result.correlations[1] == pytest.approx(0.6124, abs=1e-3)


def test_projections_are_orthonormal():
    result = SparseCCASolver(cca_dim=3, smoothing_term=1.0).perform_cca(*cca_statistics())
    np.testing.assert_allclose(result.projection_x @ result.projection_x.T, np.eye(3), atol=1e-8)
    np.testing.assert_allclose(result.projection_y @ result.projection_y.T, np.eye(3), atol=1e-8)


def test_automatic_smoothing_is_smallest_marginal():
    solver = SparseCCASolver(cca_dim=2)
    result = solver.perform_cca(*cca_statistics())
    assert result.smoothing == 1.0
    assert result.correlations[0] == pytest.approx(0.75, abs=1e-3)

    assert choose_smoothing(np.array([0.0, 4.0]), np.array([2.0, 7.0])) == 2.0
    assert choose_smoothing(np.zeros(2), np.zeros(3)) == 0.0


def test_equal_correlations_warn_and_truncate():
    covariance = {i: {i: 1.0} for i in range(3)}
    variance = [1.0, 1.0, 1.0]
    solver = SparseCCASolver(cca_dim=2, smoothing_term=0.0)

    with pytest.warns(NumericalDegeneracy):
        result = solver.perform_cca(covariance, variance, variance)

    assert result.rank < 2
    assert len(result.correlations) == result.rank
    assert result.projection_x.shape == (result.rank, 3)


def random_count_statistics(num_x=300, num_y=200):
    np.random.seed(42)
    counts = np.random.poisson(1.0, size=(num_x, num_y)).astype(float)
    return SparseMatrix.from_scipy(counts), counts.sum(axis=1), counts.sum(axis=0)


def test_distinct_correlations_are_all_recovered():
    with warnings.catch_warnings():
        warnings.simplefilter("error", NumericalDegeneracy)
        result = SparseCCASolver(cca_dim=20, smoothing_term=1.0).perform_cca(*random_count_statistics())

    assert result.rank == 20
    assert np.all(np.diff(result.correlations) < 0)


def test_step_cap_reaches_the_svd():
    solver = SparseCCASolver(cca_dim=20, smoothing_term=1.0, max_iterations=20)
    with pytest.warns(NumericalDegeneracy):
        result = solver.perform_cca(*random_count_statistics())
    assert result.rank < 20


def test_mismatched_samples_are_rejected():
    examples_x, examples_y = cca_samples()
    with pytest.raises(MalformedInputError):
        SparseCCASolver(cca_dim=1).perform_cca_on_samples(examples_x, examples_y[:-1])


def test_dimension_larger_than_views_is_rejected():
    with pytest.raises(PreconditionViolation):
        SparseCCASolver(cca_dim=6, smoothing_term=1.0).perform_cca(*cca_statistics())


def test_malformed_statistics_are_rejected():
    _, variance_x, variance_y = cca_statistics()
    with pytest.raises(MalformedInputError):
        SparseCCASolver(cca_dim=1).perform_cca({0: {7: 1.0}}, variance_x, variance_y)

    with pytest.raises(MalformedInputError):
        SparseCCASolver(cca_dim=1, smoothing_term=0.0).perform_cca(
            {0: {0: 1.0}}, [0.0, 1.0], [0.0, 1.0]
        )

    with pytest.raises(MalformedInputError):
        SparseCCASolver(cca_dim=1).perform_cca({0: {0: 1.0}}, [-1.0, 1.0], [1.0, 1.0])
