#!/usr/bin/env python3
"""
Tests for the Lanczos truncated SVD.

The solver must report the rank it actually achieved: full rank on generic
matrices, less than requested when singular values coincide.

Usage:
    pytest canon_word/test_svd.py
"""

import numpy as np
import pytest
import scipy.sparse
from scipy.sparse.linalg import svds

from canon_word.sparse import SparseMatrix
from canon_word.svd import SparseSVDSolver, truncated_svd


def dense_random_matrix(num_rows: int = 5, num_columns: int = 4):
    np.random.seed(42)
    return {
        col: {row: np.random.randn() for row in range(num_rows)}
        for col in range(num_columns)
    }


def identity_matrix(n: int = 4):
    return {i: {i: 1.0} for i in range(n)}


def matrix_with_empty_columns():
    m = SparseMatrix(num_rows=4, num_columns=4)
    m.set(2, 0, 2.0)
    m.set(0, 2, 1.0)
    m.set(2, 2, 3.0)
    m.set(3, 2, 4.0)
    return m


def sparse_count_matrix(num_rows: int = 3000, num_columns: int = 2000):
    """Counts 1..5 at 0.5% density."""
    A = scipy.sparse.random(num_rows, num_columns, density=0.005, random_state=1, format='csc')
    A.data = np.floor(A.data * 5) + 1
    return A


# =============================================================================
# Achieved Rank
# =============================================================================

def test_dense_random_matrix_decomposes_fully():
    solver = SparseSVDSolver()
    solver.load_sparse_matrix(dense_random_matrix())
    solver.solve_sparse_svd(4)
    assert solver.rank == 4


def test_dense_random_matrix_matches_dense_svd():
    columns = dense_random_matrix()
    dense = SparseMatrix(columns).to_csc().toarray()

    result = truncated_svd(columns, 4)
    expected = np.linalg.svd(dense, compute_uv=False)
    np.testing.assert_allclose(result.singular_values, expected, rtol=1e-8)

    # A v_i = sigma_i u_i
    np.testing.assert_allclose(
        dense @ result.right, result.left * result.singular_values, atol=1e-8
    )


def test_identity_breaks_without_eigengaps():
    solver = SparseSVDSolver()
    solver.load_sparse_matrix(identity_matrix(4))
    solver.solve_sparse_svd(4)
    assert solver.rank != 4
    assert solver.rank < 4


def test_identity_breaks_even_with_a_tiny_eigengap():
    columns = identity_matrix(4)
    columns[0][0] = 1.0000001
    result = truncated_svd(columns, 4)
    assert result.rank < 4
    assert result.degenerate


def test_identity_with_eigengaps_decomposes_fully():
    columns = identity_matrix(4)
    value = 4
    for i in range(4):
        columns[i][i] = float(value)
        value -= 1

    result = truncated_svd(columns, 4)
    assert result.rank == 4
    np.testing.assert_allclose(result.singular_values, [4.0, 3.0, 2.0, 1.0], atol=1e-10)


def test_sparse_matrix_with_empty_columns():
    solver = SparseSVDSolver()
    solver.load_sparse_matrix(matrix_with_empty_columns())
    solver.solve_sparse_svd(2)
    assert solver.rank == 2
    assert abs(solver.singular_values[0]) == pytest.approx(5.2469, abs=1e-4)
    assert abs(solver.singular_values[1]) == pytest.approx(1.5716, abs=1e-4)
    assert solver.left_singular_vectors.shape == (4, 2)
    assert solver.right_singular_vectors.shape == (4, 2)


def test_large_sparse_matrix_matches_svds():
    A = sparse_count_matrix()
    result = truncated_svd(A, 50)

    assert result.rank == 50
    expected = np.sort(svds(A, k=50, return_singular_vectors=False))[::-1]
    np.testing.assert_allclose(result.singular_values, expected, rtol=1e-5)

    # A v_i = sigma_i u_i
    np.testing.assert_allclose(
        A @ result.right, result.left * result.singular_values,
        atol=1e-5 * result.singular_values[0]
    )


def test_step_cap_leaves_triplets_unconverged():
    A = sparse_count_matrix()
    capped = truncated_svd(A, 50, max_iterations=50)
    assert capped.rank < 50
    assert capped.degenerate


def test_write_and_load_gives_same_singular_values(tmp_path):
    m = matrix_with_empty_columns()
    path = tmp_path / "matrix"

    solver = SparseSVDSolver()
    solver.write_sparse_matrix(m, path)
    solver.load_sparse_matrix(path)
    solver.solve_sparse_svd(2)
    from_file = solver.singular_values.copy()

    solver.load_sparse_matrix(m)
    solver.solve_sparse_svd(2)
    assert solver.rank == 2
    np.testing.assert_allclose(from_file, solver.singular_values, atol=1e-12)
    assert from_file[0] == pytest.approx(5.2469, abs=1e-4)


# =============================================================================
# Bounds and Degenerate Outcomes
# =============================================================================

def test_rank_never_exceeds_request():
    for k in (1, 2, 3):
        result = truncated_svd(dense_random_matrix(), k)
        assert result.rank == k
        assert len(result.singular_values) == k
        assert np.all(np.diff(result.singular_values) <= 0)


def test_zero_matrix_gives_rank_zero():
    result = truncated_svd(SparseMatrix(num_rows=3, num_columns=3), 2)
    assert result.rank == 0
    assert len(result.singular_values) == 0
    assert result.left.shape == (3, 0)


def test_invalid_rank_is_rejected():
    with pytest.raises(ValueError):
        truncated_svd(identity_matrix(3), 4)
    with pytest.raises(ValueError):
        truncated_svd(identity_matrix(3), 0)


def test_results_are_reproducible():
    first = truncated_svd(dense_random_matrix(), 3)
    second = truncated_svd(dense_random_matrix(), 3)
    np.testing.assert_array_equal(first.singular_values, second.singular_values)
    np.testing.assert_array_equal(first.left, second.left)


def test_solver_requires_matrix_and_solution():
    solver = SparseSVDSolver()
    with pytest.raises(ValueError):
        solver.solve_sparse_svd(1)
    solver.load_sparse_matrix(identity_matrix(2))
    with pytest.raises(ValueError):
        solver.rank
