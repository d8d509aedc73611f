#!/usr/bin/env python3
"""
Tests for the column-major sparse matrix and its text format.

Usage:
    pytest canon_word/test_sparse.py
"""

import numpy as np
import pytest

from canon_word.errors import IOFailure, MalformedInputError
from canon_word.sparse import SparseMatrix, as_sparse_matrix


def make_matrix_with_empty_columns():
    #      Empty columns
    #        |     |
    #        v     v
    #     0  0  1  0
    #     0  0  0  0
    #     2  0  3  0
    #     0  0  4  0
    m = SparseMatrix(num_rows=4, num_columns=4)
    m.set(2, 0, 2.0)
    m.set(0, 2, 1.0)
    m.set(2, 2, 3.0)
    m.set(3, 2, 4.0)
    return m


def test_zero_values_are_not_stored():
    m = SparseMatrix(num_rows=3, num_columns=3)
    m.set(0, 0, 0.0)
    assert m.nnz == 0
    assert m.columns == {}

    m.add(1, 1, 2.5)
    m.add(1, 1, -2.5)
    assert m.nnz == 0
    assert m.get(1, 1) == 0.0


def test_shape_is_inferred_or_fixed():
    m = SparseMatrix({0: {2: 1.0}, 3: {0: 5.0}})
    assert m.shape == (3, 4)

    m = SparseMatrix({0: {2: 1.0}}, num_rows=10, num_columns=10)
    assert m.shape == (10, 10)

    with pytest.raises(ValueError):
        SparseMatrix({5: {0: 1.0}}, num_rows=2, num_columns=2)

    with pytest.raises(IndexError):
        m.set(10, 0, 1.0)


def test_to_csc_matches_entries():
    m = make_matrix_with_empty_columns()
    dense = m.to_csc().toarray()
    expected = np.array([
        [0, 0, 1, 0],
        [0, 0, 0, 0],
        [2, 0, 3, 0],
        [0, 0, 4, 0],
    ], dtype=float)
    np.testing.assert_array_equal(dense, expected)
    assert SparseMatrix.from_scipy(m.to_csc()) == m


def test_write_and_load_keeps_empty_columns(tmp_path):
    m = make_matrix_with_empty_columns()
    path = tmp_path / "matrix.txt"
    m.write(path)

    loaded = SparseMatrix.load(path)
    assert loaded == m
    assert loaded.shape == (4, 4)
    assert loaded.column(1) == {}
    assert loaded.column(3) == {}


def test_write_is_exact_for_floats(tmp_path):
    m = SparseMatrix(num_rows=2, num_columns=2)
    m.set(0, 1, 1.0 / 3.0)
    m.set(1, 0, np.pi)
    m.write(tmp_path / "m")
    loaded = SparseMatrix.load(tmp_path / "m")
    assert loaded.get(0, 1) == 1.0 / 3.0
    assert loaded.get(1, 0) == np.pi


def test_load_rejects_malformed_files(tmp_path):
    path = tmp_path / "bad"

    path.write_text("4 4\n")
    with pytest.raises(MalformedInputError):
        SparseMatrix.load(path)

    path.write_text("2 2 1\n1\n0 1.5\n")  # second column count missing
    with pytest.raises(MalformedInputError):
        SparseMatrix.load(path)

    path.write_text("2 2 2\n1\n0 1.5\n0\n")  # header says 2 nonzeros
    with pytest.raises(MalformedInputError):
        SparseMatrix.load(path)

    path.write_text("2 2 1\n1\n5 1.5\n0\n")  # row out of range
    with pytest.raises(MalformedInputError):
        SparseMatrix.load(path)

    with pytest.raises(IOFailure):
        SparseMatrix.load(tmp_path / "missing")


def test_as_sparse_matrix_accepts_dense_and_dicts():
    dense = np.array([[1.0, 0.0], [0.0, 2.0]])
    assert as_sparse_matrix(dense).get(1, 1) == 2.0
    assert as_sparse_matrix({1: {0: 3.0}}).get(0, 1) == 3.0
