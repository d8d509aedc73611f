#!/usr/bin/env python3
"""
Sparse Matrix Store for CanonWord
=================================

A column-major "map of maps" sparse matrix: column index -> {row index ->
value}. This is the natural shape for accumulating counts (each context is
a column, each word a row), and it converts to `scipy.sparse` for solving.

The text format, one artifact per file:

    <num_rows> <num_columns> <num_nonzeros>
    <nonzeros in column 0>
    <row> <value>
    ...
    <nonzeros in column 1>
    ...

Every column gets a count line, so empty columns survive a round trip.
"""

from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Union

import numpy as np
import scipy.sparse

from .errors import IOFailure, MalformedInputError
from .io import atomic_write


class SparseMatrix:
    """
    Column-indexed sparse matrix with fixed shape.

    No entry is ever stored for a zero value.

    Example:
        >>> m = SparseMatrix(num_rows=4, num_columns=4)
        >>> m.add(2, 0, 2.0)
        >>> m.get(2, 0)
        2.0
        >>> m.to_csc().shape
        (4, 4)
    """

    def __init__(
        self,
        columns: Dict[int, Dict[int, float]] = None,
        num_rows: int = None,
        num_columns: int = None
    ):
        """
        Args:
            columns: Initial content as {column: {row: value}}
            num_rows: Number of rows (inferred from the largest index if None)
            num_columns: Number of columns (inferred if None)
        """
        self.columns: Dict[int, Dict[int, float]] = {}

        max_row = -1
        max_col = -1
        for col, rows in (columns or {}).items():
            max_col = max(max_col, col)
            for row in rows:
                max_row = max(max_row, row)

        self.num_rows = num_rows if num_rows is not None else max_row + 1
        self.num_columns = num_columns if num_columns is not None else max_col + 1

        if max_row >= self.num_rows or max_col >= self.num_columns:
            raise ValueError(
                f"Entries exceed declared shape ({self.num_rows}, {self.num_columns})"
            )

        for col, rows in (columns or {}).items():
            for row, value in rows.items():
                self.set(row, col, value)

    # =========================================================================
    # Element Access
    # =========================================================================

    def _check_index(self, row: int, col: int):
        if not (0 <= row < self.num_rows and 0 <= col < self.num_columns):
            raise IndexError(
                f"({row}, {col}) outside matrix of shape ({self.num_rows}, {self.num_columns})"
            )

    def set(self, row: int, col: int, value: float):
        """Set an entry; setting zero removes it."""
        self._check_index(row, col)
        if value == 0:
            column = self.columns.get(col)
            if column is not None:
                column.pop(row, None)
                if not column:
                    del self.columns[col]
            return
        self.columns.setdefault(col, {})[row] = value

    def add(self, row: int, col: int, value: float):
        """Accumulate into an entry."""
        self.set(row, col, self.get(row, col) + value)

    def get(self, row: int, col: int) -> float:
        return self.columns.get(col, {}).get(row, 0.0)

    def column(self, col: int) -> Dict[int, float]:
        """Return the {row: value} map of a column (empty if the column is)."""
        return self.columns.get(col, {})

    def items(self) -> Iterator[Tuple[int, int, float]]:
        """Yield (row, col, value) in column order, rows ascending."""
        for col in sorted(self.columns):
            column = self.columns[col]
            for row in sorted(column):
                yield row, col, column[row]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.num_rows, self.num_columns

    @property
    def nnz(self) -> int:
        return sum(len(column) for column in self.columns.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, SparseMatrix):
            return NotImplemented
        return self.shape == other.shape and self.columns == other.columns

    def __repr__(self) -> str:
        return f"SparseMatrix(shape={self.shape}, nnz={self.nnz})"

    # =========================================================================
    # Conversion
    # =========================================================================

    def to_csc(self) -> scipy.sparse.csc_matrix:
        """Convert to a scipy CSC matrix of shape (num_rows, num_columns)."""
        data, rows, cols = [], [], []
        for row, col, value in self.items():
            rows.append(row)
            cols.append(col)
            data.append(value)
        return scipy.sparse.csc_matrix(
            (np.array(data, dtype=np.float64), (rows, cols)),
            shape=self.shape
        )

    @classmethod
    def from_scipy(cls, matrix) -> 'SparseMatrix':
        coo = scipy.sparse.coo_matrix(matrix)
        result = cls(num_rows=coo.shape[0], num_columns=coo.shape[1])
        for row, col, value in zip(coo.row, coo.col, coo.data):
            result.add(int(row), int(col), float(value))
        return result

    # =========================================================================
    # Persistence
    # =========================================================================

    def write(self, filepath: Union[str, Path]):
        """Write the matrix in the sparse text format (atomically)."""
        with atomic_write(filepath) as f:
            f.write(f"{self.num_rows} {self.num_columns} {self.nnz}\n")
            for col in range(self.num_columns):
                column = self.column(col)
                f.write(f"{len(column)}\n")
                for row in sorted(column):
                    f.write(f"{row} {float(column[row])!r}\n")

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> 'SparseMatrix':
        """Load a matrix written by `write`."""
        filepath = Path(filepath)
        if not filepath.is_file():
            raise IOFailure(f"Sparse matrix file not found: {filepath}")

        with open(filepath, 'r', encoding='utf-8') as f:
            lines = [line.split() for line in f]
        lines = [parts for parts in lines if parts]

        if not lines or len(lines[0]) != 3:
            raise MalformedInputError(f"{filepath}: missing '<rows> <columns> <nonzeros>' header")

        try:
            num_rows, num_columns, nnz = (int(x) for x in lines[0])
            matrix = cls(num_rows=num_rows, num_columns=num_columns)
            pos = 1
            for col in range(num_columns):
                (count,) = (int(x) for x in lines[pos])
                pos += 1
                for _ in range(count):
                    row, value = lines[pos]
                    matrix.set(int(row), col, float(value))
                    pos += 1
        except (ValueError, IndexError) as e:
            raise MalformedInputError(f"{filepath}: malformed sparse matrix ({e})") from e

        if pos != len(lines) or matrix.nnz != nnz:
            raise MalformedInputError(
                f"{filepath}: header declares {nnz} nonzeros, found {matrix.nnz}"
            )
        return matrix


def as_sparse_matrix(matrix, num_rows: Optional[int] = None, num_columns: Optional[int] = None) -> SparseMatrix:
    """Coerce a SparseMatrix, a {col: {row: value}} dict, or a scipy matrix."""
    if isinstance(matrix, SparseMatrix):
        return matrix
    if scipy.sparse.issparse(matrix) or isinstance(matrix, np.ndarray):
        return SparseMatrix.from_scipy(matrix)
    return SparseMatrix(matrix, num_rows=num_rows, num_columns=num_columns)
