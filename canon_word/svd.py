#!/usr/bin/env python3
"""
Truncated Sparse SVD for CanonWord
==================================

Computes the top-k singular triplets of a sparse matrix with Golub-Kahan-
Lanczos bidiagonalization (full reorthogonalization, fixed start vector).

By default the Krylov space keeps growing until the k largest Ritz triplets
pass the residual test, the recurrence breaks down, or min(shape) steps
have been taken, at which point the decomposition is exact. Slow
convergence therefore never costs dimensions; only the spectrum can.

The rank the solver reports is authoritative. Lanczos explores the Krylov
space generated by its start vector, whose dimension is bounded by the
number of DISTINCT singular values. With a degenerate spectrum (an identity
matrix, or two leading singular values that are numerically equal) the
space collapses early and fewer than k triplets are found:

    >>> solver = SparseSVDSolver()
    >>> solver.load_sparse_matrix({i: {i: 1.0} for i in range(4)})
    >>> solver.solve_sparse_svd(4)
    >>> solver.rank
    1

Callers must inspect `rank` rather than assume success. Nothing here tries
to repair a degenerate result.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple, Union

import numpy as np
import scipy.sparse
import scipy.sparse.linalg

from .sparse import SparseMatrix, as_sparse_matrix


# Residual tolerance for accepting a Ritz triplet (relative to sigma_max).
DEFAULT_KAPPA = 1e-6

# Fixed seed for the start vector; results are reproducible run to run.
DEFAULT_SEED = 0

EPS = np.finfo(np.float64).eps


@dataclass
class SVDResult:
    """
    Singular triplets of a truncated SVD.

    Attributes:
        left: Left singular vectors as columns (num_rows, rank)
        singular_values: Descending singular values (rank,)
        right: Right singular vectors as columns (num_columns, rank)
        rank: Number of triplets actually found (<= requested)
        requested: Rank that was asked for
    """
    left: np.ndarray
    singular_values: np.ndarray
    right: np.ndarray
    rank: int
    requested: int

    @property
    def degenerate(self) -> bool:
        return self.rank < self.requested


def norm2(x: np.ndarray) -> float:
    return float(np.sqrt(np.dot(x, x)))


def _grow(X: np.ndarray, num_columns: int) -> np.ndarray:
    return np.hstack([X, np.zeros((X.shape[0], num_columns - X.shape[1]))])


def _bidiagonal(alphas: List[float], betas: List[float], num_columns: int) -> np.ndarray:
    """Upper bidiagonal matrix with len(alphas) rows."""
    p = len(alphas)
    B = np.zeros((p, num_columns))
    for i in range(p):
        B[i, i] = alphas[i]
        if i + 1 < num_columns:
            B[i, i + 1] = betas[i]
    return B


def _ritz(B: np.ndarray, residual_scale: float, kappa: float):
    """
    SVD of the projected matrix and the acceptance mask of its triplets.

    Ritz residual bound: ||A^T u_i - sigma_i v_i|| = residual_scale * |P[-1, i]|
    """
    P, sigma, Qt = np.linalg.svd(B, full_matrices=False)
    residuals = residual_scale * np.abs(P[-1, :])
    sigma_max = sigma[0]
    accepted = (sigma > np.sqrt(EPS) * sigma_max) & (residuals <= kappa * sigma_max)
    return P, sigma, Qt, accepted


def _bidiagonalize(
    A: scipy.sparse.csc_matrix,
    max_steps: int,
    start: np.ndarray,
    tol: float,
    k: int,
    kappa: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, float]:
    """
    Run Golub-Kahan bidiagonalization: A V = U B.

    Stops after `max_steps`, on breakdown, or as soon as the k largest Ritz
    triplets all pass the residual test.

    Returns:
        (U, B, V, residual_scale) where B is upper bidiagonal, square or with
        one extra column, and residual_scale is the norm of the part of
        A^T U that falls outside V.
    """
    m, n = A.shape
    At = A.T.tocsr()

    capacity = min(max_steps, max(2 * k, k + 30))
    U = np.zeros((m, capacity))
    V = np.zeros((n, capacity + 1))
    alphas, betas = [], []

    V[:, 0] = start / norm2(start)
    u_prev = np.zeros(m)
    beta = 0.0
    alpha_breakdown = False
    next_check = k

    for j in range(max_steps):
        if j == capacity:
            capacity = min(max_steps, 2 * capacity)
            U = _grow(U, capacity)
            V = _grow(V, capacity + 1)

        u = A @ V[:, j] - beta * u_prev
        for _ in range(2):
            u -= U[:, :j] @ (U[:, :j].T @ u)
        alpha = norm2(u)
        if alpha <= tol:
            # A V_j already lies in span(U): the pair (U, V) is invariant.
            alpha_breakdown = True
            break
        u /= alpha
        U[:, j] = u
        alphas.append(alpha)

        v = At @ u - alpha * V[:, j]
        for _ in range(2):
            v -= V[:, :j + 1] @ (V[:, :j + 1].T @ v)
        beta = norm2(v)
        betas.append(beta)
        if beta <= tol:
            break
        V[:, j + 1] = v / beta
        u_prev = u

        p = j + 1
        if next_check <= p < max_steps:
            accepted = _ritz(_bidiagonal(alphas, betas, p), beta, kappa)[3]
            if accepted[:k].all():
                break
            next_check = max(p + 10, int(1.25 * p))

    p = len(alphas)
    if alpha_breakdown and p > 0:
        # V_{p+1} is complete; B is p x (p+1) and exact.
        return U[:, :p], _bidiagonal(alphas, betas, p + 1), V[:, :p + 1], 0.0

    residual_scale = betas[p - 1] if p > 0 else 0.0
    return U[:, :p], _bidiagonal(alphas, betas, p), V[:, :p], residual_scale


def truncated_svd(
    matrix,
    k: int,
    max_iterations: int = None,
    kappa: float = DEFAULT_KAPPA,
    seed: int = DEFAULT_SEED
) -> SVDResult:
    """
    Compute up to k singular triplets of a sparse matrix.

    Args:
        matrix: SparseMatrix, {col: {row: value}} dict, or scipy sparse matrix
        k: Requested rank, 1 <= k <= min(num_rows, num_columns)
        max_iterations: Cap on Lanczos steps (at least k). None runs until
                        the top k triplets converge, up to min(shape) steps.
                        A cap can leave triplets unconverged and lower the
                        achieved rank.
        kappa: Relative residual tolerance for accepting a triplet
        seed: Seed of the fixed start vector

    Returns:
        SVDResult whose `rank` may be smaller than k
    """
    if scipy.sparse.issparse(matrix):
        A = scipy.sparse.csc_matrix(matrix, dtype=np.float64)
    else:
        A = as_sparse_matrix(matrix).to_csc()

    m, n = A.shape
    full_rank = min(m, n)
    if k < 1 or k > full_rank:
        raise ValueError(f"Requested rank {k} must be between 1 and {full_rank}")

    if max_iterations is None:
        n_steps = full_rank
    else:
        n_steps = max(k, min(full_rank, max_iterations))

    anorm = scipy.sparse.linalg.norm(A) if A.nnz else 0.0
    tol = np.sqrt(EPS) * anorm

    start = np.random.RandomState(seed).uniform(-1.0, 1.0, n)
    U, B, V, residual_scale = _bidiagonalize(A, n_steps, start, tol, k, kappa)

    if B.size == 0:
        return SVDResult(
            left=np.zeros((m, 0)),
            singular_values=np.zeros(0),
            right=np.zeros((n, 0)),
            rank=0,
            requested=k
        )

    P, sigma, Qt, accepted = _ritz(B, residual_scale, kappa)
    accepted = np.flatnonzero(accepted)[:k]

    return SVDResult(
        left=U @ P[:, accepted],
        singular_values=sigma[accepted],
        right=V @ Qt.T[:, accepted],
        rank=len(accepted),
        requested=k
    )


# =============================================================================
# Stateful Solver
# =============================================================================

class SparseSVDSolver:
    """
    Load a sparse matrix (from memory or from a file), then solve.

    Example:
        >>> solver = SparseSVDSolver()
        >>> solver.write_sparse_matrix(column_map, "matrix.txt")
        >>> solver.load_sparse_matrix("matrix.txt")
        >>> solver.solve_sparse_svd(2)
        >>> solver.rank, solver.singular_values
    """

    def __init__(self, kappa: float = DEFAULT_KAPPA, max_iterations: int = None, seed: int = DEFAULT_SEED):
        self.kappa = kappa
        self.max_iterations = max_iterations
        self.seed = seed
        self._matrix = None
        self._result = None

    def load_sparse_matrix(self, source: Union[str, Path, SparseMatrix, dict]):
        """Load the matrix to decompose; a str/Path is read from disk."""
        if isinstance(source, (str, Path)):
            source = SparseMatrix.load(source)
        self._matrix = as_sparse_matrix(source)
        self._result = None

    @staticmethod
    def write_sparse_matrix(matrix, filepath: Union[str, Path]):
        """Persist a matrix in the solver's text format."""
        as_sparse_matrix(matrix).write(filepath)

    def solve_sparse_svd(self, k: int) -> SVDResult:
        if self._matrix is None:
            raise ValueError("No matrix loaded; call load_sparse_matrix() first")
        self._result = truncated_svd(
            self._matrix, k,
            max_iterations=self.max_iterations,
            kappa=self.kappa,
            seed=self.seed
        )
        return self._result

    def _solved(self) -> SVDResult:
        if self._result is None:
            raise ValueError("SVD not computed; call solve_sparse_svd() first")
        return self._result

    @property
    def rank(self) -> int:
        return self._solved().rank

    @property
    def singular_values(self) -> np.ndarray:
        return self._solved().singular_values

    @property
    def left_singular_vectors(self) -> np.ndarray:
        return self._solved().left

    @property
    def right_singular_vectors(self) -> np.ndarray:
        return self._solved().right

    def __repr__(self) -> str:
        shape = self._matrix.shape if self._matrix is not None else None
        rank = self._result.rank if self._result is not None else None
        return f"SparseSVDSolver(shape={shape}, rank={rank})"
