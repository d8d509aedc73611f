#!/usr/bin/env python3
"""
Sparse CCA for CanonWord
========================

CCA between two sparse views x and y reduces to an SVD once each view is
whitened by its marginal variance. With count data the variances are just
the marginal counts, so the whitened correlation matrix is

    M[i][j] = cov_xy[i][j] / sqrt((var_x[i] + kappa) * (var_y[j] + kappa))

and its singular values are the canonical correlations. The smoothing term
kappa keeps rare items from blowing up the division and separates
correlations that would otherwise coincide (see svd.py).

Usage:
    >>> cca = SparseCCASolver(cca_dim=2, smoothing_term=1.0)
    >>> result = cca.perform_cca(covariance_xy, variance_x, variance_y)
    >>> result.correlations
    array([0.75  , 0.6124])

Covariances are column-major: covariance_xy[y_index][x_index].
"""

import warnings
from dataclasses import dataclass
from typing import Dict, List, Sequence, Union

import numpy as np
import scipy.sparse

from .errors import MalformedInputError, NumericalDegeneracy, PreconditionViolation
from .sparse import SparseMatrix
from .svd import truncated_svd


Variance = Union[Dict[int, float], Sequence[float], np.ndarray]


@dataclass
class CCAResult:
    """
    Outcome of sparse CCA.

    Attributes:
        correlations: Canonical correlations, descending (rank,)
        projection_x: Projection for the x view, one column per x item (rank, num_x)
        projection_y: Projection for the y view (rank, num_y)
        rank: Achieved rank (may be less than requested)
        requested: Requested CCA dimension
        smoothing: Smoothing term actually used
    """
    correlations: np.ndarray
    projection_x: np.ndarray
    projection_y: np.ndarray
    rank: int
    requested: int
    smoothing: float


def _as_vector(variance: Variance, name: str) -> np.ndarray:
    if isinstance(variance, dict):
        size = max(variance) + 1 if variance else 0
        vec = np.zeros(size)
        for index, value in variance.items():
            if index < 0:
                raise MalformedInputError(f"{name}: negative index {index}")
            vec[index] = value
        return vec
    return np.asarray(variance, dtype=np.float64)


def choose_smoothing(variance_x: np.ndarray, variance_y: np.ndarray) -> float:
    """Automatic smoothing: the smallest positive marginal in either view."""
    observed = np.concatenate([variance_x[variance_x > 0], variance_y[variance_y > 0]])
    return float(observed.min()) if len(observed) else 0.0


class SparseCCASolver:
    """
    CCA on sparse count statistics.

    Example:
        >>> solver = SparseCCASolver(cca_dim=50)            # auto smoothing
        >>> result = solver.perform_cca(cov, var_words, var_contexts)
        >>> if result.rank < 50:
        ...     print("degenerate spectrum, try more smoothing")
    """

    def __init__(self, cca_dim: int, smoothing_term: float = -1, max_iterations: int = None):
        """
        Args:
            cca_dim: Requested CCA dimension
            smoothing_term: Added to every marginal variance. Negative lets
                            the solver choose (smallest observed marginal).
            max_iterations: Cap on Lanczos steps; None runs to convergence
        """
        if cca_dim < 1:
            raise ValueError(f"cca_dim must be positive, got {cca_dim}")
        self.cca_dim = cca_dim
        self.smoothing_term = smoothing_term
        self.max_iterations = max_iterations
        self._result = None

    # =========================================================================
    # Entry Points
    # =========================================================================

    def perform_cca(
        self,
        covariance_xy: Union[SparseMatrix, Dict[int, Dict[int, float]]],
        variance_x: Variance,
        variance_y: Variance
    ) -> CCAResult:
        """
        CCA from aggregated statistics.

        Args:
            covariance_xy: {y_index: {x_index: value}} or a SparseMatrix with
                           x items as rows and y items as columns
            variance_x: Marginal variance of each x item
            variance_y: Marginal variance of each y item

        Returns:
            CCAResult, truncated to the achieved rank
        """
        var_x = _as_vector(variance_x, 'variance_x')
        var_y = _as_vector(variance_y, 'variance_y')

        if isinstance(covariance_xy, SparseMatrix):
            covariance_xy = covariance_xy.columns
        try:
            cov = SparseMatrix(covariance_xy, num_rows=len(var_x), num_columns=len(var_y)).to_csc()
        except (ValueError, IndexError) as e:
            raise MalformedInputError(f"Covariance indices exceed variance sizes: {e}") from e

        return self._solve(cov, var_x, var_y)

    def perform_cca_on_samples(
        self,
        examples_x: List[Dict[int, float]],
        examples_y: List[Dict[int, float]]
    ) -> CCAResult:
        """
        CCA from paired sparse samples.

        Covariance and variances are accumulated as plain sums, not averaged
        over the sample count, so the smoothing term has the same scale as
        in `perform_cca` on count data.
        """
        if len(examples_x) != len(examples_y):
            raise MalformedInputError(
                f"Got {len(examples_x)} x samples but {len(examples_y)} y samples"
            )

        covariance = {}
        variance_x = {}
        variance_y = {}
        for x, y in zip(examples_x, examples_y):
            for i, x_value in x.items():
                variance_x[i] = variance_x.get(i, 0.0) + x_value * x_value
            for j, y_value in y.items():
                variance_y[j] = variance_y.get(j, 0.0) + y_value * y_value
                column = covariance.setdefault(j, {})
                for i, x_value in x.items():
                    column[i] = column.get(i, 0.0) + x_value * y_value

        return self.perform_cca(covariance, variance_x, variance_y)

    # =========================================================================
    # Core
    # =========================================================================

    def _solve(self, cov: scipy.sparse.csc_matrix, var_x: np.ndarray, var_y: np.ndarray) -> CCAResult:
        num_x, num_y = cov.shape
        if self.cca_dim > min(num_x, num_y):
            raise PreconditionViolation(
                f"CCA dimension {self.cca_dim} exceeds the smaller view size {min(num_x, num_y)}"
            )
        if (var_x < 0).any() or (var_y < 0).any():
            raise MalformedInputError("Variances must be non-negative")

        if self.smoothing_term < 0:
            kappa = choose_smoothing(var_x, var_y)
        else:
            kappa = float(self.smoothing_term)

        denom_x = var_x + kappa
        denom_y = var_y + kappa

        coo = cov.tocoo()
        if (denom_x[coo.row] <= 0).any() or (denom_y[coo.col] <= 0).any():
            raise MalformedInputError(
                "Nonzero covariance for an item with zero variance and no smoothing"
            )

        inv_x = np.zeros(num_x)
        inv_y = np.zeros(num_y)
        inv_x[denom_x > 0] = 1.0 / np.sqrt(denom_x[denom_x > 0])
        inv_y[denom_y > 0] = 1.0 / np.sqrt(denom_y[denom_y > 0])

        correlation = scipy.sparse.diags(inv_x) @ cov @ scipy.sparse.diags(inv_y)
        svd = truncated_svd(correlation.tocsc(), self.cca_dim, max_iterations=self.max_iterations)

        if svd.rank < self.cca_dim:
            warnings.warn(
                f"Sparse SVD found {svd.rank} of {self.cca_dim} requested dimensions "
                f"(smoothing={kappa:g}); singular values are too close to separate",
                NumericalDegeneracy
            )

        self._result = CCAResult(
            correlations=svd.singular_values,
            projection_x=svd.left.T,
            projection_y=svd.right.T,
            rank=svd.rank,
            requested=self.cca_dim,
            smoothing=kappa
        )
        return self._result

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def cca_correlations(self) -> np.ndarray:
        if self._result is None:
            raise ValueError("CCA not computed; call perform_cca() first")
        return self._result.correlations

    @property
    def result(self) -> CCAResult:
        return self._result

    def __repr__(self) -> str:
        return (f"SparseCCASolver(cca_dim={self.cca_dim}, smoothing_term={self.smoothing_term}, "
                f"max_iterations={self.max_iterations})")
