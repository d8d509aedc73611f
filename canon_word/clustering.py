#!/usr/bin/env python3
"""
PCA Re-basing and K-means for CanonWord
=======================================

Two post-processing steps on the CCA word vectors:

  - pca_change_of_basis(): rotate the vectors into the principal-component
    frame of the vector set (same dimension, axes ordered by variance)
  - kmeans(): Lloyd iterations from caller-supplied initial centroids

Both operate on word matrices with one word vector per COLUMN, the layout
the CCA projection comes in.
"""

import numpy as np
from numpy.linalg import eigh
from typing import Tuple


def pca_change_of_basis(word_matrix: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Express word vectors in the PCA coordinates of the vector set.

    The principal axes come from the mean-centered covariance; the vectors
    themselves are rotated, not centered, so distances between words are
    unchanged.

    Args:
        word_matrix: (d, n) array, one word vector per column

    Returns:
        (rotated (d, n) matrix, variances (d,) in descending order)
    """
    d, n = word_matrix.shape
    if n == 0 or d == 0:
        return word_matrix.copy(), np.zeros(d)

    centered = word_matrix - word_matrix.mean(axis=1, keepdims=True)
    covariance = centered @ centered.T / n

    eigenvalues, eigenvectors = eigh(covariance)

    # eigh sorts ascending
    idx = np.argsort(eigenvalues)[::-1]
    eigenvalues = np.maximum(eigenvalues[idx], 0.0)
    eigenvectors = eigenvectors[:, idx]

    return eigenvectors.T @ word_matrix, eigenvalues


def kmeans(
    vectors: np.ndarray,
    initial_centroids: np.ndarray,
    max_iter: int = 100
) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    K-means from fixed initial centroids (no random restarts).

    Args:
        vectors: (n, d) array of points
        initial_centroids: (k, d) starting centroids
        max_iter: Iteration budget

    Returns:
        (labels (n,), centroids (k, d), iterations run)
    """
    centroids = np.array(initial_centroids, dtype=np.float64)
    k = len(centroids)
    n = len(vectors)
    labels = np.full(n, -1, dtype=int)

    iterations = 0
    for iterations in range(1, max_iter + 1):
        dists = np.array([np.sum((vectors - c)**2, axis=1) for c in centroids]).T
        new_labels = np.argmin(dists, axis=1)

        if np.all(new_labels == labels):
            break
        labels = new_labels

        for j in range(k):
            mask = labels == j
            if mask.sum() > 0:
                centroids[j] = vectors[mask].mean(axis=0)

    return labels, centroids, iterations
