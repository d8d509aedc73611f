"""
CanonWord: Lexical Representations from Canonical Correlation Analysis
======================================================================

Induces word vectors from raw text by CCA between each word and its
labeled context (e.g. "w(1)=the": the word one position to the right).

Pipeline:
  - CooccurrenceBuilder: two-pass counting with rare-word collapsing
  - SparseCCASolver:     whitening by marginal counts + truncated SVD
  - SparseSVDSolver:     Lanczos truncated SVD that reports its achieved rank
  - pca_change_of_basis: rotate vectors into their principal axes
  - kmeans:              clustering seeded with the most frequent words

Basic Usage:
    >>> from canon_word import CanonWord
    >>> cw = CanonWord("out/", rare_cutoff=1, window_size=3, cca_dim=50)
    >>> cw.extract_statistics("corpus.txt")
    >>> cw.induce_lexical_representations()
    >>> vectors = cw.wordvectors

License: MIT
Version: 0.2.0
"""

from .core import (
    CanonWord,
    Stage,
)

from .counts import (
    CooccurrenceBuilder,
    CooccurrenceCounts,
    Dictionary,
    determine_rare_cutoff,
    window_offsets,
    RARE_STRING,
    BUFFER_STRING,
)

from .sparse import SparseMatrix

from .svd import (
    SparseSVDSolver,
    SVDResult,
    truncated_svd,
)

from .cca import (
    SparseCCASolver,
    CCAResult,
)

from .clustering import (
    pca_change_of_basis,
    kmeans,
)

from .io import load_word_vectors

from .errors import (
    CanonWordError,
    PreconditionViolation,
    EmptyVocabularyError,
    NumericalDegeneracy,
    IOFailure,
    MalformedInputError,
)

__version__ = "0.2.0"
__all__ = [
    # Pipeline
    'CanonWord',
    'Stage',
    # Counting
    'CooccurrenceBuilder',
    'CooccurrenceCounts',
    'Dictionary',
    'determine_rare_cutoff',
    'window_offsets',
    'RARE_STRING',
    'BUFFER_STRING',
    # Linear algebra
    'SparseMatrix',
    'SparseSVDSolver',
    'SVDResult',
    'truncated_svd',
    'SparseCCASolver',
    'CCAResult',
    # Post-processing
    'pca_change_of_basis',
    'kmeans',
    'load_word_vectors',
    # Errors
    'CanonWordError',
    'PreconditionViolation',
    'EmptyVocabularyError',
    'NumericalDegeneracy',
    'IOFailure',
    'MalformedInputError',
]
