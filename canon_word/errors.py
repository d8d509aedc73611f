#!/usr/bin/env python3
"""
Error types for CanonWord
=========================

  - PreconditionViolation:  a pipeline stage invoked out of order, or an
                            inconsistent configuration
  - EmptyVocabularyError:   nothing to induce representations for
  - NumericalDegeneracy:    the sparse SVD found fewer singular triplets than
                            requested (a warning, not an error)
  - IOFailure:              a cache or corpus file is missing or unreadable
  - MalformedInputError:    a corpus or persisted file has the wrong structure
"""


class CanonWordError(Exception):
    """Base class for all CanonWord errors."""


class PreconditionViolation(CanonWordError, RuntimeError):
    """Raised when a stage is invoked before the stages it depends on."""


class EmptyVocabularyError(PreconditionViolation):
    """Raised when the extracted vocabulary has no word types."""


class IOFailure(CanonWordError, OSError):
    """Raised when an expected file cannot be read or written."""


class MalformedInputError(CanonWordError, ValueError):
    """Raised when a file or an input structure violates its expected format."""


class NumericalDegeneracy(RuntimeWarning):
    """
    Issued when the achieved SVD rank falls below the requested rank.

    Usually a sign of near-degenerate singular values; a larger smoothing
    term or a smaller dimension is the caller's remedy.
    """
