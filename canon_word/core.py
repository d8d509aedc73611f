#!/usr/bin/env python3
"""
CanonWord: Lexical Representations from Canonical Correlation Analysis
======================================================================

Induces word vectors by CCA between a word and its surrounding context.
When every word belongs to exactly one latent class (a hard-clustering
HMM), CCA provably recovers the emission parameters of the model, so the
resulting vectors cluster words by class (Stratos et al., 2014).

Pipeline stages:
  UNINITIALIZED -> COUNTS_EXTRACTED -> COVARIANCE_COMPUTED
                -> CCA_SOLVED -> PCA_REBASED -> CLUSTERED

  - extract_statistics():             corpus -> word/context count tables
  - induce_lexical_representations(): counts -> CCA -> PCA -> K-means

Every artifact is written to the output directory under a signature of the
parameters it depends on, so the directory doubles as a cache: re-running
extract_statistics() with the same counting parameters reloads the counts.

Basic Usage:
  >>> from canon_word import CanonWord
  >>> cw = CanonWord("output/", rare_cutoff=1, window_size=3, cca_dim=50)
  >>> cw.extract_statistics("corpus.txt")
  >>> cw.induce_lexical_representations()
  >>> cw.wordvectors["the"]
  array([...])
  >>> cw.cluster_assignment["the"]
  3

License: MIT
"""

__version__ = "0.2.0"

import shutil
from enum import IntEnum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from .cca import CCAResult, SparseCCASolver
from .clustering import kmeans, pca_change_of_basis
from .counts import (
    BUFFER_STRING,
    DEFAULT_RARE_MASS,
    RARE_STRING,
    CooccurrenceBuilder,
    CooccurrenceCounts,
    Dictionary,
    read_count_file,
    read_joint_count_file,
    write_count_file,
    write_joint_count_file,
)
from .errors import EmptyVocabularyError, IOFailure, MalformedInputError, PreconditionViolation
from .io import atomic_write, read_corpus, write_values, write_word_vectors


class Stage(IntEnum):
    UNINITIALIZED = 0
    COUNTS_EXTRACTED = 1
    COVARIANCE_COMPUTED = 2
    CCA_SOLVED = 3
    PCA_REBASED = 4
    CLUSTERED = 5


# =============================================================================
# Core CanonWord Class
# =============================================================================

class CanonWord:
    """
    Induce lexical representations with CCA.

    Parameters that change the counts (rare_cutoff, window_size,
    sentence_per_line) send the pipeline back to UNINITIALIZED when set;
    parameters that only change the CCA step (cca_dim, smoothing_term,
    num_clusters) send it back to COUNTS_EXTRACTED.

    Example:
        >>> cw = CanonWord("out/", rare_cutoff=0, window_size=2)
        >>> cw.extract_statistics("corpus.txt")
        >>> cw.set_cca_dim(2)
        >>> cw.set_smoothing_term(1.0)
        >>> cw.induce_lexical_representations()
        >>> cw.singular_values
        array([0.75      , 0.61237244])
    """

    def __init__(
        self,
        output_directory: Union[str, Path] = None,
        rare_cutoff: int = -1,
        window_size: int = 3,
        sentence_per_line: bool = False,
        cca_dim: int = None,
        smoothing_term: float = -1,
        num_clusters: int = -1,
        kmeans_max_iterations: int = 100,
        rare_mass: float = DEFAULT_RARE_MASS,
        svd_max_iterations: int = None,
        verbose: bool = True
    ):
        """
        Initialize CanonWord.

        Args:
            output_directory: Where counts, vectors and the log are written
            rare_cutoff: Words seen at most this often become "<?>".
                         -1 picks the cutoff from the count distribution.
            window_size: Context window length including the center word.
                         Odd sizes give symmetric left/right contexts.
            sentence_per_line: Treat each corpus line as a separate sentence
            cca_dim: Dimension of the CCA subspace (required for induction)
            smoothing_term: Added to marginal counts before whitening.
                            Negative uses the smallest observed count.
            num_clusters: K for K-means. -1 uses cca_dim, 0 skips clustering.
            kmeans_max_iterations: Iteration budget for K-means
            rare_mass: Token mass the automatic rare cutoff may collapse
            svd_max_iterations: Cap on Lanczos steps in the CCA solve.
                                None runs until the top cca_dim triplets
                                converge.
            verbose: Print progress messages
        """
        if window_size < 2:
            raise ValueError(f"window_size must be at least 2, got {window_size}")
        if cca_dim is not None and cca_dim < 1:
            raise ValueError(f"cca_dim must be positive, got {cca_dim}")

        self.rare_cutoff = rare_cutoff
        self.window_size = window_size
        self.sentence_per_line = sentence_per_line
        self.cca_dim = cca_dim
        self.smoothing_term = smoothing_term
        self.num_clusters = num_clusters
        self.kmeans_max_iterations = kmeans_max_iterations
        self.rare_mass = rare_mass
        self.svd_max_iterations = svd_max_iterations
        self.verbose = verbose

        self.output_directory: Optional[Path] = None
        if output_directory is not None:
            self.set_output_directory(output_directory)

        self._stage = Stage.UNINITIALIZED
        self._counts: Optional[CooccurrenceCounts] = None
        self._cca_result: Optional[CCAResult] = None
        self._wordvectors: Dict[str, np.ndarray] = {}
        self._pca_variances = np.zeros(0)
        self._cluster_assignment: Dict[str, int] = {}

    # =========================================================================
    # Configuration
    # =========================================================================

    def set_output_directory(self, output_directory: Union[str, Path]):
        self.output_directory = Path(output_directory)
        self.output_directory.mkdir(parents=True, exist_ok=True)

    def reset_output_directory(self):
        """Delete everything in the output directory and start over."""
        self._require_output_directory('reset_output_directory')
        shutil.rmtree(self.output_directory)
        self.output_directory.mkdir(parents=True)
        self._invalidate(Stage.UNINITIALIZED)

    def set_rare_cutoff(self, rare_cutoff: int):
        self.rare_cutoff = rare_cutoff
        self._invalidate(Stage.UNINITIALIZED)

    def set_rare_mass(self, rare_mass: float):
        self.rare_mass = rare_mass
        self._invalidate(Stage.UNINITIALIZED)

    def set_window_size(self, window_size: int):
        if window_size < 2:
            raise ValueError(f"window_size must be at least 2, got {window_size}")
        self.window_size = window_size
        self._invalidate(Stage.UNINITIALIZED)

    def set_sentence_per_line(self, sentence_per_line: bool):
        self.sentence_per_line = sentence_per_line
        self._invalidate(Stage.UNINITIALIZED)

    def set_cca_dim(self, cca_dim: int):
        if cca_dim < 1:
            raise ValueError(f"cca_dim must be positive, got {cca_dim}")
        self.cca_dim = cca_dim
        self._invalidate(Stage.COUNTS_EXTRACTED)

    def set_smoothing_term(self, smoothing_term: float):
        self.smoothing_term = smoothing_term
        self._invalidate(Stage.COUNTS_EXTRACTED)

    def set_num_clusters(self, num_clusters: int):
        self.num_clusters = num_clusters
        self._invalidate(Stage.COUNTS_EXTRACTED)

    def _invalidate(self, stage: Stage):
        """Fall back to `stage` if the pipeline is further along."""
        if self._stage <= stage:
            return
        self._stage = stage
        if stage < Stage.COUNTS_EXTRACTED:
            self._counts = None
        self._cca_result = None
        self._wordvectors = {}
        self._pca_variances = np.zeros(0)
        self._cluster_assignment = {}

    # =========================================================================
    # Signatures and Paths
    # =========================================================================

    @staticmethod
    def _fmt(value) -> str:
        if value is None or value < 0:
            return "auto"
        return f"{value:g}" if isinstance(value, float) else str(value)

    def signature(self, version: int) -> str:
        """
        Signature of the tunable parameters an artifact depends on.

            version=0: rare_cutoff (and rare_mass when the cutoff is automatic)
            version=1: + window_size, sentence_per_line
            version=2: + cca_dim, smoothing_term
            version=3: + num_clusters
        """
        if version not in (0, 1, 2, 3):
            raise ValueError(f"Unknown signature version: {version}")
        sig = f"rare{self._fmt(self.rare_cutoff)}"
        if self.rare_cutoff < 0:
            sig += f"_mass{self.rare_mass:g}"
        if version >= 1:
            sig += f"_window{self.window_size}_sentperline{int(self.sentence_per_line)}"
        if version >= 2:
            sig += f"_dim{self._fmt(self.cca_dim)}_smooth{self._fmt(self.smoothing_term)}"
        if version >= 3:
            sig += f"_K{self._fmt(self.num_clusters)}"
        return sig

    def _path(self, name: str, version: int = None) -> Path:
        self._require_output_directory(name)
        if version is None:
            return self.output_directory / name
        return self.output_directory / f"{name}_{self.signature(version)}"

    def count_word_path(self) -> Path:
        return self._path("count_word", 0)

    def count_context_path(self) -> Path:
        return self._path("count_context", 1)

    def count_word_context_path(self) -> Path:
        return self._path("count_word_context", 1)

    def word_str2num_path(self) -> Path:
        return self._path("word_str2num", 0)

    def context_str2num_path(self) -> Path:
        return self._path("context_str2num", 1)

    def rare_words_path(self) -> Path:
        return self._path("rare_words", 0)

    def corpus_info_path(self) -> Path:
        return self._path("corpus_info", 1)

    def sorted_word_types_path(self) -> Path:
        return self._path("sorted_word_types")

    def log_path(self) -> Path:
        return self._path("log")

    def wordvectors_path(self) -> Path:
        return self._path("wordvectors", 2)

    def singular_values_path(self) -> Path:
        return self._path("singular_values", 2)

    def pca_variance_path(self) -> Path:
        return self._path("pca_variance", 2)

    def kmeans_path(self) -> Path:
        return self._path("kmeans", 3)

    def _require_output_directory(self, what: str):
        if self.output_directory is None:
            raise PreconditionViolation(f"{what}: no output directory set")

    def _log(self, message: str):
        if self.verbose:
            print(message)
        if self.output_directory is not None:
            with open(self.log_path(), 'a', encoding='utf-8') as f:
                f.write(message + "\n")

    # =========================================================================
    # Stage 1: Counting
    # =========================================================================

    def extract_statistics(self, corpus_file: Union[str, Path], force: bool = False):
        """
        Compute word, context and word-context counts from a corpus file.

        If complete counts for the current signature are already in the
        output directory, they are loaded instead (unless `force`).

        Args:
            corpus_file: Whitespace-tokenized text file
            force: Recompute even if cached counts exist
        """
        self._require_output_directory('extract_statistics')
        self._invalidate(Stage.UNINITIALIZED)
        signature = self.signature(1)

        if not force and self.corpus_info_path().is_file():
            try:
                self._counts = self._load_counts(corpus_file)
                self._stage = Stage.COUNTS_EXTRACTED
                self._log(f"Loaded cached counts [{signature}]: "
                          f"{len(self._counts.word_dict):,} word types, "
                          f"{len(self._counts.context_dict):,} contexts")
                return
            except (IOFailure, MalformedInputError) as e:
                self._log(f"Cached counts [{signature}] unusable ({e}); recomputing")

        try:
            sentences = read_corpus(corpus_file, self.sentence_per_line)
        except IOFailure as e:
            raise IOFailure(f"extract_statistics [{signature}]: {e}") from e

        self._log(f"Extracting statistics from {corpus_file} [{signature}]")

        builder = CooccurrenceBuilder(
            window_size=self.window_size,
            rare_cutoff=self.rare_cutoff,
            rare_mass=self.rare_mass
        )
        counts = builder.build(sentences)

        self._log(f"  {counts.num_tokens:,} tokens, {len(counts.raw_word_counts):,} word types")
        self._log(f"  Rare cutoff {counts.rare_cutoff}: {len(counts.rare_words):,} types "
                  f"collapsed into {RARE_STRING}")
        self._log(f"  {len(counts.word_dict):,} words x {len(counts.context_dict):,} contexts, "
                  f"{counts.word_context.nnz:,} nonzero pairs")

        self._save_counts(counts, corpus_file)
        self._counts = counts
        self._stage = Stage.COUNTS_EXTRACTED

    @staticmethod
    def _corpus_identity(corpus_file) -> Dict[str, str]:
        """Resolved path, plus size and mtime when the file exists."""
        path = Path(corpus_file).resolve()
        identity = {'corpus': str(path)}
        if path.is_file():
            stat = path.stat()
            identity['corpus_size'] = str(stat.st_size)
            identity['corpus_mtime_ns'] = str(stat.st_mtime_ns)
        return identity

    def _save_counts(self, counts: CooccurrenceCounts, corpus_file):
        # No manifest while the count files are being replaced.
        self.corpus_info_path().unlink(missing_ok=True)

        counts.word_dict.write(self.word_str2num_path())
        counts.context_dict.write(self.context_str2num_path())
        write_count_file(self.count_word_path(), counts.word_counts)
        write_count_file(self.count_context_path(), counts.context_counts)
        write_joint_count_file(self.count_word_context_path(), counts.word_context)

        with atomic_write(self.rare_words_path()) as f:
            for word in sorted(counts.rare_words):
                f.write(f"{word}\n")

        with atomic_write(self.sorted_word_types_path()) as f:
            for word, count in sorted(counts.raw_word_counts.items(), key=lambda x: -x[1]):
                f.write(f"{word} {count}\n")

        # Written last: its presence marks the cache as complete.
        with atomic_write(self.corpus_info_path()) as f:
            for key, value in self._corpus_identity(corpus_file).items():
                f.write(f"{key} {value}\n")
            f.write(f"num_tokens {counts.num_tokens}\n")
            f.write(f"rare_cutoff {counts.rare_cutoff}\n")
            f.write(f"num_word_types {len(counts.word_dict)}\n")
            f.write(f"num_contexts {len(counts.context_dict)}\n")

    def _load_counts(self, corpus_file) -> CooccurrenceCounts:
        """
        Load cached counts, provided they were built from `corpus_file`.

        A missing corpus is matched by path alone, so a cache stays usable
        after the corpus is removed.
        """
        manifest = self.corpus_info_path()
        info = {}
        with open(manifest, 'r', encoding='utf-8') as f:
            for line in f:
                key, _, value = line.strip().partition(' ')
                info[key] = value

        for key, value in self._corpus_identity(corpus_file).items():
            if info.get(key) != value:
                raise MalformedInputError(
                    f"{manifest}: counts were built from another corpus "
                    f"({key} {info.get(key)!r}, expected {value!r})"
                )

        try:
            num_tokens = int(info['num_tokens'])
            rare_cutoff = int(info['rare_cutoff'])
        except (KeyError, ValueError) as e:
            raise MalformedInputError(f"{self.corpus_info_path()}: bad manifest ({e})") from e

        word_dict = Dictionary.load(self.word_str2num_path())
        context_dict = Dictionary.load(self.context_str2num_path())
        word_counts = read_count_file(self.count_word_path())
        context_counts = read_count_file(self.count_context_path())
        if len(word_counts) != len(word_dict) or len(context_counts) != len(context_dict):
            raise MalformedInputError("Count files and dictionaries disagree in size")

        word_context = read_joint_count_file(
            self.count_word_context_path(), len(word_dict), len(context_dict)
        )

        rare_words = set()
        if self.rare_words_path().is_file():
            with open(self.rare_words_path(), 'r', encoding='utf-8') as f:
                rare_words = {line.strip() for line in f if line.strip()}

        raw_word_counts = {}
        if self.sorted_word_types_path().is_file():
            with open(self.sorted_word_types_path(), 'r', encoding='utf-8') as f:
                for line in f:
                    parts = line.split()
                    if len(parts) == 2 and parts[1].isdigit():
                        raw_word_counts[parts[0]] = int(parts[1])

        return CooccurrenceCounts(
            word_dict=word_dict,
            context_dict=context_dict,
            word_counts=word_counts,
            context_counts=context_counts,
            word_context=word_context,
            raw_word_counts=raw_word_counts,
            rare_words=rare_words,
            rare_cutoff=rare_cutoff,
            num_tokens=num_tokens
        )

    # =========================================================================
    # Stage 2: CCA, PCA, K-means
    # =========================================================================

    def induce_lexical_representations(self):
        """
        Induce word vectors from the extracted counts.

        Runs CCA at `cca_dim` (which may come back with fewer dimensions if
        the spectrum is degenerate; a NumericalDegeneracy warning is issued),
        rotates the vectors into their PCA basis, and clusters them.
        """
        if self._stage < Stage.COUNTS_EXTRACTED or self._counts is None:
            raise PreconditionViolation(
                "induce_lexical_representations() requires extract_statistics() first"
            )
        if self.cca_dim is None:
            raise PreconditionViolation("induce_lexical_representations(): cca_dim is not set")
        self._invalidate(Stage.COUNTS_EXTRACTED)

        counts = self._counts
        num_words = len(counts.word_dict)
        num_contexts = len(counts.context_dict)
        signature = self.signature(2)

        if num_words == 0:
            raise EmptyVocabularyError(
                f"induce_lexical_representations [{signature}]: vocabulary is empty"
            )
        if self.cca_dim > min(num_words, num_contexts):
            raise PreconditionViolation(
                f"induce_lexical_representations [{signature}]: cca_dim {self.cca_dim} exceeds "
                f"min(#words={num_words}, #contexts={num_contexts})"
            )

        variance_words = np.array(counts.word_counts, dtype=np.float64)
        variance_contexts = np.array(counts.context_counts, dtype=np.float64)
        self._stage = Stage.COVARIANCE_COMPUTED

        self._log(f"Performing CCA on {num_words:,} words x {num_contexts:,} contexts [{signature}]")
        solver = SparseCCASolver(self.cca_dim, self.smoothing_term, self.svd_max_iterations)
        result = solver.perform_cca(counts.word_context, variance_words, variance_contexts)
        self._cca_result = result
        self._stage = Stage.CCA_SOLVED

        self._log(f"  Smoothing term: {result.smoothing:g}")
        if result.rank < self.cca_dim:
            self._log(f"  WARNING: achieved rank {result.rank} < requested {self.cca_dim}")
        self._log("  Correlations: " + ' '.join(f"{c:.4f}" for c in result.correlations[:10]))
        write_values(self.singular_values_path(), result.correlations)

        word_matrix, variances = pca_change_of_basis(result.projection_x)
        self._pca_variances = variances
        self._wordvectors = {
            counts.word_dict.num2str(i): word_matrix[:, i] for i in range(num_words)
        }
        self._stage = Stage.PCA_REBASED

        sorted_words = counts.sorted_words()
        write_values(self.pca_variance_path(), variances)
        write_word_vectors(
            self.wordvectors_path(),
            [w for w, _ in sorted_words],
            [self._wordvectors[w] for w, _ in sorted_words]
        )

        self._perform_kmeans(word_matrix, sorted_words)

    def _num_clusters(self) -> int:
        if self.num_clusters < 0:
            return self.cca_dim
        return self.num_clusters

    def _perform_kmeans(self, word_matrix: np.ndarray, sorted_words: List[Tuple[str, int]]):
        """K-means seeded with the K most frequent words."""
        K = self._num_clusters()
        if K == 0:
            self._log("  Clustering disabled (num_clusters=0)")
            return
        if word_matrix.shape[0] == 0:
            self._log("  Skipping K-means: no CCA dimensions were recovered")
            return
        if K > len(sorted_words):
            self._log(f"  Reducing K from {K} to the vocabulary size {len(sorted_words)}")
            K = len(sorted_words)

        word_dict = self._counts.word_dict
        vectors = word_matrix.T
        seeds = [word_dict.str2num(w) for w, _ in sorted_words[:K]]
        labels, _, iterations = kmeans(vectors, vectors[seeds], self.kmeans_max_iterations)

        self._cluster_assignment = {
            word_dict.num2str(i): int(label) for i, label in enumerate(labels)
        }
        self._stage = Stage.CLUSTERED
        self._log(f"  K-means with K={K} finished after {iterations} iterations")

        members = [[] for _ in range(K)]
        for word, count in sorted_words:
            members[self._cluster_assignment[word]].append((word, count))

        with atomic_write(self.kmeans_path()) as f:
            for cluster, words in enumerate(members):
                for word, count in words:
                    f.write(f"{cluster} {word} {count}\n")

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def stage(self) -> Stage:
        return self._stage

    @property
    def counts(self) -> CooccurrenceCounts:
        self._require_counts()
        return self._counts

    @property
    def wordvectors(self) -> Dict[str, np.ndarray]:
        return self._wordvectors

    @property
    def singular_values(self) -> np.ndarray:
        if self._cca_result is None:
            return np.zeros(0)
        return self._cca_result.correlations

    @property
    def pca_variances(self) -> np.ndarray:
        return self._pca_variances

    @property
    def cluster_assignment(self) -> Dict[str, int]:
        return self._cluster_assignment

    @property
    def cca_result(self) -> Optional[CCAResult]:
        return self._cca_result

    @property
    def rare_string(self) -> str:
        return RARE_STRING

    @property
    def buffer_string(self) -> str:
        return BUFFER_STRING

    def _require_counts(self):
        if self._counts is None:
            raise PreconditionViolation("No counts available; call extract_statistics() first")

    def word_str2num(self, word: str) -> int:
        self._require_counts()
        return self._counts.word_dict.str2num(word)

    def word_num2str(self, word: int) -> str:
        self._require_counts()
        return self._counts.word_dict.num2str(word)

    def context_str2num(self, context: str) -> int:
        self._require_counts()
        return self._counts.context_dict.str2num(context)

    def context_num2str(self, context: int) -> str:
        self._require_counts()
        return self._counts.context_dict.num2str(context)

    def __repr__(self) -> str:
        return (f"CanonWord(output_directory={str(self.output_directory)!r}, "
                f"stage={self._stage.name}, signature={self.signature(3)!r})")


# =============================================================================
# Command-Line Interface
# =============================================================================

def main():
    """Command-line interface for CanonWord."""
    import argparse

    parser = argparse.ArgumentParser(
        description='CanonWord: lexical representations from CCA',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Counts and 50-dimensional vectors with automatic cutoff and smoothing
  canon-word --corpus corpus.txt --output out/ --cca-dim 50

  # One sentence per line, symmetric window of 5, 100 clusters
  canon-word --corpus corpus.txt --output out/ --sentence-per-line --window 5 --cca-dim 50 --clusters 100

  # Only count (no CCA)
  canon-word --corpus corpus.txt --output out/ --rare 1
        """
    )

    parser.add_argument('--corpus', type=str, required=True, help='Path to a whitespace-tokenized corpus')
    parser.add_argument('--output', type=str, required=True, help='Output directory')
    parser.add_argument('--rare', type=int, default=-1, help='Rare word cutoff (-1: automatic)')
    parser.add_argument('--window', type=int, default=3, help='Context window size, center word included')
    parser.add_argument('--sentence-per-line', action='store_true', help='One sentence per corpus line')
    parser.add_argument('--cca-dim', type=int, default=None, help='CCA dimension (omit to only count)')
    parser.add_argument('--smooth', type=float, default=-1, help='Smoothing term (negative: automatic)')
    parser.add_argument('--clusters', type=int, default=-1, help='Number of K-means clusters (-1: CCA dimension)')
    parser.add_argument('--rare-mass', type=float, default=DEFAULT_RARE_MASS,
                        help='Token mass the automatic rare cutoff may collapse')
    parser.add_argument('--svd-iterations', type=int, default=None,
                        help='Cap on Lanczos steps (default: run to convergence)')
    parser.add_argument('--reset', action='store_true', help='Empty the output directory first')
    parser.add_argument('--force', action='store_true', help='Recompute counts even if cached')
    parser.add_argument('--quiet', action='store_true', help='Suppress progress messages')

    args = parser.parse_args()

    cw = CanonWord(
        args.output,
        rare_cutoff=args.rare,
        window_size=args.window,
        sentence_per_line=args.sentence_per_line,
        cca_dim=args.cca_dim,
        smoothing_term=args.smooth,
        num_clusters=args.clusters,
        rare_mass=args.rare_mass,
        svd_max_iterations=args.svd_iterations,
        verbose=not args.quiet
    )

    if args.reset:
        cw.reset_output_directory()

    cw.extract_statistics(args.corpus, force=args.force)

    if args.cca_dim is not None:
        cw.induce_lexical_representations()
        print(f"\nWord vectors: {cw.wordvectors_path()}")
        if cw.cluster_assignment:
            print(f"Clusters:     {cw.kmeans_path()}")


if __name__ == "__main__":
    main()
