#!/usr/bin/env python3
"""
File helpers for CanonWord: atomic writes, corpus reading, and the
word-vector text format (GloVe-style: a word followed by its values).
"""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Tuple, Union

import numpy as np

from .errors import IOFailure, MalformedInputError


PathLike = Union[str, Path]


@contextmanager
def atomic_write(path: PathLike) -> Iterator:
    """
    Open `path` for writing so that readers never see a partial file.

    Content goes to a temporary sibling which replaces `path` only when the
    block exits without an exception.
    """
    path = Path(path)
    tmp_path = path.with_name(f".{path.name}.tmp{os.getpid()}")
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            yield f
        os.replace(tmp_path, path)
    except OSError as e:
        raise IOFailure(f"Could not write {path}: {e}") from e
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def read_corpus(filepath: PathLike, sentence_per_line: bool = False) -> List[List[str]]:
    """
    Read a whitespace-tokenized corpus.

    Args:
        filepath: Path to a text file
        sentence_per_line: Treat each non-empty line as its own sentence.
                           Otherwise the whole file is a single token stream.

    Returns:
        List of sentences (lists of tokens). In stream mode the list has
        exactly one element, possibly empty.
    """
    filepath = Path(filepath)
    if not filepath.is_file():
        raise IOFailure(f"Corpus file not found: {filepath}")

    sentences = []
    stream = []
    with open(filepath, 'r', encoding='utf-8', errors='replace') as f:
        for line in f:
            tokens = line.split()
            if not tokens:
                continue
            if sentence_per_line:
                sentences.append(tokens)
            else:
                stream.extend(tokens)

    if not sentence_per_line:
        sentences.append(stream)
    return sentences


def write_word_vectors(filepath: PathLike, words: List[str], vectors: np.ndarray):
    """Write one `<word> <v1> ... <vd>` line per word, in the given order."""
    with atomic_write(filepath) as f:
        for word, vec in zip(words, vectors):
            values = ' '.join(f"{x:.8g}" for x in vec)
            f.write(f"{word} {values}\n")


def load_word_vectors(filepath: PathLike, max_words: int = None) -> Tuple[Dict[str, np.ndarray], int]:
    """
    Load word vectors written by `write_word_vectors`.

    Returns:
        (embeddings dict, dimension)
    """
    filepath = Path(filepath)
    if not filepath.is_file():
        raise IOFailure(f"Word vector file not found: {filepath}")

    embeddings = {}
    dim = None
    with open(filepath, 'r', encoding='utf-8', errors='replace') as f:
        for line_no, line in enumerate(f, 1):
            parts = line.strip().split()
            if not parts:
                continue
            word = parts[0]
            try:
                vec = np.array([float(x) for x in parts[1:]], dtype=np.float64)
            except ValueError:
                raise MalformedInputError(f"{filepath}:{line_no}: non-numeric vector value")
            if dim is None:
                dim = len(vec)
            elif len(vec) != dim:
                raise MalformedInputError(
                    f"{filepath}:{line_no}: expected {dim} values, found {len(vec)}"
                )
            embeddings[word] = vec
            if max_words and len(embeddings) >= max_words:
                break

    return embeddings, dim or 0


def write_values(filepath: PathLike, values):
    """Write one real value per line."""
    with atomic_write(filepath) as f:
        for value in values:
            f.write(f"{value:.12g}\n")


def read_values(filepath: PathLike) -> np.ndarray:
    """Read a file written by `write_values`."""
    filepath = Path(filepath)
    if not filepath.is_file():
        raise IOFailure(f"File not found: {filepath}")
    values = []
    with open(filepath, 'r', encoding='utf-8') as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                values.append(float(line))
            except ValueError:
                raise MalformedInputError(f"{filepath}:{line_no}: not a number: {line!r}")
    return np.array(values)
