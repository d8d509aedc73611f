#!/usr/bin/env python3
"""
Co-occurrence Counting for CanonWord
====================================

Scans sentences and accumulates three count tables:

  - word counts:          how often each word type occurs
  - context counts:       how often each labeled context occurs
  - word-context counts:  how often a word occurs with a labeled context

A labeled context records the offset of the neighbor: with window size 3,
the corpus "a b c" yields for the center word "b" the contexts "w(-1)=a"
and "w(1)=c". Positions outside the sentence are filled with the buffer
token "<!>".

Rare words are collapsed into "<?>" before counting, which takes two passes
over the corpus: the first to count word types (and, if the cutoff is
automatic, to choose the cutoff), the second to count with rare words
replaced everywhere, as centers and as contexts.

Window convention (the window includes the center word):

    window_size=2:  w(1)
    window_size=3:  w(-1) w(1)
    window_size=4:  w(-1) w(1) w(2)
    window_size=5:  w(-2) w(-1) w(1) w(2)
"""

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from .errors import IOFailure, MalformedInputError
from .io import atomic_write
from .sparse import SparseMatrix


RARE_STRING = "<?>"
BUFFER_STRING = "<!>"

DEFAULT_RARE_MASS = 0.05


# =============================================================================
# Dictionary
# =============================================================================

class Dictionary:
    """
    Bidirectional string <-> integer mapping, ids in first-seen order.

    Example:
        >>> d = Dictionary()
        >>> d.add("the"), d.add("cat"), d.add("the")
        (0, 1, 0)
        >>> d.num2str(1)
        'cat'
    """

    def __init__(self, strings: Iterable[str] = None):
        self._strings: List[str] = []
        self._ids: Dict[str, int] = {}
        for s in strings or []:
            self.add(s)

    def add(self, string: str) -> int:
        """Return the id of `string`, assigning the next id if unseen."""
        index = self._ids.get(string)
        if index is None:
            index = len(self._strings)
            self._ids[string] = index
            self._strings.append(string)
        return index

    def str2num(self, string: str) -> int:
        if string not in self._ids:
            raise KeyError(f"Unknown string: {string!r}")
        return self._ids[string]

    def num2str(self, index: int) -> str:
        if not 0 <= index < len(self._strings):
            raise KeyError(f"Unknown id: {index}")
        return self._strings[index]

    def __contains__(self, string: str) -> bool:
        return string in self._ids

    def __len__(self) -> int:
        return len(self._strings)

    def __iter__(self):
        return iter(self._strings)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Dictionary):
            return NotImplemented
        return self._strings == other._strings

    def __repr__(self) -> str:
        return f"Dictionary(size={len(self)})"

    def write(self, filepath: Union[str, Path]):
        """One `<string> <id>` line per entry, in assignment order."""
        with atomic_write(filepath) as f:
            for index, string in enumerate(self._strings):
                f.write(f"{string} {index}\n")

    @classmethod
    def load(cls, filepath: Union[str, Path]) -> 'Dictionary':
        filepath = Path(filepath)
        if not filepath.is_file():
            raise IOFailure(f"Dictionary file not found: {filepath}")
        d = cls()
        with open(filepath, 'r', encoding='utf-8') as f:
            for line_no, line in enumerate(f, 1):
                parts = line.split()
                if not parts:
                    continue
                if len(parts) != 2 or not parts[1].isdigit():
                    raise MalformedInputError(f"{filepath}:{line_no}: expected '<string> <id>'")
                if d.add(parts[0]) != int(parts[1]):
                    raise MalformedInputError(f"{filepath}:{line_no}: ids out of assignment order")
        return d


# =============================================================================
# Count Tables
# =============================================================================

@dataclass
class CooccurrenceCounts:
    """
    Output of a corpus scan.

    Attributes:
        word_dict: Word strings (after rare collapsing) <-> row ids
        context_dict: Labeled contexts <-> column ids
        word_counts: Count per word id
        context_counts: Count per context id
        word_context: Joint counts, rows = words, columns = contexts
        raw_word_counts: Word counts before collapsing
        rare_words: Word types collapsed into the rare token
        rare_cutoff: Cutoff actually applied
        num_tokens: Corpus size in tokens
    """
    word_dict: Dictionary = field(default_factory=Dictionary)
    context_dict: Dictionary = field(default_factory=Dictionary)
    word_counts: List[int] = field(default_factory=list)
    context_counts: List[int] = field(default_factory=list)
    word_context: SparseMatrix = field(default_factory=SparseMatrix)
    raw_word_counts: Dict[str, int] = field(default_factory=dict)
    rare_words: Set[str] = field(default_factory=set)
    rare_cutoff: int = 0
    num_tokens: int = 0

    def word_count(self, word: str) -> int:
        return self.word_counts[self.word_dict.str2num(word)] if word in self.word_dict else 0

    def context_count(self, context: str) -> int:
        return self.context_counts[self.context_dict.str2num(context)] if context in self.context_dict else 0

    def joint_count(self, word: str, context: str) -> int:
        if word not in self.word_dict or context not in self.context_dict:
            return 0
        return int(self.word_context.get(
            self.word_dict.str2num(word), self.context_dict.str2num(context)
        ))

    def sorted_words(self) -> List[Tuple[str, int]]:
        """Words by descending count; ties keep first-seen order."""
        pairs = [(self.word_dict.num2str(i), c) for i, c in enumerate(self.word_counts)]
        return sorted(pairs, key=lambda x: -x[1])


def window_offsets(window_size: int) -> List[int]:
    """Offsets of the labeled contexts, left to right."""
    if window_size < 2:
        raise ValueError(f"window_size must be at least 2, got {window_size}")
    left = (window_size - 1) // 2
    right = window_size - 1 - left
    return list(range(-left, 0)) + list(range(1, right + 1))


def context_label(offset: int, token: str) -> str:
    return f"w({offset})={token}"


def determine_rare_cutoff(word_counts: Dict[str, int], rare_mass: float = DEFAULT_RARE_MASS) -> int:
    """
    Pick the largest count c such that the words occurring at most c times
    cover no more than `rare_mass` of the tokens.
    """
    total = sum(word_counts.values())
    if total == 0:
        return 0

    mass_by_count = Counter()
    for count in word_counts.values():
        mass_by_count[count] += count

    cutoff = 0
    covered = 0
    for count in sorted(mass_by_count):
        covered += mass_by_count[count]
        if covered > rare_mass * total:
            break
        cutoff = count
    return cutoff


class CooccurrenceBuilder:
    """
    Two-pass co-occurrence counter.

    Example:
        >>> builder = CooccurrenceBuilder(window_size=2, rare_cutoff=0)
        >>> counts = builder.build([["a", "b", "c", "a", "b", "d"]])
        >>> counts.joint_count("a", "w(1)=b")
        2
    """

    def __init__(
        self,
        window_size: int = 3,
        rare_cutoff: int = -1,
        rare_mass: float = DEFAULT_RARE_MASS,
        rare_string: str = RARE_STRING,
        buffer_string: str = BUFFER_STRING
    ):
        """
        Args:
            window_size: Window length including the center word (>= 2)
            rare_cutoff: Words seen at most this often become `rare_string`.
                         -1 chooses the cutoff from the count distribution.
            rare_mass: Token mass the automatic cutoff may collapse
            rare_string: Token standing for collapsed rare words
            buffer_string: Token standing for positions outside a sentence
        """
        self.offsets = window_offsets(window_size)
        self.window_size = window_size
        self.rare_cutoff = rare_cutoff
        self.rare_mass = rare_mass
        self.rare_string = rare_string
        self.buffer_string = buffer_string

    def count_words(self, sentences: Iterable[List[str]]) -> Dict[str, int]:
        """First pass: raw word type counts, in first-seen order."""
        counts = {}
        for sentence in sentences:
            for token in sentence:
                counts[token] = counts.get(token, 0) + 1
        return counts

    def build(self, sentences: List[List[str]]) -> CooccurrenceCounts:
        """
        Count words, contexts and word-context pairs.

        Args:
            sentences: Materialized list of token lists (iterated twice)

        Returns:
            CooccurrenceCounts
        """
        raw_counts = self.count_words(sentences)

        if self.rare_cutoff < 0:
            cutoff = determine_rare_cutoff(raw_counts, self.rare_mass)
        else:
            cutoff = self.rare_cutoff
        rare_words = {w for w, c in raw_counts.items() if c <= cutoff}

        word_dict = Dictionary()
        context_dict = Dictionary()
        word_counts: List[int] = []
        context_counts: List[int] = []
        joint: Dict[int, Dict[int, int]] = {}
        num_tokens = 0

        for sentence in sentences:
            tokens = [self.rare_string if t in rare_words else t for t in sentence]
            n = len(tokens)
            for i, token in enumerate(tokens):
                word = word_dict.add(token)
                if word == len(word_counts):
                    word_counts.append(0)
                word_counts[word] += 1
                num_tokens += 1

                for d in self.offsets:
                    j = i + d
                    neighbor = tokens[j] if 0 <= j < n else self.buffer_string
                    context = context_dict.add(context_label(d, neighbor))
                    if context == len(context_counts):
                        context_counts.append(0)
                    context_counts[context] += 1

                    column = joint.setdefault(context, {})
                    column[word] = column.get(word, 0) + 1

        return CooccurrenceCounts(
            word_dict=word_dict,
            context_dict=context_dict,
            word_counts=word_counts,
            context_counts=context_counts,
            word_context=SparseMatrix(joint, num_rows=len(word_dict), num_columns=len(context_dict)),
            raw_word_counts=raw_counts,
            rare_words=rare_words,
            rare_cutoff=cutoff,
            num_tokens=num_tokens
        )


# =============================================================================
# Count Files
# =============================================================================

def write_count_file(filepath: Union[str, Path], counts: List[int]):
    """One `<count>` line per id."""
    with atomic_write(filepath) as f:
        for count in counts:
            f.write(f"{count}\n")


def read_count_file(filepath: Union[str, Path]) -> List[int]:
    filepath = Path(filepath)
    if not filepath.is_file():
        raise IOFailure(f"Count file not found: {filepath}")
    counts = []
    with open(filepath, 'r', encoding='utf-8') as f:
        for line_no, line in enumerate(f, 1):
            parts = line.split()
            if not parts:
                continue
            if len(parts) != 1 or not parts[0].isdigit():
                raise MalformedInputError(f"{filepath}:{line_no}: expected a single count")
            counts.append(int(parts[0]))
    return counts


def write_joint_count_file(filepath: Union[str, Path], matrix: SparseMatrix):
    """
    For each column: a `<column>` header line, then `<row> <count>` lines.
    """
    with atomic_write(filepath) as f:
        for col in range(matrix.num_columns):
            f.write(f"{col}\n")
            column = matrix.column(col)
            for row in sorted(column):
                f.write(f"{row} {int(column[row])}\n")


def read_joint_count_file(
    filepath: Union[str, Path],
    num_rows: int,
    num_columns: int
) -> SparseMatrix:
    filepath = Path(filepath)
    if not filepath.is_file():
        raise IOFailure(f"Word-context count file not found: {filepath}")

    matrix = SparseMatrix(num_rows=num_rows, num_columns=num_columns)
    col: Optional[int] = None
    with open(filepath, 'r', encoding='utf-8') as f:
        for line_no, line in enumerate(f, 1):
            parts = line.split()
            if not parts:
                continue
            if not all(p.isdigit() for p in parts) or len(parts) > 2:
                raise MalformedInputError(f"{filepath}:{line_no}: unexpected line {line.strip()!r}")
            try:
                if len(parts) == 1:
                    col = int(parts[0])
                    if col >= num_columns:
                        raise IndexError(f"column {col} >= {num_columns}")
                elif col is None:
                    raise MalformedInputError(f"{filepath}:{line_no}: entry before any column header")
                else:
                    matrix.set(int(parts[0]), col, int(parts[1]))
            except IndexError as e:
                raise MalformedInputError(f"{filepath}:{line_no}: {e}") from e
    return matrix
