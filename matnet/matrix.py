"""
matrix.py
~~~~~~~~~

Generic, shape-checked 2-D matrix container.

A ``Matrix`` holds a rectangular table of scalars of one numeric type
(``int``, ``float``, ``Fraction``, NumPy scalars, ...). Any type with a
zero value (``type(x)()``), ``+`` and ``*`` works. Matrices are immutable:
``add`` and ``mul`` build new matrices and never touch their operands.

Two kinds of failure are kept apart:

- ``InvalidArgumentError`` for shape problems in caller input
- ``BadInternalStateError`` for a broken invariant inside this module
"""

import logging
from typing import (
    Any, Callable, Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar
)

import numpy as np

# Configure module logger
logger = logging.getLogger(__name__)

T = TypeVar('T')


class InvalidArgumentError(ValueError):
    """Raised when an argument has the wrong shape for the operation."""


class BadInternalStateError(RuntimeError):
    """Raised when an invariant the matrix code itself established fails."""


def _zero_like(value: Any) -> Any:
    """Return the additive identity of ``value``'s type."""
    return type(value)()


def dot(lhs: Sequence[T], rhs: Sequence[T]) -> T:
    """
    Compute the inner product of two equal-length sequences.

    Accumulation starts from the zero of the element type and proceeds
    left to right. Overflow and rounding follow the element type.

    Args:
        lhs: Left-hand sequence
        rhs: Right-hand sequence

    Returns:
        Sum of ``lhs[i] * rhs[i]``

    Raises:
        InvalidArgumentError: If the sequences differ in length

    Example:
        >>> dot([1, 2, 3, 4], [4, 3, 2, 1])
        20
    """
    if len(lhs) != len(rhs):
        raise InvalidArgumentError(
            f"dot requires equal lengths, got {len(lhs)} and {len(rhs)}"
        )

    if len(lhs) == 0:
        return 0

    total = _zero_like(lhs[0])
    for a, b in zip(lhs, rhs):
        total = total + a * b
    return total


class Matrix(Generic[T]):
    """
    Rectangular, immutable table of scalars.

    Rows are stored as tuples in the order given. Every row has the same
    non-zero length and there is at least one row.
    """

    __slots__ = ('_rows',)

    def __init__(self, rows: Sequence[Sequence[T]]):
        """
        Validate and store ``rows``.

        Args:
            rows: Sequence of equal-length, non-empty row sequences

        Raises:
            InvalidArgumentError: If ``rows`` is empty, a row is empty,
                or the rows differ in length
        """
        stored = tuple(tuple(row) for row in rows)

        if not stored:
            raise InvalidArgumentError("Matrix must have at least one row")

        row_length = len(stored[0])
        if row_length == 0:
            raise InvalidArgumentError("Matrix must have at least one column")

        for index, row in enumerate(stored):
            if len(row) != row_length:
                raise InvalidArgumentError(
                    f"Row {index} has {len(row)} elements, expected {row_length}"
                )

        self._rows: Tuple[Tuple[T, ...], ...] = stored

    @classmethod
    def from_numpy(cls, array: np.ndarray) -> 'Matrix':
        """
        Build a matrix from a 2-D NumPy array.

        Elements are converted to Python scalars via ``ndarray.tolist``.

        Raises:
            InvalidArgumentError: If ``array`` is not two-dimensional
        """
        array = np.asarray(array)
        if array.ndim != 2:
            raise InvalidArgumentError(
                f"Expected a 2-D array, got {array.ndim} dimension(s)"
            )
        return cls(array.tolist())

    # ------------------------------------------------------------------
    # Shape queries
    # ------------------------------------------------------------------

    def row_count(self) -> int:
        return len(self._rows)

    def col_count(self) -> int:
        return len(self._rows[0])

    @property
    def shape(self) -> Tuple[int, int]:
        """The ``(row_count, col_count)`` pair."""
        return self.row_count(), self.col_count()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def row(self, i: int) -> Optional[List[T]]:
        """Return a copy of row ``i``, or None if ``i`` is out of range."""
        if not 0 <= i < len(self._rows):
            return None
        return list(self._rows[i])

    def col(self, j: int) -> Optional[List[T]]:
        """Return a copy of column ``j`` in row order, or None if out of range."""
        column = []
        for row in self._rows:
            if not 0 <= j < len(row):
                return None
            column.append(row[j])
        return column

    def val(self, i: int, j: int) -> Optional[T]:
        """Return the element at ``(i, j)``, or None if either index is out of range."""
        if not 0 <= i < len(self._rows):
            return None
        row = self._rows[i]
        if not 0 <= j < len(row):
            return None
        return row[j]

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def iterate(self) -> Iterator[T]:
        """
        Yield every element in row-major order.

        Position ``k`` maps to ``(k // col_count, k % col_count)``; the
        sequence ends after ``row_count * col_count`` elements. Each call
        returns a fresh generator.
        """
        cols = self.col_count()
        for k in range(self.row_count() * cols):
            yield self._rows[k // cols][k % cols]

    def __iter__(self) -> Iterator[T]:
        return self.iterate()

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add(self, rhs: 'Matrix') -> 'Matrix':
        """
        Element-wise sum of two matrices with identical shape.

        Raises:
            InvalidArgumentError: If the shapes differ
        """
        if self.row_count() != rhs.row_count() or self.col_count() != rhs.col_count():
            raise InvalidArgumentError(
                f"Cannot add {self.shape} matrix to {rhs.shape} matrix"
            )

        rows = []
        for i in range(self.row_count()):
            row = []
            for j in range(self.col_count()):
                value_a = self.val(i, j)
                value_b = rhs.val(i, j)
                if value_a is None or value_b is None:
                    _bad_state(f"Required value ({i}, {j}) missing during add")
                row.append(value_a + value_b)
            rows.append(row)

        return Matrix(rows)

    def mul(self, rhs: 'Matrix') -> 'Matrix':
        """
        Matrix product ``self x rhs``.

        Uses the direct triple loop: element ``(i, j)`` of the result is
        ``dot(self.row(i), rhs.col(j))``.

        Raises:
            InvalidArgumentError: If ``self.col_count() != rhs.row_count()``
        """
        if self.col_count() != rhs.row_count():
            raise InvalidArgumentError(
                f"Cannot multiply {self.shape} matrix by {rhs.shape} matrix"
            )

        rows = []
        for i in range(self.row_count()):
            row = self.row(i)
            if row is None:
                _bad_state(f"Matrix is missing required row {i}")

            new_row = []
            for j in range(rhs.col_count()):
                col = rhs.col(j)
                if col is None:
                    _bad_state(f"Matrix is missing required column {j}")
                try:
                    new_row.append(dot(row, col))
                except InvalidArgumentError as e:
                    _bad_state(f"Row {i} and column {j} disagree in length: {e}", cause=e)
            rows.append(new_row)

        return Matrix(rows)

    def __add__(self, rhs: 'Matrix') -> 'Matrix':
        if not isinstance(rhs, Matrix):
            return NotImplemented
        return self.add(rhs)

    def __matmul__(self, rhs: 'Matrix') -> 'Matrix':
        if not isinstance(rhs, Matrix):
            return NotImplemented
        return self.mul(rhs)

    def map(self, fn: Callable[[T], Any]) -> 'Matrix':
        """Apply ``fn`` to every element, returning a matrix of the same shape."""
        return Matrix([[fn(value) for value in row] for row in self._rows])

    # ------------------------------------------------------------------
    # Conversions and comparison
    # ------------------------------------------------------------------

    def tolist(self) -> List[List[T]]:
        """Return the elements as fresh nested lists."""
        return [list(row) for row in self._rows]

    def to_numpy(self, dtype=None) -> np.ndarray:
        """Return the elements as a new 2-D NumPy array."""
        return np.array(self.tolist(), dtype=dtype)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        if self.shape != other.shape:
            return False
        # Element-wise, so NaN never equals itself
        return all(a == b for a, b in zip(self.iterate(), other.iterate()))

    def __hash__(self) -> int:
        return hash(self._rows)

    def __repr__(self) -> str:
        return f"Matrix({self.tolist()!r})"

    # Pickle support (``__slots__`` without ``__dict__``)
    def __getstate__(self):
        return self._rows

    def __setstate__(self, state):
        self._rows = state


def _bad_state(message: str, cause: Optional[BaseException] = None) -> None:
    """Log and raise a fatal internal-state error."""
    logger.critical(message)
    raise BadInternalStateError(message) from cause
