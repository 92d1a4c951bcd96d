"""
matrix.py
~~~~~~~~~

Dense, row-major, fixed-size matrices of 32-bit floats.

A Matrix is a value: every arithmetic operation returns a new Matrix with
its own storage, so a result never aliases one of its inputs. Dimension
errors are reported with ShapeMismatchError instead of yielding an
empty or zero-shaped result.
"""

from typing import Any, List, Tuple, Union

import numpy as np

# Storage width for every element and every intermediate result
DTYPE = np.float32

Shape = Tuple[int, int]
Scalar = Union[int, float, np.floating]


class ShapeMismatchError(ValueError):
    """
    Raised when two matrices have incompatible dimensions.

    Attributes:
        operation: Name of the operation that was attempted
        left_shape: (rows, columns) of the left operand
        right_shape: (rows, columns) of the right operand
    """

    def __init__(self, operation: str, left_shape: Shape, right_shape: Shape):
        self.operation = operation
        self.left_shape = tuple(left_shape)
        self.right_shape = tuple(right_shape)
        super().__init__(
            f"Incompatible shapes for {operation}: "
            f"{left_shape[0]}x{left_shape[1]} and "
            f"{right_shape[0]}x{right_shape[1]}"
        )


class Matrix:
    """
    A 2-D dense matrix stored as a flat float32 array in row-major order.

    The element at (row, col) lives at ``elements[row * columns + col]``
    and ``len(elements) == rows * columns`` always holds.
    """

    __slots__ = ('rows', 'columns', 'elements')

    def __init__(self, rows: int, columns: int):
        """
        Allocate a zero-filled matrix.

        Args:
            rows: Number of rows (non-negative)
            columns: Number of columns (non-negative)

        Raises:
            ValueError: If either dimension is negative
            MemoryError: If the storage cannot be allocated
        """
        if rows < 0 or columns < 0:
            raise ValueError(
                f"Matrix dimensions must be non-negative, got {rows}x{columns}"
            )
        self.rows = int(rows)
        self.columns = int(columns)
        self.elements = np.zeros(self.rows * self.columns, dtype=DTYPE)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_array(cls, array: Any) -> 'Matrix':
        """
        Build a matrix from anything numpy can turn into an array.

        A 1-D input becomes a column vector, which is the shape the
        network uses for features and labels.

        Args:
            array: 1-D or 2-D array-like of numbers

        Returns:
            A new Matrix holding a float32 copy of the values

        Raises:
            ValueError: If the input has more than two dimensions
        """
        data = np.asarray(array, dtype=DTYPE)
        if data.ndim == 1:
            data = data.reshape(-1, 1)
        elif data.ndim != 2:
            raise ValueError(
                f"Expected a 1-D or 2-D array, got {data.ndim} dimensions"
            )
        mat = cls(data.shape[0], data.shape[1])
        mat.elements[:] = data.ravel()
        return mat

    @classmethod
    def from_list(cls, values: List[Any]) -> 'Matrix':
        """Build a matrix from nested Python lists (one list per row)."""
        return cls.from_array(values)

    @classmethod
    def _wrap(cls, grid: np.ndarray) -> 'Matrix':
        # grid must be a freshly allocated 2-D array owned by no other Matrix
        mat = cls.__new__(cls)
        mat.rows, mat.columns = int(grid.shape[0]), int(grid.shape[1])
        mat.elements = np.ascontiguousarray(grid, dtype=DTYPE).reshape(-1)
        return mat

    def _grid(self) -> np.ndarray:
        """2-D view over the element storage (no copy)."""
        return self.elements.reshape(self.rows, self.columns)

    # ------------------------------------------------------------------
    # Basic properties and element access
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Shape:
        return (self.rows, self.columns)

    @property
    def size(self) -> int:
        return self.rows * self.columns

    def __getitem__(self, index: Tuple[int, int]) -> float:
        row, col = index
        return float(self._grid()[row, col])

    def __setitem__(self, index: Tuple[int, int], value: Scalar) -> None:
        row, col = index
        self._grid()[row, col] = value

    def to_array(self) -> np.ndarray:
        """Return a 2-D numpy copy of the matrix."""
        return self._grid().copy()

    def tolist(self) -> List[List[float]]:
        return self._grid().tolist()

    def copy(self) -> 'Matrix':
        """Deep copy with independent storage."""
        return Matrix._wrap(self._grid().copy())

    def fill(self, value: Scalar) -> None:
        """Set every element to ``value`` in place."""
        self.elements.fill(value)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _require_same_shape(self, other: 'Matrix', operation: str) -> None:
        if self.rows != other.rows or self.columns != other.columns:
            raise ShapeMismatchError(operation, self.shape, other.shape)

    def transpose(self) -> 'Matrix':
        """Return a new (columns x rows) matrix with result[j, i] = self[i, j]."""
        return Matrix._wrap(self._grid().T.copy())

    def add(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'add')
        return Matrix._wrap(self._grid() + other._grid())

    def subtract(self, other: 'Matrix') -> 'Matrix':
        self._require_same_shape(other, 'subtract')
        return Matrix._wrap(self._grid() - other._grid())

    def elementwise_multiply(self, other: 'Matrix') -> 'Matrix':
        """Hadamard product of two equally shaped matrices."""
        self._require_same_shape(other, 'elementwise-multiply')
        return Matrix._wrap(self._grid() * other._grid())

    def matmul(self, other: 'Matrix') -> 'Matrix':
        """
        Matrix product ``self @ other``.

        Args:
            other: Matrix with as many rows as this matrix has columns

        Returns:
            A new (self.rows x other.columns) matrix

        Raises:
            ShapeMismatchError: If self.columns != other.rows
        """
        if self.columns != other.rows:
            raise ShapeMismatchError('multiply', self.shape, other.shape)
        return Matrix._wrap(np.matmul(self._grid(), other._grid()))

    def scalar_multiply(self, scalar: Scalar) -> 'Matrix':
        return Matrix._wrap(self._grid() * DTYPE(scalar))

    def apply(self, func) -> 'Matrix':
        """
        Apply an elementwise numpy function and wrap the result.

        ``func`` receives the 2-D float32 view and must return a new array
        of the same shape.
        """
        result = func(self._grid())
        if result.shape != self.shape:
            raise ShapeMismatchError('apply', self.shape, result.shape)
        return Matrix._wrap(np.array(result, dtype=DTYPE))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def argmax(self) -> int:
        """
        Row-major index of the largest element.

        Ties go to the first occurrence in scan order; a NaN never
        displaces the maximum tracked so far.

        Raises:
            ValueError: If the matrix has no elements
        """
        if self.elements.size == 0:
            raise ValueError("Cannot find the maximum of an empty matrix")
        if np.isnan(self.elements[0]):
            return 0
        scan = np.where(np.isnan(self.elements), -np.inf, self.elements)
        return int(np.argmax(scan))

    def allclose(self, other: 'Matrix', rtol: float = 1e-5,
                 atol: float = 1e-8) -> bool:
        """True if shapes match and all elements agree within tolerance."""
        if self.shape != other.shape:
            return False
        return bool(np.allclose(self.elements, other.elements,
                                rtol=rtol, atol=atol))

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def __add__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.subtract(other)

    def __matmul__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.matmul(other)

    def __mul__(self, other):
        if isinstance(other, Matrix):
            return self.elementwise_multiply(other)
        if isinstance(other, (int, float, np.number)):
            return self.scalar_multiply(other)
        return NotImplemented

    def __rmul__(self, other):
        if isinstance(other, (int, float, np.number)):
            return self.scalar_multiply(other)
        return NotImplemented

    def __eq__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        return (self.shape == other.shape
                and bool(np.array_equal(self.elements, other.elements)))

    __hash__ = None

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def format(self, precision: int = 6) -> str:
        """Render one ``[ a b c ]`` line per row."""
        lines = []
        for row in self._grid():
            values = ' '.join(f"{value:.{precision}f}" for value in row)
            lines.append(f"[ {values} ]")
        return '\n'.join(lines)

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"Matrix(rows={self.rows}, columns={self.columns})"
