"""
test_matrix.py
~~~~~~~~~~~~~~

Unit tests for the dense Matrix type.
"""

import pytest
import os
import sys

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from feedforward.matrix import DTYPE, Matrix, ShapeMismatchError


def random_matrix(rng, rows, columns):
    return Matrix.from_array(rng.standard_normal((rows, columns)))


@pytest.mark.unit
class TestConstruction:
    """Allocation, copying and element access."""

    def test_create_is_zero_filled(self):
        mat = Matrix(3, 4)

        assert mat.shape == (3, 4)
        assert mat.size == 12
        assert len(mat.elements) == 12
        assert mat.elements.dtype == DTYPE
        assert not mat.elements.any()

    def test_create_empty(self):
        mat = Matrix(0, 5)
        assert mat.size == 0
        assert len(mat.elements) == 0

    def test_negative_dimensions_rejected(self):
        with pytest.raises(ValueError):
            Matrix(-1, 2)

    def test_row_major_layout(self):
        mat = Matrix.from_list([[1, 2, 3], [4, 5, 6]])

        assert mat.elements.tolist() == [1, 2, 3, 4, 5, 6]
        assert mat[1, 0] == 4.0
        assert mat[0, 2] == 3.0

    def test_from_array_1d_is_column_vector(self):
        mat = Matrix.from_array([1.0, 2.0, 3.0])
        assert mat.shape == (3, 1)

    def test_from_array_rejects_3d(self):
        with pytest.raises(ValueError):
            Matrix.from_array(np.zeros((2, 2, 2)))

    def test_from_array_copies_input(self):
        source = np.ones((2, 2), dtype=np.float32)
        mat = Matrix.from_array(source)
        source[0, 0] = 7.0
        assert mat[0, 0] == 1.0

    def test_setitem(self):
        mat = Matrix(2, 2)
        mat[1, 1] = 2.5
        assert mat.elements.tolist() == [0.0, 0.0, 0.0, 2.5]

    def test_copy_is_independent(self):
        original = Matrix.from_list([[1, 2], [3, 4]])
        duplicate = original.copy()

        assert duplicate == original
        duplicate[0, 0] = 99.0
        assert original[0, 0] == 1.0

    def test_fill(self):
        mat = Matrix(2, 3)
        mat.fill(0.25)
        assert mat.tolist() == [[0.25] * 3] * 2

    def test_to_array_is_a_copy(self):
        mat = Matrix.from_list([[1, 2]])
        array = mat.to_array()
        array[0, 0] = 5.0
        assert mat[0, 0] == 1.0


@pytest.mark.unit
class TestArithmetic:
    """Elementwise operations, products and transposes."""

    def test_add_subtract_elementwise(self):
        a = Matrix.from_list([[1, 2], [3, 4]])
        b = Matrix.from_list([[10, 20], [30, 40]])

        assert a.add(b).tolist() == [[11, 22], [33, 44]]
        assert b.subtract(a).tolist() == [[9, 18], [27, 36]]
        assert a.elementwise_multiply(b).tolist() == [[10, 40], [90, 160]]

    def test_operators(self):
        a = Matrix.from_list([[1, 2], [3, 4]])
        b = Matrix.from_list([[1, 0], [0, 1]])

        assert a + b == a.add(b)
        assert a - b == a.subtract(b)
        assert a @ b == a
        assert a * b == a.elementwise_multiply(b)
        assert a * 2 == a.scalar_multiply(2)
        assert 2 * a == a.scalar_multiply(2)

    def test_matmul_values(self):
        a = Matrix.from_list([[1, 2, 3], [4, 5, 6]])
        b = Matrix.from_list([[7, 8], [9, 10], [11, 12]])

        product = a.matmul(b)

        assert product.shape == (2, 2)
        assert product.tolist() == [[58, 64], [139, 154]]

    def test_transpose_values(self):
        mat = Matrix.from_list([[1, 2, 3], [4, 5, 6]])
        transposed = mat.transpose()

        assert transposed.shape == (3, 2)
        assert transposed.tolist() == [[1, 4], [2, 5], [3, 6]]

    def test_scalar_multiply_keeps_precision(self):
        mat = Matrix.from_list([[1.5, -2.0]])
        result = mat.scalar_multiply(0.1)

        assert result.elements.dtype == DTYPE
        assert np.allclose(result.elements, [0.15, -0.2])

    def test_results_never_alias_inputs(self):
        column = Matrix.from_list([[1], [2], [3]])
        results = [
            column.transpose(),
            column.copy(),
            column.add(column),
            column.scalar_multiply(1.0),
        ]
        for result in results:
            result.fill(0.0)
        assert column.tolist() == [[1], [2], [3]]

    @pytest.mark.parametrize("seed", range(5))
    def test_transpose_round_trip(self, seed):
        rng = np.random.default_rng(seed)
        rows, columns = rng.integers(1, 6, size=2)
        mat = random_matrix(rng, rows, columns)

        assert mat.transpose().transpose() == mat

    @pytest.mark.parametrize("seed", range(5))
    def test_transpose_of_product(self, seed):
        rng = np.random.default_rng(seed)
        n, k, m = rng.integers(1, 6, size=3)
        a = random_matrix(rng, n, k)
        b = random_matrix(rng, k, m)

        left = a.matmul(b).transpose()
        right = b.transpose().matmul(a.transpose())

        assert left.allclose(right, rtol=1e-5, atol=1e-6)

    @pytest.mark.parametrize("seed", range(5))
    def test_add_commutes(self, seed):
        rng = np.random.default_rng(seed)
        a = random_matrix(rng, 3, 4)
        b = random_matrix(rng, 3, 4)

        assert a.add(b) == b.add(a)

    @pytest.mark.parametrize("seed", range(5))
    def test_subtract_antisymmetric(self, seed):
        rng = np.random.default_rng(seed)
        a = random_matrix(rng, 4, 2)
        b = random_matrix(rng, 4, 2)

        assert a.subtract(b) == b.subtract(a).scalar_multiply(-1)


@pytest.mark.unit
class TestShapeErrors:
    """Incompatible dimensions are reported, never silently accepted."""

    def test_matmul_mismatch(self):
        a = Matrix(2, 3)
        b = Matrix(2, 3)

        with pytest.raises(ShapeMismatchError) as exc_info:
            a.matmul(b)

        assert exc_info.value.left_shape == (2, 3)
        assert exc_info.value.right_shape == (2, 3)
        assert exc_info.value.operation == 'multiply'

    @pytest.mark.parametrize("operation", [
        'add', 'subtract', 'elementwise_multiply'
    ])
    def test_elementwise_mismatch(self, operation):
        a = Matrix(2, 3)
        b = Matrix(3, 2)

        with pytest.raises(ShapeMismatchError):
            getattr(a, operation)(b)

    def test_shape_error_is_value_error(self):
        with pytest.raises(ValueError) as exc_info:
            Matrix(1, 2).add(Matrix(2, 1))
        assert "1x2" in str(exc_info.value)
        assert "2x1" in str(exc_info.value)

    def test_same_size_different_shape_rejected(self):
        # Same element count is not enough
        with pytest.raises(ShapeMismatchError):
            Matrix(1, 4).add(Matrix(2, 2))


@pytest.mark.unit
class TestArgmax:
    """Index of the maximum element."""

    def test_first_occurrence_wins(self):
        mat = Matrix.from_array([0.3, 0.3, 0.1])
        assert mat.argmax() == 0

    def test_row_major_index(self):
        mat = Matrix.from_list([[0.0, 0.1], [0.9, 0.2]])
        assert mat.argmax() == 2

    def test_later_strictly_greater_replaces(self):
        mat = Matrix.from_array([0.1, 0.5, 0.5, 0.7, 0.7])
        assert mat.argmax() == 3

    def test_nan_is_skipped(self):
        mat = Matrix.from_array([0.2, float('nan'), 0.1])
        assert mat.argmax() == 0

    def test_empty_matrix_rejected(self):
        with pytest.raises(ValueError):
            Matrix(0, 1).argmax()


@pytest.mark.unit
def test_format():
    mat = Matrix.from_list([[1, 2], [3, 4]])
    assert mat.format(precision=1) == "[ 1.0 2.0 ]\n[ 3.0 4.0 ]"
    assert str(mat).startswith("[ 1.000000 2.000000 ]")
    assert repr(mat) == "Matrix(rows=2, columns=2)"
