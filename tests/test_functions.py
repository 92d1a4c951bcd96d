"""
test_functions.py
~~~~~~~~~~~~~~~~~

Unit tests for activation functions, cost functions and initializers.
"""

import pytest
import math
import os
import sys

import numpy as np

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from feedforward.activation import (
    MIRRORED_SIGMOID,
    SIGMOID,
    get_activation,
    mirrored_sigmoid,
    mirrored_sigmoid_prime,
    sigmoid,
    sigmoid_prime,
)
from feedforward.cost import SQUARED_ERROR, squared_error, total_cost
from feedforward.initialization import constant_fill, normal_fill
from feedforward.matrix import DTYPE, Matrix, ShapeMismatchError


@pytest.fixture
def z():
    """Pre-activation column vector with a spread of values."""
    return Matrix.from_array([-2.0, 0.0, 0.5, 3.0])


@pytest.mark.unit
class TestActivations:

    def test_sigmoid_values(self, z):
        expected = [1.0 / (1.0 + math.exp(-v)) for v in (-2.0, 0.0, 0.5, 3.0)]

        result = sigmoid(z)

        assert result.shape == z.shape
        assert result.elements.dtype == DTYPE
        assert np.allclose(result.elements, expected, rtol=1e-5)

    def test_sigmoid_prime_uses_preactivation(self, z):
        s = np.array([1.0 / (1.0 + math.exp(-v)) for v in (-2.0, 0.0, 0.5, 3.0)])
        assert np.allclose(sigmoid_prime(z).elements, s * (1 - s), rtol=1e-5)

    def test_mirrored_sigmoid_matches_reference_formula(self, z):
        expected = [1.0 / (1.0 + math.exp(v)) for v in (-2.0, 0.0, 0.5, 3.0)]
        assert np.allclose(mirrored_sigmoid(z).elements, expected, rtol=1e-5)

    def test_mirrored_sigmoid_is_decreasing(self):
        values = mirrored_sigmoid(Matrix.from_array([-1.0, 0.0, 1.0])).elements
        assert values[0] > values[1] > values[2]
        assert values[1] == pytest.approx(0.5)

    def test_mirrored_sigmoid_prime(self, z):
        m = np.array([1.0 / (1.0 + math.exp(v)) for v in (-2.0, 0.0, 0.5, 3.0)])
        assert np.allclose(mirrored_sigmoid_prime(z).elements, m * (1 - m), rtol=1e-5)

    def test_extreme_inputs_saturate_without_nan(self):
        extreme = Matrix.from_array([-1000.0, 1000.0])

        assert sigmoid(extreme).elements.tolist() == [0.0, 1.0]
        assert mirrored_sigmoid(extreme).elements.tolist() == [1.0, 0.0]
        assert not np.isnan(sigmoid_prime(extreme).elements).any()

    def test_activation_is_callable(self, z):
        assert SIGMOID(z) == sigmoid(z)
        assert SIGMOID.derivative(z) == sigmoid_prime(z)

    def test_registry_lookup(self):
        assert get_activation('sigmoid') is SIGMOID
        assert get_activation('mirrored_sigmoid') is MIRRORED_SIGMOID

    def test_registry_unknown_name(self):
        with pytest.raises(ValueError) as exc_info:
            get_activation('relu')
        assert 'sigmoid' in str(exc_info.value)


@pytest.mark.unit
class TestCost:

    def test_squared_error(self):
        prediction = Matrix.from_array([0.5, 1.0])
        label = Matrix.from_array([1.0, 1.0])

        assert squared_error(prediction, label).elements.tolist() == [0.125, 0.0]

    def test_derivative_is_difference(self):
        prediction = Matrix.from_array([0.25, 0.75])
        label = Matrix.from_array([1.0, 0.0])

        result = SQUARED_ERROR.derivative(prediction, label)

        assert result.elements.tolist() == [-0.75, 0.75]

    def test_shape_mismatch(self):
        with pytest.raises(ShapeMismatchError):
            SQUARED_ERROR.derivative(Matrix(2, 1), Matrix(3, 1))

    def test_total_cost(self):
        predictions = [Matrix.from_array([0.0, 1.0]), Matrix.from_array([0.5, 0.5])]
        labels = [Matrix.from_array([1.0, 1.0]), Matrix.from_array([0.5, 0.5])]

        assert total_cost(SQUARED_ERROR, predictions, labels) == pytest.approx(0.5)

    def test_total_cost_misaligned(self):
        with pytest.raises(ValueError):
            total_cost(SQUARED_ERROR, [Matrix(1, 1)], [])


@pytest.mark.unit
class TestInitialization:

    def test_normal_fill_statistics(self):
        mat = Matrix(200, 100)
        normal_fill(np.random.default_rng(0))(mat)

        assert np.isfinite(mat.elements).all()
        assert abs(float(mat.elements.mean())) < 0.05
        assert abs(float(mat.elements.std()) - 1.0) < 0.05

    def test_normal_fill_is_seedable(self):
        a, b = Matrix(3, 3), Matrix(3, 3)
        normal_fill(np.random.default_rng(42))(a)
        normal_fill(np.random.default_rng(42))(b)

        assert a == b
        assert a.elements.any()

    def test_normal_fill_draws_fresh_values_per_call(self):
        init = normal_fill(np.random.default_rng(7))
        a, b = Matrix(2, 2), Matrix(2, 2)
        init(a)
        init(b)
        assert a != b

    def test_constant_fill(self):
        mat = Matrix(2, 2)
        constant_fill(0.1)(mat)
        assert np.allclose(mat.elements, 0.1)
