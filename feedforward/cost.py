"""
cost.py
~~~~~~~

Cost functions and their derivatives with respect to the prediction.
"""

from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from feedforward.matrix import Matrix

CostFunc = Callable[[Matrix, Matrix], Matrix]


@dataclass(frozen=True)
class Cost:
    """A named (function, derivative) pair of (prediction, label) -> Matrix."""

    name: str
    function: CostFunc
    derivative: CostFunc

    def __call__(self, prediction: Matrix, label: Matrix) -> Matrix:
        return self.function(prediction, label)


def squared_error(prediction: Matrix, label: Matrix) -> Matrix:
    """
    Elementwise quadratic cost 0.5 * (prediction - label)^2.

    The factor of one half makes :func:`squared_error_prime` the exact
    derivative.

    Raises:
        ShapeMismatchError: If prediction and label differ in shape
    """
    diff = prediction.subtract(label)
    return diff.elementwise_multiply(diff).scalar_multiply(0.5)


def squared_error_prime(prediction: Matrix, label: Matrix) -> Matrix:
    """dC/dprediction for the quadratic cost: prediction - label."""
    return prediction.subtract(label)


SQUARED_ERROR = Cost('squared_error', squared_error, squared_error_prime)


def total_cost(cost: Cost, predictions: Sequence[Matrix],
               labels: Sequence[Matrix]) -> float:
    """
    Sum a cost over a set of samples, for reporting.

    Args:
        cost: The cost to evaluate
        predictions: Network outputs, one per sample
        labels: Expected outputs, index-aligned with predictions

    Returns:
        The summed cost as a Python float
    """
    if len(predictions) != len(labels):
        raise ValueError(
            f"Got {len(predictions)} predictions but {len(labels)} labels"
        )
    return float(sum(
        np.sum(cost(prediction, label).elements, dtype=np.float64)
        for prediction, label in zip(predictions, labels)
    ))
