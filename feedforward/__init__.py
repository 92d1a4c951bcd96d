"""
feedforward package
~~~~~~~~~~~~~~~~~~~

Minimal feedforward neural network trainer for MNIST digit recognition.
Contains the dense matrix library, activation and cost functions, the
backpropagation / SGD engine, data loading utilities, and the training
API server.
"""

from feedforward.matrix import Matrix, ShapeMismatchError
from feedforward.network import NetGradients, Network

__version__ = "1.0.0"

__all__ = ['Matrix', 'ShapeMismatchError', 'Network', 'NetGradients']
