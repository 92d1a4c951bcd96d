"""
network.py
~~~~~~~~~~

A feedforward neural network trained with mini-batch stochastic gradient
descent, with gradients computed by backpropagation.

Weights and biases are Matrix objects. The activation and the cost are
passed in as values on every call rather than stored on the network.
Features and labels are column vectors: features are (sizes[0], 1) and
labels are (sizes[-1], 1), one-hot for classification.
"""

import logging
import time
from typing import (
    Any, Callable, Dict, List, MutableSequence, NamedTuple, Optional,
    Sequence, Tuple
)

import numpy as np

from feedforward.activation import Activation
from feedforward.cost import Cost
from feedforward.initialization import InitFunc
from feedforward.matrix import DTYPE, Matrix, ShapeMismatchError

logger = logging.getLogger(__name__)

# (features, labels), index-aligned
Dataset = Tuple[Sequence[Matrix], Sequence[Matrix]]


class NetGradients(NamedTuple):
    """Per-layer gradients, shape-matching Network.weights / Network.biases."""
    weights: List[Matrix]
    biases: List[Matrix]


def shuffle(features: MutableSequence[Matrix],
            labels: MutableSequence[Matrix],
            rng: Optional[np.random.Generator] = None) -> None:
    """
    Shuffle features and labels in place with one shared permutation.

    Fisher-Yates: walk i from the last index down to 1 and swap slot i
    with a uniformly chosen slot in [0, i] in both sequences, so sample i
    keeps its label.

    Args:
        features: Feature matrices
        labels: Label matrices, index-aligned with features
        rng: Random source. None seeds a fresh generator from the OS.

    Raises:
        ValueError: If the sequences differ in length
    """
    if len(features) != len(labels):
        raise ValueError(
            f"Cannot shuffle {len(features)} features with "
            f"{len(labels)} labels"
        )
    if rng is None:
        rng = np.random.default_rng()

    for i in range(len(features) - 1, 0, -1):
        j = int(rng.integers(0, i + 1))
        features[i], features[j] = features[j], features[i]
        labels[i], labels[j] = labels[j], labels[i]


def classify(output: Matrix) -> int:
    """
    Class index for a network output or a label.

    Multi-element vectors use the position of the maximum. A single
    output is read as a binary decision thresholded at 0.5.
    """
    if output.size == 1:
        return int(output.elements[0] >= 0.5)
    return output.argmax()


class Network:
    """
    A linear stack of dense layers.

    ``weights[i]`` maps layer i to layer i+1 and has shape
    (sizes[i+1], sizes[i]); ``biases[i]`` has shape (sizes[i+1], 1).
    """

    def __init__(
        self,
        sizes: Sequence[int],
        init_weights: Optional[InitFunc] = None,
        init_biases: Optional[InitFunc] = None
    ):
        """
        Build the weight and bias matrices for a topology.

        Args:
            sizes: Neurons per layer, input and output layers included.
                For example [784, 30, 10].
            init_weights: Called once per layer to fill that layer's weight
                matrix in place. None leaves the weights at zero.
            init_biases: Same, for the bias vectors.

        Raises:
            ValueError: If there are fewer than two layers or a size is
                not a positive integer
        """
        sizes = list(sizes)
        if len(sizes) < 2:
            raise ValueError(
                f"A network needs at least 2 layers, got {len(sizes)}"
            )
        for size in sizes:
            if (isinstance(size, bool)
                    or not isinstance(size, (int, np.integer))
                    or size < 1):
                raise ValueError(
                    f"Layer sizes must be positive integers, got {sizes}"
                )

        self.num_layers = len(sizes)
        self.sizes = [int(size) for size in sizes]
        self.weights: Optional[List[Matrix]] = []
        self.biases: Optional[List[Matrix]] = []

        for x, y in zip(self.sizes[:-1], self.sizes[1:]):
            weight = Matrix(y, x)
            bias = Matrix(y, 1)
            if init_weights is not None:
                init_weights(weight)
            if init_biases is not None:
                init_biases(bias)
            self.weights.append(weight)
            self.biases.append(bias)

        logger.debug(f"Initialized network with architecture {self.sizes}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def released(self) -> bool:
        return self.weights is None

    def release(self) -> None:
        """Drop all parameter matrices. The network is unusable afterwards."""
        self.weights = None
        self.biases = None

    def _check_alive(self) -> None:
        if self.released:
            raise RuntimeError("Network has been released")

    def _check_column(self, mat: Matrix, size: int, what: str) -> None:
        if mat.shape != (size, 1):
            raise ShapeMismatchError(what, mat.shape, (size, 1))

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def predict(self, features: Matrix, activation: Activation) -> Matrix:
        """
        Run a forward pass and return the output layer's activation.

        Args:
            features: (sizes[0], 1) input vector, left unmodified
            activation: Activation applied after every layer

        Returns:
            A new (sizes[-1], 1) matrix

        Raises:
            ShapeMismatchError: If features is not (sizes[0], 1)
        """
        self._check_alive()
        self._check_column(features, self.sizes[0], 'network input')

        a = features.copy()
        for w, b in zip(self.weights, self.biases):
            a = activation(w.matmul(a).add(b))
        return a

    feedforward = predict

    def evaluate(
        self,
        features: Sequence[Matrix],
        labels: Sequence[Matrix],
        activation: Activation
    ) -> int:
        """
        Return the number of samples classified correctly.

        The predicted class is compared to the class of the label using
        :func:`classify`, so accuracy is ``evaluate(...) / len(features)``.
        """
        if len(features) != len(labels):
            raise ValueError(
                f"Got {len(features)} features but {len(labels)} labels"
            )
        return sum(
            int(classify(self.predict(x, activation)) == classify(y))
            for x, y in zip(features, labels)
        )

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def backprop(
        self,
        features: Matrix,
        label: Matrix,
        activation: Activation,
        cost: Cost
    ) -> NetGradients:
        """
        Gradient of the cost for a single sample.

        Args:
            features: (sizes[0], 1) input vector
            label: (sizes[-1], 1) expected output
            activation: Activation and its derivative
            cost: Cost whose derivative seeds the output delta

        Returns:
            NetGradients with one weight and one bias gradient per layer
        """
        self._check_alive()
        self._check_column(features, self.sizes[0], 'network input')
        self._check_column(label, self.sizes[-1], 'network label')

        # Forward pass, keeping every weighted input z and activation
        activations = [features.copy()]
        zs = []
        for w, b in zip(self.weights, self.biases):
            z = w.matmul(activations[-1]).add(b)
            zs.append(z)
            activations.append(activation(z))

        transitions = self.num_layers - 1
        weight_grads: List[Optional[Matrix]] = [None] * transitions
        bias_grads: List[Optional[Matrix]] = [None] * transitions

        delta = cost.derivative(activations[-1], label).elementwise_multiply(
            activation.derivative(zs[-1])
        )
        bias_grads[-1] = delta
        weight_grads[-1] = delta.matmul(activations[-2].transpose())

        # A two-layer network has nothing left to walk back through
        for i in range(transitions - 2, -1, -1):
            delta = self.weights[i + 1].transpose().matmul(delta)
            delta = delta.elementwise_multiply(activation.derivative(zs[i]))
            bias_grads[i] = delta
            weight_grads[i] = delta.matmul(activations[i].transpose())

        return NetGradients(weight_grads, bias_grads)

    def update_mini_batch(
        self,
        features: Sequence[Matrix],
        labels: Sequence[Matrix],
        learning_rate: float,
        activation: Activation,
        cost: Cost
    ) -> None:
        """
        Take one gradient-descent step on the batch's average gradient.

        Every per-sample gradient is computed before any parameter is
        replaced, so an error leaves the network as it was.

        Args:
            features: Feature matrices of the batch
            labels: Label matrices, index-aligned with features
            learning_rate: Step size (eta)
            activation: Activation and its derivative
            cost: Cost and its derivative

        Raises:
            ValueError: If the batch is empty or misaligned
            ShapeMismatchError: If a sample does not fit the topology
        """
        self._check_alive()
        if len(features) != len(labels):
            raise ValueError(
                f"Got {len(features)} features but {len(labels)} labels"
            )
        if len(features) == 0:
            raise ValueError("Mini-batch must contain at least one sample")

        nabla_w = [Matrix(w.rows, w.columns) for w in self.weights]
        nabla_b = [Matrix(b.rows, b.columns) for b in self.biases]
        for x, y in zip(features, labels):
            delta_nabla = self.backprop(x, y, activation, cost)
            nabla_w = [nw.add(dnw) for nw, dnw in zip(nabla_w, delta_nabla.weights)]
            nabla_b = [nb.add(dnb) for nb, dnb in zip(nabla_b, delta_nabla.biases)]

        scale = DTYPE(learning_rate) / DTYPE(len(features))
        self.weights = [w.subtract(nw.scalar_multiply(scale))
                        for w, nw in zip(self.weights, nabla_w)]
        self.biases = [b.subtract(nb.scalar_multiply(scale))
                       for b, nb in zip(self.biases, nabla_b)]

    def SGD(
        self,
        training_features: Sequence[Matrix],
        training_labels: Sequence[Matrix],
        epochs: int,
        mini_batch_size: int,
        learning_rate: float,
        activation: Activation,
        cost: Cost,
        test_data: Optional[Dataset] = None,
        callback: Optional[Callable[[Dict[str, Any]], None]] = None,
        yield_func: Optional[Callable[[], None]] = None,
        rng: Optional[np.random.Generator] = None
    ) -> None:
        """
        Train with mini-batch stochastic gradient descent.

        Each epoch shuffles the training set, splits it into contiguous
        mini-batches of ``mini_batch_size`` (the last one may be shorter)
        and takes one update step per batch. The caller's sequences are
        not reordered.

        Args:
            training_features: Input vectors
            training_labels: Expected outputs, index-aligned with features
            epochs: Number of passes over the training set
            mini_batch_size: Samples per gradient step
            learning_rate: Step size (eta)
            activation: Activation and its derivative
            cost: Cost and its derivative
            test_data: Optional (features, labels) evaluated after each epoch
            callback: Called after each epoch with a progress dict holding
                epoch, total_epochs, elapsed_time, correct, total, accuracy
            yield_func: Called after every mini-batch, so a cooperative
                scheduler can run other tasks during training
            rng: Random source for shuffling. None seeds from the OS.

        Raises:
            ValueError: On an empty training set, misaligned data, a
                negative epoch count or a mini-batch size below 1
            ShapeMismatchError: If the data does not fit the topology.
                Training stops at the failing step.
        """
        self._check_alive()
        n = len(training_features)
        if n == 0:
            raise ValueError("Training set must not be empty")
        if n != len(training_labels):
            raise ValueError(
                f"Got {n} training features but "
                f"{len(training_labels)} labels"
            )
        if epochs < 0:
            raise ValueError(f"epochs must be non-negative, got {epochs}")
        if mini_batch_size < 1:
            raise ValueError(
                f"mini_batch_size must be at least 1, got {mini_batch_size}"
            )
        if rng is None:
            rng = np.random.default_rng()

        features = list(training_features)
        labels = list(training_labels)

        test_features = test_labels = None
        if test_data is not None:
            test_features, test_labels = test_data

        logger.info(
            f"Training {self.sizes} on {n} samples: epochs={epochs}, "
            f"mini_batch_size={mini_batch_size}, learning_rate={learning_rate}"
        )
        start_time = time.time()

        for epoch in range(1, epochs + 1):
            shuffle(features, labels, rng)

            for k in range(0, n, mini_batch_size):
                try:
                    self.update_mini_batch(
                        features[k:k + mini_batch_size],
                        labels[k:k + mini_batch_size],
                        learning_rate,
                        activation,
                        cost
                    )
                except ShapeMismatchError as e:
                    logger.error(
                        f"Training aborted in epoch {epoch} at sample {k}: {e}"
                    )
                    raise
                logger.debug(
                    f"Epoch {epoch}: updated on samples "
                    f"{k}-{min(k + mini_batch_size, n) - 1}"
                )
                if yield_func is not None:
                    yield_func()

            progress: Dict[str, Any] = {
                'epoch': epoch,
                'total_epochs': epochs,
                'elapsed_time': time.time() - start_time,
                'correct': None,
                'total': None,
                'accuracy': None
            }

            if test_features is not None:
                n_test = len(test_features)
                correct = self.evaluate(test_features, test_labels, activation)
                progress['correct'] = correct
                progress['total'] = n_test
                progress['accuracy'] = correct / n_test if n_test else None
                logger.info(f"Epoch {epoch}/{epochs}: {correct} / {n_test}")
            else:
                logger.info(f"Completed epoch {epoch} of {epochs}")

            if callback is not None:
                callback(progress)
