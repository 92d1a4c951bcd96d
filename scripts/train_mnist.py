#!/usr/bin/env python3
"""
Train a feedforward network on MNIST from the command line.

Usage:
    python scripts/train_mnist.py
    python scripts/train_mnist.py --epochs 30 --batch-size 10 --lr 3.0 --hidden 30
    python scripts/train_mnist.py --demo

``--demo`` needs no data: it builds a small [8, 4, 4, 2] network, prints
one prediction and the weight gradients of one backpropagation step.
"""

import argparse
import logging
import sys
from typing import List, Optional

import numpy as np

from feedforward import mnist_loader
from feedforward.activation import ACTIVATIONS, get_activation
from feedforward.cost import SQUARED_ERROR, total_cost
from feedforward.initialization import normal_fill
from feedforward.logging_config import configure_logging
from feedforward.matrix import Matrix
from feedforward.network import Network

logger = logging.getLogger('feedforward.train_mnist')


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Train a [784, hidden, 10] network on MNIST with mini-batch SGD.",
    )
    parser.add_argument("--epochs", type=int, default=30, help="Number of training epochs.")
    parser.add_argument("--batch-size", type=int, default=10, help="Mini-batch size.")
    parser.add_argument("--lr", type=float, default=3.0, help="Learning rate.")
    parser.add_argument("--hidden", type=int, default=30, help="Hidden layer size.")
    parser.add_argument("--activation", choices=sorted(ACTIVATIONS), default="sigmoid",
                        help="Activation function.")
    parser.add_argument("--seed", type=int, default=None,
                        help="Seed for initialization and shuffling (default: random).")
    parser.add_argument("--data-dir", default=None,
                        help="Directory with mnist.npz or the IDX files (default: $MNIST_DATA_DIR or ./data).")
    parser.add_argument("--log-level", default=None, help="Log level (default: $LOG_LEVEL or INFO).")
    parser.add_argument("--demo", action="store_true",
                        help="Run one prediction and one backprop on a toy network and exit.")
    return parser.parse_args(argv)


def run_demo(seed: Optional[int]) -> None:
    """Predict and backpropagate once through an [8, 4, 4, 2] network."""
    activation = get_activation("sigmoid")
    net = Network([8, 4, 4, 2], init_weights=normal_fill(np.random.default_rng(seed)))

    features = Matrix(8, 1)
    features[0, 0] = 1.0
    label = Matrix(2, 1)
    label[0, 0] = 1.0

    prediction = net.predict(features, activation)
    print("Prediction:")
    print(prediction)

    gradients = net.backprop(features, label, activation, SQUARED_ERROR)
    for i, grad in enumerate(gradients.weights):
        print(f"Gradient {i}:")
        print(grad)

    net.release()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    if args.demo:
        run_demo(args.seed)
        return 0

    try:
        training_data, validation_data, test_data = mnist_loader.load_data_wrapper(args.data_dir)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Could not load MNIST: {e}")
        return 1

    rng = np.random.default_rng(args.seed)
    activation = get_activation(args.activation)
    train_features, train_labels = training_data
    test_features, test_labels = test_data

    net = Network(
        [train_features[0].rows, args.hidden, train_labels[0].rows],
        init_weights=normal_fill(rng)
    )

    def report(progress):
        if progress['accuracy'] is not None:
            logger.info(
                f"Epoch {progress['epoch']}: accuracy {progress['accuracy']:.2%} "
                f"({progress['elapsed_time']:.1f}s)"
            )

    try:
        net.SGD(
            train_features,
            train_labels,
            args.epochs,
            args.batch_size,
            args.lr,
            activation,
            SQUARED_ERROR,
            test_data=(test_features, test_labels),
            callback=report,
            rng=rng
        )
    except ValueError as e:
        logger.error(f"Training failed: {e}")
        return 1

    if validation_data[0]:
        val_features, val_labels = validation_data
        correct = net.evaluate(val_features, val_labels, activation)
        predictions = [net.predict(x, activation) for x in val_features]
        logger.info(
            f"Validation: {correct} / {len(val_features)} correct, "
            f"cost {total_cost(SQUARED_ERROR, predictions, val_labels):.2f}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
