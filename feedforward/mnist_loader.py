"""
mnist_loader.py
~~~~~~~~~~~~~~~

Loaders for MNIST-style image data.

Two on-disk layouts are supported:

- the original IDX files (``train-images-idx3-ubyte`` and friends,
  optionally gzipped)
- a compressed ``mnist.npz`` with ``train_images``, ``train_labels``,
  ``val_images``, ``val_labels``, ``test_images`` and ``test_labels``
  arrays, as written by ``scripts/convert_mnist_to_npz.py``

Either way the result is a pair of index-aligned lists: features as
(784, 1) float32 column vectors scaled to [0, 1], and labels as one-hot
(10, 1) column vectors.
"""

import gzip
import logging
import os
from typing import List, Optional, Tuple

import numpy as np

from feedforward.matrix import Matrix

logger = logging.getLogger(__name__)

Dataset = Tuple[List[Matrix], List[Matrix]]

# IDX type code -> big-endian numpy dtype
IDX_DTYPES = {
    0x08: np.dtype('>u1'),
    0x09: np.dtype('>i1'),
    0x0B: np.dtype('>i2'),
    0x0C: np.dtype('>i4'),
    0x0D: np.dtype('>f4'),
    0x0E: np.dtype('>f8'),
}

IDX_FILES = {
    'train_images': 'train-images-idx3-ubyte',
    'train_labels': 'train-labels-idx1-ubyte',
    'test_images': 't10k-images-idx3-ubyte',
    'test_labels': 't10k-labels-idx1-ubyte',
}

# Size of the validation split carved off the end of the IDX training set
VALIDATION_SIZE = 10000


def _open(path: str):
    if path.endswith('.gz'):
        return gzip.open(path, 'rb')
    return open(path, 'rb')


def read_idx(path: str) -> np.ndarray:
    """
    Read an IDX file into a numpy array.

    The header is two zero bytes, a type code, the number of dimensions,
    then one big-endian uint32 per dimension. The payload follows in
    row-major order.

    Args:
        path: File path; a ``.gz`` suffix is read through gzip

    Returns:
        An array with the file's shape and dtype

    Raises:
        ValueError: If the header is malformed or the payload is short
    """
    with _open(path) as f:
        raw = f.read()

    if len(raw) < 4 or raw[0] != 0 or raw[1] != 0:
        raise ValueError(f"{path}: not an IDX file (bad magic number)")

    type_code, ndim = raw[2], raw[3]
    if type_code not in IDX_DTYPES:
        raise ValueError(f"{path}: unknown IDX type code 0x{type_code:02X}")

    header_end = 4 + 4 * ndim
    if len(raw) < header_end:
        raise ValueError(f"{path}: truncated IDX header")
    shape = tuple(
        int(dim) for dim in np.frombuffer(raw, dtype='>u4', count=ndim, offset=4)
    )

    dtype = IDX_DTYPES[type_code]
    count = int(np.prod(shape, dtype=np.int64)) if shape else 1
    expected = header_end + count * dtype.itemsize
    if len(raw) < expected:
        raise ValueError(
            f"{path}: expected {expected} bytes for shape {shape}, "
            f"found {len(raw)}"
        )

    data = np.frombuffer(raw, dtype=dtype, count=count, offset=header_end)
    return data.reshape(shape)


def vectorized_result(j: int, num_classes: int = 10) -> Matrix:
    """Return a (num_classes, 1) one-hot Matrix with a 1.0 at index j."""
    if not 0 <= j < num_classes:
        raise ValueError(f"Label {j} out of range for {num_classes} classes")
    e = Matrix(num_classes, 1)
    e[j, 0] = 1.0
    return e


def to_dataset(images: np.ndarray, labels: np.ndarray,
               num_classes: int = 10) -> Dataset:
    """
    Turn raw image and label arrays into lists of column matrices.

    Args:
        images: (n, h, w) or (n, h*w) pixel array. Integer pixels are
            scaled by 1/255; float pixels are taken as already in [0, 1].
        labels: (n,) integer class labels
        num_classes: Length of each one-hot label

    Returns:
        (features, labels) lists of Matrix
    """
    if len(images) != len(labels):
        raise ValueError(
            f"Found {len(images)} images but {len(labels)} labels"
        )

    images = np.asarray(images)
    pixels_per_image = int(np.prod(images.shape[1:], dtype=np.int64))
    flat = images.reshape(len(images), pixels_per_image)
    if np.issubdtype(flat.dtype, np.integer):
        flat = flat.astype(np.float32) / 255.0

    features = [Matrix.from_array(row) for row in flat]
    targets = [vectorized_result(int(label), num_classes) for label in labels]
    return features, targets


def load_idx_dataset(images_path: str, labels_path: str,
                     num_classes: int = 10) -> Dataset:
    """Load one (images, labels) pair of IDX files."""
    images = read_idx(images_path)
    labels = read_idx(labels_path)
    logger.debug(f"Read {len(images)} images from {images_path}")
    return to_dataset(images, labels, num_classes)


def _find(data_dir: str, name: str) -> Optional[str]:
    for candidate in (name, name + '.gz'):
        path = os.path.join(data_dir, candidate)
        if os.path.exists(path):
            return path
    return None


def load_npz_dataset(path: str) -> Tuple[Dataset, Dataset, Dataset]:
    """
    Load training, validation and test sets from an ``mnist.npz`` file.

    Returns:
        (training_data, validation_data, test_data)
    """
    with np.load(path) as data:
        training_data = to_dataset(data['train_images'], data['train_labels'])
        validation_data = to_dataset(data['val_images'], data['val_labels'])
        test_data = to_dataset(data['test_images'], data['test_labels'])
    return training_data, validation_data, test_data


def load_data_wrapper(
    data_dir: Optional[str] = None
) -> Tuple[Dataset, Dataset, Dataset]:
    """
    Load MNIST from ``data_dir``.

    ``mnist.npz`` is preferred. Otherwise the four IDX files are read and
    the last VALIDATION_SIZE training samples become the validation set
    (left empty when the training file holds no more than that).

    Args:
        data_dir: Directory holding the data. Defaults to the
            ``MNIST_DATA_DIR`` environment variable, then ``./data``.

    Returns:
        (training_data, validation_data, test_data), each a
        (features, labels) pair

    Raises:
        FileNotFoundError: If neither layout is present
    """
    if data_dir is None:
        data_dir = os.getenv('MNIST_DATA_DIR', 'data')

    npz_path = os.path.join(data_dir, 'mnist.npz')
    if os.path.exists(npz_path):
        logger.info(f"Loading MNIST from {npz_path}")
        return load_npz_dataset(npz_path)

    paths = {key: _find(data_dir, name) for key, name in IDX_FILES.items()}
    missing = [IDX_FILES[key] for key, path in paths.items() if path is None]
    if missing:
        raise FileNotFoundError(
            f"No mnist.npz and missing IDX files in {data_dir}: "
            f"{', '.join(missing)}"
        )

    logger.info(f"Loading MNIST IDX files from {data_dir}")
    train_features, train_labels = load_idx_dataset(
        paths['train_images'], paths['train_labels']
    )
    test_data = load_idx_dataset(paths['test_images'], paths['test_labels'])

    # Sets too small to spare a validation split keep every sample
    split = len(train_features)
    if split > VALIDATION_SIZE:
        split -= VALIDATION_SIZE
    training_data = (train_features[:split], train_labels[:split])
    validation_data = (train_features[split:], train_labels[split:])
    return training_data, validation_data, test_data
