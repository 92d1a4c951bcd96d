#!/usr/bin/env python3
"""
Convert the MNIST IDX files to a single compressed NPZ file.

Loading ``mnist.npz`` is much faster than re-parsing the four IDX files
on every start of the training service.

Usage:
    python scripts/convert_mnist_to_npz.py [data_dir]

The script will:
1. Read the four IDX files (plain or .gz) from data_dir (default: ./data)
2. Split the last 10000 training samples off as the validation set
3. Save everything as mnist.npz in the same directory
4. Verify the conversion was successful
"""

import os
import sys
from typing import Dict

import numpy as np

from feedforward.mnist_loader import IDX_FILES, VALIDATION_SIZE, read_idx


def load_idx_arrays(data_dir: str) -> Dict[str, np.ndarray]:
    """
    Read the raw IDX arrays.

    Parameters:
    -----------
    data_dir : str
        Directory holding the IDX files

    Returns:
    --------
    dict
        Arrays keyed like the NPZ layout (train_images, ..., test_labels)
    """
    print(f"📂 Loading IDX files from: {data_dir}")

    arrays = {}
    for key, name in IDX_FILES.items():
        path = os.path.join(data_dir, name)
        if not os.path.exists(path):
            path += '.gz'
        arrays[key] = read_idx(path)

    images, labels = arrays['train_images'], arrays['train_labels']
    split = len(images) - VALIDATION_SIZE if len(images) > VALIDATION_SIZE else len(images)

    # Pixels are stored as floats in [0, 1] with flattened images
    def normalize(pixels: np.ndarray) -> np.ndarray:
        pixels_per_image = int(np.prod(pixels.shape[1:]))
        return (pixels.reshape(len(pixels), pixels_per_image) / 255.0).astype(np.float32)

    data = {
        'train_images': normalize(images[:split]),
        'train_labels': labels[:split].astype(np.int64),
        'val_images': normalize(images[split:]),
        'val_labels': labels[split:].astype(np.int64),
        'test_images': normalize(arrays['test_images']),
        'test_labels': arrays['test_labels'].astype(np.int64),
    }

    print("✅ Loaded successfully:")
    print(f"   - Training: {len(data['train_images'])} images")
    print(f"   - Validation: {len(data['val_images'])} images")
    print(f"   - Test: {len(data['test_images'])} images")

    return data


def save_as_npz(data: Dict[str, np.ndarray], filepath: str) -> None:
    """
    Save MNIST data in compressed NPZ format.

    Parameters:
    -----------
    data : dict
        Arrays keyed like the NPZ layout
    filepath : str
        Output path for the .npz file
    """
    print(f"\n💾 Converting to NPZ format: {filepath}")

    np.savez_compressed(filepath, **data)

    npz_size = os.path.getsize(filepath) / (1024 * 1024)  # MB
    print(f"✅ Saved successfully (size: {npz_size:.2f} MB)")


def verify_conversion(npz_filepath: str, original_data: Dict[str, np.ndarray]) -> bool:
    """
    Verify that the NPZ file contains the same data as the IDX files.

    Returns:
    --------
    bool
        True if verification passes
    """
    print("\n🔍 Verifying conversion...")

    with np.load(npz_filepath) as data:
        for key, expected in original_data.items():
            assert np.array_equal(data[key], expected), f"{key} doesn't match!"

    print("✅ Verification passed! Data is identical.")
    return True


def main(argv=None) -> int:
    """Main conversion function."""
    argv = sys.argv[1:] if argv is None else argv

    print("=" * 60)
    print("MNIST Data Format Converter")
    print("IDX files → compressed NPZ")
    print("=" * 60)

    data_dir = argv[0] if argv else os.getenv('MNIST_DATA_DIR', 'data')
    npz_path = os.path.join(data_dir, 'mnist.npz')

    try:
        arrays = load_idx_arrays(data_dir)
        save_as_npz(arrays, npz_path)
        verify_conversion(npz_path, arrays)
    except (OSError, ValueError, AssertionError) as e:
        print(f"\n❌ Error during conversion: {e}")
        return 1

    print("\n" + "=" * 60)
    print("✅ CONVERSION COMPLETE!")
    print("=" * 60)
    print(f"\n📁 New NPZ file: {npz_path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
