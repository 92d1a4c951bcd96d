"""
initialization.py
~~~~~~~~~~~~~~~~~

Parameter initializers. Each factory returns an ``InitFunc`` that fills
a Matrix in place; the network calls it once per layer.
"""

from typing import Callable, Optional

import numpy as np

from feedforward.matrix import DTYPE, Matrix

InitFunc = Callable[[Matrix], None]


def normal_fill(rng: Optional[np.random.Generator] = None) -> InitFunc:
    """
    Standard normal initializer using the Box-Muller transform.

    Each element is sqrt(-2 ln u1) * cos(2 pi u2) for two independent
    uniform draws u1 in (0, 1] and u2 in [0, 1).

    Args:
        rng: Random source. None seeds a fresh generator from the OS.

    Returns:
        A function that overwrites a matrix with N(0, 1) samples
    """
    if rng is None:
        rng = np.random.default_rng()

    def init(mat: Matrix) -> None:
        n = mat.size
        # 1 - U[0,1) lies in (0, 1], keeping log() finite
        uniform1 = 1.0 - rng.random(n)
        uniform2 = rng.random(n)
        normal = np.sqrt(-2.0 * np.log(uniform1)) * np.cos(2.0 * np.pi * uniform2)
        mat.elements[:] = normal.astype(DTYPE)

    return init


def constant_fill(value: float) -> InitFunc:
    """Initializer that sets every element to ``value``."""
    def init(mat: Matrix) -> None:
        mat.fill(value)

    return init
