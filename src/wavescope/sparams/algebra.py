"""Two-port S-parameter algebra: cascading and de-embedding.

All arithmetic is done on complex arrays sampled on a common frequency grid.
For a chain A then B, with ``D = 1 - A22*B11``::

    S11 = A11 + B11*A21*A12 / D
    S12 = A12*B12 / D
    S21 = A21*B21 / D
    S22 = B22 + A22*B21*B12 / D

De-embedding inverts these in closed form for the unknown half of the chain.
"""

from __future__ import annotations

from enum import Enum

import numpy as np

from wavescope.types.sparams import SParameters


class Side(Enum):
    LEFT = "Left"
    RIGHT = "Right"


def cascade_complex(a, b):
    """Cascade two networks given as (S11, S12, S21, S22) complex arrays."""
    a11, a12, a21, a22 = a
    b11, b12, b21, b22 = b
    d = 1 - a22 * b11
    return (
        a11 + b11 * a21 * a12 / d,
        a12 * b12 / d,
        a21 * b21 / d,
        b22 + a22 * b21 * b12 / d,
    )


def deembed_right_complex(c, b):
    """Solve ``c = cascade(a, b)`` for ``a``."""
    c11, c12, c21, c22 = c
    b11, b12, b21, b22 = b
    x = (c22 - b22) / (b21 * b12)
    a22 = x / (1 + x * b11)
    d = 1 - a22 * b11
    a12 = c12 * d / b12
    a21 = c21 * d / b21
    a11 = c11 - b11 * a21 * a12 / d
    return a11, a12, a21, a22


def deembed_left_complex(c, a):
    """Solve ``c = cascade(a, b)`` for ``b``."""
    c11, c12, c21, c22 = c
    a11, a12, a21, a22 = a
    y = (c11 - a11) / (a21 * a12)
    b11 = y / (1 + y * a22)
    d = 1 - a22 * b11
    b12 = c12 * d / a12
    b21 = c21 * d / a21
    b22 = c22 - a22 * b21 * b12 / d
    return b11, b12, b21, b22


def cascade(a: SParameters, b: SParameters) -> SParameters:
    """A followed by B, evaluated on the frequency grid of A's S11."""
    freqs = a["S11"].frequencies
    with np.errstate(divide="ignore", invalid="ignore"):
        out = cascade_complex(a.to_complex(freqs), b.to_complex(freqs))
    return SParameters.from_complex(freqs, *out)


def deembed(combined: SParameters, known: SParameters, side: Side = Side.RIGHT) -> SParameters:
    """Remove ``known`` from one end of ``combined``.

    ``side`` says where the known network sits in the chain: RIGHT means
    ``combined = cascade(unknown, known)``, LEFT means
    ``combined = cascade(known, unknown)``.
    """
    side = Side(side)
    freqs = combined["S11"].frequencies
    c = combined.to_complex(freqs)
    k = known.to_complex(freqs)
    with np.errstate(divide="ignore", invalid="ignore"):
        if side == Side.RIGHT:
            out = deembed_right_complex(c, k)
        else:
            out = deembed_left_complex(c, k)
    return SParameters.from_complex(freqs, *out)
