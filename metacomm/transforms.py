"""Logit and inverse-logit transforms.

Thin wrappers over scipy.special so that every module in the package
uses the same numerically stable implementation. ``expit`` is total on
the reals; ``logit`` is total on the open interval (0, 1) and rejects
anything else rather than returning ±inf.
"""

from __future__ import annotations

import numpy as np
from scipy import special

from metacomm.types import InvalidParameter


def expit(x):
    """Inverse logit: 1 / (1 + exp(-x)).

    Accepts scalars or arrays; returns the same shape.
    """
    out = special.expit(x)
    return float(out) if np.ndim(out) == 0 else out


def logit(prob):
    """Log-odds: log(p / (1 - p)) for p strictly inside (0, 1).

    Raises:
        InvalidParameter: If any value is outside (0, 1) or NaN.
    """
    arr = np.asarray(prob, dtype=np.float64)
    if not np.all((arr > 0.0) & (arr < 1.0)):
        raise InvalidParameter(
            "logit is only defined for probabilities strictly between 0 and 1"
        )
    out = special.logit(arr)
    return float(out) if out.ndim == 0 else out
