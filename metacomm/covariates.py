"""Trait and covariate generators.

Produces the three independent raw covariates of a simulation call:
  - species traits        (nspec,)        — one scalar per species
  - environmental gradient (nsite,)       — one scalar per site
  - survey date           (nsite, nrep)   — one scalar per site-visit

Draws are i.i.d. within each covariate and no correlation is introduced
between covariates. Every generator takes the call's Generator
explicitly; draw order is fixed by the caller (see types.DRAW_ORDER).
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from metacomm.config import CovariateSection
from metacomm.types import InvalidParameter


def generate_traits(
    rng: np.random.Generator,
    nspec: int,
    mean: float = 0.0,
    sd: float = 1.0,
) -> np.ndarray:
    """Draw species trait values ~ Normal(mean, sd).

    Returns:
        (nspec,) float64 array.
    """
    return rng.normal(loc=mean, scale=sd, size=nspec)


def _draw(
    rng: np.random.Generator,
    size,
    dist: str,
    mean: float,
    sd: float,
    low: float,
    high: float,
) -> np.ndarray:
    if dist == "normal":
        return rng.normal(loc=mean, scale=sd, size=size)
    if dist == "uniform":
        return rng.uniform(low=low, high=high, size=size)
    raise InvalidParameter(f"Unknown covariate distribution '{dist}'")


def generate_gradient(
    rng: np.random.Generator,
    nsite: int,
    cov: Optional[CovariateSection] = None,
) -> np.ndarray:
    """Draw the environmental gradient value of every site.

    Returns:
        (nsite,) float64 array.
    """
    cov = cov if cov is not None else CovariateSection()
    return _draw(rng, nsite, cov.gradient_dist, cov.gradient_mean,
                 cov.gradient_sd, cov.gradient_low, cov.gradient_high)


def generate_dates(
    rng: np.random.Generator,
    nsite: int,
    nrep: int,
    cov: Optional[CovariateSection] = None,
) -> np.ndarray:
    """Draw the survey-date covariate of every site-visit (site-major).

    Returns:
        (nsite, nrep) float64 array.
    """
    cov = cov if cov is not None else CovariateSection()
    return _draw(rng, (nsite, nrep), cov.date_dist, cov.date_mean,
                 cov.date_sd, cov.date_low, cov.date_high)


def check_traits(traits, nspec: int) -> np.ndarray:
    """Validate an externally supplied trait vector.

    Raises:
        InvalidParameter: If the vector is not 1-D of length nspec or
            contains non-finite values.
    """
    arr = np.asarray(traits, dtype=np.float64)
    if arr.shape != (nspec,):
        raise InvalidParameter(
            f"traits must have shape ({nspec},), got {arr.shape}"
        )
    if not np.all(np.isfinite(arr)):
        raise InvalidParameter("traits must be finite")
    return arr.copy()


def generate_covariates(
    rng: np.random.Generator,
    nsite: int,
    nspec: int,
    nrep: int,
    cov: Optional[CovariateSection] = None,
    traits: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Generate traits, gradient and dates in the fixed draw order.

    Args:
        rng: The call's Generator.
        nsite, nspec, nrep: Design sizes.
        cov: Covariate distributions (defaults when None).
        traits: Optional externally supplied traits (no trait draws
            are consumed when given).

    Returns:
        (traits (nspec,), gradient (nsite,), date (nsite, nrep)).
    """
    cov = cov if cov is not None else CovariateSection()
    if traits is None:
        traits = generate_traits(rng, nspec, cov.trait_mean, cov.trait_sd)
    else:
        traits = check_traits(traits, nspec)
    gradient = generate_gradient(rng, nsite, cov)
    date = generate_dates(rng, nsite, nrep, cov)
    return traits, gradient, date
