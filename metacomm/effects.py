"""Species-level random effects.

Encodes the two trait filters on the logit scale:

  lpsi[k] ~ Normal(logit(mean_psi) + mu_FTfilter_lpsi × trait[k], sd_lpsi)
  lp[k]   ~ Normal(logit(mean_p)   + mu_FTfilter_lp   × trait[k], sd_lp)

The baseline intercept is logit(mean_psi) (resp. logit(mean_p)), so for
traits centred at 0 and no spread the pool-average probability equals
the target exactly. Slopes are drawn per species around a community
mean; a zero spread gives every species the same slope.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from metacomm.config import DetectionSection, OccurrenceSection
from metacomm.transforms import logit
from metacomm.types import SpeciesEffects


def filtered_intercepts(
    rng: np.random.Generator,
    traits: np.ndarray,
    mean_prob: float,
    mu_filter: float,
    sd: float,
) -> np.ndarray:
    """Draw one intercept per species around the trait-driven mean.

    Args:
        rng: The call's Generator.
        traits: (nspec,) trait values.
        mean_prob: Baseline probability (strictly inside (0, 1)).
        mu_filter: Trait effect on the logit-scale intercept.
        sd: Standard deviation of the species noise.

    Returns:
        (nspec,) float64 intercepts.
    """
    mu = logit(mean_prob) + mu_filter * traits
    return mu + rng.normal(loc=0.0, scale=sd, size=traits.shape[0])


def species_slopes(
    rng: np.random.Generator,
    nspec: int,
    mu: float,
    sd: float,
) -> np.ndarray:
    """Draw one slope per species ~ Normal(mu, sd)."""
    return rng.normal(loc=mu, scale=sd, size=nspec)


def draw_species_effects(
    rng: np.random.Generator,
    traits: np.ndarray,
    occurrence: Optional[OccurrenceSection] = None,
    detection: Optional[DetectionSection] = None,
) -> SpeciesEffects:
    """Draw every species-level coefficient in the fixed draw order.

    Order: occurrence-intercept noise, detection-intercept noise,
    gradient slopes, date slopes. Occurrence and detection noise are
    independent draws.
    """
    occ = occurrence if occurrence is not None else OccurrenceSection()
    det = detection if detection is not None else DetectionSection()
    nspec = traits.shape[0]

    lpsi = filtered_intercepts(rng, traits, occ.mean_psi,
                               occ.mu_FTfilter_lpsi, occ.sd_lpsi)
    lp = filtered_intercepts(rng, traits, det.mean_p,
                             det.mu_FTfilter_lp, det.sd_lp)
    beta_lpsi = species_slopes(rng, nspec, occ.mu_beta_lpsi, occ.sd_beta_lpsi)
    alpha_lp = species_slopes(rng, nspec, det.mu_alpha_lp, det.sd_alpha_lp)

    return SpeciesEffects(lpsi=lpsi, lp=lp, beta_lpsi=beta_lpsi, alpha_lp=alpha_lp)
