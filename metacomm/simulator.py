"""Meta-community simulator.

Generates a site × species × visit detection/non-detection array from a
hierarchical occupancy-detection model in which one species trait
drives both filters:

  traits → species effects → occurrence process → detection process → y

  Occurrence:  psi[i,k] = expit(lpsi[k] + beta_lpsi[k] × gradient[i])
               z[i,k]   ~ Bernoulli(psi[i,k])
  Detection:   p[i,k,j] = expit(lp[k] + alpha_lp[k] × date[i,j])
               y[i,k,j] ~ Bernoulli(z[i,k] × p[i,k,j])

so y[i,k,j] = 1 implies z[i,k] = 1 for every cell.

Each call validates all parameters before drawing anything, owns one
Generator seeded from ``seed`` and consumes it in types.DRAW_ORDER. No
state is shared between calls.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, Optional

import numpy as np

from metacomm.config import MetacommConfig, default_config, validate_simulation_config
from metacomm.covariates import check_traits, generate_covariates
from metacomm.effects import draw_species_effects
from metacomm.perf import PerfMonitor
from metacomm.rng import make_generator
from metacomm.transforms import expit
from metacomm.types import SimulationResult, SpeciesEffects


# ═══════════════════════════════════════════════════════════════════════
# OCCURRENCE PROCESS
# ═══════════════════════════════════════════════════════════════════════

def occurrence_probability(
    effects: SpeciesEffects,
    gradient: np.ndarray,
) -> np.ndarray:
    """psi[i,k] = expit(lpsi[k] + beta_lpsi[k] × gradient[i]).

    Returns:
        (nsite, nspec) float64.
    """
    eta = effects.lpsi[np.newaxis, :] + effects.beta_lpsi[np.newaxis, :] * gradient[:, np.newaxis]
    return expit(eta)


def draw_occurrence(rng: np.random.Generator, psi: np.ndarray) -> np.ndarray:
    """z[i,k] ~ Bernoulli(psi[i,k]), independent across cells.

    Returns:
        (nsite, nspec) int8 array of 0/1.
    """
    u = rng.random(size=psi.shape)
    return (u < psi).astype(np.int8)


# ═══════════════════════════════════════════════════════════════════════
# DETECTION PROCESS
# ═══════════════════════════════════════════════════════════════════════

def detection_probability(
    effects: SpeciesEffects,
    date: np.ndarray,
) -> np.ndarray:
    """p[i,k,j] = expit(lp[k] + alpha_lp[k] × date[i,j]).

    Returns:
        (nsite, nspec, nrep) float64.
    """
    eta = (effects.lp[np.newaxis, :, np.newaxis]
           + effects.alpha_lp[np.newaxis, :, np.newaxis] * date[:, np.newaxis, :])
    return expit(eta)


def draw_detections(
    rng: np.random.Generator,
    p: np.ndarray,
    z: np.ndarray,
) -> np.ndarray:
    """y[i,k,j] ~ Bernoulli(p[i,k,j]) where z[i,k] = 1, else 0.

    Uniforms are drawn for every cell, including absent ones, so the
    number of draws consumed is always nsite × nspec × nrep.

    Returns:
        (nsite, nspec, nrep) int8 array of 0/1.
    """
    u = rng.random(size=p.shape)
    detected = (u < p) & (z[:, :, np.newaxis] == 1)
    return detected.astype(np.int8)


# ═══════════════════════════════════════════════════════════════════════
# ORCHESTRATOR
# ═══════════════════════════════════════════════════════════════════════

def _resolve_config(
    config: Optional[MetacommConfig],
    overrides: Dict[str, Dict[str, Any]],
) -> MetacommConfig:
    """Copy config and apply the non-None keyword overrides per section."""
    base = config if config is not None else default_config()
    sections = {}
    for f in dataclasses.fields(base):
        section = getattr(base, f.name)
        changes = {k: v for k, v in overrides.get(f.name, {}).items() if v is not None}
        sections[f.name] = dataclasses.replace(section, **changes)
    return MetacommConfig(**sections)


def _echo_params(config: MetacommConfig, traits_supplied: bool) -> Dict[str, Any]:
    sim, occ, det, cov = (config.simulation, config.occurrence,
                          config.detection, config.covariates)
    return {
        'mu_FTfilter_lpsi': occ.mu_FTfilter_lpsi,
        'mean_psi': occ.mean_psi,
        'mu_FTfilter_lp': det.mu_FTfilter_lp,
        'mean_p': det.mean_p,
        'nsite': sim.nsite,
        'nspec': sim.nspec,
        'nrep': sim.nrep,
        'seed': sim.seed,
        'sd_lpsi': occ.sd_lpsi,
        'mu_beta_lpsi': occ.mu_beta_lpsi,
        'sd_beta_lpsi': occ.sd_beta_lpsi,
        'sd_lp': det.sd_lp,
        'mu_alpha_lp': det.mu_alpha_lp,
        'sd_alpha_lp': det.sd_alpha_lp,
        'gradient_dist': cov.gradient_dist,
        'date_dist': cov.date_dist,
        'traits_supplied': traits_supplied,
    }


def simulate_metacommunity(
    mu_FTfilter_lpsi: Optional[float] = None,
    mean_psi: Optional[float] = None,
    mu_FTfilter_lp: Optional[float] = None,
    mean_p: Optional[float] = None,
    nsite: Optional[int] = None,
    nspec: Optional[int] = None,
    nrep: Optional[int] = None,
    seed: Optional[int] = None,
    config: Optional[MetacommConfig] = None,
    traits: Optional[np.ndarray] = None,
    perf: Optional[PerfMonitor] = None,
) -> SimulationResult:
    """Simulate one meta-community data set.

    Named arguments override the matching fields of ``config`` (default
    config when None); arguments left as None take the config value.
    The remaining hyperparameters (intercept spreads, slopes, covariate
    distributions) always come from the config.

    Args:
        mu_FTfilter_lpsi: Trait effect on occurrence (environmental filter).
        mean_psi: Baseline occurrence probability, in (0, 1).
        mu_FTfilter_lp: Trait effect on detection (detection filter).
        mean_p: Baseline detection probability, in (0, 1).
        nsite, nspec, nrep: Positive design sizes.
        seed: Non-negative integer seed.
        config: Base configuration.
        traits: Optional (nspec,) trait vector used instead of drawing.
        perf: Optional stage timer.

    Returns:
        SimulationResult with y, z_true, traitmat, gradient, date, psi,
        p, effects and the echoed parameters.

    Raises:
        InvalidParameter: Before any draw, for any invalid parameter.
    """
    resolved = _resolve_config(config, {
        'simulation': {'seed': seed, 'nsite': nsite, 'nspec': nspec, 'nrep': nrep},
        'occurrence': {'mean_psi': mean_psi, 'mu_FTfilter_lpsi': mu_FTfilter_lpsi},
        'detection': {'mean_p': mean_p, 'mu_FTfilter_lp': mu_FTfilter_lp},
    })
    validate_simulation_config(resolved)
    sim = resolved.simulation
    if traits is not None:
        traits = check_traits(traits, sim.nspec)

    perf = perf if perf is not None else PerfMonitor(enabled=False)
    rng = make_generator(sim.seed)

    with perf.track("covariates"):
        traitmat, gradient, date = generate_covariates(
            rng, sim.nsite, sim.nspec, sim.nrep, resolved.covariates, traits,
        )
    with perf.track("effects"):
        effects = draw_species_effects(
            rng, traitmat, resolved.occurrence, resolved.detection,
        )
    with perf.track("occurrence"):
        psi = occurrence_probability(effects, gradient)
        z_true = draw_occurrence(rng, psi)
    with perf.track("detection"):
        p = detection_probability(effects, date)
        y = draw_detections(rng, p, z_true)

    return SimulationResult(
        y=y,
        z_true=z_true,
        traitmat=traitmat,
        gradient=gradient,
        date=date,
        psi=psi,
        p=p,
        effects=effects,
        params=_echo_params(resolved, traits is not None),
    )


def simulate_from_config(
    config: MetacommConfig,
    traits: Optional[np.ndarray] = None,
    perf: Optional[PerfMonitor] = None,
) -> SimulationResult:
    """Simulate with every parameter taken from ``config``."""
    return simulate_metacommunity(config=config, traits=traits, perf=perf)
