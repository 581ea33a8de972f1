"""Core data types for metacomm.

This module is the SINGLE SOURCE OF TRUTH for:
  - Error types (InvalidParameter, OccupancyFitError)
  - SpeciesEffects: per-species intercepts and slopes
  - SimulationResult: the result bundle returned by every simulation call
  - DRAW_ORDER: the fixed order of random draws within one simulation call

All modules import these types from here.

Array conventions (every array in a bundle):
  - site axis first, species axis second, visit axis third
  - y[i, k, j] = detection of species k at site i on visit j
  - z_true[i, k] = true occurrence of species k at site i
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════

class InvalidParameter(ValueError):
    """A simulation or configuration parameter is out of range.

    Always raised before any random number is drawn, so a failed call
    leaves no partial output and does not advance a generator.
    """


class OccupancyFitError(RuntimeError):
    """The occupancy estimation service could not fit a species.

    Raised for all-zero detection matrices (the likelihood has no
    interior maximum) and for optimizer failures.
    """


# ═══════════════════════════════════════════════════════════════════════
# DRAW ORDER
# ═══════════════════════════════════════════════════════════════════════

# Changing this order changes the output for a given seed.
DRAW_ORDER = (
    'traits',             # (nspec,)  skipped when traits are supplied
    'gradient',           # (nsite,)
    'date',               # (nsite, nrep)
    'lpsi_noise',         # (nspec,)
    'lp_noise',           # (nspec,)
    'beta_lpsi',          # (nspec,)
    'alpha_lp',           # (nspec,)
    'occurrence_draws',   # (nsite, nspec)
    'detection_draws',    # (nsite, nspec, nrep)
)


# ═══════════════════════════════════════════════════════════════════════
# DATA TRANSFER OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SpeciesEffects:
    """Species-level coefficients on the logit scale.

    lpsi[k] and lp[k] carry the trait filter:
      lpsi[k] = logit(mean_psi) + mu_FTfilter_lpsi × trait[k] + ε_k
      lp[k]   = logit(mean_p)   + mu_FTfilter_lp   × trait[k] + δ_k
    """
    lpsi: np.ndarray        # (nspec,) occurrence intercepts
    lp: np.ndarray          # (nspec,) detection intercepts
    beta_lpsi: np.ndarray   # (nspec,) gradient slopes
    alpha_lp: np.ndarray    # (nspec,) date slopes

    @property
    def nspec(self) -> int:
        return int(self.lpsi.shape[0])


@dataclass(frozen=True)
class SimulationResult:
    """Result bundle of one simulation call.

    Holds the raw covariates, the latent and observed arrays, the
    diagnostic probabilities, and the parameter values used (``params``,
    echoed so a bundle is self-describing).
    """
    y: np.ndarray           # (nsite, nspec, nrep) int8
    z_true: np.ndarray      # (nsite, nspec) int8
    traitmat: np.ndarray    # (nspec,)
    gradient: np.ndarray    # (nsite,)
    date: np.ndarray        # (nsite, nrep)
    psi: np.ndarray         # (nsite, nspec)
    p: np.ndarray           # (nsite, nspec, nrep)
    effects: SpeciesEffects
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def nsite(self) -> int:
        return int(self.y.shape[0])

    @property
    def nspec(self) -> int:
        return int(self.y.shape[1])

    @property
    def nrep(self) -> int:
        return int(self.y.shape[2])

    def species_detections(self, k: int) -> np.ndarray:
        """Site × visit detection matrix for species k."""
        return self.y[:, k, :]

    def save(self, path: Union[str, Path]) -> Path:
        """Write the bundle to a compressed .npz file.

        Scalar parameters are stored alongside the arrays under a
        ``param__`` prefix.
        """
        path = Path(path)
        arrays = {
            'y': self.y,
            'z_true': self.z_true,
            'traitmat': self.traitmat,
            'gradient': self.gradient,
            'date': self.date,
            'psi': self.psi,
            'p': self.p,
            'lpsi': self.effects.lpsi,
            'lp': self.effects.lp,
            'beta_lpsi': self.effects.beta_lpsi,
            'alpha_lp': self.effects.alpha_lp,
        }
        for key, value in self.params.items():
            arrays[f'param__{key}'] = np.asarray(value)
        np.savez_compressed(path, **arrays)
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'SimulationResult':
        """Read a bundle written by :meth:`save`."""
        with np.load(Path(path), allow_pickle=False) as data:
            params = {
                key[len('param__'):]: data[key].item()
                for key in data.files if key.startswith('param__')
            }
            effects = SpeciesEffects(
                lpsi=data['lpsi'],
                lp=data['lp'],
                beta_lpsi=data['beta_lpsi'],
                alpha_lp=data['alpha_lp'],
            )
            return cls(
                y=data['y'],
                z_true=data['z_true'],
                traitmat=data['traitmat'],
                gradient=data['gradient'],
                date=data['date'],
                psi=data['psi'],
                p=data['p'],
                effects=effects,
                params=params,
            )
