"""Diagnostics of simulated and corrected meta-communities.

  - naive_occurrence: observed site × species presence (any detection)
  - occurrence_rates: per-species fraction of occupied sites
  - trait_association: Spearman rank correlation of trait vs occurrence rate
  - compare_associations: true vs naive vs corrected association
  - degenerate_species: species that can break downstream estimation
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
from scipy import stats

from metacomm.types import SimulationResult


def naive_occurrence(y: np.ndarray) -> np.ndarray:
    """Observed meta-community matrix: 1 where detected on any visit.

    Args:
        y: (nsite, nspec, nrep) detections.

    Returns:
        (nsite, nspec) int8.
    """
    return (y.max(axis=2) > 0).astype(np.int8)


def occurrence_rates(matrix: np.ndarray) -> np.ndarray:
    """Per-species fraction of sites occupied. Returns (nspec,)."""
    return matrix.mean(axis=0)


@dataclass(frozen=True)
class TraitAssociation:
    """Spearman rank correlation between trait and occurrence rate."""
    rho: float
    pvalue: float


def trait_association(traits: np.ndarray, matrix: np.ndarray) -> TraitAssociation:
    """Rank correlation between species traits and occurrence rates.

    NaN when either input is constant (e.g. every species everywhere).
    """
    rates = occurrence_rates(matrix)
    if np.ptp(rates) == 0 or np.ptp(traits) == 0:
        return TraitAssociation(rho=float('nan'), pvalue=float('nan'))
    rho, pvalue = stats.spearmanr(traits, rates)
    return TraitAssociation(rho=float(rho), pvalue=float(pvalue))


def compare_associations(
    result: SimulationResult,
    z_corrected: Optional[np.ndarray] = None,
) -> Dict[str, TraitAssociation]:
    """Trait–occurrence association under true, naive and corrected data.

    Keys: 'true', 'naive' and, when z_corrected is given, 'corrected'.
    """
    out = {
        'true': trait_association(result.traitmat, result.z_true),
        'naive': trait_association(result.traitmat, naive_occurrence(result.y)),
    }
    if z_corrected is not None:
        out['corrected'] = trait_association(result.traitmat, z_corrected)
    return out


@dataclass(frozen=True)
class DegenerateSpecies:
    """Species whose data are degenerate for occupancy estimation.

    never_present: z_true all zero (so y all zero as well).
    present_undetected: truly present somewhere but never detected.
    unobserved: y all zero, the union of the two lists above.
    """
    never_present: List[int]
    present_undetected: List[int]
    unobserved: List[int]

    @property
    def any(self) -> bool:
        return bool(self.unobserved)


def degenerate_species(result: SimulationResult) -> DegenerateSpecies:
    """Classify species with no true occurrences or no detections."""
    present = result.z_true.max(axis=0) > 0
    detected = result.y.max(axis=(0, 2)) > 0
    return DegenerateSpecies(
        never_present=np.flatnonzero(~present).tolist(),
        present_undetected=np.flatnonzero(present & ~detected).tolist(),
        unobserved=np.flatnonzero(~detected).tolist(),
    )
