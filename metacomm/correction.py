"""Detection-corrected meta-community.

For every species k, hands the site × visit detections y[:, k, :], the
date covariate and the gradient to an occupancy estimation service and
replaces the observed column with the per-site posterior mode of true
occurrence. The per-species step is a pure mapping

  species index → SpeciesCorrection

with no shared mutable state, so it can run serially or in a thread
pool; results are always assembled in species order.

Species that were never detected cannot be fitted (the likelihood has no
interior maximum). They are recorded as 'unobserved' and keep their
all-zero column; species whose fit raises OccupancyFitError are recorded
as 'failed' and keep their observed column. Both cases emit a
UserWarning.
"""

from __future__ import annotations

import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import pandas as pd

from metacomm.config import CorrectionSection
from metacomm.occupancy import COEF_NAMES, MLEOccupancyFitter, OccupancyFit, OccupancyFitter
from metacomm.perf import PerfMonitor
from metacomm.types import OccupancyFitError, SimulationResult

FITTED = 'fitted'
UNOBSERVED = 'unobserved'
FAILED = 'failed'


@dataclass(frozen=True)
class SpeciesCorrection:
    """Outcome of correcting one species column."""
    species: int
    status: str                       # FITTED | UNOBSERVED | FAILED
    z_corrected: np.ndarray           # (nsite,) int8
    fit: Optional[OccupancyFit] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class CorrectionResult:
    """Detection-corrected meta-community and the per-species fits."""
    z_corrected: np.ndarray           # (nsite, nspec) int8
    species: List[SpeciesCorrection]

    @property
    def unobserved_species(self) -> List[int]:
        return [s.species for s in self.species if s.status == UNOBSERVED]

    @property
    def failed_species(self) -> List[int]:
        return [s.species for s in self.species if s.status == FAILED]

    def coefficient_table(self) -> pd.DataFrame:
        """One row per species: status, coefficients and standard errors.

        Coefficient columns are NaN for species that were not fitted.
        """
        rows = []
        for s in self.species:
            row = {'species': s.species, 'status': s.status}
            if s.fit is not None:
                coef, se = s.fit.coef, s.fit.se
                row['converged'] = s.fit.converged
            else:
                coef = se = np.full(len(COEF_NAMES), np.nan)
                row['converged'] = False
            for name, c, e in zip(COEF_NAMES, coef, se):
                row[name] = float(c)
                row[f'SE {name}'] = float(e)
            rows.append(row)
        return pd.DataFrame(rows).set_index('species')


def _posterior_to_z(fit: OccupancyFit, section: CorrectionSection) -> np.ndarray:
    if section.posterior == "mode":
        return fit.posterior_mode()
    return (fit.posterior >= section.threshold).astype(np.int8)


def correct_species(
    result: SimulationResult,
    k: int,
    fitter: OccupancyFitter,
    section: Optional[CorrectionSection] = None,
    perf: Optional[PerfMonitor] = None,
) -> SpeciesCorrection:
    """Correct a single species column of ``result``."""
    section = section if section is not None else CorrectionSection()
    perf = perf if perf is not None else PerfMonitor(enabled=False)
    y_k = result.species_detections(k)
    observed = (y_k.max(axis=1) > 0).astype(np.int8)

    if not observed.any():
        return SpeciesCorrection(species=k, status=UNOBSERVED, z_corrected=observed)

    try:
        with perf.track("fit"):
            fit = fitter.fit(y_k, result.date, result.gradient)
    except OccupancyFitError as e:
        return SpeciesCorrection(species=k, status=FAILED,
                                 z_corrected=observed, error=str(e))

    return SpeciesCorrection(species=k, status=FITTED,
                             z_corrected=_posterior_to_z(fit, section), fit=fit)


def correct_metacommunity(
    result: SimulationResult,
    fitter: Optional[OccupancyFitter] = None,
    section: Optional[CorrectionSection] = None,
    perf: Optional[PerfMonitor] = None,
) -> CorrectionResult:
    """Build the detection-corrected site × species matrix.

    Args:
        result: Simulated (or observed) data bundle.
        fitter: Estimation service; MLEOccupancyFitter configured from
            ``section`` when None.
        section: Correction settings (posterior rule, optimizer,
            parallel_workers).
        perf: Optional stage timer (records one 'fit' per species).

    Returns:
        CorrectionResult, species in index order.
    """
    section = section if section is not None else CorrectionSection()
    if fitter is None:
        fitter = MLEOccupancyFitter(method=section.method, max_iter=section.max_iter)

    def _one(k: int) -> SpeciesCorrection:
        return correct_species(result, k, fitter, section, perf)

    if section.parallel_workers > 1:
        with ThreadPoolExecutor(max_workers=section.parallel_workers) as pool:
            species = list(pool.map(_one, range(result.nspec)))
    else:
        species = [_one(k) for k in range(result.nspec)]

    unobserved = [s.species for s in species if s.status == UNOBSERVED]
    failed = [s.species for s in species if s.status == FAILED]
    if unobserved:
        warnings.warn(
            f"{len(unobserved)} species never detected; left uncorrected: "
            f"{unobserved}",
            UserWarning,
            stacklevel=2,
        )
    if failed:
        warnings.warn(
            f"Occupancy fit failed for {len(failed)} species; observed "
            f"columns kept: {failed}",
            UserWarning,
            stacklevel=2,
        )

    z_corrected = np.column_stack([s.z_corrected for s in species]).astype(np.int8)
    return CorrectionResult(z_corrected=z_corrected, species=species)
