"""Configuration system for metacomm.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Sections map 1:1 to YAML top-level keys. Parameter names follow the
dotted names used for the filter model with dots replaced by
underscores (mu.FTfilter.lpsi → mu_FTfilter_lpsi).
"""

from __future__ import annotations

import copy
import dataclasses
import math
from dataclasses import dataclass, field
from numbers import Integral, Real
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from metacomm.rng import validate_seed
from metacomm.types import InvalidParameter


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Survey design and seed."""
    seed: int = 42
    nsite: int = 200             # Number of sites
    nspec: int = 100             # Number of species in the pool
    nrep: int = 2                # Visits per site


@dataclass
class OccurrenceSection:
    """Occurrence sub-model (environmental filtering)."""
    mean_psi: float = 0.8            # Baseline occurrence probability
    mu_FTfilter_lpsi: float = 0.0    # Trait effect on occurrence intercept
    sd_lpsi: float = 0.3             # Spread of occurrence intercepts
    mu_beta_lpsi: float = 0.3        # Gradient slope (community mean)
    sd_beta_lpsi: float = 0.0        # Species spread of gradient slope (0 = fixed)


@dataclass
class DetectionSection:
    """Detection sub-model (detection filtering)."""
    mean_p: float = 0.8              # Baseline detection probability
    mu_FTfilter_lp: float = 0.0      # Trait effect on detection intercept
    sd_lp: float = 0.3               # Spread of detection intercepts
    mu_alpha_lp: float = 0.3         # Date slope (community mean)
    sd_alpha_lp: float = 0.0         # Species spread of date slope (0 = fixed)


@dataclass
class CovariateSection:
    """Distributions of the raw covariates.

    gradient_dist / date_dist: "normal" uses *_mean/*_sd,
                               "uniform" uses *_low/*_high.
    """
    trait_mean: float = 0.0
    trait_sd: float = 1.0
    gradient_dist: str = "normal"
    gradient_mean: float = 0.0
    gradient_sd: float = 1.0
    gradient_low: float = -2.0
    gradient_high: float = 2.0
    date_dist: str = "normal"
    date_mean: float = 0.0
    date_sd: float = 1.0
    date_low: float = -2.0
    date_high: float = 2.0


@dataclass
class CorrectionSection:
    """Detection-correction workflow."""
    posterior: str = "mode"          # "mode" or "mean_threshold"
    threshold: float = 0.5           # Used by "mean_threshold"
    method: str = "BFGS"             # scipy.optimize.minimize method
    max_iter: int = 1000
    parallel_workers: int = 1        # Threads for per-species fits


@dataclass
class SensitivitySection:
    """Morris screening of the filter hyperparameters."""
    trajectories: int = 10
    num_levels: int = 4
    processes: int = 1


@dataclass
class MetacommConfig:
    """Complete configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    occurrence: OccurrenceSection = field(default_factory=OccurrenceSection)
    detection: DetectionSection = field(default_factory=DetectionSection)
    covariates: CovariateSection = field(default_factory=CovariateSection)
    correction: CorrectionSection = field(default_factory=CorrectionSection)
    sensitivity: SensitivitySection = field(default_factory=SensitivitySection)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'occurrence': OccurrenceSection,
    'detection': DetectionSection,
    'covariates': CovariateSection,
    'correction': CorrectionSection,
    'sensitivity': SensitivitySection,
}

VALID_DISTRIBUTIONS = {"normal", "uniform"}
VALID_POSTERIORS = {"mode", "mean_threshold"}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Args:
        base: Base dictionary (modified in place).
        override: Override dictionary.

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> MetacommConfig:
    """Convert a merged YAML dict to a MetacommConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return MetacommConfig(**sections)


def config_to_dict(config: MetacommConfig) -> Dict[str, Dict[str, Any]]:
    """Nested plain-dict view of a config (YAML-serializable)."""
    return dataclasses.asdict(config)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def check_count(name: str, value) -> int:
    """Require a positive integer (bools rejected)."""
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise InvalidParameter(
            f"{name} must be a positive integer, got {value!r}"
        )
    if value < 1:
        raise InvalidParameter(f"{name} must be a positive integer, got {value}")
    return int(value)


def check_probability(name: str, value) -> float:
    """Require a real number strictly inside (0, 1)."""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidParameter(f"{name} must be a number in (0, 1), got {value!r}")
    if not (0.0 < value < 1.0):
        raise InvalidParameter(
            f"{name} must lie strictly between 0 and 1, got {value}"
        )
    return float(value)


def check_finite(name: str, value) -> float:
    """Require a finite real number."""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidParameter(f"{name} must be a finite number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidParameter(f"{name} must be finite, got {value}")
    return float(value)


def check_sd(name: str, value) -> float:
    """Require a finite, non-negative standard deviation."""
    value = check_finite(name, value)
    if value < 0:
        raise InvalidParameter(f"{name} must be non-negative, got {value}")
    return value


def _check_distribution(prefix: str, cov: CovariateSection) -> None:
    dist = getattr(cov, f'{prefix}_dist')
    if dist not in VALID_DISTRIBUTIONS:
        raise InvalidParameter(
            f"covariates.{prefix}_dist must be one of {VALID_DISTRIBUTIONS}, "
            f"got '{dist}'"
        )
    if dist == "normal":
        check_finite(f"covariates.{prefix}_mean", getattr(cov, f'{prefix}_mean'))
        check_sd(f"covariates.{prefix}_sd", getattr(cov, f'{prefix}_sd'))
    else:
        low = check_finite(f"covariates.{prefix}_low", getattr(cov, f'{prefix}_low'))
        high = check_finite(f"covariates.{prefix}_high", getattr(cov, f'{prefix}_high'))
        if low >= high:
            raise InvalidParameter(
                f"covariates.{prefix}_low ({low}) must be < "
                f"{prefix}_high ({high})"
            )


def validate_simulation_config(config: MetacommConfig) -> None:
    """Validate the sections a simulation call reads.

    Checks:
      - Counts are positive integers, seed is a non-negative integer
      - Probability targets lie strictly in (0, 1)
      - Filter strengths and slopes are finite
      - Standard deviations are finite and non-negative
      - Covariate distributions are known and well-formed

    Raises:
        InvalidParameter: On the first violated constraint.
    """
    sim = config.simulation
    validate_seed(sim.seed)
    check_count("simulation.nsite", sim.nsite)
    check_count("simulation.nspec", sim.nspec)
    check_count("simulation.nrep", sim.nrep)

    occ = config.occurrence
    check_probability("occurrence.mean_psi", occ.mean_psi)
    check_finite("occurrence.mu_FTfilter_lpsi", occ.mu_FTfilter_lpsi)
    check_sd("occurrence.sd_lpsi", occ.sd_lpsi)
    check_finite("occurrence.mu_beta_lpsi", occ.mu_beta_lpsi)
    check_sd("occurrence.sd_beta_lpsi", occ.sd_beta_lpsi)

    det = config.detection
    check_probability("detection.mean_p", det.mean_p)
    check_finite("detection.mu_FTfilter_lp", det.mu_FTfilter_lp)
    check_sd("detection.sd_lp", det.sd_lp)
    check_finite("detection.mu_alpha_lp", det.mu_alpha_lp)
    check_sd("detection.sd_alpha_lp", det.sd_alpha_lp)

    cov = config.covariates
    check_finite("covariates.trait_mean", cov.trait_mean)
    check_sd("covariates.trait_sd", cov.trait_sd)
    _check_distribution("gradient", cov)
    _check_distribution("date", cov)


def validate_config(config: MetacommConfig) -> None:
    """Validate every section. Raises InvalidParameter on failure.

    Adds the correction and sensitivity settings to
    validate_simulation_config.
    """
    validate_simulation_config(config)

    cor = config.correction
    if cor.posterior not in VALID_POSTERIORS:
        raise InvalidParameter(
            f"correction.posterior must be one of {VALID_POSTERIORS}, "
            f"got '{cor.posterior}'"
        )
    check_probability("correction.threshold", cor.threshold)
    check_count("correction.max_iter", cor.max_iter)
    check_count("correction.parallel_workers", cor.parallel_workers)

    sens = config.sensitivity
    check_count("sensitivity.trajectories", sens.trajectories)
    check_count("sensitivity.processes", sens.processes)
    if check_count("sensitivity.num_levels", sens.num_levels) < 2:
        raise InvalidParameter(
            f"sensitivity.num_levels must be >= 2, got {sens.num_levels}"
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> MetacommConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        sweep_overrides: Optional dict of parameter sweep overrides.

    Returns:
        Validated MetacommConfig.

    Raises:
        FileNotFoundError: If base_path or scenario_path doesn't exist.
        InvalidParameter: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def apply_overrides(config: MetacommConfig, overrides: Dict) -> MetacommConfig:
    """Return a validated copy of config with nested overrides merged in.

    Args:
        config: Base configuration (not modified).
        overrides: Nested dict, e.g. {'detection': {'mean_p': 0.4}}.
    """
    merged = deep_merge(config_to_dict(config), copy.deepcopy(overrides))
    new = _yaml_to_config(merged)
    validate_config(new)
    return new


def default_config() -> MetacommConfig:
    """Return a MetacommConfig with all default values."""
    config = MetacommConfig()
    validate_config(config)
    return config
