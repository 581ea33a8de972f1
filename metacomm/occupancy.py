"""Single-season occupancy estimation service.

The correction workflow only depends on the ``OccupancyFitter`` protocol:
given one species' site × visit detection matrix, the visit covariate
(date) and the site covariate (gradient), return an ``OccupancyFit``
exposing logistic coefficients with standard errors and the per-site
empirical-Bayes posterior of true occurrence.

``MLEOccupancyFitter`` is the default service. It hands the
single-season likelihood

  L_i = psi_i × Π_j p_ij^y_ij (1 − p_ij)^(1−y_ij) + (1 − psi_i) × 1[Σ_j y_ij = 0]
  logit(psi_i) = b0 + b1 × gradient_i
  logit(p_ij)  = a0 + a1 × date_ij

to ``scipy.optimize.minimize`` and reads standard errors off the inverse
Hessian. Posterior occurrence (best unbiased predictor):

  P(z_i = 1 | y_i) = 1                                         if detected
                   = psi_i Π(1 − p_ij) / (psi_i Π(1 − p_ij) + 1 − psi_i)   otherwise
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import numpy as np
from scipy import optimize, special

from metacomm.types import OccupancyFitError

COEF_NAMES = ('psi(Intercept)', 'psi(gradient)', 'p(Intercept)', 'p(date)')


@dataclass(frozen=True)
class OccupancyFit:
    """Fitted single-season model for one species."""
    coef: np.ndarray            # (4,) in COEF_NAMES order
    se: np.ndarray              # (4,) standard errors (NaN if unavailable)
    posterior: np.ndarray       # (nsite,) P(z_i = 1 | y_i)
    neg_log_lik: float
    converged: bool
    n_iter: int

    def coefficients(self) -> Dict[str, float]:
        return dict(zip(COEF_NAMES, (float(c) for c in self.coef)))

    def posterior_mode(self) -> np.ndarray:
        """Per-site posterior mode of z (ties resolve to absence)."""
        return (self.posterior > 0.5).astype(np.int8)

    def psi(self, gradient: np.ndarray) -> np.ndarray:
        return special.expit(self.coef[0] + self.coef[1] * gradient)

    def p(self, date: np.ndarray) -> np.ndarray:
        return special.expit(self.coef[2] + self.coef[3] * date)


class OccupancyFitter(Protocol):
    """Contract of the occupancy estimation service."""

    def fit(
        self,
        y: np.ndarray,
        date: np.ndarray,
        gradient: np.ndarray,
    ) -> OccupancyFit:
        """Fit one species. Raises OccupancyFitError when it cannot."""
        ...


# ═══════════════════════════════════════════════════════════════════════
# LIKELIHOOD
# ═══════════════════════════════════════════════════════════════════════

def _site_log_lik(
    theta: np.ndarray,
    y: np.ndarray,
    date: np.ndarray,
    gradient: np.ndarray,
) -> np.ndarray:
    """Per-site log-likelihood, shape (nsite,)."""
    eta = theta[0] + theta[1] * gradient
    nu = theta[2] + theta[3] * date
    log_psi = special.log_expit(eta)
    log_1m_psi = special.log_expit(-eta)
    ll_visits = np.sum(
        y * special.log_expit(nu) + (1 - y) * special.log_expit(-nu), axis=1,
    )
    detected = y.max(axis=1) > 0
    absent_term = np.where(detected, -np.inf, log_1m_psi)
    return np.logaddexp(log_psi + ll_visits, absent_term)


def neg_log_likelihood(
    theta: np.ndarray,
    y: np.ndarray,
    date: np.ndarray,
    gradient: np.ndarray,
) -> float:
    """Single-season occupancy negative log-likelihood."""
    return float(-np.sum(_site_log_lik(theta, y, date, gradient)))


def posterior_occurrence(
    theta: np.ndarray,
    y: np.ndarray,
    date: np.ndarray,
    gradient: np.ndarray,
) -> np.ndarray:
    """Empirical-Bayes P(z_i = 1 | y_i) at parameter vector theta."""
    eta = theta[0] + theta[1] * gradient
    nu = theta[2] + theta[3] * date
    log_num = special.log_expit(eta) + np.sum(special.log_expit(-nu), axis=1)
    log_den = np.logaddexp(log_num, special.log_expit(-eta))
    post = np.exp(log_num - log_den)
    detected = y.max(axis=1) > 0
    return np.where(detected, 1.0, post)


def _check_inputs(y, date, gradient):
    y = np.asarray(y, dtype=np.float64)
    date = np.asarray(date, dtype=np.float64)
    gradient = np.asarray(gradient, dtype=np.float64)
    if y.ndim != 2:
        raise ValueError(f"y must be a site × visit matrix, got shape {y.shape}")
    if date.shape != y.shape:
        raise ValueError(f"date shape {date.shape} does not match y shape {y.shape}")
    if gradient.shape != (y.shape[0],):
        raise ValueError(
            f"gradient must have shape ({y.shape[0]},), got {gradient.shape}"
        )
    return y, date, gradient


# ═══════════════════════════════════════════════════════════════════════
# DEFAULT SERVICE
# ═══════════════════════════════════════════════════════════════════════

class MLEOccupancyFitter:
    """Maximum-likelihood occupancy fits through scipy.optimize.

    Args:
        method: Any gradient-based ``scipy.optimize.minimize`` method
            that reports ``hess_inv`` (BFGS, L-BFGS-B).
        max_iter: Optimizer iteration cap.
        start: Optional (4,) starting vector (zeros when None).
    """

    def __init__(
        self,
        method: str = "BFGS",
        max_iter: int = 1000,
        start: Optional[np.ndarray] = None,
    ):
        self.method = method
        self.max_iter = max_iter
        self.start = np.zeros(4) if start is None else np.asarray(start, dtype=np.float64)

    def fit(
        self,
        y: np.ndarray,
        date: np.ndarray,
        gradient: np.ndarray,
    ) -> OccupancyFit:
        y, date, gradient = _check_inputs(y, date, gradient)
        if not np.any(y > 0):
            raise OccupancyFitError(
                "all-zero detection matrix: occupancy is not identifiable"
            )

        res = optimize.minimize(
            neg_log_likelihood,
            self.start,
            args=(y, date, gradient),
            method=self.method,
            options={'maxiter': self.max_iter},
        )
        if not np.all(np.isfinite(res.x)) or not np.isfinite(res.fun):
            raise OccupancyFitError(f"optimizer diverged: {res.message}")

        return OccupancyFit(
            coef=res.x.copy(),
            se=_standard_errors(res),
            posterior=posterior_occurrence(res.x, y, date, gradient),
            neg_log_lik=float(res.fun),
            converged=bool(res.success),
            n_iter=int(res.nit),
        )


def _standard_errors(res) -> np.ndarray:
    hess_inv = getattr(res, 'hess_inv', None)
    if hess_inv is None:
        return np.full(res.x.shape, np.nan)
    if hasattr(hess_inv, 'todense'):
        hess_inv = hess_inv.todense()
    diag = np.diag(np.asarray(hess_inv, dtype=np.float64))
    with np.errstate(invalid='ignore'):
        return np.where(diag > 0, np.sqrt(diag), np.nan)
