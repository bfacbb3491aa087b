"""Solver configuration."""

from dataclasses import dataclass


@dataclass
class KKTConfig:
    """Thresholds and regularization schedule of the KKT solver."""

    # Regularization schedule
    regfactor: float = 10.0
    regmin: float = 1e-9
    regmax: float = 1e9

    # Line search
    th_grad: float = 1e-12       # linear improvement treated as stationary
    th_step: float = 0.5         # step length above which regularization drops
    th_acceptstep: float = 0.1   # Armijo sufficient-decrease ratio
    n_alphas: int = 10           # step lengths 1, 1/2, 1/4, ...

    # Convergence
    th_stop: float = 1e-9

    def __post_init__(self):
        if not 0.0 < self.regmin <= self.regmax:
            raise ValueError(
                f"Expected 0 < regmin <= regmax, got regmin={self.regmin}, "
                f"regmax={self.regmax}"
            )
        if self.regfactor <= 1.0:
            raise ValueError(f"regfactor must be > 1, got {self.regfactor}")
        if not 0.0 < self.th_step < 1.0:
            raise ValueError(f"th_step must lie in (0, 1), got {self.th_step}")
        if not 0.0 < self.th_acceptstep < 1.0:
            raise ValueError(
                f"th_acceptstep must lie in (0, 1), got {self.th_acceptstep}"
            )
        if self.n_alphas < 1:
            raise ValueError(f"n_alphas must be >= 1, got {self.n_alphas}")
        if self.th_grad <= 0.0 or self.th_stop <= 0.0:
            raise ValueError("th_grad and th_stop must be positive")

    @property
    def alphas(self) -> tuple[float, ...]:
        """Descending step-length candidates."""
        return tuple(1.0 / 2.0**n for n in range(self.n_alphas))
