"""Dense symmetric indefinite backend using NumPy/SciPy."""

from dataclasses import dataclass
import numpy as np
import scipy.linalg
from numpy.typing import NDArray

from shootkkt.core.result import Err, FailureKind, Ok, Result


@dataclass
class LDLFactorization:
    """Bunch-Kaufman factors with P A Pᵀ = L D Lᵀ."""

    L: NDArray      # (n, n) unit lower triangular, rows already permuted
    D_banded: NDArray  # (3, n) tridiagonal D in scipy banded storage
    perm: NDArray   # (n,) row permutation
    inertia: tuple[int, int, int]  # (positive, negative, zero)


class DenseBackend:
    """SciPy LDLᵀ factorization with an inertia test."""

    def __init__(self, zero_tol: float = float(np.finfo(float).eps)):
        self.zero_tol = zero_tol

    def factor(self, A: NDArray, n_negative: int) -> Result[LDLFactorization]:
        """
        Compute the LDLᵀ factorization and check its inertia.

        The matrix is accepted only when it has exactly ``n_negative``
        negative eigenvalues and none that are numerically zero. For a KKT
        matrix this holds iff the Hessian block is positive definite on the
        null space of the constraint block.

        Returns:
            Ok(LDLFactorization) or Err(FailureKind.NOT_POSITIVE_DEFINITE)
        """
        if not np.all(np.isfinite(A)):
            return Err(FailureKind.NOT_POSITIVE_DEFINITE, "matrix is not finite")

        lu, d, perm = scipy.linalg.ldl(A, lower=True, check_finite=False)
        inertia = _inertia(d, self.zero_tol * max(1.0, float(np.abs(A).max())))
        n_pos, n_neg, n_zero = inertia
        if n_zero > 0 or n_neg != n_negative:
            return Err(
                FailureKind.NOT_POSITIVE_DEFINITE,
                f"inertia (+{n_pos}, -{n_neg}, 0:{n_zero}), "
                f"expected {n_negative} negative",
            )

        n = A.shape[0]
        D_banded = np.zeros((3, n))
        D_banded[0, 1:] = np.diag(d, 1)
        D_banded[1] = np.diag(d)
        D_banded[2, :-1] = np.diag(d, -1)
        return Ok(LDLFactorization(L=lu[perm], D_banded=D_banded, perm=perm, inertia=inertia))

    def solve(self, factorization: LDLFactorization, b: NDArray, out: NDArray) -> NDArray:
        """Solve A x = b, writing x into out."""
        f = factorization
        y = scipy.linalg.solve_triangular(
            f.L, b[f.perm], lower=True, unit_diagonal=True, check_finite=False
        )
        z = scipy.linalg.solve_banded((1, 1), f.D_banded, y, check_finite=False)
        w = scipy.linalg.solve_triangular(
            f.L, z, trans="T", lower=True, unit_diagonal=True, check_finite=False
        )
        out[f.perm] = w
        return out


def _inertia(d: NDArray, tol: float) -> tuple[int, int, int]:
    """Count positive, negative and zero eigenvalues of a 1x1/2x2 block diagonal."""
    n = d.shape[0]
    n_pos = n_neg = n_zero = 0
    i = 0
    while i < n:
        if i + 1 < n and d[i + 1, i] != 0.0:
            eigs = np.linalg.eigvalsh(d[i:i + 2, i:i + 2])
            i += 2
        else:
            eigs = (d[i, i],)
            i += 1
        for lam in eigs:
            if abs(lam) <= tol:
                n_zero += 1
            elif lam > 0.0:
                n_pos += 1
            else:
                n_neg += 1
    return n_pos, n_neg, n_zero
