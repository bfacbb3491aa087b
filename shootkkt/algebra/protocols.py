"""Linear algebra backend protocol."""

from typing import Protocol, Any
from numpy.typing import NDArray

from shootkkt.core.result import Result


class LinearAlgebraBackend(Protocol):
    """
    Protocol for factoring and solving the symmetric KKT system.
    Allows swapping between dense and structure-exploiting implementations.
    """

    def factor(self, A: NDArray, n_negative: int) -> Result[Any]:
        """
        Factor a symmetric saddle-point matrix.

        Args:
            A: Symmetric matrix
            n_negative: Number of negative eigenvalues A must have to be
                accepted (the number of equality constraints)

        Returns:
            Ok(factorization) or Err(FailureKind.NOT_POSITIVE_DEFINITE)
        """
        ...

    def solve(self, factorization: Any, b: NDArray, out: NDArray) -> NDArray:
        """
        Solve A x = b with a precomputed factorization.

        Args:
            factorization: Value returned by ``factor``
            b: Right-hand side
            out: Destination buffer, may alias b

        Returns:
            out
        """
        ...
