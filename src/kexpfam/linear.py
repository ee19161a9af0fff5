import jax, jax.numpy as jnp
from jax import Array
from typing import Optional

from kexpfam.errors import DimensionMismatchError, InvalidConfigurationError


@jax.jit
def _eigh_pinv(matrix: Array, rtol: Array) -> Array:
    s, V = jnp.linalg.eigh(matrix)
    tol = rtol * jnp.max(jnp.abs(s))
    keep = jnp.abs(s) > tol
    s_inv = jnp.where(keep, 1.0 / jnp.where(keep, s, 1.0), 0.0)
    return (V * s_inv) @ V.T


def pinv_self_adjoint(matrix: Array, rtol: Optional[float] = None) -> Array:
    r"""
    Moore-Penrose pseudoinverse of a real symmetric matrix via its eigendecomposition.

    With :math:`S = V \Lambda V^\top`, eigenvalues :math:`|\lambda| > \mathrm{tol}` are
    inverted and the rest set to zero, :math:`P = V \Lambda^{+} V^\top`. Works for
    rank-deficient and indefinite matrices, in which case :math:`S P S = S` still holds.

    Args:
        matrix:
            Symmetric matrix. Shape: ``(n,n)``.
        rtol:
            Relative eigenvalue threshold, ``tol = rtol * max|λ|``. Defaults to
            ``n * eps`` of the matrix dtype.

    Returns:
        Array:
            The symmetric pseudoinverse. Shape: ``(n,n)``.
    """
    matrix = jnp.asarray(matrix)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise DimensionMismatchError(
            f"pinv_self_adjoint expects a square matrix, got shape {matrix.shape}"
        )

    if rtol is None:
        rtol = matrix.shape[0] * jnp.finfo(matrix.dtype).eps

    return _eigh_pinv(matrix, jnp.asarray(rtol, dtype=matrix.dtype))


def compute_system_matrix(
    G_mm: Array, G_mn: Array, num_data: int, lam: float, lam_l2: float = 0.0
) -> Array:
    r"""
    Regularised score-matching system matrix

    .. math::

        A = \frac{1}{N} G_{mn} G_{mn}^\top + \lambda G_{mm} + \lambda_{\ell_2} I.

    Args:
        G_mm:
            Basis Gram matrix. Shape: ``(S,S)``.
        G_mn:
            Basis-vs-data Gram matrix. Shape: ``(S, N*D)``.
        num_data:
            Number of data points ``N``.
        lam:
            Weight of the RKHS norm penalty.
        lam_l2:
            Ridge on the Euclidean norm of the coefficients. Defaults to ``0``.

    Returns:
        Array:
            Symmetric matrix of shape ``(S,S)``.
    """
    if lam < 0 or lam_l2 < 0:
        raise InvalidConfigurationError(
            f"regularisation must be non-negative, got lam={lam}, lam_l2={lam_l2}"
        )
    if G_mm.shape[0] != G_mn.shape[0]:
        raise DimensionMismatchError(
            f"G_mm has {G_mm.shape[0]} rows but G_mn has {G_mn.shape[0]}"
        )

    system_matrix = G_mn @ G_mn.T / num_data + lam * G_mm
    if lam_l2 > 0:
        system_matrix = system_matrix + lam_l2 * jnp.eye(system_matrix.shape[0])
    return system_matrix


def compute_system_vector(h: Array) -> Array:
    """
    Right-hand side of the score-matching system, the averaged third-derivative vector ``h``.
    """
    return h


def solve_beta(system_matrix: Array, system_vector: Array) -> Array:
    r"""
    Solves :math:`A \beta = -b` with the symmetric pseudoinverse of :math:`A`.
    """
    return -pinv_self_adjoint(system_matrix) @ system_vector
