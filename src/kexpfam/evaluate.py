import jax.numpy as jnp
from functools import partial
from jax import jit, vmap, Array

from kexpfam.index import idx_to_ai
from kexpfam.kernel import Kernel


def beta_for_basis_points(basis_inds: Array, beta: Array, M: int, D: int) -> Array:
    r"""
    Scatters the coefficients into one length-``D`` vector per basis point.

    Dimensions of a basis point that are not part of the basis hold zero, so a dot
    product with row ``a`` only picks up the selected components of point ``a``.

    Returns:
        Array:
            Shape ``(M, D)``.
    """
    a, i = idx_to_ai(basis_inds, D)
    return jnp.zeros((M, D), dtype=beta.dtype).at[a, i].set(beta)


def selected_components(basis_inds: Array, M: int, D: int) -> Array:
    """Boolean ``(M, D)`` mask of the components named by ``basis_inds``."""
    a, i = idx_to_ai(basis_inds, D)
    return jnp.zeros((M, D), dtype=bool).at[a, i].set(True)


def _log_pdf_single(kernel, basis, basis_inds, beta, y):
    D = basis.shape[1]
    a, i = idx_to_ai(basis_inds, D)
    terms = vmap(lambda a_k, i_k: kernel.dx_component(basis[a_k], y, i_k))(a, i)
    return jnp.dot(beta, terms)


def _grad_single(kernel, basis, basis_inds, beta_points, y):
    D = basis.shape[1]
    a, i = idx_to_ai(basis_inds, D)

    def term(a_k, i_k):
        left_arg_hessian = kernel.dx_i_dx_j_component(basis[a_k], y, i_k)
        return -jnp.dot(left_arg_hessian, beta_points[a_k])

    return jnp.zeros(D, dtype=y.dtype).at[i].add(vmap(term)(a, i))


def _hessian_single(kernel, basis, basis_inds, beta_points, selected, y):
    D = basis.shape[1]
    a, i = idx_to_ai(basis_inds, D)
    dims = jnp.arange(D)

    def row(a_k, i_k):
        x_a = basis[a_k]
        beta_a = beta_points[a_k]
        vals = vmap(
            lambda j: kernel.dx_i_dx_j_dx_k_dot_vec_component(x_a, y, beta_a, i_k, j)
        )(dims)
        # only (i, j) with (a, j) in the basis
        return jnp.where(selected[a_k], vals, 0.0)

    return jnp.zeros((D, D), dtype=y.dtype).at[i].add(vmap(row)(a, i))


def _hessian_diag_single(kernel, basis, basis_inds, beta_points, y):
    D = basis.shape[1]
    a, i = idx_to_ai(basis_inds, D)

    def term(a_k, i_k):
        return kernel.dx_i_dx_j_dx_k_dot_vec_component(
            basis[a_k], y, beta_points[a_k], i_k, i_k
        )

    return jnp.zeros(D, dtype=y.dtype).at[i].add(vmap(term)(a, i))


@partial(jit, static_argnums=(0,))
def log_pdf(kernel: Kernel, basis: Array, basis_inds: Array, beta: Array, Y: Array) -> Array:
    r"""
    Unnormalised log-density of the fitted model,

    .. math::

        \log \tilde p(y) = \sum_{k=(a,i)} \beta_k \frac{\partial k(z_a, y)}{\partial x_i}.

    Args:
        kernel:
            Kernel. Static.
        basis:
            Basis points of shape ``(M, D)``.
        basis_inds:
            Flat basis indices of shape ``(S,)``.
        beta:
            Fitted coefficients of shape ``(S,)``.
        Y:
            Query points of shape ``(T, D)``.

    Returns:
        Array:
            Shape ``(T,)``.
    """
    return vmap(lambda y: _log_pdf_single(kernel, basis, basis_inds, beta, y))(Y)


@partial(jit, static_argnums=(0,))
def grad(kernel: Kernel, basis: Array, basis_inds: Array, beta: Array, Y: Array) -> Array:
    """
    Gradient of the fitted log-density at every query point. Shape ``(T, D)``.

    Basis index ``(a, i)`` contributes to component ``i`` only, through the
    selected components of basis point ``a``.
    """
    M, D = basis.shape
    beta_points = beta_for_basis_points(basis_inds, beta, M, D)
    return vmap(lambda y: _grad_single(kernel, basis, basis_inds, beta_points, y))(Y)


@partial(jit, static_argnums=(0,))
def hessian(kernel: Kernel, basis: Array, basis_inds: Array, beta: Array, Y: Array) -> Array:
    """
    Hessian of the fitted log-density at every query point. Shape ``(T, D, D)``.

    Entry ``(i, j)`` collects the basis points ``a`` for which both ``(a, i)`` and
    ``(a, j)`` are basis components.
    """
    M, D = basis.shape
    beta_points = beta_for_basis_points(basis_inds, beta, M, D)
    selected = selected_components(basis_inds, M, D)
    return vmap(
        lambda y: _hessian_single(kernel, basis, basis_inds, beta_points, selected, y)
    )(Y)


@partial(jit, static_argnums=(0,))
def hessian_diag(
    kernel: Kernel, basis: Array, basis_inds: Array, beta: Array, Y: Array
) -> Array:
    """
    Diagonal of :func:`hessian` without forming the full matrix. Shape ``(T, D)``.
    """
    M, D = basis.shape
    beta_points = beta_for_basis_points(basis_inds, beta, M, D)
    return vmap(
        lambda y: _hessian_diag_single(kernel, basis, basis_inds, beta_points, y)
    )(Y)


@partial(jit, static_argnums=(0,))
def score(kernel: Kernel, basis: Array, basis_inds: Array, beta: Array, Y: Array) -> Array:
    r"""
    Empirical score-matching objective of the fitted model on the query set,

    .. math::

        J = \frac{1}{T} \sum_{t=1}^T \left( \frac{1}{2} \lVert \nabla \log \tilde p(y_t) \rVert^2
        + \sum_{i=1}^D \frac{\partial^2 \log \tilde p(y_t)}{\partial y_i^2} \right).

    Lower is better.
    """
    g = grad(kernel, basis, basis_inds, beta, Y)
    h_diag = hessian_diag(kernel, basis, basis_inds, beta, Y)
    return jnp.mean(0.5 * jnp.sum(g**2, axis=1) + jnp.sum(h_diag, axis=1))
