import jax.numpy as jnp
import numpy as np
from functools import partial
from jax import jit, lax, vmap, Array
from typing import Optional

from kexpfam.index import ai_to_idx, idx_to_ai
from kexpfam.kernel import Kernel


@partial(jit, static_argnums=(0,), static_argnames=("batch_size",))
def compute_G_mm(
    kernel: Kernel,
    basis: Array,
    basis_inds: Array,
    *,
    batch_size: Optional[int] = None,
) -> Array:
    r"""
    Gram matrix of mixed second derivatives between the basis components.

    .. math::

        (G_{mm})_{kl} = \frac{\partial^2 k(z_a, z_b)}{\partial x_i \partial y_j},
        \quad k = (a, i), \; l = (b, j).

    Every cell is independent: rows are mapped with :func:`jax.lax.map`, cells
    within a row are vectorised.

    Args:
        kernel:
            Kernel providing ``dx_dy_component``. Static.
        basis:
            Basis points of shape ``(M, D)``.
        basis_inds:
            Sorted flat basis indices of shape ``(S,)``.
        batch_size:
            Number of rows vectorised together. ``None`` maps rows one at a time.

    Returns:
        Array:
            Symmetric matrix of shape ``(S, S)``.
    """
    D = basis.shape[1]
    a, i = idx_to_ai(basis_inds, D)

    def row(args):
        a_k, i_k = args
        return vmap(
            lambda a_l, i_l: kernel.dx_dy_component(basis[a_k], basis[a_l], i_k, i_l)
        )(a, i)

    return lax.map(row, (a, i), batch_size=batch_size)


@partial(jit, static_argnums=(0,), static_argnames=("batch_size",))
def compute_G_mn(
    kernel: Kernel,
    basis: Array,
    data: Array,
    basis_inds: Array,
    *,
    batch_size: Optional[int] = None,
) -> Array:
    r"""
    Gram matrix of mixed second derivatives between basis components and every
    (point, dimension) pair of the data.

    Args:
        kernel:
            Kernel providing ``dx_dy_component``. Static.
        basis:
            Basis points of shape ``(M, D)``.
        data:
            Data points of shape ``(N, D)``.
        basis_inds:
            Sorted flat basis indices of shape ``(S,)``.
        batch_size:
            Number of rows vectorised together.

    Returns:
        Array:
            Matrix of shape ``(S, N * D)``; column ``l`` is data flat index ``l``.
    """
    N, D = data.shape
    a, i = idx_to_ai(basis_inds, D)
    b, j = idx_to_ai(jnp.arange(N * D), D)

    def row(args):
        a_k, i_k = args
        return vmap(
            lambda b_l, j_l: kernel.dx_dy_component(basis[a_k], data[b_l], i_k, j_l)
        )(b, j)

    return lax.map(row, (a, i), batch_size=batch_size)


@partial(jit, static_argnums=(0,), static_argnames=("batch_size",))
def compute_h(
    kernel: Kernel,
    basis: Array,
    data: Array,
    basis_inds: Array,
    *,
    batch_size: Optional[int] = None,
) -> Array:
    r"""
    Score-matching vector of third derivatives, averaged over the data.

    .. math::

        h_k = \frac{1}{N} \sum_{b=1}^N \sum_{j=1}^D
        \frac{\partial^3 k(z_a, x_b)}{\partial x_i \partial y_j^2},
        \quad k = (a, i).

    The inner sum runs over every dimension of every data point, independent of
    which components are part of the basis.

    Returns:
        Array:
            Vector of shape ``(S,)``.
    """
    N, D = data.shape
    a, i = idx_to_ai(basis_inds, D)
    b, j = idx_to_ai(jnp.arange(N * D), D)

    def entry(args):
        a_k, i_k = args
        terms = vmap(
            lambda b_l, j_l: kernel.dx_dy_dy_component(basis[a_k], data[b_l], i_k, j_l)
        )(b, j)
        return jnp.sum(terms)

    return lax.map(entry, (a, i), batch_size=batch_size) / N


def subsample_G_mm_from_G_mn(
    G_mn: Array, basis_inds: Array, basis_data_points: Array, D: int
) -> Array:
    """
    Reads ``G_mm`` off the columns of ``G_mn`` when the basis is a subsample of the data.

    Args:
        G_mn:
            Matrix of shape ``(S, N * D)``.
        basis_inds:
            Flat basis indices of shape ``(S,)``.
        basis_data_points:
            Data row of every basis point, shape ``(M,)``.
        D:
            Number of dimensions.

    Returns:
        Array:
            Matrix of shape ``(S, S)``, identical to :func:`compute_G_mm`.
    """
    a, i = idx_to_ai(np.asarray(basis_inds), D)
    columns = ai_to_idx(np.asarray(basis_data_points)[a], i, D)
    return G_mn[:, columns]
