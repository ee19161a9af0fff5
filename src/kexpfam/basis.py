import logging
from typing import Sequence

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from kexpfam.errors import DimensionMismatchError, InvalidConfigurationError
from kexpfam.index import idx_to_ai

logger = logging.getLogger(__name__)


def basis_inds_from_mask(basis_mask: np.ndarray) -> np.ndarray:
    r"""
    Collects the flat indices of the selected (point, dimension) pairs of a mask.

    Args:
        basis_mask:
            Boolean mask of shape ``(M, D)``, ``True`` marks a basis component.

    Returns:
        np.ndarray:
            Sorted, deduplicated flat indices into the ``(M, D)`` space. Sortedness
            gives linear-order traversal in the Gram assembly.
    """
    mask = np.asarray(basis_mask, dtype=bool)
    if mask.ndim != 2:
        raise DimensionMismatchError(
            f"`basis_mask` must be a 2-D (points, dimensions) array, got ndim={mask.ndim}"
        )
    collected = np.flatnonzero(mask.reshape(-1))
    return np.unique(collected)


def basis_points_from_inds(basis_inds: np.ndarray, D: int) -> np.ndarray:
    """
    Sorted distinct point indices touched by a set of flat basis indices.
    """
    points, _ = idx_to_ai(np.asarray(basis_inds, dtype=np.int64), D)
    return np.unique(points)


def points_mask(indices: Sequence[int], num_points: int, D: int) -> np.ndarray:
    """
    Boolean mask selecting every dimension of the listed whole points.

    Duplicate indices are allowed and collapse to a single point.
    """
    indices = np.asarray(indices, dtype=np.int64).reshape(-1)
    if indices.size == 0:
        raise InvalidConfigurationError("at least one basis point index is required")
    if indices.min() < 0 or indices.max() >= num_points:
        raise InvalidConfigurationError(
            f"basis point indices must lie in [0, {num_points}), got {indices.tolist()}"
        )
    mask = np.zeros((num_points, D), dtype=bool)
    mask[indices, :] = True
    return mask


def subsample_points(matrix: np.ndarray | Array, points: np.ndarray) -> np.ndarray | Array:
    """
    Rows of a ``(N, D)`` data matrix (or mask) belonging to the given points.
    """
    return matrix[np.asarray(points, dtype=np.int64)]


def unused_points(basis_inds: np.ndarray, num_points: int, D: int) -> np.ndarray:
    """
    Points of an ``(num_points, D)`` basis which contribute no basis component.
    """
    used = basis_points_from_inds(basis_inds, D)
    return np.setdiff1d(np.arange(num_points), used)


def validate_basis_inds(basis_inds: np.ndarray, num_points: int, D: int) -> np.ndarray:
    """
    Checks that a basis index set is non-empty, strictly increasing and lies in
    ``[0, num_points * D)``.

    Returns:
        np.ndarray:
            The indices as an ``int64`` array.

    Raises:
        InvalidConfigurationError: if any of the conditions is violated.
    """
    basis_inds = np.asarray(basis_inds, dtype=np.int64).reshape(-1)
    if basis_inds.size == 0:
        raise InvalidConfigurationError(
            "basis is empty: the mask selects no (point, dimension) component"
        )
    if np.any(np.diff(basis_inds) <= 0):
        raise InvalidConfigurationError("basis indices must be strictly increasing")
    if basis_inds[0] < 0 or basis_inds[-1] >= num_points * D:
        raise InvalidConfigurationError(
            f"basis indices must lie in [0, {num_points * D}), "
            f"got range [{basis_inds[0]}, {basis_inds[-1]}]"
        )
    return basis_inds


def report_unused_points(basis_inds: np.ndarray, num_points: int, D: int) -> np.ndarray:
    """
    Logs a warning for every basis point with zero selected components.

    Never fatal, returns the unused points.
    """
    unused = unused_points(basis_inds, num_points, D)
    for a in unused:
        logger.warning("Using zero components of basis point %d.", a)

    logger.info(
        "Using %d of %dx%d=%d possible basis components.",
        len(basis_inds),
        num_points,
        D,
        num_points * D,
    )
    return unused


def random_point_mask(key: Array, num_points: int, D: int, m: int) -> Array:
    r"""
    Draws ``m`` whole points uniformly without replacement.

    Args:
        key:
            JAX random key.
        num_points:
            Number of available points ``N``.
        D:
            Number of dimensions.
        m:
            Number of basis points, ``1 <= m <= N``.

    Returns:
        Array:
            Boolean mask of shape ``(N, D)`` with ``m`` fully selected rows.
    """
    if not 1 <= m <= num_points:
        raise InvalidConfigurationError(f"`m` must lie in [1, {num_points}], got {m}")

    points = jax.random.choice(key, jnp.arange(num_points), shape=(m,), replace=False)
    points = jnp.sort(points)
    return jnp.zeros((num_points, D), dtype=bool).at[points].set(True)


def random_component_mask(key: Array, num_points: int, D: int, m: int) -> Array:
    r"""
    Draws ``m`` individual (point, dimension) components uniformly without replacement.

    Returns:
        Array:
            Boolean mask of shape ``(N, D)`` with exactly ``m`` entries set.
    """
    if not 1 <= m <= num_points * D:
        raise InvalidConfigurationError(
            f"`m` must lie in [1, {num_points * D}], got {m}"
        )

    inds = jax.random.choice(key, jnp.arange(num_points * D), shape=(m,), replace=False)
    inds = jnp.sort(inds)
    return jnp.zeros(num_points * D, dtype=bool).at[inds].set(True).reshape(num_points, D)
