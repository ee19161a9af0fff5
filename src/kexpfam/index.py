from typing import Tuple, TypeVar

# int, np.ndarray or jax Array; both functions are element-wise
IndexLike = TypeVar("IndexLike")


def idx_to_ai(idx: IndexLike, D: int) -> Tuple[IndexLike, IndexLike]:
    r"""
    Decodes a flat index of the (point :math:`\times` dimension) space.

    The space is flattened point-major, dimension-minor, i.e. the flat index of
    dimension ``i`` of point ``a`` is ``a * D + i``. This is the row-major flatten
    of a shape ``(N, D)`` array.

    Args:
        idx:
            Flat index, or an array of flat indices.
        D:
            Number of dimensions, ``D >= 1``.

    Returns:
        Tuple:
            ``(a, i)``, the point index (quotient) and dimension index (remainder).
    """
    return idx // D, idx % D


def ai_to_idx(a: IndexLike, i: IndexLike, D: int) -> IndexLike:
    """
    Inverse of :func:`idx_to_ai`: flat index of dimension ``i`` of point ``a``.
    """
    return a * D + i
