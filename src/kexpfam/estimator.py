import logging
from typing import Optional, Sequence

import jax.numpy as jnp
import numpy as np
from jax import Array

from kexpfam import evaluate, gram
from kexpfam.basis import (
    basis_inds_from_mask,
    basis_points_from_inds,
    points_mask,
    report_unused_points,
    subsample_points,
    validate_basis_inds,
)
from kexpfam.errors import (
    DimensionMismatchError,
    InvalidConfigurationError,
    NotFittedError,
)
from kexpfam.kernel import Kernel
from kexpfam.linear import compute_system_matrix, compute_system_vector, solve_beta

logger = logging.getLogger(__name__)


def _as_matrix(X, what: str) -> Array:
    X = jnp.asarray(X, dtype=float)
    if X.ndim != 2:
        raise DimensionMismatchError(
            f"`{what}` must be a 2-D (points, dimensions) array, got shape {X.shape}"
        )
    return X


def _as_mask(mask, shape: tuple, what: str) -> np.ndarray:
    mask = np.asarray(mask, dtype=bool)
    if mask.shape != shape:
        raise DimensionMismatchError(
            f"`{what}` must have shape {shape}, got {mask.shape}"
        )
    return mask


class Nystrom:
    r"""
    Kernel exponential family score-matching estimator with a Nystrom basis.

    The log-density is modelled as

    .. math::

        \log \tilde p(y) = \sum_{k=(a,i)} \beta_k \frac{\partial k(z_a, y)}{\partial x_i},

    where the sum runs over the basis components: pairs of a basis point
    :math:`z_a` and a dimension :math:`i`. Components are addressed by flat
    indices ``a * D + i`` (see :mod:`kexpfam.index`). In whole-point mode every
    dimension of every basis point is a component; in per-dimension mode a boolean
    mask selects individual components.

    Arrays are sample-major: data, basis and masks have shape ``(points, D)``.

    Construct with an explicit basis, or from the data with :meth:`from_indices`
    (whole points) or :meth:`from_mask` (individual components). Call :meth:`fit`,
    then evaluate on the current query data, which is the training data until
    :meth:`set_data` binds another set.

    Args:
        data:
            Training data of shape ``(N, D)``.
        basis:
            Basis points of shape ``(M, D)``.
        kernel:
            Kernel implementing the derivative interface of :class:`kexpfam.kernel.Kernel`.
        lam:
            Weight of the RKHS norm penalty. Defaults to ``1``.
        lam_l2:
            Ridge on the Euclidean norm of the coefficients. Defaults to ``0``.
        basis_mask:
            Optional boolean mask of shape ``(M, D)`` selecting basis components.
            ``None`` uses every dimension of every basis point.
    """

    def __init__(
        self,
        data,
        basis,
        kernel: Kernel,
        lam: float = 1.0,
        lam_l2: float = 0.0,
        *,
        basis_mask=None,
    ):
        data = _as_matrix(data, "data")
        basis = _as_matrix(basis, "basis")
        if data.shape[0] == 0:
            raise InvalidConfigurationError("training data must contain at least one point")
        if basis.shape[0] == 0:
            raise InvalidConfigurationError("basis must contain at least one point")
        if basis.shape[1] != data.shape[1]:
            raise DimensionMismatchError(
                f"basis has dimension {basis.shape[1]} but data has {data.shape[1]}"
            )
        if lam < 0 or lam_l2 < 0:
            raise InvalidConfigurationError(
                f"regularisation must be non-negative, got lam={lam}, lam_l2={lam_l2}"
            )

        M, D = basis.shape
        if basis_mask is None:
            basis_inds = validate_basis_inds(np.arange(M * D), M, D)
        else:
            mask = _as_mask(basis_mask, basis.shape, "basis_mask")
            basis_inds = validate_basis_inds(basis_inds_from_mask(mask), M, D)
            report_unused_points(basis_inds, M, D)

        self.kernel = kernel
        self.lam = float(lam)
        self.lam_l2 = float(lam_l2)

        self._train = data
        self._data = data
        self._basis = basis
        self._basis_inds = basis_inds
        self._basis_data_points: Optional[np.ndarray] = None
        self._beta: Optional[Array] = None

    @classmethod
    def from_mask(
        cls,
        data,
        basis_mask,
        kernel: Kernel,
        lam: float = 1.0,
        lam_l2: float = 0.0,
    ) -> "Nystrom":
        """
        Estimator whose basis components are selected from the data by a mask.

        Data points without any selected component are dropped from the basis, so
        the basis holds exactly the touched points. This does not change any result.

        Args:
            data:
                Training data of shape ``(N, D)``.
            basis_mask:
                Boolean mask of shape ``(N, D)``.
            kernel, lam, lam_l2:
                As in :class:`Nystrom`.
        """
        data = _as_matrix(data, "data")
        N, D = data.shape
        mask = _as_mask(basis_mask, data.shape, "basis_mask")

        basis_inds = basis_inds_from_mask(mask)
        if basis_inds.size == 0:
            raise InvalidConfigurationError(
                "basis is empty: the mask selects no (point, dimension) component"
            )

        basis_points = basis_points_from_inds(basis_inds, D)
        if len(basis_points) == N:
            basis = data
        else:
            logger.info("Subsampling data as basis as some points are unused.")
            basis = subsample_points(data, basis_points)
            mask = subsample_points(mask, basis_points)

        logger.info(
            "Using %d of N=%d user provided data points as basis points.",
            basis.shape[0],
            N,
        )

        est = cls(data, basis, kernel, lam, lam_l2, basis_mask=mask)
        est._basis_data_points = basis_points
        return est

    @classmethod
    def from_indices(
        cls,
        data,
        indices: Sequence[int],
        kernel: Kernel,
        lam: float = 1.0,
        lam_l2: float = 0.0,
    ) -> "Nystrom":
        """
        Estimator using whole data points as basis.

        Equivalent to :meth:`from_mask` with every dimension of the listed points
        selected. Duplicates are ignored; the basis keeps the data order.
        """
        data = _as_matrix(data, "data")
        N, D = data.shape
        return cls.from_mask(data, points_mask(indices, N, D), kernel, lam, lam_l2)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def basis(self) -> Array:
        return self._basis

    @property
    def basis_inds(self) -> np.ndarray:
        return self._basis_inds

    @property
    def system_size(self) -> int:
        return len(self._basis_inds)

    @property
    def num_basis(self) -> int:
        return self._basis.shape[0]

    @property
    def num_data(self) -> int:
        """Number of points of the current query data."""
        return self._data.shape[0]

    @property
    def num_dimensions(self) -> int:
        return self._basis.shape[1]

    @property
    def basis_is_subsampled_data(self) -> bool:
        return self._basis_data_points is not None

    @property
    def is_fitted(self) -> bool:
        return self._beta is not None

    @property
    def beta(self) -> Array:
        self._check_fitted()
        return self._beta

    def set_data(self, data) -> None:
        """
        Binds the query data used by every evaluation method. Does not affect the fit.
        """
        data = _as_matrix(data, "data")
        if data.shape[1] != self.num_dimensions:
            raise DimensionMismatchError(
                f"query data has dimension {data.shape[1]}, expected {self.num_dimensions}"
            )
        if data.shape[0] == 0:
            raise InvalidConfigurationError("query data must contain at least one point")
        self._data = data

    # ------------------------------------------------------------------
    # Fitting
    # ------------------------------------------------------------------
    def compute_G_mm(self) -> Array:
        return gram.compute_G_mm(self.kernel, self._basis, jnp.asarray(self._basis_inds))

    def compute_G_mn(self) -> Array:
        return gram.compute_G_mn(
            self.kernel, self._basis, self._train, jnp.asarray(self._basis_inds)
        )

    def compute_h(self) -> Array:
        return gram.compute_h(
            self.kernel, self._basis, self._train, jnp.asarray(self._basis_inds)
        )

    def compute_system_matrix(self) -> Array:
        G_mn = self.compute_G_mn()
        if self.basis_is_subsampled_data:
            G_mm = gram.subsample_G_mm_from_G_mn(
                G_mn, self._basis_inds, self._basis_data_points, self.num_dimensions
            )
        else:
            G_mm = self.compute_G_mm()

        return compute_system_matrix(
            G_mm, G_mn, self._train.shape[0], self.lam, self.lam_l2
        )

    def compute_system_vector(self) -> Array:
        return compute_system_vector(self.compute_h())

    def fit(self) -> "Nystrom":
        """
        Solves the regularised score-matching system for the coefficients.

        Always uses the training data, regardless of :meth:`set_data`.
        """
        logger.info(
            "Fitting with %d basis components, N=%d, D=%d.",
            self.system_size,
            self._train.shape[0],
            self.num_dimensions,
        )
        logger.info("Computing system matrix.")
        A = self.compute_system_matrix()
        logger.info("Computing system vector.")
        b = self.compute_system_vector()

        logger.info("Solving with self-adjoint eigensolver based pseudo-inverse.")
        beta = solve_beta(A, b)

        if not bool(jnp.all(jnp.isfinite(beta))):
            logger.warning("Fitted coefficients contain non-finite values.")

        self._beta = beta
        return self

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def _check_fitted(self):
        if self._beta is None:
            raise NotFittedError(
                f"{type(self).__name__} is not fitted yet; call `fit()` first."
            )

    def _query(self, idx: Optional[int]) -> Array:
        if idx is None:
            return self._data
        if not 0 <= idx < self.num_data:
            raise IndexError(f"query index {idx} out of range for {self.num_data} points")
        return self._data[idx : idx + 1]

    def _evaluate(self, fn, idx: Optional[int]) -> Array:
        self._check_fitted()
        result = fn(
            self.kernel,
            self._basis,
            jnp.asarray(self._basis_inds),
            self._beta,
            self._query(idx),
        )
        return result if idx is None else result[0]

    def log_pdf(self, idx: Optional[int] = None) -> Array:
        """
        Unnormalised log-density at query point ``idx``, or at all query points
        (shape ``(N_test,)``) if ``idx`` is None.
        """
        return self._evaluate(evaluate.log_pdf, idx)

    def grad(self, idx: Optional[int] = None) -> Array:
        """Log-density gradient, shape ``(D,)`` or ``(N_test, D)``."""
        return self._evaluate(evaluate.grad, idx)

    def hessian(self, idx: Optional[int] = None) -> Array:
        """Log-density Hessian, shape ``(D, D)`` or ``(N_test, D, D)``."""
        return self._evaluate(evaluate.hessian, idx)

    def hessian_diag(self, idx: Optional[int] = None) -> Array:
        """Diagonal of :meth:`hessian`, shape ``(D,)`` or ``(N_test, D)``."""
        return self._evaluate(evaluate.hessian_diag, idx)

    def score(self) -> float:
        """Score-matching objective on the current query data."""
        self._check_fitted()
        return float(
            evaluate.score(
                self.kernel,
                self._basis,
                jnp.asarray(self._basis_inds),
                self._beta,
                self._data,
            )
        )
