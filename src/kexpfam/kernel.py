import jax, jax.numpy as jnp
from jax import jit, vmap, Array
from typing import ClassVar, Optional
from dataclasses import dataclass


@dataclass(frozen=True)
class Kernel:
    r"""
    Derivative interface of a translation-invariant kernel :math:`k(x, y)`.

    Subclasses provide :meth:`_pair`. Every derivative component below defaults to
    JAX automatic differentiation of :meth:`_pair`; families with closed forms
    override them. Kernels are frozen dataclasses, hence hashable, so an instance
    can be passed as a static argument of jitted functions and shared read-only
    between estimators.

    Conventions: ``x`` is the first (basis) argument, ``y`` the second (data)
    argument, both of shape ``(D,)``. Dimension indices ``i`` and ``j`` may be
    traced integers.
    """

    name: ClassVar[str] = "base_kernel"

    def _pair(self, x: Array, y: Array) -> Array:
        raise NotImplementedError  # k(x, y)

    def value(self, x: Array, y: Array) -> Array:
        """Kernel value :math:`k(x, y)`."""
        return self._pair(x, y)

    def dx_component(self, x: Array, y: Array, i: int) -> Array:
        r""":math:`\partial k / \partial x_i`."""
        return jax.grad(self._pair, argnums=0)(x, y)[i]

    def dx_dy_component(self, x: Array, y: Array, i: int, j: int) -> Array:
        r""":math:`\partial^2 k / \partial x_i \partial y_j`."""
        dx = jax.grad(self._pair, argnums=0)
        return jax.jacfwd(dx, argnums=1)(x, y)[i, j]

    def dx_dy_dy_component(self, x: Array, y: Array, i: int, j: int) -> Array:
        r""":math:`\partial^3 k / \partial x_i \partial y_j^2`."""
        dy_dy = jax.hessian(self._pair, argnums=1)
        # indexed [y_j, y_j', x_i]
        return jax.jacfwd(dy_dy, argnums=0)(x, y)[j, j, i]

    def dx_i_dx_j_component(self, x: Array, y: Array, i: int) -> Array:
        r"""
        Row :math:`i` of the Hessian w.r.t. the first argument,
        :math:`(\partial^2 k / \partial x_i \partial x_j)_{j=1}^D`. Shape ``(D,)``.
        """
        return jax.hessian(self._pair, argnums=0)(x, y)[i]

    def dx_i_dx_j_dx_k_dot_vec_component(
        self, x: Array, y: Array, vec: Array, i: int, j: int
    ) -> Array:
        r"""
        Third derivative tensor w.r.t. the first argument contracted with ``vec``,
        :math:`\sum_k \partial^3 k / \partial x_i \partial x_j \partial x_k \, v_k`.
        """
        third = jax.jacfwd(jax.hessian(self._pair, argnums=0), argnums=0)(x, y)
        return jnp.dot(third[i, j], vec)

    def __call__(self, X: Array, Y: Optional[Array] = None) -> Array:
        """
        Evaluates the kernel Gram matrix.

        Args:
            X:
                A shape ``(n, d)`` array of points.
            Y:
                A shape ``(m, d)`` array of points. If None, defaults to ``X``.

        Returns:
            Array:
                The shape ``(n, m)`` Gram matrix of kernel values.
        """
        if Y is None:
            Y = X

        X = jnp.atleast_2d(X)
        Y = jnp.atleast_2d(Y)

        def gram(A, B):
            return vmap(lambda x: vmap(lambda y: self._pair(x, y))(B))(A)

        return jit(gram)(X, Y)


@dataclass(frozen=True)
class GaussianKernel(Kernel):
    r"""
    Gaussian kernel

    .. math::

        k(x, y) = \exp\left(-\frac{\lVert x - y \rVert^2}{\sigma}\right),

    with closed-form derivatives. Writing :math:`d = x - y`, every component is
    :math:`k(x, y)` times a polynomial in :math:`d`.

    Args:
        sigma:
            Bandwidth :math:`\sigma > 0`.
    """

    sigma: float = 1.0

    name: ClassVar[str] = "Gaussian"

    def __post_init__(self):
        if not self.sigma > 0:
            raise ValueError(f"`sigma` must be positive, got {self.sigma}")

    def _pair(self, x: Array, y: Array) -> Array:
        d = x - y
        return jnp.exp(-jnp.dot(d, d) / self.sigma)

    def dx_component(self, x: Array, y: Array, i: int) -> Array:
        r"""
        .. math::

            \frac{\partial k}{\partial x_i} = -\frac{2}{\sigma} d_i \, k
        """
        d = x - y
        k = self._pair(x, y)
        return -2.0 * d[i] * k / self.sigma

    def dx_dy_component(self, x: Array, y: Array, i: int, j: int) -> Array:
        r"""
        .. math::

            \frac{\partial^2 k}{\partial x_i \partial y_j}
            = k \left( \frac{2}{\sigma} \delta_{ij} - \frac{4}{\sigma^2} d_i d_j \right)
        """
        s = self.sigma
        d = x - y
        k = self._pair(x, y)
        result = -4.0 * d[i] * d[j] * k / s**2
        return result + jnp.where(i == j, 2.0 * k / s, 0.0)

    def dx_dy_dy_component(self, x: Array, y: Array, i: int, j: int) -> Array:
        r"""
        .. math::

            \frac{\partial^3 k}{\partial x_i \partial y_j^2}
            = k \left( \frac{8}{\sigma^2} \delta_{ij} d_j + \frac{4}{\sigma^2} d_i
            - \frac{8}{\sigma^3} d_i d_j^2 \right)
        """
        s = self.sigma
        d = x - y
        k = self._pair(x, y)
        result = 4.0 * d[i] / s**2 - 8.0 * d[i] * d[j] ** 2 / s**3
        result = result + jnp.where(i == j, 8.0 * d[j] / s**2, 0.0)
        return k * result

    def dx_i_dx_j_component(self, x: Array, y: Array, i: int) -> Array:
        r"""
        .. math::

            \frac{\partial^2 k}{\partial x_i \partial x_j}
            = k \left( \frac{4}{\sigma^2} d_i d_j - \frac{2}{\sigma} \delta_{ij} \right),
            \quad j = 1, \dots, D
        """
        s = self.sigma
        d = x - y
        k = self._pair(x, y)
        e_i = jnp.zeros_like(d).at[i].set(1.0)
        return k * (4.0 * d[i] * d / s**2 - 2.0 * e_i / s)

    def dx_i_dx_j_dx_k_dot_vec_component(
        self, x: Array, y: Array, vec: Array, i: int, j: int
    ) -> Array:
        r"""
        .. math::

            \sum_k \frac{\partial^3 k}{\partial x_i \partial x_j \partial x_k} v_k
            = k \left( -\frac{8}{\sigma^3} d_i d_j (d^\top v)
            + \frac{4}{\sigma^2} \left( v_i d_j + v_j d_i + \delta_{ij} \, d^\top v \right) \right)
        """
        s = self.sigma
        d = x - y
        k = self._pair(x, y)
        d_dot_v = jnp.dot(d, vec)

        result = -8.0 * d[i] * d[j] * d_dot_v / s**3
        result = result + 4.0 * (vec[i] * d[j] + vec[j] * d[i]) / s**2
        result = result + jnp.where(i == j, 4.0 * d_dot_v / s**2, 0.0)
        return k * result
