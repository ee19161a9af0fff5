from jax import grad
from typing import ClassVar

import jax
import jax.numpy as jnp
from jax import Array


class Distribution:
    """
    Target density with a known score, used to benchmark gradient estimates.
    """

    name: ClassVar[str] = "base_distribution"

    def __init__(self, dim: int):
        if dim < 1:
            raise ValueError(f"`dim` must be >= 1, got {dim}")
        self.dim = dim

    def log_prob(self, x: Array) -> Array:
        raise NotImplementedError

    def score(self, x: Array) -> Array:
        # Vectorise the gradient calculation
        grad_fn = jax.vmap(grad(lambda single_x: self.log_prob(single_x).sum()))
        return grad_fn(jnp.atleast_2d(x))

    def sample(self, key: Array, num_samples: int) -> Array:
        """
        Sample `num_samples` points of shape ``(num_samples, dim)`` with a provided JAX key.
        """
        raise NotImplementedError


class IsotropicGaussian(Distribution):
    r"""
    Zero-mean Gaussian :math:`\mathcal{N}(0, s^2 I)`, log-density up to a constant.
    """

    name: ClassVar[str] = "IsotropicGaussian"

    def __init__(self, dim: int, scale: float = 1.0):
        super().__init__(dim)
        if not scale > 0:
            raise ValueError(f"`scale` must be positive, got {scale}")
        self.scale = scale

    def log_prob(self, x: Array) -> Array:
        return -0.5 * jnp.sum((x / self.scale) ** 2, axis=-1)

    def sample(self, key: Array, num_samples: int) -> Array:
        return self.scale * jax.random.normal(key, (num_samples, self.dim))


class Banana(Distribution):
    r"""
    Banana-shaped density obtained by twisting a Gaussian.

    With :math:`z \sim \mathcal{N}(0, \mathrm{diag}(V, 1, \dots, 1))`, samples are
    :math:`x = z` except :math:`x_2 = z_2 + b (z_1^2 - V)`. Requires ``dim >= 2``.

    Args:
        dim:
            Dimension, at least 2.
        bananicity:
            Twist :math:`b`.
        V:
            Variance of the first coordinate.
    """

    name: ClassVar[str] = "Banana"

    def __init__(self, dim: int = 2, bananicity: float = 0.03, V: float = 100.0):
        super().__init__(dim)
        if dim < 2:
            raise ValueError(f"Banana requires `dim` >= 2, got {dim}")
        if not V > 0:
            raise ValueError(f"`V` must be positive, got {V}")
        self.bananicity = bananicity
        self.V = V

    def _untwist(self, x: Array) -> Array:
        x2 = x[..., 1] - self.bananicity * (x[..., 0] ** 2 - self.V)
        return x.at[..., 1].set(x2)

    def log_prob(self, x: Array) -> Array:
        z = self._untwist(x)
        scales = jnp.ones(self.dim).at[0].set(jnp.sqrt(self.V))
        return -0.5 * jnp.sum((z / scales) ** 2, axis=-1)

    def sample(self, key: Array, num_samples: int) -> Array:
        z = jax.random.normal(key, (num_samples, self.dim))
        z = z.at[:, 0].multiply(jnp.sqrt(self.V))
        x2 = z[:, 1] + self.bananicity * (z[:, 0] ** 2 - self.V)
        return z.at[:, 1].set(x2)
