import jax

jax.config.update("jax_enable_x64", True)

import numpy as np
import pytest

from kexpfam.estimator import Nystrom
from kexpfam.kernel import GaussianKernel

SIGMA = 2.0
LAM = 1.0

# basis configurations; every one describes the first two training points
BASIS_CONFIGS = [
    "explicit_basis",
    "subsampled_basis",
    "d_subsampled_basis",
    "d_explicit_basis",
    "d_explicit_basis_not_redundant",
]


def two_point_mask(num_points, D):
    mask = np.zeros((num_points, D), dtype=bool)
    mask[:2, :] = True
    return mask


def make_estimator(config, X, kernel, lam=LAM):
    N, D = X.shape
    if config == "explicit_basis":
        return Nystrom(X, X[:2].copy(), kernel, lam)
    if config == "subsampled_basis":
        return Nystrom.from_indices(X, [0, 1], kernel, lam)
    if config == "d_subsampled_basis":
        return Nystrom.from_mask(X, two_point_mask(N, D), kernel, lam)
    if config == "d_explicit_basis":
        # explicit basis, being all of the training data
        return Nystrom(X, X.copy(), kernel, lam, basis_mask=two_point_mask(N, D))
    if config == "d_explicit_basis_not_redundant":
        # explicit basis, only part of the training data
        return Nystrom(X, X[:2].copy(), kernel, lam, basis_mask=two_point_mask(2, D))
    raise ValueError(config)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def X_train_fixed():
    return np.array([[0.0, 1.0], [2.0, 4.0], [3.0, 6.0]])


@pytest.fixture
def X_test_fixed():
    return np.array([[0.0, 1.0], [1.0, 1.0]])


@pytest.fixture
def X_train_random(rng):
    return rng.normal(size=(3, 2))


@pytest.fixture
def kernel():
    return GaussianKernel(sigma=SIGMA)


@pytest.fixture
def estimator_factory():
    return make_estimator


@pytest.fixture(params=BASIS_CONFIGS)
def config(request):
    return request.param


@pytest.fixture
def est(config, X_train_fixed, kernel):
    return make_estimator(config, X_train_fixed, kernel)


@pytest.fixture
def est_random(config, X_train_random, kernel):
    return make_estimator(config, X_train_random, kernel)
