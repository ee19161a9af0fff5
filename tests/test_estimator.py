import logging

import jax
import jax.numpy as jnp
import numpy as np
import pytest

from kexpfam import evaluate
from kexpfam.errors import (
    DimensionMismatchError,
    InvalidConfigurationError,
    NotFittedError,
)
from kexpfam.estimator import Nystrom

from conftest import BASIS_CONFIGS

SYSTEM_VECTOR = [
    0.0090218771391811,
    0.0135330227056575,
    0.0183410310501008,
    0.0411923796791344,
]
BETA = [
    -0.0071840764907642,
    -0.010757370959334,
    -0.0135184296925311,
    -0.0303339102579069,
]


def test_system_size(est):
    assert est.system_size == 4
    assert est.num_dimensions == 2
    assert est.num_data == 3
    assert not est.is_fitted


def test_compute_G_mm(est):
    G_mm = np.asarray(est.compute_G_mm())
    assert G_mm.shape == (4, 4)
    np.testing.assert_allclose(G_mm, G_mm.T, atol=1e-12)
    np.testing.assert_allclose(np.diag(G_mm), 1.0, atol=1e-15)


def test_compute_G_mn(est):
    assert est.compute_G_mn().shape == (4, 6)


def test_compute_system_matrix(est):
    A = np.asarray(est.compute_system_matrix())
    np.testing.assert_allclose(A[0, 0], 1.3333672382746031, atol=1e-14)
    np.testing.assert_allclose(A[2, 3], 1.3525621245124521e-02, atol=1e-15)
    np.testing.assert_allclose(A, A.T, atol=1e-15)


def test_compute_system_vector(est):
    np.testing.assert_allclose(est.compute_system_vector(), SYSTEM_VECTOR, atol=1e-15)


def test_fit(est):
    assert est.fit() is est
    assert est.is_fitted
    assert est.beta.shape == (4,)
    np.testing.assert_allclose(est.beta, BETA, atol=1e-15)


def test_log_pdf(est, X_test_fixed):
    est.fit()
    est.set_data(X_test_fixed)
    log_pdf = est.log_pdf()
    assert log_pdf.shape == (2,)
    np.testing.assert_allclose(
        log_pdf, [0.0001774638427285, -0.0036531113518117], atol=1e-15
    )
    np.testing.assert_allclose(est.log_pdf(1), log_pdf[1], atol=1e-15)


def test_grad(est, X_test_fixed):
    est.fit()
    est.set_data(X_test_fixed)

    g = est.grad(0)
    assert g.shape == (2,)
    np.testing.assert_allclose(g, [-0.0068494729423344, -0.0102705846207064], atol=1e-15)

    g = est.grad(1)
    np.testing.assert_allclose(g, [0.0006131648387784, -0.0046163096796586], atol=1e-15)

    assert est.grad().shape == (2, 2)


def test_hessian(est, X_test_fixed):
    est.fit()
    est.set_data(X_test_fixed)

    H = est.hessian(0)
    assert H.shape == (2, 2)
    np.testing.assert_allclose(
        H,
        [[0.0004510949800765, 0.0009126002661734], [0.0009126002661734, 0.0011460796044802]],
        atol=1e-8,
    )

    H = est.hessian(1)
    np.testing.assert_allclose(
        H,
        [[0.0085325523811802, 0.0081597815414807], [0.0081597815414807, 0.0087650433882726]],
        atol=1e-8,
    )


def test_hessian_diag_equals_hessian(est_random, X_test_fixed):
    est_random.fit()
    est_random.set_data(X_test_fixed)
    for q in range(est_random.num_data):
        H = np.asarray(est_random.hessian(q))
        diag = np.asarray(est_random.hessian_diag(q))
        assert H.shape == (2, 2)
        assert diag.shape == (2,)
        np.testing.assert_allclose(diag, np.diag(H), atol=1e-8)


def test_score(est, X_test_fixed):
    est.fit()
    assert isinstance(est.score(), float)
    np.testing.assert_allclose(est.score(), -0.0014814034043, atol=1e-14)

    est.set_data(X_test_fixed)
    np.testing.assert_allclose(est.score(), 0.00949090679556, atol=1e-14)


def test_derivatives_match_autodiff(est_random, rng):
    """For whole-point bases, grad and hessian are the derivatives of log_pdf."""
    est_random.fit()
    Y = rng.normal(size=(3, 2))
    est_random.set_data(Y)

    def log_pdf_at(y):
        return evaluate.log_pdf(
            est_random.kernel,
            est_random.basis,
            jnp.asarray(est_random.basis_inds),
            est_random.beta,
            y[None],
        )[0]

    for q in range(3):
        y = jnp.asarray(Y[q])
        np.testing.assert_allclose(est_random.grad(q), jax.grad(log_pdf_at)(y), atol=1e-12)
        np.testing.assert_allclose(
            est_random.hessian(q), jax.hessian(log_pdf_at)(y), atol=1e-12
        )


def test_configurations_agree(X_train_random, kernel, estimator_factory, rng):
    X_test = rng.normal(size=(4, 2))
    results = {}
    for config in BASIS_CONFIGS:
        est = estimator_factory(config, X_train_random, kernel)
        G_mn = est.compute_G_mn()
        system_vector = est.compute_system_vector()
        est.fit()
        train_score = est.score()
        est.set_data(X_test)
        results[config] = dict(
            G_mm=est.compute_G_mm(),
            G_mn=G_mn,
            system_vector=system_vector,
            beta=est.beta,
            log_pdf=est.log_pdf(),
            grad=est.grad(),
            hessian=est.hessian(),
            train_score=train_score,
            score=est.score(),
        )

    reference = results[BASIS_CONFIGS[0]]
    for config in BASIS_CONFIGS[1:]:
        for name, expected in reference.items():
            np.testing.assert_allclose(
                results[config][name], expected, atol=1e-14, err_msg=f"{config}: {name}"
            )


def test_set_data_keeps_fit(est, X_test_fixed):
    est.fit()
    beta = np.asarray(est.beta)
    est.set_data(X_test_fixed)
    assert est.num_data == 2
    np.testing.assert_array_equal(est.beta, beta)


def test_fit_uses_training_data(est, X_test_fixed):
    est.set_data(X_test_fixed)
    est.fit()
    np.testing.assert_allclose(est.beta, BETA, atol=1e-15)


def test_fit_deterministic(est):
    beta = np.asarray(est.fit().beta)
    np.testing.assert_array_equal(est.fit().beta, beta)


def test_not_fitted(est):
    with pytest.raises(NotFittedError):
        est.beta
    with pytest.raises(NotFittedError):
        est.log_pdf()
    with pytest.raises(NotFittedError):
        est.score()


def test_query_index_out_of_range(est):
    est.fit()
    with pytest.raises(IndexError):
        est.grad(3)


def test_set_data_dimension_mismatch(est):
    with pytest.raises(DimensionMismatchError):
        est.set_data(np.zeros((2, 3)))
    with pytest.raises(DimensionMismatchError):
        est.set_data(np.zeros(2))


def test_basis_dimension_mismatch(X_train_fixed, kernel):
    with pytest.raises(DimensionMismatchError):
        Nystrom(X_train_fixed, np.zeros((2, 3)), kernel)
    with pytest.raises(DimensionMismatchError):
        Nystrom.from_mask(X_train_fixed, np.ones((2, 2), dtype=bool), kernel)


def test_empty_mask(X_train_fixed, kernel):
    with pytest.raises(InvalidConfigurationError):
        Nystrom.from_mask(X_train_fixed, np.zeros((3, 2), dtype=bool), kernel)
    with pytest.raises(InvalidConfigurationError):
        Nystrom(
            X_train_fixed,
            X_train_fixed,
            kernel,
            basis_mask=np.zeros((3, 2), dtype=bool),
        )


def test_empty_training_data(kernel):
    with pytest.raises(InvalidConfigurationError):
        Nystrom(np.zeros((0, 2)), np.ones((1, 2)), kernel)
    with pytest.raises(InvalidConfigurationError):
        Nystrom(np.ones((2, 2)), np.zeros((0, 2)), kernel)
    with pytest.raises(InvalidConfigurationError):
        Nystrom.from_mask(np.zeros((0, 2)), np.zeros((0, 2), dtype=bool), kernel)


def test_empty_query_data(est):
    est.fit()
    with pytest.raises(InvalidConfigurationError):
        est.set_data(np.zeros((0, 2)))
    # the previous query set stays bound
    assert est.num_data == 3
    assert np.isfinite(est.score())


def test_negative_regularisation(X_train_fixed, kernel):
    with pytest.raises(InvalidConfigurationError):
        Nystrom(X_train_fixed, X_train_fixed[:2], kernel, lam=-1.0)


def test_unused_basis_point_warns(X_train_fixed, kernel, caplog):
    mask = np.zeros((3, 2), dtype=bool)
    mask[:2] = True
    with caplog.at_level(logging.WARNING, logger="kexpfam.basis"):
        Nystrom(X_train_fixed, X_train_fixed, kernel, basis_mask=mask)
    assert "Using zero components of basis point 2." in caplog.messages


def test_from_mask_subsamples(X_train_fixed, kernel, caplog):
    mask = np.zeros((3, 2), dtype=bool)
    mask[0, 1] = True
    mask[2, 0] = True
    with caplog.at_level(logging.INFO, logger="kexpfam.estimator"):
        est = Nystrom.from_mask(X_train_fixed, mask, kernel)
    assert "Subsampling data as basis as some points are unused." in caplog.messages
    assert est.basis_is_subsampled_data
    assert est.num_basis == 2
    np.testing.assert_array_equal(est.basis, X_train_fixed[[0, 2]])
    np.testing.assert_array_equal(est.basis_inds, [1, 2])


def test_from_indices(X_train_fixed, kernel):
    est = Nystrom.from_indices(X_train_fixed, [1, 0, 1], kernel)
    np.testing.assert_array_equal(est.basis, X_train_fixed[:2])
    np.testing.assert_array_equal(est.basis_inds, np.arange(4))


def test_partial_component_basis(X_train_fixed, kernel, X_test_fixed):
    # dimension 0 of point 0, dimension 1 of point 1
    mask = np.array([[True, False], [False, True], [False, False]])
    est = Nystrom.from_mask(X_train_fixed, mask, kernel).fit()
    assert est.system_size == 2
    np.testing.assert_array_equal(est.basis_inds, [0, 3])

    full = Nystrom.from_indices(X_train_fixed, [0, 1], kernel)
    np.testing.assert_allclose(
        est.compute_system_vector(),
        np.asarray(full.compute_system_vector())[[0, 3]],
        atol=1e-15,
    )
    np.testing.assert_allclose(
        est.compute_system_matrix(),
        np.asarray(full.compute_system_matrix())[np.ix_([0, 3], [0, 3])],
        atol=1e-14,
    )

    est.set_data(X_test_fixed)
    for q in range(2):
        H = np.asarray(est.hessian(q))
        # every basis point has a single component, so only the diagonal is touched
        np.testing.assert_array_equal(H[0, 1], 0.0)
        np.testing.assert_array_equal(H[1, 0], 0.0)
        np.testing.assert_allclose(est.hessian_diag(q), np.diag(H), atol=1e-8)
    assert np.isfinite(est.score())
