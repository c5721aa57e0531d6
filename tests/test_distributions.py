"""
Test cases for the distribution capability adapters.

These check that the TFP-backed `Distribution` and hand-written `Custom`
distributions expose what the evaluator and the bijector resolver rely on.
"""

import jax.numpy as jnp
import jax.random as jrand
import pytest
import tensorflow_probability.substrates.jax as tfp

from tracejax.distributions import (
    Distribution,
    bernoulli,
    categorical,
    distribution,
    inverse_gamma,
    multivariate_normal,
    normal,
    poisson,
    uniform,
    wishart,
)

tfd = tfp.distributions


@pytest.mark.distributions
@pytest.mark.unit
@pytest.mark.fast
def test_log_density_matches_tfp(standard_tolerance):
    """Log densities agree with TFP and are reduced to a scalar."""
    d = normal(1.0, 2.0)
    values = jnp.array([0.5, -1.0, 3.0])
    expected = jnp.sum(tfd.Normal(1.0, 2.0).log_prob(values))
    assert jnp.shape(d.log_density(values)) == ()
    assert jnp.allclose(d.log_density(values), expected, atol=standard_tolerance)

    s = inverse_gamma(2.0, 3.0)
    assert jnp.allclose(
        s.log_density(1.0),
        tfd.InverseGamma(2.0, 3.0).log_prob(1.0),
        atol=standard_tolerance,
    )


@pytest.mark.distributions
@pytest.mark.unit
@pytest.mark.fast
def test_sampling_is_keyed(base_key):
    """The same key gives the same sample; different keys differ."""
    d = normal(0.0, 1.0)
    k1, k2 = jrand.split(base_key)
    assert d.sample(k1) == d.sample(k1)
    assert d.sample(k1) != d.sample(k2)


@pytest.mark.distributions
@pytest.mark.unit
@pytest.mark.fast
def test_discreteness():
    assert bernoulli(probs=0.3).is_discrete
    assert categorical(jnp.zeros(3)).is_discrete
    # Poisson samples are floats, but its support is still discrete.
    assert poisson(2.0).is_discrete
    assert not normal(0.0, 1.0).is_discrete
    assert not uniform(0.0, 1.0).is_discrete
    assert not multivariate_normal(jnp.zeros(2), jnp.eye(2)).is_discrete
    assert not wishart(4.0, jnp.eye(2)).is_discrete


@pytest.mark.distributions
@pytest.mark.unit
@pytest.mark.fast
def test_bounds_and_family():
    d = uniform(0.0, 1.0)
    assert d.support_bounds() is None
    assert isinstance(d.family, tfd.Uniform)
    assert d.name == "Uniform"

    bounded = Distribution(tfd.Normal(0.0, 1.0), bounds=(float("-inf"), float("inf")))
    assert bounded.support_bounds() == (float("-inf"), float("inf"))


@pytest.mark.distributions
@pytest.mark.unit
@pytest.mark.fast
def test_custom_distribution(base_key):
    """A hand-written distribution with declared bounds."""
    d = distribution(
        lambda key: jrand.uniform(key, minval=2.0, maxval=5.0),
        lambda x: jnp.where((x > 2.0) & (x < 5.0), -jnp.log(3.0), -jnp.inf),
        name="Box",
        bounds=(2.0, 5.0),
    )
    x = d.sample(base_key)
    assert 2.0 < x < 5.0
    assert jnp.allclose(d.log_density(x), -jnp.log(3.0))
    assert d.log_density(6.0) == -jnp.inf
    assert d.support_bounds() == (2.0, 5.0)
    assert not d.is_discrete
