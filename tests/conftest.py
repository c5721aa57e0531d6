import jax.numpy as jnp
import jax.random as jrand
import pytest

from tracejax.distributions import inverse_gamma, normal
from tracejax.model import assume, model, observe


@pytest.fixture
def base_key():
    """Standard random key for reproducible tests."""
    return jrand.key(42)


@pytest.fixture
def standard_tolerance():
    """Standard tolerance for float32 comparisons."""
    return 1e-5


@pytest.fixture
def gdemo():
    """`s ~ InverseGamma(2, 3)`, `m ~ Normal(0, sqrt(s))`, `x ~ Normal(m, sqrt(s))`
    observed; returns the standardized mean."""
    return model(
        assume("s", inverse_gamma(2.0, 3.0)),
        assume("m", lambda env: normal(0.0, jnp.sqrt(env["s"]))),
        observe("x", lambda env: normal(env["m"], jnp.sqrt(env["s"]))),
        returns=lambda env: env["m"] / jnp.sqrt(env["s"]),
        name="gdemo",
    )


@pytest.fixture
def gdemo_data():
    return {"x": jnp.array([1.5, 2.0])}
