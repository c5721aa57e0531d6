"""
Test cases for replaying recorded draws and recovering generated quantities.
"""

import jax.numpy as jnp
import jax.random as jrand
import pytest

from tracejax.core import MissingIdentifier, vn
from tracejax.distributions import normal, uniform
from tracejax.evaluator import sample_trace
from tracejax.model import assume, let, model, observe
from tracejax.replay import (
    draws_from_arrays,
    generated_quantities,
    replay,
    stack_draws,
)
from tracejax.trace import Draw


@pytest.fixture
def chain(gdemo, gdemo_data, base_key):
    """Five snapshots of independently sampled stores."""
    return [
        sample_trace(key, gdemo, gdemo_data)[0].snapshot()
        for key in jrand.split(base_key, 5)
    ]


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_replay_recovers_return_value(gdemo, gdemo_data, base_key):
    store, retval = sample_trace(base_key, gdemo, gdemo_data)
    assert jnp.allclose(replay(gdemo, store.snapshot(), gdemo_data), retval)
    assert jnp.allclose(replay(gdemo, store, gdemo_data), retval)


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_replay_is_deterministic(gdemo, chain):
    draw = chain[0]
    first = replay(gdemo, draw)
    second = replay(gdemo, draw)
    assert first == second


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_replay_never_samples():
    """A replayed draw supplies every value, including random-looking ones."""
    m = model(
        assume("u", uniform(0.0, 1.0)),
        observe("y", lambda env: normal(env["u"], 1.0)),
        returns=lambda env: (env["u"], env["y"]),
    )
    draw = Draw.from_values({"u": 0.25, "y": 3.0})
    # Fresh data for `y` does not override the recorded value.
    u, y = replay(m, draw, {"y": -10.0})
    assert u == 0.25
    assert y == 3.0


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_replay_reads_model_arguments_from_data():
    m = model(
        assume("a", normal(0.0, 1.0)),
        let("scaled", lambda env: env["a"] * env["factor"]),
        returns=lambda env: env["scaled"],
    )
    assert replay(m, {"a": 2.0}, {"factor": 3.0}) == 6.0


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_replay_missing_identifier(gdemo, gdemo_data):
    with pytest.raises(MissingIdentifier) as excinfo:
        replay(gdemo, {"s": 1.0, "x": gdemo_data["x"]})
    assert excinfo.value.vn == vn("m")
    assert isinstance(excinfo.value, KeyError)


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_replay_of_linked_draws(gdemo, gdemo_data, base_key):
    """Unconstrained values are mapped back before the return value is computed."""
    store, retval = sample_trace(base_key, gdemo, gdemo_data, linked=True)
    draw = store.snapshot()
    assert draw.transformed == (True, True, False)
    assert jnp.allclose(replay(gdemo, draw, gdemo_data), retval, rtol=1e-5)


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_replay_does_not_mutate_the_draw(gdemo, chain):
    draw = chain[0]
    before = draw.as_dict()
    replay(gdemo, draw)
    after = draw.as_dict()
    for name in before:
        assert jnp.array_equal(before[name], after[name])


#########################
# Generated quantities  #
#########################


@pytest.mark.replay
@pytest.mark.integration
def test_generated_quantities_one_per_draw(gdemo, chain):
    expected = [d["m"] / jnp.sqrt(d["s"]) for d in chain]
    quantities = generated_quantities(gdemo, chain)
    assert len(quantities) == len(chain)
    for q, e in zip(quantities, expected):
        assert jnp.allclose(q, e)


@pytest.mark.replay
@pytest.mark.integration
def test_generated_quantities_vectorized(gdemo, chain):
    expected = jnp.stack(generated_quantities(gdemo, chain))
    assert jnp.allclose(generated_quantities(gdemo, chain, vectorize=True), expected)
    assert jnp.allclose(generated_quantities(gdemo, stack_draws(chain)), expected)


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_draws_from_arrays(gdemo):
    samples = {
        "s": jnp.array([1.0, 4.0]),
        "m": jnp.array([0.0, 1.0]),
        "x": jnp.array([[1.5, 2.0], [1.5, 2.0]]),
    }
    draws = draws_from_arrays(samples)
    assert len(draws) == 2
    assert draws[1]["s"] == 4.0
    assert jnp.allclose(jnp.stack(generated_quantities(gdemo, draws)), jnp.array([0.0, 0.5]))

    with pytest.raises(ValueError, match="disagree"):
        draws_from_arrays({"s": jnp.zeros(2), "m": jnp.zeros(3)})


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_stack_draws(chain):
    stacked = stack_draws(chain)
    assert stacked.names == chain[0].names
    assert stacked["s"].shape == (5,)
    assert stacked["x"].shape == (5, 2)
    assert stacked.prior_log_prob.shape == (5,)


@pytest.mark.replay
@pytest.mark.unit
@pytest.mark.fast
def test_bad_draw_fails_alone(gdemo, chain):
    """A structural mismatch in one draw leaves the rest of the chain replayable."""
    broken = [chain[0], Draw.from_values({"s": 1.0}), chain[2]]
    results = []
    for draw in broken:
        try:
            results.append(replay(gdemo, draw))
        except MissingIdentifier as err:
            results.append(err.vn)
    assert results[1] == vn("m")
    assert jnp.allclose(results[0], chain[0]["m"] / jnp.sqrt(chain[0]["s"]))
    assert jnp.allclose(results[2], chain[2]["m"] / jnp.sqrt(chain[2]["s"]))
