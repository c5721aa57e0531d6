"""
Replay of recorded draws, to recover a model's generated quantities.

`replay` re-executes a model with every declaration's value read from a
recorded `Draw` (never sampled, never conditioned on fresh data) and returns
the model's return value. Density accumulation is discarded.
`generated_quantities` does this once per draw of a chain, either draw by
draw or, for chains stacked into a single batched `Draw`, under `jax.vmap`.
"""

from dataclasses import dataclass

import jax
import jax.numpy as jnp
import jax.tree_util as jtu

from .context import Context
from .core import (
    Any,
    Mapping,
    MissingIdentifier,
    Sequence,
    VarName,
)
from .evaluator import Evaluator
from .model import Model
from .trace import Draw, Env, TraceStore, as_draw


@dataclass
class Replaying:
    """Value source reading every declaration, observed or not, from a draw."""

    draw: Draw
    reads_observed = True

    def __call__(
        self,
        name: VarName,
        dist,
        store: TraceStore,
    ) -> tuple[Any, bool]:
        if name not in self.draw:
            raise MissingIdentifier(name)
        entry = self.draw.entry(name)
        return entry.value, entry.transformed


def replay(
    model: Model,
    recorded: Draw | TraceStore | Mapping[Any, Any],
    data: Mapping[Any, Any] | None = None,
) -> Any:
    """Re-run `model` on the values of a recorded draw and return its return value.

    Values recorded in unconstrained space are mapped back to their supports
    with the same bijectors the evaluator uses. `data` only serves values the
    model's expressions read; it never conditions a declaration.

    Raises:
        MissingIdentifier: If the model declares a variable the draw lacks.
    """
    evaluator = Evaluator(
        TraceStore(),
        Context.JOINT,
        Replaying(as_draw(recorded)),
        Env(data),
        accumulate=False,
    )
    return evaluator.run(model)


def stack_draws(draws: Sequence[Draw]) -> Draw:
    """Stack draws of the same structure along a new leading axis."""
    return jtu.tree_map(lambda *leaves: jnp.stack(leaves), *draws)


def draws_from_arrays(samples: Mapping[Any, Any]) -> list[Draw]:
    """Split a mapping of arrays with a leading draw axis into one `Draw` per row.

    Example:
        >>> draws_from_arrays({"s": jnp.array([1.0, 2.0]), "m": jnp.array([0.0, 0.5])})
        [Draw(...s=1.0, m=0.0...), Draw(...s=2.0, m=0.5...)]
    """
    arrays = {key: jnp.asarray(value) for key, value in samples.items()}
    lengths = {value.shape[0] for value in arrays.values()}
    if len(lengths) != 1:
        raise ValueError(f"Sample arrays disagree on the number of draws: {lengths}.")
    (n,) = lengths
    return [
        Draw.from_values({key: value[i] for key, value in arrays.items()})
        for i in range(n)
    ]


def generated_quantities(
    model: Model,
    chain: Sequence[Any] | Draw,
    data: Mapping[Any, Any] | None = None,
    *,
    vectorize: bool = False,
) -> Any:
    """One replayed return value per draw of `chain`, in order.

    Args:
        model: The model whose return value is recovered.
        chain: A sequence of draws (or stores, or value mappings), or a
            single `Draw` already stacked along a leading axis.
        data: Values the model's expressions read.
        vectorize: Replay all draws at once under `jax.vmap`; the return
            values come back stacked along a leading axis. This requires the
            model's control flow not to branch on latent values.

    Returns:
        A list of return values, or their stacked pytree when vectorized.
    """
    if isinstance(chain, Draw):
        return jax.vmap(lambda draw: replay(model, draw, data))(chain)
    draws = [as_draw(recorded) for recorded in chain]
    if vectorize:
        return jax.vmap(lambda draw: replay(model, draw, data))(stack_draws(draws))
    return [replay(model, draw, data) for draw in draws]
