"""
The model evaluator: runs declarations against a `TraceStore`.

Declarations are processed in order. For each `Tilde`, the evaluator
determines a value (the bound value of an observation, a stored value, or a
fresh sample), moves latent values to the store's representation
(constrained, or unconstrained when the store is linked), evaluates the
log-density in that representation and records the entry. Which running
totals receive densities is decided by the `Context`; manual adjustments are
applied regardless of it.

Where values come from is delegated to a value source with the same shape as
`Sampling` below; the replay engine supplies its own.
"""

import warnings
from dataclasses import dataclass

import jax
import jax.numpy as jnp
import jax.random as jrand

from .bijectors import Bijector, Identity, Reparameterized, resolve
from .context import Context
from .core import (
    Any,
    Array,
    ArrayLike,
    Mapping,
    PRNGKey,
    VarName,
)
from .model import AddLogProb, Let, Model, Terminate, Tilde
from .trace import Env, Role, TraceEntry, TraceStore, lookup

# Warn when an observed declaration has no bound value and is sampled instead.
warn_on_missing_data = True

#################
# Value sources #
#################


@dataclass
class Sampling:
    """Reuse stored values; sample the ones the store lacks (or all of them,
    with `resample`).

    Fresh samples are drawn in the store's representation: through the
    reparameterized distribution when the store is linked.
    """

    key: PRNGKey | None = None
    resample: bool = False
    reads_observed = False

    def __call__(
        self,
        name: VarName,
        dist,
        store: TraceStore,
    ) -> tuple[Any, bool]:
        entry = store.get(name)
        if entry is not None and not entry.observed and not self.resample:
            return entry.value, entry.transformed
        if self.key is None:
            raise ValueError(
                f"`{name}` needs a fresh sample, but no PRNG key was provided."
            )
        self.key, sub_key = jrand.split(self.key)
        if store.linked:
            return Reparameterized(dist, resolve(dist)).sample(sub_key), True
        return dist.sample(sub_key), False


#############
# Evaluator #
#############


@dataclass
class Evaluator:
    store: TraceStore
    context: Context
    source: Any
    env: Env
    accumulate: bool = True

    def bound_value(self, stmt: Tilde) -> Any:
        """The value on the declaration, else in the data, else the one an
        earlier pass recorded for this observation."""
        if stmt.value is not None:
            return stmt.value
        try:
            return lookup(self.env.data, stmt.vn)
        except KeyError:
            pass
        entry = self.store.get(stmt.vn)
        if entry is not None and entry.observed:
            return entry.value
        return None

    def represent(
        self,
        dist,
        stored,
        transformed: bool,
        linked: bool,
    ) -> tuple[Any, Any, bool, Bijector]:
        """Returns `(constrained, stored, transformed, bijector)` with `stored`
        in the representation chosen by `linked`."""
        if not (transformed or linked):
            return stored, stored, False, Identity()
        bijector = resolve(dist)
        if transformed:
            x = bijector.inverse(stored)
            return (x, stored, True, bijector) if linked else (x, x, False, bijector)
        return stored, bijector.forward(stored), True, bijector

    def tilde(self, stmt: Tilde):
        dist = stmt.resolve_distribution(self.env)
        observed = stmt.observed
        if observed and not self.source.reads_observed:
            bound = self.bound_value(stmt)
            if bound is None:
                if warn_on_missing_data:
                    warnings.warn(
                        f"No data bound to observed `{stmt.vn}`; treating it as latent."
                    )
                observed = False
        role = Role.LIKELIHOOD if observed else Role.PRIOR

        if observed and not self.source.reads_observed:
            x = stored = jnp.asarray(bound)
            transformed, bijector = False, Identity()
        else:
            stored, transformed = self.source(stmt.vn, dist, self.store)
            x, stored, transformed, bijector = self.represent(
                dist,
                stored,
                transformed,
                self.store.linked and not observed,
            )

        if not (self.accumulate and self.context.includes(role)):
            log_density = jnp.array(0.0)
        elif transformed:
            log_density = Reparameterized(dist, bijector).log_density(stored)
        else:
            log_density = jnp.asarray(dist.log_density(x))

        self.store.record(TraceEntry(stmt.vn, stored, log_density, observed, transformed))
        self.env[stmt.vn] = x

    def step(self, stmt) -> bool:
        """Process one declaration; `False` once the evaluation is terminated."""
        if isinstance(stmt, Tilde):
            self.tilde(stmt)
        elif isinstance(stmt, Let):
            self.env[stmt.name] = stmt.fn(self.env)
        elif isinstance(stmt, AddLogProb):
            self.store.add_log_prob(stmt.resolve_amount(self.env), stmt.role)
        elif isinstance(stmt, Terminate):
            if stmt.triggered(self.env):
                if stmt.log_prob is not None:
                    self.store.add_log_prob(stmt.log_prob, stmt.role)
                self.store.terminated = True
                return False
        else:
            raise TypeError(f"Unknown declaration: {stmt!r}")
        return True

    def run(self, model: Model) -> Any:
        self.store.reset()
        for stmt in model.statements:
            if not self.step(stmt):
                self.store.retain_visited()
                return None
        self.store.retain_visited()
        return None if model.returns is None else model.returns(self.env)


########
# APIs #
########


def evaluate(
    model: Model,
    store: TraceStore | None = None,
    context: Context = Context.JOINT,
    data: Mapping[Any, Any] | None = None,
    *,
    key: PRNGKey | None = None,
    resample: bool = False,
) -> tuple[TraceStore, Any]:
    """Evaluate `model` against `store`, returning the store and the model's
    return value (`None` if the evaluation was terminated early).

    Args:
        model: The declarations to run.
        store: The trace store to accumulate into; a fresh one if omitted.
            Its totals are reset, its entries are reused as values, and
            entries the evaluation does not reach are dropped.
        context: Which running totals declarations contribute to.
        data: Bound values of observed declarations, and any other values
            the model's expressions read. Observations missing from it keep
            the value `store` recorded for them, if any.
        key: PRNG key for latent declarations without a stored value.
        resample: Sample every latent declaration, ignoring stored values.

    Example:
        >>> store, retval = evaluate(m, TraceStore.from_values({"s": 1.0, "m": 0.0}),
        ...                          data={"x": jnp.array([1.5, 2.0])})
        >>> store.total_log_prob
    """
    store = TraceStore() if store is None else store
    evaluator = Evaluator(store, context, Sampling(key, resample), Env(data))
    retval = evaluator.run(model)
    return store, retval


def sample_trace(
    key: PRNGKey,
    model: Model,
    data: Mapping[Any, Any] | None = None,
    *,
    context: Context = Context.JOINT,
    linked: bool = False,
) -> tuple[TraceStore, Any]:
    """Sample every latent declaration into a fresh store."""
    return evaluate(model, TraceStore(linked=linked), context, data, key=key)


def _log_prob_at(model, values, data, context) -> Any:
    store, _ = evaluate(model, TraceStore.from_values(values), context, data)
    return store.total_log_prob


def log_joint(model: Model, values: Mapping[Any, Any], data=None) -> Any:
    return _log_prob_at(model, values, data, Context.JOINT)


def log_prior(model: Model, values: Mapping[Any, Any], data=None) -> Any:
    return _log_prob_at(model, values, data, Context.PRIOR)


def log_likelihood(model: Model, values: Mapping[Any, Any], data=None) -> Any:
    return _log_prob_at(model, values, data, Context.LIKELIHOOD)


def _relink(model, store, data, linked) -> TraceStore:
    store = store.copy()
    store.linked = linked
    evaluate(model, store, Context.JOINT, data)
    return store


def link(model: Model, store: TraceStore, data=None) -> TraceStore:
    """A copy of `store` with latent values moved to unconstrained space.

    Observations are read from `data`, or else from the entries `store`
    recorded for them; `data` is only needed for values the model's
    expressions read.
    """
    return _relink(model, store, data, True)


def invlink(model: Model, store: TraceStore, data=None) -> TraceStore:
    """A copy of `store` with latent values moved back to their supports.

    See `link` for how observations are found.
    """
    return _relink(model, store, data, False)


@dataclass
class LogDensityFunction:
    """The log-density of a model as a function of its flat latent vector.

    The vector follows the layout of `store` (see `TraceStore.flatten`); when
    `store` is linked the vector lives in unconstrained space and the density
    includes the Jacobian corrections. Evaluation goes through `evaluate`, so
    the function is differentiable with `jax.grad` as long as the model's
    control flow does not branch on latent values.

    Example:
        >>> f = LogDensityFunction(m, link(m, store, data), data)
        >>> theta = f.initial_params()
        >>> value, grad = f.logdensity_and_gradient(theta)
    """

    model: Model
    store: TraceStore
    data: Mapping[Any, Any] | None = None
    context: Context = Context.JOINT

    @property
    def dimension(self) -> int:
        theta, _ = self.store.flatten()
        return theta.size

    def initial_params(self) -> Array:
        theta, _ = self.store.flatten()
        return theta

    def __call__(self, theta: ArrayLike) -> Any:
        store = self.store.with_flat(jnp.asarray(theta))
        evaluate(self.model, store, self.context, self.data)
        return store.total_log_prob

    def logdensity_and_gradient(self, theta: ArrayLike) -> tuple[Any, Any]:
        return jax.value_and_grad(self)(jnp.asarray(theta))
