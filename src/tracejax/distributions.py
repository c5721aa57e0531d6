"""Distributions consumed by the tracejax evaluator.

The evaluator only relies on a narrow capability: `sample(key)`,
`log_density(value)` and, optionally, `support_bounds()`, `is_discrete` and
`default_bijector()`. This module adapts TensorFlow Probability distributions
to that capability, and provides `distribution` for hand-written ones.
"""

import jax.numpy as jnp
from tensorflow_probability.substrates import jax as tfp

from tracejax.core import (
    Any,
    Callable,
    PRNGKey,
    Pytree,
)

tfd = tfp.distributions

Bounds = tuple[float | None, float | None]

_DISCRETE_FAMILIES = (
    tfd.Bernoulli,
    tfd.Binomial,
    tfd.Categorical,
    tfd.Geometric,
    tfd.Multinomial,
    tfd.NegativeBinomial,
    tfd.OneHotCategorical,
    tfd.Poisson,
    tfd.Zipf,
)


@Pytree.dataclass
class Distribution(Pytree):
    """A TFP distribution instance, exposed through the evaluator's capability.

    Attributes:
        dist: The underlying `tfd.Distribution` (with its parameters bound).
        name: Optional name for the family (used in messages).
        bounds: Optional support bounds overriding what the family implies.
            `(-inf, inf)` declares the support unbounded.

    Example:
        >>> d = Distribution(tfd.Normal(0.0, 1.0), name="Normal")
        >>> x = d.sample(jax.random.key(0))
        >>> d.log_density(x)
    """

    dist: Any
    name: str | None = Pytree.static(default=None)
    bounds: Bounds | None = Pytree.static(default=None)

    def sample(self, key: PRNGKey) -> Any:
        return self.dist.sample(seed=key)

    def log_density(self, value) -> Any:
        return jnp.sum(self.dist.log_prob(value))

    def support_bounds(self) -> Bounds | None:
        return self.bounds

    def default_bijector(self):
        return self.dist.experimental_default_event_space_bijector()

    @property
    def family(self):
        return self.dist

    @property
    def is_discrete(self) -> bool:
        return isinstance(self.dist, _DISCRETE_FAMILIES) or not jnp.issubdtype(
            self.dist.dtype, jnp.floating
        )


@Pytree.dataclass
class Custom(Pytree):
    """A distribution built from a keyful sampler and a log density function.

    Hand-written distributions carry no family information, so a continuous
    one needs `bounds` for the evaluator to reparameterize it.
    """

    sampler: Callable[..., Any] = Pytree.static()
    logpdf: Callable[..., Any] = Pytree.static()
    name: str | None = Pytree.static(default=None)
    bounds: Bounds | None = Pytree.static(default=None)
    discrete: bool = Pytree.static(default=False)

    def sample(self, key: PRNGKey) -> Any:
        return self.sampler(key)

    def log_density(self, value) -> Any:
        return jnp.sum(jnp.asarray(self.logpdf(value)))

    def support_bounds(self) -> Bounds | None:
        return self.bounds

    @property
    def is_discrete(self) -> bool:
        return self.discrete


def distribution(
    sampler: Callable[..., Any],
    logpdf: Callable[..., Any],
    /,
    name: str | None = None,
    bounds: Bounds | None = None,
    discrete: bool = False,
) -> Custom:
    return Custom(sampler, logpdf, name, bounds, discrete)


# Mostly, just use TFP.
def tfp_distribution(
    dist: Callable[..., "tfd.Distribution"],
    /,
    name: str | None = None,
) -> Callable[..., Distribution]:
    def make(*args, **kwargs) -> Distribution:
        return Distribution(dist(*args, **kwargs), name=name)

    return make


# The evaluator never transforms discrete declarations: they resolve to
# `Identity` whether the store is linked or not.
bernoulli = tfp_distribution(
    tfd.Bernoulli,
    name="Bernoulli",
)
"""`Bernoulli(logits=...)` or `Bernoulli(probs=...)`, over `{0, 1}`."""

categorical = tfp_distribution(
    tfd.Categorical,
    name="Categorical",
)
"""Categorical over `{0, ..., K - 1}`.

Args:
    logits: Unnormalized log-probabilities, one per category (positionally),
        or
    probs: Probabilities, one per category.
"""

poisson = tfp_distribution(
    tfd.Poisson,
    name="Poisson",
)
"""Poisson counts with mean `rate`. Samples are floats, but the declaration
still counts as discrete."""

# On the whole real line; resolved to `Identity`.
normal = tfp_distribution(
    tfd.Normal,
    name="Normal",
)
"""`Normal(loc, scale)`, with `scale` the standard deviation."""

student_t = tfp_distribution(
    tfd.StudentT,
    name="StudentT",
)
"""`StudentT(df, loc, scale)`."""

multivariate_normal = tfp_distribution(
    tfd.MultivariateNormalFullCovariance,
    name="MultivariateNormal",
)
"""`MultivariateNormal(loc, covariance_matrix)` over vectors. A subclass of
TFP's lower-triangular parameterization, so it resolves through that
family's registration."""

# On an interval; resolved to `logit(low, high)`.
uniform = tfp_distribution(
    tfd.Uniform,
    name="Uniform",
)
"""`Uniform(low, high)`. Linked values are `log((x - low) / (high - x))`."""

beta = tfp_distribution(
    tfd.Beta,
    name="Beta",
)
"""`Beta(concentration1, concentration0)` on `(0, 1)`, linked through the
plain logit."""

truncated_normal = tfp_distribution(
    tfd.TruncatedNormal,
    name="TruncatedNormal",
)
"""`TruncatedNormal(loc, scale, low, high)`: the truncation points are the
bounds of the logit."""

# On the positive half-line; resolved to `log()`.
exponential = tfp_distribution(
    tfd.Exponential,
    name="Exponential",
)
"""`Exponential(rate)`."""

gamma = tfp_distribution(
    tfd.Gamma,
    name="Gamma",
)
"""`Gamma(concentration, rate)`."""

inverse_gamma = tfp_distribution(
    tfd.InverseGamma,
    name="InverseGamma",
)
"""`InverseGamma(concentration, scale)`, with density proportional to
`x ** (-concentration - 1) * exp(-scale / x)`.

Example:
    >>> s = inverse_gamma(2.0, 3.0)
    >>> tracejax.resolve(s).forward(1.0)  # log(1.0)
"""

half_normal = tfp_distribution(
    tfd.HalfNormal,
    name="HalfNormal",
)
"""`HalfNormal(scale)`."""

log_normal = tfp_distribution(
    tfd.LogNormal,
    name="LogNormal",
)
"""`LogNormal(loc, scale)`, parameterized by the underlying normal. Linking
recovers that normal exactly."""

# Structured supports.
dirichlet = tfp_distribution(
    tfd.Dirichlet,
    name="Dirichlet",
)
"""`Dirichlet(concentration)` over the simplex. Nothing is registered for it:
it resolves to TFP's default event-space bijector, which drops one
coordinate (a `K`-simplex links to `K - 1` reals)."""

wishart = tfp_distribution(
    lambda df, scale_tril: tfd.WishartTriL(df=df, scale_tril=scale_tril),
    name="Wishart",
)
"""`Wishart(df, scale_tril)` over positive-definite matrices, with
`scale_tril` the Cholesky factor of the scale. Resolved to
`positive_definite()`: an `n x n` matrix links to `n (n + 1) / 2` reals."""
