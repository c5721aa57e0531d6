"""
Bijectors between constrained supports and the unconstrained reals.

A `Bijector` here always points *away* from the constrained support:
`forward` takes a value in the support of a distribution to the unconstrained
reals, `inverse` maps it back, and `log_jacobian(x)` is `log|d forward / dx|`
evaluated at the constrained value. TFP bijectors point the other way (from the
reals onto a support), so `TFPBijector` holds the TFP "constraining" bijector
and flips it.

`resolve` picks the bijector for a distribution, and `Reparameterized` pairs a
distribution with its bijector so that sampling happens in unconstrained space
and density evaluation includes the change-of-variables correction:

    log q(y) = log p(inverse(y)) - log_jacobian(inverse(y))
"""

from abc import abstractmethod

import jax.numpy as jnp
from tensorflow_probability.substrates import jax as tfp

from .core import (
    Any,
    Callable,
    PRNGKey,
    Pytree,
    UnsupportedSupport,
)

tfb = tfp.bijectors
tfd = tfp.distributions

#############
# Bijectors #
#############


class Bijector(Pytree):
    @abstractmethod
    def forward(self, x) -> Any:
        pass

    @abstractmethod
    def inverse(self, y) -> Any:
        pass

    @abstractmethod
    def log_jacobian(self, x) -> Any:
        pass

    def inverse_log_jacobian(self, y) -> Any:
        return -self.log_jacobian(self.inverse(y))

    def compose(self, *others: "Bijector") -> "Chain":
        """Apply `self`, then each of `others` in order."""
        return Chain((self, *others))

    def __call__(self, x) -> Any:
        return self.forward(x)


@Pytree.dataclass
class Identity(Bijector):
    def forward(self, x) -> Any:
        return x

    def inverse(self, y) -> Any:
        return y

    def log_jacobian(self, x) -> Any:
        return jnp.array(0.0)


@Pytree.dataclass
class TFPBijector(Bijector):
    """A TFP bijector from the unconstrained reals onto a support, inverted.

    `log_jacobian` sums over every dimension of the constrained value, so the
    result is a scalar for scalar, vector and matrix supports alike.
    """

    constraining: Any
    name: str | None = Pytree.static(default=None)

    def forward(self, x) -> Any:
        return self.constraining.inverse(x)

    def inverse(self, y) -> Any:
        return self.constraining.forward(y)

    def log_jacobian(self, x) -> Any:
        return self.constraining.inverse_log_det_jacobian(
            x,
            event_ndims=jnp.ndim(x),
        )


@Pytree.dataclass
class Chain(Bijector):
    """Sequential composition; log-Jacobians add along the path."""

    bijectors: tuple

    def forward(self, x) -> Any:
        for b in self.bijectors:
            x = b.forward(x)
        return x

    def inverse(self, y) -> Any:
        for b in reversed(self.bijectors):
            y = b.inverse(y)
        return y

    def log_jacobian(self, x) -> Any:
        total = jnp.array(0.0)
        for b in self.bijectors:
            total = total + b.log_jacobian(x)
            x = b.forward(x)
        return total


def from_tfp(constraining, name: str | None = None) -> Bijector:
    if isinstance(constraining, tfb.Identity):
        return Identity()
    return TFPBijector(constraining, name)


def logit(low=0.0, high=1.0) -> Bijector:
    """Shifted and scaled logit from `(low, high)` onto the reals."""
    return TFPBijector(tfb.Sigmoid(low=low, high=high), name="logit")


def log(shift=0.0) -> Bijector:
    """`y = log(x - shift)` from `(shift, inf)` onto the reals."""
    return TFPBijector(tfb.Chain([tfb.Shift(shift), tfb.Exp()]), name="log")


def reflected_log(upper) -> Bijector:
    """`y = log(upper - x)` from `(-inf, upper)` onto the reals."""
    return TFPBijector(
        tfb.Chain([tfb.Shift(upper), tfb.Scale(-1.0), tfb.Exp()]),
        name="reflected_log",
    )


def positive_definite() -> Bijector:
    """Positive-definite matrices to the unconstrained entries of their
    Cholesky factor (log-transformed diagonal)."""
    return TFPBijector(
        tfb.Chain(
            [
                tfb.CholeskyOuterProduct(),
                tfb.FillScaleTriL(diag_bijector=tfb.Exp(), diag_shift=None),
            ]
        ),
        name="positive_definite",
    )


############
# Resolver #
############

_registry: dict[type, Callable[[Any], Bijector]] = {}


def register_bijector(*families: type):
    """Register a bijector factory for one or more distribution families.

    The factory receives the family instance (for TFP-backed distributions, the
    `tfd.Distribution` itself) and returns a `Bijector`. Subclasses of a
    registered family resolve to the same factory.

    Example:
        >>> @register_bijector(tfd.Kumaraswamy)
        ... def _(d):
        ...     return logit(0.0, 1.0)
    """

    def register(factory: Callable[[Any], Bijector]) -> Callable[[Any], Bijector]:
        for family in families:
            _registry[family] = factory
        return factory

    return register


@register_bijector(
    tfd.Normal,
    tfd.Cauchy,
    tfd.StudentT,
    tfd.Laplace,
    tfd.Logistic,
    tfd.MultivariateNormalTriL,
    tfd.MultivariateNormalDiag,
)
def _(d):
    return Identity()


@register_bijector(tfd.Beta, tfd.Kumaraswamy)
def _(d):
    return logit(0.0, 1.0)


@register_bijector(tfd.Uniform, tfd.TruncatedNormal)
def _(d):
    return logit(d.low, d.high)


@register_bijector(
    tfd.Gamma,
    tfd.InverseGamma,
    tfd.Exponential,
    tfd.HalfNormal,
    tfd.LogNormal,
    tfd.Chi2,
    tfd.Weibull,
)
def _(d):
    return log()


@register_bijector(tfd.HalfCauchy)
def _(d):
    return log(d.loc)


@register_bijector(tfd.Pareto)
def _(d):
    return log(d.scale)


@register_bijector(tfd.WishartTriL)
def _(d):
    if d.input_output_cholesky:
        return from_tfp(d.experimental_default_event_space_bijector())
    return positive_definite()


def _declared_bounds(dist) -> tuple | None:
    if hasattr(dist, "support_bounds"):
        return dist.support_bounds()
    if hasattr(dist, "minimum") and hasattr(dist, "maximum"):
        return dist.minimum(), dist.maximum()
    return None


def _is_unbounded(bound) -> bool:
    return bound is None or bool(jnp.isinf(bound))


def _from_bounds(low, high) -> Bijector:
    no_low, no_high = _is_unbounded(low), _is_unbounded(high)
    if no_low and no_high:
        return Identity()
    elif no_high:
        return log(low)
    elif no_low:
        return reflected_log(high)
    else:
        return logit(low, high)


def resolve(dist) -> Bijector:
    """Select the bijector taking `dist`'s support onto the unconstrained reals.

    In order: discrete distributions and distributions declaring an unbounded
    support get `Identity`; then the family registry; then the distribution's
    own canonical transform (`default_bijector()`); then a logit or log
    transform synthesized from its declared bounds.

    Raises:
        UnsupportedSupport: If none of the above applies.
    """
    if getattr(dist, "is_discrete", False):
        return Identity()

    bounds = _declared_bounds(dist)
    if bounds is not None and all(_is_unbounded(b) for b in bounds):
        return Identity()

    family = getattr(dist, "family", dist)
    for cls in type(family).__mro__:
        if cls in _registry:
            return _registry[cls](family)

    default_bijector = getattr(dist, "default_bijector", None)
    if default_bijector is not None:
        constraining = default_bijector()
        if constraining is not None:
            return from_tfp(constraining)

    if bounds is not None:
        return _from_bounds(*bounds)

    name = getattr(dist, "name", None) or type(dist).__name__
    raise UnsupportedSupport(
        f"Cannot transform `{name}` to unconstrained space: it has no registered "
        "bijector, no canonical transform and no declared support bounds."
    )


#############################
# Reparameterized densities #
#############################


@Pytree.dataclass
class Reparameterized(Pytree):
    """A distribution pushed through a bijector into unconstrained space.

    Mathematical ingredients:
    - Samples: `y = bijector.forward(x)` with `x ~ base`
    - Density: `log q(y) = log p(x) - log|d forward / dx|` where
      `x = bijector.inverse(y)`

    Attributes:
        base: The distribution over the constrained support.
        bijector: The bijector from that support onto the reals.

    Example:
        >>> from tracejax.distributions import uniform
        >>> q = reparameterize(uniform(0.0, 1.0))
        >>> y = q.sample(jax.random.key(0))  # any real number
        >>> q.log_density(y)  # log p(sigmoid(y)) + log sigmoid'(y)
    """

    base: Any
    bijector: Bijector

    def sample(self, key: PRNGKey) -> Any:
        return self.bijector.forward(self.base.sample(key))

    def log_density(self, y) -> Any:
        x = self.bijector.inverse(y)
        return self.base.log_density(x) - self.bijector.log_jacobian(x)


def reparameterize(dist) -> Reparameterized:
    return Reparameterized(dist, resolve(dist))
