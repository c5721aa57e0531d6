"""
Declaration records and models.

A model is an ordered tuple of declarations, evaluated strictly in order:
later declarations may read values produced by earlier ones through the
`Env` they receive. Declarations are plain data; how they are written down
by users is up to whatever front-end builds them.

Example:
    >>> from tracejax.distributions import inverse_gamma, normal
    >>> m = model(
    ...     assume("s", inverse_gamma(2.0, 3.0)),
    ...     assume("m", lambda env: normal(0.0, jnp.sqrt(env["s"]))),
    ...     observe("x", lambda env: normal(env["m"], jnp.sqrt(env["s"]))),
    ...     returns=lambda env: env["m"] / jnp.sqrt(env["s"]),
    ... )
"""

import jax.numpy as jnp

from .core import (
    Any,
    Callable,
    Pytree,
    VarName,
    as_varname,
)
from .trace import Env, Role

################
# Declarations #
################


@Pytree.dataclass
class Tilde(Pytree):
    """A random-variable declaration: `vn ~ distribution`.

    Attributes:
        vn: Identifier of the variable in the trace.
        distribution: A distribution, or a function from the `Env` to one.
        observed: Whether the declaration conditions on a bound value.
        value: The bound value of an observed declaration. When absent, it
            is looked up in the model's data under `vn`.
    """

    vn: VarName = Pytree.static()
    distribution: Any
    observed: bool = Pytree.static(default=False)
    value: Any = None

    def resolve_distribution(self, env: Env) -> Any:
        if callable(self.distribution):
            return self.distribution(env)
        return self.distribution


@Pytree.dataclass
class Let(Pytree):
    """A deterministic value, visible to later declarations but not traced."""

    name: VarName = Pytree.static()
    fn: Callable[[Env], Any] = Pytree.static()


@Pytree.dataclass
class AddLogProb(Pytree):
    """Add an arbitrary amount to the running total of `role`.

    Manual adjustments are applied whatever the evaluation context.
    """

    amount: Any
    role: Role = Pytree.static(default=Role.LIKELIHOOD)

    def resolve_amount(self, env: Env) -> Any:
        if callable(self.amount):
            return self.amount(env)
        return self.amount


@Pytree.dataclass
class Terminate(Pytree):
    """Stop the evaluation when `when(env)` holds (always, if `when` is None).

    `log_prob`, if given, is added to the running total of `role` before
    stopping, under the same rules as `AddLogProb`.
    """

    when: Callable[[Env], Any] | None = Pytree.static(default=None)
    log_prob: Any = None
    role: Role = Pytree.static(default=Role.LIKELIHOOD)

    def triggered(self, env: Env) -> bool:
        return self.when is None or bool(self.when(env))


Statement = Tilde | Let | AddLogProb | Terminate


def assume(name: VarName | str, distribution) -> Tilde:
    return Tilde(as_varname(name), distribution)


def observe(name: VarName | str, distribution, value=None) -> Tilde:
    return Tilde(as_varname(name), distribution, True, value)


def _element_wise(
    sym: str,
    n: int,
    distribution: Callable[[Env, int], Any],
    observed: bool,
    values,
) -> tuple[Tilde, ...]:
    def at(i):
        return lambda env: distribution(env, i)

    return tuple(
        Tilde(
            VarName(sym, (i,)),
            at(i),
            observed,
            None if values is None else values[i],
        )
        for i in range(n)
    )


def assume_each(
    sym: str,
    n: int,
    distribution: Callable[[Env, int], Any],
) -> tuple[Tilde, ...]:
    """`sym[i] ~ distribution(env, i)` for `i` in `range(n)`."""
    return _element_wise(sym, n, distribution, False, None)


def observe_each(
    sym: str,
    n: int,
    distribution: Callable[[Env, int], Any],
    values=None,
) -> tuple[Tilde, ...]:
    """Observe `sym[i] ~ distribution(env, i)` for `i` in `range(n)`.

    Without `values`, each element is looked up in the data (`sym[i]`, or
    `data[sym][i]`).
    """
    return _element_wise(sym, n, distribution, True, values)


def let(name: VarName | str, fn: Callable[[Env], Any]) -> Let:
    return Let(as_varname(name), fn)


def add_log_prob(amount, role: Role = Role.LIKELIHOOD) -> AddLogProb:
    return AddLogProb(amount, role)


def reject(when: Callable[[Env], Any] | None = None) -> Terminate:
    """Reject the current region: force the total to `-inf` and stop."""
    return Terminate(when, -jnp.inf)


#########
# Model #
#########


@Pytree.dataclass
class Model(Pytree):
    """An ordered sequence of declarations with an optional terminal expression.

    Attributes:
        statements: The declarations, in evaluation order.
        returns: A function of the final `Env` computing the model's return
            value (its generated quantities).
        name: Optional name used in messages.
    """

    statements: tuple
    returns: Callable[[Env], Any] | None = Pytree.static(default=None)
    name: str | None = Pytree.static(default=None)

    def __len__(self) -> int:
        return len(self.statements)


def _flatten_statements(statements) -> tuple:
    flat = []
    for s in statements:
        if isinstance(s, (tuple, list)):
            flat.extend(_flatten_statements(s))
        else:
            flat.append(s)
    return tuple(flat)


def model(
    *statements,
    returns: Callable[[Env], Any] | None = None,
    name: str | None = None,
) -> Model:
    """Build a `Model`; nested tuples of statements (as returned by
    `assume_each` and `observe_each`) are spliced in place."""
    return Model(_flatten_statements(statements), returns, name)
