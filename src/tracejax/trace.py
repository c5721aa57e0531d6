"""
Trace stores, draws and the value environment seen by declarations.

A `TraceStore` is the mutable accumulator of one evaluation pass: it maps
each `VarName` to a `TraceEntry` and keeps two running totals, one for
latent (prior) declarations and one for observed (likelihood) declarations.
`total_log_prob` is always their sum.

A `Draw` is an immutable snapshot of a store, as kept by a sampler for each
iteration of a chain. Draws are pytrees, so a chain of draws with the same
structure can be stacked along a leading axis and replayed under `jax.vmap`.
"""

from dataclasses import dataclass, field
from enum import Enum

import jax.numpy as jnp
from jax.flatten_util import ravel_pytree

from .core import (
    Any,
    Array,
    Callable,
    FloatArray,
    Iterator,
    Mapping,
    Pytree,
    VarName,
    as_varname,
)


class Role(Enum):
    PRIOR = "prior"
    LIKELIHOOD = "likelihood"


def _zero_adjustments() -> dict:
    return {Role.PRIOR: jnp.array(0.0), Role.LIKELIHOOD: jnp.array(0.0)}


@Pytree.dataclass
class TraceEntry(Pytree):
    """The record of one declaration in one pass.

    `value` is the stored representation: in unconstrained space when
    `transformed` is set, in the distribution's support otherwise.
    """

    vn: VarName = Pytree.static()
    value: Any
    log_density: Any
    observed: bool = Pytree.static(default=False)
    transformed: bool = Pytree.static(default=False)

    @property
    def role(self) -> Role:
        return Role.LIKELIHOOD if self.observed else Role.PRIOR


@dataclass
class TraceStore:
    """Mutable accumulator for a single model evaluation.

    The running totals are sums over the entries recorded in the current
    pass, plus the manual adjustments made in it. Entries kept from an earlier
    pass only serve as values until the pass reaches them again.

    Attributes:
        entries: Trace entries by identifier, in declaration order.
        linked: Whether latent entries are kept in unconstrained space.
            The evaluator converts every latent entry it visits to this
            representation.
        terminated: Set when an evaluation stopped early.
    """

    entries: dict[VarName, TraceEntry] = field(default_factory=dict)
    linked: bool = False
    terminated: bool = False
    _adjustments: dict = field(default_factory=_zero_adjustments, repr=False)
    _visited: set = field(default_factory=set, repr=False)

    def _role_total(self, role: Role) -> Any:
        total = self._adjustments[role]
        for name, entry in self.entries.items():
            if name in self._visited and entry.role is role:
                total = total + entry.log_density
        return total

    @property
    def prior_log_prob(self) -> Any:
        """Latent declarations of this pass, plus `Role.PRIOR` adjustments."""
        return self._role_total(Role.PRIOR)

    @property
    def likelihood_log_prob(self) -> Any:
        """Observed declarations of this pass, plus `Role.LIKELIHOOD` adjustments."""
        return self._role_total(Role.LIKELIHOOD)

    @property
    def total_log_prob(self) -> Any:
        return self.prior_log_prob + self.likelihood_log_prob

    def reset(self):
        """Start a new pass: zero the totals, keep the entries as values."""
        self._adjustments = _zero_adjustments()
        self.terminated = False
        self._visited = set()

    def retain_visited(self):
        """End a pass: drop the entries it did not reach."""
        self.entries = {
            name: entry for name, entry in self.entries.items() if name in self._visited
        }

    def record(self, entry: TraceEntry):
        """Append or replace `entry`; its role's total follows.

        Re-recording an identifier within the same pass replaces the earlier
        entry, and with it the earlier contribution.
        """
        if entry.vn in self._visited:
            old = self.entries[entry.vn]
            if old.observed != entry.observed:
                raise ValueError(
                    f"`{entry.vn}` was declared both latent and observed in one evaluation."
                )
        self.entries[entry.vn] = entry
        self._visited.add(entry.vn)

    def add_log_prob(self, amount, role: Role = Role.LIKELIHOOD):
        self._adjustments[role] = self._adjustments[role] + jnp.asarray(amount)

    def __getitem__(self, key: VarName | str) -> TraceEntry:
        return self.entries[as_varname(key)]

    def __contains__(self, key: VarName | str) -> bool:
        return as_varname(key) in self.entries

    def __iter__(self) -> Iterator[VarName]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, key: VarName | str, default=None) -> TraceEntry | None:
        return self.entries.get(as_varname(key), default)

    def latent_names(self) -> list[VarName]:
        return [name for name, entry in self.entries.items() if not entry.observed]

    def copy(self) -> "TraceStore":
        return TraceStore(
            dict(self.entries),
            self.linked,
            self.terminated,
            dict(self._adjustments),
            set(self._visited),
        )

    def snapshot(self) -> "Draw":
        entries = list(self.entries.values())
        return Draw(
            names=tuple(e.vn for e in entries),
            values=tuple(e.value for e in entries),
            observed=tuple(e.observed for e in entries),
            transformed=tuple(e.transformed for e in entries),
            prior_log_prob=self.prior_log_prob,
            likelihood_log_prob=self.likelihood_log_prob,
        )

    @staticmethod
    def from_values(
        values: Mapping[Any, Any],
        linked: bool = False,
    ) -> "TraceStore":
        """A store holding latent `values` (in their constrained support).

        With `linked=True` the next evaluation moves them to unconstrained
        space.
        """
        store = TraceStore(linked=linked)
        for key, value in values.items():
            name = as_varname(key)
            store.entries[name] = TraceEntry(name, jnp.asarray(value), jnp.array(0.0))
        return store

    def flatten(self) -> tuple[Array, Callable[[Array], list[Any]]]:
        """Ravel the stored latent values into one flat vector."""
        return ravel_pytree([self.entries[name].value for name in self.latent_names()])

    def with_flat(self, theta: Array) -> "TraceStore":
        """A copy of this store whose latent values are read from `theta`."""
        _, unravel = self.flatten()
        store = self.copy()
        for name, value in zip(self.latent_names(), unravel(theta)):
            entry = self.entries[name]
            store.entries[name] = TraceEntry(
                name,
                value,
                entry.log_density,
                entry.observed,
                entry.transformed,
            )
        return store


@Pytree.dataclass
class Draw(Pytree):
    """An immutable snapshot of a `TraceStore`.

    Identifiers and flags are static; values and totals are leaves, so draws
    of the same model structure stack into a single batched `Draw`.
    """

    names: tuple = Pytree.static()
    values: tuple
    observed: tuple = Pytree.static()
    transformed: tuple = Pytree.static()
    prior_log_prob: Any = Pytree.field(default=0.0)
    likelihood_log_prob: Any = Pytree.field(default=0.0)

    @property
    def total_log_prob(self) -> Any:
        return self.prior_log_prob + self.likelihood_log_prob

    def _position(self, key: VarName | str) -> int:
        return self.names.index(as_varname(key))

    def __contains__(self, key: VarName | str) -> bool:
        return as_varname(key) in self.names

    def __getitem__(self, key: VarName | str) -> Any:
        return self.values[self._position(key)]

    def entry(self, key: VarName | str) -> TraceEntry:
        i = self._position(key)
        return TraceEntry(
            self.names[i],
            self.values[i],
            jnp.array(0.0),
            self.observed[i],
            self.transformed[i],
        )

    def as_dict(self) -> dict[VarName, Any]:
        return dict(zip(self.names, self.values))

    @staticmethod
    def from_values(values: Mapping[Any, Any]) -> "Draw":
        """A draw of constrained, latent values (e.g. one row of a sampler's output)."""
        names = tuple(as_varname(key) for key in values)
        return Draw(
            names=names,
            values=tuple(jnp.asarray(v) for v in values.values()),
            observed=(False,) * len(names),
            transformed=(False,) * len(names),
        )


def as_draw(recorded: "Draw | TraceStore | Mapping[Any, Any]") -> Draw:
    if isinstance(recorded, Draw):
        return recorded
    if isinstance(recorded, TraceStore):
        return recorded.snapshot()
    return Draw.from_values(recorded)


def lookup(data: Mapping[Any, Any], name: VarName) -> Any:
    """Find `name` in a data mapping.

    Keys may be `VarName`s or strings; an indexed name also matches an
    array stored under its bare symbol (`x[1]` reads `data["x"][1]`).

    Raises:
        KeyError: If `data` holds nothing for `name`.
    """
    if name in data:
        return data[name]
    if str(name) in data:
        return data[str(name)]
    if name.index and name.sym in data:
        value = data[name.sym]
        for i in name.index:
            value = value[i]
        return value
    raise KeyError(str(name))


class Env:
    """The values visible to declaration expressions.

    Lookups resolve, in order, against values produced earlier in the
    evaluation and then against the model's data. A bare symbol which was
    only declared element-wise (`x[0]`, `x[1]`, ...) resolves to the stacked
    array of its elements in index order.
    """

    def __init__(self, data: Mapping[Any, Any] | None = None):
        self.values: dict[VarName, Any] = {}
        self.data = {} if data is None else data

    def __setitem__(self, key: VarName | str, value):
        self.values[as_varname(key)] = value

    def __getitem__(self, key: VarName | str) -> Any:
        name = as_varname(key)
        if name in self.values:
            return self.values[name]
        if not name.index:
            elements = sorted(
                (n for n in self.values if n.sym == name.sym and n.index),
                key=lambda n: n.index,
            )
            if elements:
                return jnp.stack([self.values[n] for n in elements])
        return lookup(self.data, name)

    def __contains__(self, key: VarName | str) -> bool:
        try:
            self[key]
        except KeyError:
            return False
        return True

    def get(self, key: VarName | str, default=None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default
