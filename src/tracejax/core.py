import re
from dataclasses import field
from typing import overload

import beartype.typing as btyping
import jaxtyping as jtyping
import penzai.pz as pz
from typing_extensions import dataclass_transform

##########
# Typing #
##########

Any = btyping.Any
PRNGKey = jtyping.PRNGKeyArray
Array = jtyping.Array
ArrayLike = jtyping.ArrayLike
FloatArray = jtyping.Float[jtyping.Array, "..."]
BoolArray = jtyping.Bool[jtyping.Array, "..."]
Callable = btyping.Callable
Mapping = btyping.Mapping
Sequence = btyping.Sequence
Iterator = btyping.Iterator
Optional = btyping.Optional
TypeVar = btyping.TypeVar

R = TypeVar("R")

#######################
# Probabilistic types #
#######################

LogDensity = FloatArray
Weight = FloatArray

##########
# Pytree #
##########


class Pytree(pz.Struct):
    """`Pytree` is an abstract base class which registers a class with JAX's `Pytree`
    system. JAX's `Pytree` system tracks how data classes should behave across
    JAX-transformed function boundaries, like `jax.jit`, `jax.grad` or `jax.vmap`.

    Inheriting this class provides the implementor with the freedom to
    declare how the subfields of a class should behave:

    * `Pytree.static(...)`: the value of the field cannot
    be a JAX traced value, it must be a Python literal, or a constant).
    The values of static fields are embedded in the `PyTreeDef` of any
    instance of the class.
    * `Pytree.field(...)` or no annotation: the value may be a JAX traced
    value, and JAX will attempt to convert it to tracer values inside of
    its transformations.
    """

    @staticmethod
    @overload
    def dataclass(
        incoming: None = None,
        /,
        **kwargs,
    ) -> Callable[[type[R]], type[R]]: ...

    @staticmethod
    @overload
    def dataclass(
        incoming: type[R],
        /,
        **kwargs,
    ) -> type[R]: ...

    @dataclass_transform(
        frozen_default=True,
    )
    @staticmethod
    def dataclass(
        incoming: type[R] | None = None,
        /,
        **kwargs,
    ) -> type[R] | Callable[[type[R]], type[R]]:
        """
        Denote that a class (which is inheriting `Pytree`) should be treated
        as a frozen dataclass whose fields are flattened by JAX.

        Examples
        --------

        ```{python}
        @Pytree.dataclass
        class Offset(Pytree):
            amount: ArrayLike
            label: str = Pytree.static(default="offset")


        Offset(jnp.array(5.0))
        ```
        """

        return pz.pytree_dataclass(
            incoming,
            overwrite_parent_init=True,
            **kwargs,
        )

    @staticmethod
    def static(**kwargs):
        """Declare a field of a `Pytree` dataclass to be static: part of the
        `PyTreeDef` rather than a leaf. Fields which are provided with default
        values must come after required fields in the dataclass declaration."""
        return field(metadata={"pytree_node": False}, **kwargs)

    @staticmethod
    def field(**kwargs):
        """Declare a field of a `Pytree` dataclass to be dynamic.
        Alternatively, one can leave the annotation off in the declaration."""
        return field(**kwargs)


#############
# Var names #
#############

_VARNAME_PATTERN = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(?:\[([^\]]*)\])?\s*$")


@Pytree.dataclass
class VarName(Pytree):
    """A stable identifier for a position in a trace.

    A `VarName` is a symbol, optionally indexed for element-wise declarations
    over an array (`x[0]`, `x[1]`, ...). Two `VarName`s compare (and hash) equal
    whenever they render to the same string, so identifiers produced by two
    evaluations of the same model line up for replay.

    Example:
        >>> str(VarName("x", (0, 1)))
        'x[0, 1]'
        >>> VarName.parse("x[0, 1]") == VarName("x", (0, 1))
        True
    """

    sym: str = Pytree.static()
    index: tuple = Pytree.static(default=())

    def __str__(self) -> str:
        if not self.index:
            return self.sym
        return f"{self.sym}[{', '.join(str(i) for i in self.index)}]"

    @staticmethod
    def parse(s: str) -> "VarName":
        matched = _VARNAME_PATTERN.match(s)
        if matched is None:
            raise ValueError(f"Cannot parse a variable name from {s!r}.")
        sym, raw_index = matched.groups()
        if raw_index is None:
            return VarName(sym)
        try:
            index = tuple(int(i) for i in raw_index.split(","))
        except ValueError:
            raise ValueError(
                f"Variable name indices must be integers, got {s!r}."
            ) from None
        return VarName(sym, index)


def vn(sym: str, *index: int) -> VarName:
    return VarName(sym, tuple(index))


def as_varname(key: "VarName | str") -> VarName:
    return key if isinstance(key, VarName) else VarName.parse(key)


##########
# Errors #
##########


class UnsupportedSupport(Exception):
    """No bijector could be resolved for a distribution: its family has no
    registered transform, it exposes no canonical transform of its own, and it
    declares no support bounds."""


class MissingIdentifier(KeyError):
    """A replayed declaration has no entry in the recorded draw."""

    def __init__(self, name: VarName):
        super().__init__(str(name))
        self.vn = name

    def __str__(self) -> str:
        return (
            f"No recorded value for `{self.vn}`: the model declared a variable "
            "which is absent from the draw being replayed."
        )
