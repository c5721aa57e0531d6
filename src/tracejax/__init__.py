from beartype import BeartypeConf
from beartype.claw import beartype_this_package

conf = BeartypeConf(
    is_color=True,
    is_debug=False,
    is_pep484_tower=True,
    violation_type=TypeError,
)

beartype_this_package(conf=conf)

from ._compat import ensure_jax_tfp_compat

ensure_jax_tfp_compat()

from .bijectors import (
    Bijector,
    Chain,
    Identity,
    Reparameterized,
    TFPBijector,
    register_bijector,
    reparameterize,
    resolve,
)
from .context import Context
from .core import (
    MissingIdentifier,
    Pytree,
    UnsupportedSupport,
    VarName,
    vn,
)
from .distributions import (
    Distribution,
    distribution,
    tfp_distribution,
)
from .evaluator import (
    LogDensityFunction,
    evaluate,
    invlink,
    link,
    log_joint,
    log_likelihood,
    log_prior,
    sample_trace,
)
from .model import (
    AddLogProb,
    Let,
    Model,
    Terminate,
    Tilde,
    add_log_prob,
    assume,
    assume_each,
    let,
    model,
    observe,
    observe_each,
    reject,
)
from .replay import (
    draws_from_arrays,
    generated_quantities,
    replay,
    stack_draws,
)
from .trace import (
    Draw,
    Env,
    Role,
    TraceEntry,
    TraceStore,
)

__all__ = [
    "AddLogProb",
    "Bijector",
    "Chain",
    "Context",
    "Distribution",
    "Draw",
    "Env",
    "Identity",
    "Let",
    "LogDensityFunction",
    "MissingIdentifier",
    "Model",
    "Pytree",
    "Reparameterized",
    "Role",
    "TFPBijector",
    "Terminate",
    "Tilde",
    "TraceEntry",
    "TraceStore",
    "UnsupportedSupport",
    "VarName",
    "add_log_prob",
    "assume",
    "assume_each",
    "distribution",
    "draws_from_arrays",
    "evaluate",
    "generated_quantities",
    "invlink",
    "let",
    "link",
    "log_joint",
    "log_likelihood",
    "log_prior",
    "model",
    "observe",
    "observe_each",
    "register_bijector",
    "reject",
    "replay",
    "reparameterize",
    "resolve",
    "sample_trace",
    "stack_draws",
    "tfp_distribution",
    "vn",
]
