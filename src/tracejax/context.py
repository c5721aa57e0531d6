"""Evaluation contexts: which log-density terms an evaluation accumulates."""

from enum import Enum

from .trace import Role


class Context(Enum):
    """The closed set of accumulation policies.

    * `PRIOR`: only latent (sampled) declarations contribute.
    * `LIKELIHOOD`: only observed declarations contribute.
    * `JOINT`: both do.

    Every context conditions observed declarations on their bound values.
    Manual adjustments (`AddLogProb`) are never filtered by the context.
    """

    PRIOR = "prior"
    LIKELIHOOD = "likelihood"
    JOINT = "joint"

    def includes(self, role: Role) -> bool:
        if self is Context.JOINT:
            return True
        if self is Context.PRIOR:
            return role is Role.PRIOR
        return role is Role.LIKELIHOOD
