"""Shims for JAX APIs which TFP's JAX substrate still expects."""

from __future__ import annotations

import jax


def ensure_jax_tfp_compat() -> None:
    """Restore ``jax.interpreters.xla.pytype_aval_mappings`` on JAX releases
    which moved it to ``jax.core``.

    TFP's JAX substrate reads the old location at import time, so this has to
    run before ``tensorflow_probability.substrates.jax`` is first imported.
    It does nothing on JAX releases which still provide the old location.
    """

    xla = jax.interpreters.xla
    moved = getattr(jax.core, "pytype_aval_mappings", None)
    if moved is not None and not hasattr(xla, "pytype_aval_mappings"):
        xla.pytype_aval_mappings = moved
