"""
Test cases for variable names, data lookup and the declaration environment.
"""

import jax.numpy as jnp
import pytest

from tracejax.core import MissingIdentifier, VarName, as_varname, vn
from tracejax.trace import Env, lookup


@pytest.mark.unit
@pytest.mark.fast
class TestVarName:
    def test_rendering(self):
        assert str(vn("s")) == "s"
        assert str(vn("x", 0)) == "x[0]"
        assert str(vn("w", 1, 2)) == "w[1, 2]"

    def test_parse_inverts_rendering(self):
        for name in [vn("s"), vn("x", 3), vn("w", 1, 2)]:
            assert VarName.parse(str(name)) == name

    def test_equal_names_hash_equal(self):
        """Identifiers built independently line up as dictionary keys."""
        entries = {vn("x", 1): "first"}
        assert entries[VarName.parse("x[1]")] == "first"
        assert vn("x", 1) != vn("x", 2)
        assert vn("x") != vn("x", 0)

    def test_as_varname(self):
        name = vn("m")
        assert as_varname(name) is name
        assert as_varname("m") == name

    @pytest.mark.parametrize("bad", ["", "1x", "x[a]", "x[0", "x y"])
    def test_parse_rejects_malformed(self, bad):
        with pytest.raises(ValueError):
            VarName.parse(bad)

    def test_missing_identifier_is_a_key_error(self):
        err = MissingIdentifier(vn("x", 2))
        assert isinstance(err, KeyError)
        assert err.vn == vn("x", 2)
        assert "x[2]" in str(err)


@pytest.mark.unit
@pytest.mark.fast
class TestEnv:
    def test_lookup_by_string_and_varname(self):
        data = {"x": jnp.array([1.5, 2.0]), vn("y"): 3.0, "z[1]": 4.0}
        assert lookup(data, vn("y")) == 3.0
        assert lookup(data, vn("z", 1)) == 4.0
        assert jnp.allclose(lookup(data, vn("x")), jnp.array([1.5, 2.0]))
        assert lookup(data, vn("x", 1)) == 2.0
        with pytest.raises(KeyError):
            lookup(data, vn("w"))

    def test_values_shadow_data(self):
        env = Env({"m": 10.0, "n": 3})
        env["m"] = 0.5
        assert env["m"] == 0.5
        assert env["n"] == 3
        assert "n" in env
        assert "q" not in env
        assert env.get("q", -1) == -1

    def test_element_wise_values_stack(self):
        env = Env()
        env[vn("x", 1)] = jnp.array(2.0)
        env[vn("x", 0)] = jnp.array(1.0)
        assert jnp.allclose(env["x"], jnp.array([1.0, 2.0]))
        assert env["x[1]"] == 2.0
