"""
Tests for PipelineContext — write-once values, templates, redaction.
"""

import pytest

from rollupctl.core.context import PipelineContext
from rollupctl.core.errors import DeployError, MissingValueError

SECRET = "0x" + "42" * 32


class TestWrites:
    def test_set_and_read(self):
        ctx = PipelineContext({"CHAIN_ID": "412346"})
        assert ctx["CHAIN_ID"] == "412346"
        assert "CHAIN_ID" in ctx
        assert len(ctx) == 1

    def test_write_once(self):
        ctx = PipelineContext({"TX_HASH": "0x1"})
        with pytest.raises(DeployError, match="already set"):
            ctx.set("TX_HASH", "0x2")
        assert ctx["TX_HASH"] == "0x1"

    def test_same_value_is_not_a_conflict(self):
        ctx = PipelineContext({"A": "1"})
        ctx.set("A", "1")
        assert ctx["A"] == "1"

    def test_overwrite(self):
        ctx = PipelineContext({"NODE_IP": "10.0.0.1"})
        ctx.set("NODE_IP", "10.0.0.2", overwrite=True)
        assert ctx["NODE_IP"] == "10.0.0.2"

    def test_values_are_strings(self):
        ctx = PipelineContext()
        ctx.set("PORT", 8449)
        assert ctx["PORT"] == "8449"


class TestReads:
    def test_require_present(self):
        assert PipelineContext({"A": "x"}).require("A") == "x"

    def test_require_absent(self):
        with pytest.raises(MissingValueError) as exc:
            PipelineContext().require("TX_HASH")
        assert exc.value.key == "TX_HASH"

    def test_require_empty_fails(self):
        with pytest.raises(MissingValueError):
            PipelineContext({"TX_HASH": ""}).require("TX_HASH")

    def test_missing(self):
        ctx = PipelineContext({"A": "1", "B": ""})
        assert ctx.missing(["A", "B", "C"]) == ["B", "C"]


class TestRender:
    def test_placeholders(self):
        ctx = PipelineContext({"BASE": "/data/raas", "NAME": "demo"})
        assert ctx.render("{BASE}/contracts/{NAME}.env") == "/data/raas/contracts/demo.env"

    def test_literal_braces(self):
        ctx = PipelineContext({"IP": "10.0.0.1"})
        assert ctx.render('{{"url": "http://{IP}"}}') == '{"url": "http://10.0.0.1"}'

    def test_no_placeholders(self):
        assert PipelineContext().render("plain") == "plain"

    def test_missing_placeholder_fails(self):
        with pytest.raises(MissingValueError):
            PipelineContext().render("--hash={TX_HASH}")


class TestSecrets:
    def test_redact(self):
        ctx = PipelineContext()
        ctx.set_secret("DEPLOYER_PRIVATE_KEY", SECRET)
        assert ctx.redact(f"key={SECRET} ok") == "key=**** ok"
        assert ctx.is_secret("DEPLOYER_PRIVATE_KEY")

    def test_short_secrets_not_scrubbed(self):
        ctx = PipelineContext()
        ctx.set_secret("PIN", "1")
        assert ctx.redact("chain 1 ready") == "chain 1 ready"

    def test_mark_secret_after_set(self):
        ctx = PipelineContext({"K": SECRET})
        assert ctx.redact(SECRET) == SECRET
        ctx.mark_secret("K")
        assert ctx.redact(SECRET) == "****"

    def test_snapshot(self):
        ctx = PipelineContext({"CHAIN_ID": "1"})
        ctx.set_secret("KEY", SECRET)
        assert ctx.snapshot() == {"CHAIN_ID": "1", "KEY": "****"}
