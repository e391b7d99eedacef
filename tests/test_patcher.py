"""
Tests for the config patcher — KEY=value files, TOML fields, atomic writes.
"""

import os
import stat
from pathlib import Path

import pytest

from rollupctl.core.context import PipelineContext
from rollupctl.core.engine.patcher import (
    EnvPatcher,
    append,
    delete_env,
    delete_keys,
    patch,
    substitute_env,
    substitute_quoted_fields,
)
from rollupctl.core.errors import MissingValueError, PatchFailure
from rollupctl.core.models.patch import ConfigPatch

ENV = "# header\nCHAIN_ID=1\nCHAIN_ID_SUFFIX=x\nNAME=old\n"


# ── Pure transforms ──────────────────────────────────────────────────


class TestSubstituteEnv:
    def test_changes_only_that_line(self):
        out = substitute_env(ENV, [("CHAIN_ID", "12345")])
        assert out == "# header\nCHAIN_ID=12345\nCHAIN_ID_SUFFIX=x\nNAME=old\n"

    def test_prefix_key_not_matched(self):
        out = substitute_env("CHAIN_ID_SUFFIX=x\n", [("CHAIN_ID", "9")])
        assert out == "CHAIN_ID_SUFFIX=x\n"

    def test_absent_key_not_inserted(self):
        assert substitute_env(ENV, [("MISSING", "v")]) == ENV

    def test_every_assignment_rewritten(self):
        out = substitute_env("A=1\nA=2\n", [("A", "3")])
        assert out == "A=3\nA=3\n"

    def test_crlf_endings_preserved(self):
        out = substitute_env("A=1\r\nB=2\r\n", [("A", "x")])
        assert out == "A=x\r\nB=2\r\n"

    def test_no_trailing_newline_preserved(self):
        assert substitute_env("A=1", [("A", "2")]) == "A=2"

    def test_indented_line_not_matched(self):
        assert substitute_env("  A=1\n", [("A", "2")]) == "  A=1\n"

    def test_commented_line_not_matched(self):
        assert substitute_env("#A=1\n", [("A", "2")]) == "#A=1\n"

    def test_value_with_special_characters(self):
        out = substitute_env("URL=\n", [("URL", "http://a/b?c=d&e|f")])
        assert out == "URL=http://a/b?c=d&e|f\n"


class TestDeleteEnv:
    def test_delete(self):
        out = delete_env("A=1\nHASH=0xold\nB=2\n", ["HASH"])
        assert out == "A=1\nB=2\n"

    def test_delete_absent_is_noop(self):
        assert delete_env(ENV, ["NOPE"]) == ENV

    def test_delete_all_occurrences(self):
        assert delete_env("H=1\nH=2\nX=3\n", ["H"]) == "X=3\n"


class TestQuotedFields:
    def test_keeps_indentation(self):
        text = '  batcher = "0x0"\nproposer="0x0"\n'
        out = substitute_quoted_fields(text, [("batcher", "0xb"), ("proposer", "0xp")])
        assert out == '  batcher = "0xb"\nproposer="0xp"\n'

    def test_only_whole_field_names(self):
        text = 'l1FeeVaultRecipient = "0"\nbaseFeeVaultRecipient = "0"\n'
        out = substitute_quoted_fields(text, [("baseFeeVaultRecipient", "0xa")])
        assert out == 'l1FeeVaultRecipient = "0"\nbaseFeeVaultRecipient = "0xa"\n'

    def test_unquoted_value_untouched(self):
        assert substitute_quoted_fields("l1ChainID = 1\n", [("l1ChainID", "2")]) == "l1ChainID = 1\n"


# ── File operations ─────────────────────────────────────────────────


class TestPatchFile:
    def test_patch_single_key(self, tmp_path: Path):
        f = tmp_path / ".env"
        f.write_text(ENV)
        patch(f, {"CHAIN_ID": "12345"})
        assert f.read_text() == ENV.replace("CHAIN_ID=1\n", "CHAIN_ID=12345\n")

    def test_patch_twice_equals_once(self, tmp_path: Path):
        once = tmp_path / "once.env"
        twice = tmp_path / "twice.env"
        once.write_text(ENV)
        twice.write_text(ENV)
        patch(once, {"CHAIN_ID": "7", "NAME": "new"}, ["CHAIN_ID_SUFFIX"])
        patch(twice, {"CHAIN_ID": "7", "NAME": "new"}, ["CHAIN_ID_SUFFIX"])
        patch(twice, {"CHAIN_ID": "7", "NAME": "new"}, ["CHAIN_ID_SUFFIX"])
        assert once.read_bytes() == twice.read_bytes()

    def test_missing_file_raises(self, tmp_path: Path):
        with pytest.raises(PatchFailure) as exc:
            patch(tmp_path / "nope.env", {"A": "1"})
        assert "file not found" in str(exc.value)

    def test_mode_preserved(self, tmp_path: Path):
        f = tmp_path / ".env"
        f.write_text("A=1\n")
        os.chmod(f, 0o600)
        patch(f, {"A": "2"})
        assert stat.S_IMODE(f.stat().st_mode) == 0o600

    def test_no_temp_files_left(self, tmp_path: Path):
        f = tmp_path / ".env"
        f.write_text("A=1\n")
        patch(f, {"A": "2"})
        assert [p.name for p in tmp_path.iterdir()] == [".env"]

    def test_delete_keys_absent_is_noop(self, tmp_path: Path):
        f = tmp_path / ".env"
        f.write_text(ENV)
        mtime = f.stat().st_mtime_ns
        delete_keys(f, ["NOT_THERE"])
        assert f.read_text() == ENV
        assert f.stat().st_mtime_ns == mtime


class TestAppend:
    def test_creates_file(self, tmp_path: Path):
        f = tmp_path / "sub" / ".wallet"
        append(f, {"A": "1", "B": "2"})
        assert f.read_text() == "A=1\nB=2\n"

    def test_sets_existing_and_appends_missing(self, tmp_path: Path):
        f = tmp_path / ".wallet"
        f.write_text("A=0\nC=3")
        append(f, {"A": "1", "B": "2"})
        assert f.read_text() == "A=1\nC=3\nB=2\n"

    def test_idempotent(self, tmp_path: Path):
        f = tmp_path / ".wallet"
        append(f, {"A": "1"})
        append(f, {"A": "1"})
        assert f.read_text() == "A=1\n"


# ── EnvPatcher.apply ────────────────────────────────────────────────


class TestEnvPatcherApply:
    def _context(self) -> PipelineContext:
        ctx = PipelineContext({"CHAIN_ID": "999", "TX_HASH": "0xfeed"})
        ctx.set_secret("KEY", "0x" + "11" * 32)
        return ctx

    def test_template_copied_then_patched(self, tmp_path: Path):
        template = tmp_path / ".env.example"
        template.write_text("CHAIN_ID=\nHASH=0xold\nKEY=\n")
        target = tmp_path / "contracts" / ".env"
        target.parent.mkdir()
        target.write_text("stale content\n")

        EnvPatcher().apply(
            ConfigPatch(
                target=str(target),
                template=str(template),
                delete=["HASH"],
                assign=[("CHAIN_ID", "{CHAIN_ID}"), ("KEY", "{KEY}")],
            ),
            self._context(),
        )
        assert target.read_text() == f"CHAIN_ID=999\nKEY={'0x' + '11' * 32}\n"
        assert template.read_text() == "CHAIN_ID=\nHASH=0xold\nKEY=\n"

    def test_missing_value_leaves_file_untouched(self, tmp_path: Path):
        target = tmp_path / ".env"
        target.write_text("CHAIN_ID=1\nOTHER=\n")
        with pytest.raises(MissingValueError):
            EnvPatcher().apply(
                ConfigPatch(target=str(target), assign=[("CHAIN_ID", "{CHAIN_ID}"), ("OTHER", "{NOPE}")]),
                self._context(),
            )
        assert target.read_text() == "CHAIN_ID=1\nOTHER=\n"

    def test_toml_style(self, tmp_path: Path):
        target = tmp_path / "intent.toml"
        target.write_text('  proposer = "0x0"\n')
        EnvPatcher().apply(
            ConfigPatch(target=str(target), style="toml", assign=[("proposer", "{TX_HASH}")]),
            self._context(),
        )
        assert target.read_text() == '  proposer = "0xfeed"\n'

    def test_replace_literals(self, tmp_path: Path):
        target = tmp_path / "node-config.json"
        target.write_text('{"url": "https://rpc.sepolia.org"}')
        EnvPatcher().apply(
            ConfigPatch(target=str(target), replace=[("https://rpc.sepolia.org", "http://10.1.1.1:8545")]),
            self._context(),
        )
        assert target.read_text() == '{"url": "http://10.1.1.1:8545"}'

    def test_dry_run_writes_nothing(self, tmp_path: Path):
        target = tmp_path / ".env"
        target.write_text("CHAIN_ID=1\n")
        EnvPatcher(dry_run=True).apply(
            ConfigPatch(target=str(target), assign=[("CHAIN_ID", "{CHAIN_ID}")]),
            self._context(),
        )
        assert target.read_text() == "CHAIN_ID=1\n"

    def test_dry_run_missing_target_is_fine(self, tmp_path: Path):
        EnvPatcher(dry_run=True).apply(
            ConfigPatch(target=str(tmp_path / "absent" / ".env"), assign=[("CHAIN_ID", "{CHAIN_ID}")]),
            self._context(),
        )
        assert not (tmp_path / "absent").exists()

    def test_dry_run_redacts_secrets(self, tmp_path: Path, caplog):
        caplog.set_level("INFO")
        EnvPatcher(dry_run=True).apply(
            ConfigPatch(target=str(tmp_path / ".env"), assign=[("KEY", "{KEY}")]),
            self._context(),
        )
        assert "11" * 32 not in caplog.text
        assert "KEY=****" in caplog.text
