"""Unit tests for the propvar command-line interface."""
from __future__ import annotations

import json
from pathlib import Path
from uuid import UUID

import pytest
from click.testing import CliRunner

from propvar.cli.main import cli
from propvar.property import MemoryPropertyStore

SUMMARY = UUID("f29f85e0-4ff9-1068-ab91-08002b27b3d9")


def _make_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def store_file(tmp_path: Path) -> Path:
    store = MemoryPropertyStore()
    store.set(SUMMARY, 2, "Title")
    store.set_named("Pages", 12)
    path = tmp_path / "props.bin"
    store.save(path)
    return path


class TestVersion:
    def setup_method(self) -> None:
        self.runner = _make_runner()

    def test_version_command(self, expected_version: str) -> None:
        result = self.runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert "propvar" in result.output
        assert expected_version in result.output

    def test_version_option(self, expected_version: str) -> None:
        result = self.runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert expected_version in result.output


class TestEncodeCommand:
    def setup_method(self) -> None:
        self.runner = _make_runner()

    def test_string_to_hex(self) -> None:
        result = self.runner.invoke(cli, ["encode", "hi"])
        assert result.exit_code == 0
        assert result.output.strip() == "1f000000030000006800690000000000"

    def test_explicit_type(self) -> None:
        result = self.runner.invoke(cli, ["encode", "42", "--type", "VT_UI2"])
        assert result.exit_code == 0
        assert result.output.strip() == "120000002a000000"

    def test_hex_integer_literal(self) -> None:
        result = self.runner.invoke(cli, ["encode", "0x10", "--type", "i4"])
        assert result.output.strip() == "0300000010000000"

    def test_json_vector(self) -> None:
        result = self.runner.invoke(cli, ["encode", "[1, 2, 3]", "--json", "--type", "VT_VECTOR|VT_I2"])
        assert result.exit_code == 0
        assert result.output.strip() == "02100000" "03000000" "0100020003000000"

    def test_guid_text(self) -> None:
        result = self.runner.invoke(cli, ["encode", str(SUMMARY), "--type", "clsid"])
        assert result.output.strip() == "48000000" + SUMMARY.bytes_le.hex()

    def test_output_file(self, tmp_path: Path) -> None:
        path = tmp_path / "value.bin"
        result = self.runner.invoke(cli, ["encode", "x", "-o", str(path)])
        assert result.exit_code == 0
        assert "Wrote" in result.output
        assert path.read_bytes() == bytes.fromhex("1f000000" "02000000" "78000000")

    @pytest.mark.parametrize(
        "args",
        [
            ["encode", "1", "--type", "VT_NOPE"],
            ["encode", "300", "--type", "VT_UI1"],
            ["encode", "abc", "--type", "VT_I4"],
            ["encode", "[1, \"a\"]", "--json"],
            ["encode", "[1,", "--json"],
            ["encode", "1", "--type", "VT_UNKNOWN"],
        ],
    )
    def test_errors_exit_1(self, args: list[str]) -> None:
        result = self.runner.invoke(cli, args)
        assert result.exit_code == 1
        assert "Error" in result.output


class TestDecodeCommand:
    def setup_method(self) -> None:
        self.runner = _make_runner()

    def test_hex(self) -> None:
        result = self.runner.invoke(cli, ["decode", "--hex", "1f000000030000006800690000000000"])
        assert result.exit_code == 0
        assert "VT_LPWSTR" in result.output
        assert "'hi'" in result.output
        assert "16 bytes" in result.output

    def test_encode_then_decode_file(self, tmp_path: Path) -> None:
        path = tmp_path / "ints.bin"
        self.runner.invoke(cli, ["encode", "[5, 6]", "--json", "-o", str(path)])
        result = self.runner.invoke(cli, ["decode", str(path)])
        assert result.exit_code == 0
        assert "VT_VECTOR|VT_I4" in result.output
        assert "[5, 6]" in result.output

    def test_blob_is_rendered_as_hex(self) -> None:
        result = self.runner.invoke(cli, ["decode", "--hex", "4100000002000000abcd0000"])
        assert "ab cd" in result.output

    def test_lpstr_with_unmapped_byte(self) -> None:
        result = self.runner.invoke(cli, ["decode", "--hex", "1e000000" "02000000" "81000000"])
        assert result.exit_code == 0
        assert "VT_LPSTR" in result.output

    @pytest.mark.parametrize(
        "args",
        [
            ["decode"],
            ["decode", "no-such-file.bin"],
            ["decode", "--hex", "zz"],
            ["decode", "--hex", "0200"],
        ],
    )
    def test_errors_exit_1(self, args: list[str]) -> None:
        result = self.runner.invoke(cli, args)
        assert result.exit_code == 1


class TestConfigOption:
    def setup_method(self) -> None:
        self.runner = _make_runner()

    def test_ansi_encoding_from_config(self, tmp_path: Path) -> None:
        config = tmp_path / "propvar.yaml"
        config.write_text("ansi_encoding: cp1251\n", encoding="utf-8")
        result = self.runner.invoke(cli, ["--config", str(config), "encode", "Ж", "--type", "VT_LPSTR"])
        assert result.exit_code == 0
        assert result.output.strip() == "1e00000002000000c6000000"

    def test_bad_config_exits_1(self, tmp_path: Path) -> None:
        config = tmp_path / "propvar.yaml"
        config.write_text("colour: blue\n", encoding="utf-8")
        result = self.runner.invoke(cli, ["--config", str(config), "encode", "x"])
        assert result.exit_code == 1
        assert "colour" in result.output


class TestStoreCommands:
    def setup_method(self) -> None:
        self.runner = _make_runner()

    def test_show(self, store_file: Path) -> None:
        result = self.runner.invoke(cli, ["store", "show", str(store_file)])
        assert result.exit_code == 0
        assert "VT_LPWSTR" in result.output
        assert "Pages" in result.output
        assert "2 properties" in result.output

    def test_show_empty(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.bin"
        MemoryPropertyStore().save(path)
        result = self.runner.invoke(cli, ["store", "show", str(path)])
        assert result.exit_code == 0
        assert "holds no properties" in result.output

    def test_dump_json_to_file(self, store_file: Path, tmp_path: Path) -> None:
        output = tmp_path / "props.json"
        result = self.runner.invoke(cli, ["store", "dump", str(store_file), "-o", str(output)])
        assert result.exit_code == 0
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data[0]["value"] == "Title"
        assert data[1] == {
            "fmtid": "{d5cdd505-2e9c-101b-9397-08002b2cf9ae}",
            "name": "Pages",
            "type": "VT_I4",
            "value": 12,
        }

    def test_dump_yaml_to_stdout(self, store_file: Path) -> None:
        result = self.runner.invoke(cli, ["store", "dump", str(store_file), "--format", "yaml"])
        assert result.exit_code == 0
        assert "VT_I4" in result.output

    def test_corrupt_store_exits_1(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.bin"
        path.write_bytes(b"\x08\x00\x00\x00")
        result = self.runner.invoke(cli, ["store", "show", str(path)])
        assert result.exit_code == 1
