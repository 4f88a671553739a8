"""Tests for the external tool bridge with subprocess and PATH mocked out."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from doc_shard.core.bridge import (
    BashExecutorBridge,
    ExtractionResult,
    ToolAvailability,
    ToolCommand,
    _decode_path_lines,
)
from doc_shard.core.errors import ExternalToolFailed, ExternalToolUnavailable
from doc_shard.core.formats import DocumentFormat


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def _bridge(**tools: bool | str | None) -> BashExecutorBridge:
    bridge = BashExecutorBridge(timeout=2.0)
    bridge._availability = ToolAvailability(**tools)
    return bridge


class TestToolCommand:
    def test_missing_binary(self) -> None:
        with patch("doc_shard.core.bridge.shutil.which", return_value=None):
            with pytest.raises(ExternalToolUnavailable, match="not found"):
                ToolCommand("jq", ("-c", ".")).run()

    def test_runs_with_timeout_and_stdin(self) -> None:
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/jq"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed("ok\n")) as mock_run,
        ):
            result = ToolCommand("jq", ("-c", "."), timeout=3.0, stdin="{}").run()
        assert result.stdout == "ok\n"
        args, kwargs = mock_run.call_args
        assert args[0] == ["/usr/bin/jq", "-c", "."]
        assert kwargs["timeout"] == 3.0
        assert kwargs["input"] == "{}"
        assert kwargs["check"] is False

    def test_nonzero_exit_fails(self) -> None:
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/jq"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed(returncode=3, stderr="compile error")),
        ):
            with pytest.raises(ExternalToolFailed) as excinfo:
                ToolCommand("jq", (".[",)).run()
        assert excinfo.value.returncode == 3
        assert excinfo.value.stderr == "compile error"

    def test_accepted_exit_code(self) -> None:
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/xmllint"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed("0", returncode=11)),
        ):
            result = ToolCommand("xmllint", (), accept_codes=(0, 11)).run()
        assert result.returncode == 11

    def test_timeout_fails(self) -> None:
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/yq"),
            patch(
                "doc_shard.core.bridge.subprocess.run",
                side_effect=subprocess.TimeoutExpired(cmd="yq", timeout=1.0),
            ),
        ):
            with pytest.raises(ExternalToolFailed, match="timed out"):
                ToolCommand("yq", (), timeout=1.0).run()


class TestProbe:
    def test_probe_is_cached(self) -> None:
        bridge = BashExecutorBridge()
        with patch("doc_shard.core.bridge.shutil.which", return_value=None) as mock_which:
            first = bridge.probe()
            second = bridge.probe()
        assert first is second
        assert first == ToolAvailability()
        assert mock_which.call_count == 4

    def test_detects_go_yq(self) -> None:
        bridge = BashExecutorBridge()
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/tool"),
            patch(
                "doc_shard.core.bridge.subprocess.run",
                return_value=_completed("yq (https://github.com/mikefarah/yq/) version v4.40.5\n"),
            ),
        ):
            availability = bridge.probe()
        assert availability.yq_flavor == "go"
        assert availability.as_dict()["jq"] is True

    def test_reset_forgets_probe(self) -> None:
        bridge = _bridge(jq=True)
        bridge.reset()
        with patch("doc_shard.core.bridge.shutil.which", return_value=None):
            assert bridge.probe().jq is False


class TestExtract:
    def test_unavailable_tool_is_a_failed_result(self, json_file: Path) -> None:
        bridge = BashExecutorBridge()
        with patch("doc_shard.core.bridge.shutil.which", return_value=None):
            result = bridge.extract(DocumentFormat.JSON, json_file, ".items")
        assert result.success is False
        assert result.tool == "jq"
        assert isinstance(result.error, ExternalToolUnavailable)
        with pytest.raises(ExternalToolUnavailable):
            result.raise_for_error()

    def test_markdown_has_no_tool(self, markdown_file: Path) -> None:
        result = _bridge(jq=True, yq=True, xmllint=True, sed=True).extract("markdown", markdown_file, "intro")
        assert result.success is False
        assert isinstance(result.error, ExternalToolUnavailable)

    def test_unknown_format_never_raises(self, json_file: Path) -> None:
        result = _bridge().extract("toml", json_file, ".a")
        assert result.success is False
        assert result.tool is None

    def test_jq_paths(self, json_file: Path) -> None:
        bridge = _bridge(jq=True)
        stdout = '["items",0,"id"]\n["items",1,"id"]\n'
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/jq"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed(stdout)) as mock_run,
        ):
            result = bridge.extract(DocumentFormat.JSON, json_file, ".items[].id")
        assert result == ExtractionResult(success=True, tool="jq", paths=("/items[0]/id", "/items[1]/id"))
        program = mock_run.call_args[0][0][2]
        assert "path(.items[].id)" in program

    def test_python_yq_uses_jq_program(self, yaml_file: Path) -> None:
        bridge = _bridge(yq=True, yq_flavor="python")
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/yq"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed('["name"]\n')) as mock_run,
        ):
            result = bridge.extract(DocumentFormat.YAML, yaml_file, ".name")
        assert result.paths == ("/name",)
        assert mock_run.call_args[0][0][1] == "-c"

    def test_go_yq_asks_for_json_paths(self, yaml_file: Path) -> None:
        bridge = _bridge(yq=True, yq_flavor="go")
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/yq"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed('["meta","owner"]\n')) as mock_run,
        ):
            result = bridge.extract(DocumentFormat.YAML, yaml_file, ".meta.owner")
        assert result.paths == ("/meta/owner",)
        assert mock_run.call_args[0][0][1:4] == ["-o=json", "-I=0", "(.meta.owner) | path"]

    def test_tool_error_is_a_failed_result(self, json_file: Path) -> None:
        bridge = _bridge(jq=True)
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/jq"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed(returncode=5, stderr="boom")),
        ):
            result = bridge.extract(DocumentFormat.JSON, json_file, ".a")
        assert result.success is False
        assert isinstance(result.error, ExternalToolFailed)

    def test_xmllint_count_then_shell(self, xml_file: Path) -> None:
        bridge = _bridge(xmllint=True)
        shell_output = "/ > library > /library/shelf[1]/book[1]\n/ > library > /library/shelf[2]/book\n/ > "
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/xmllint"),
            patch(
                "doc_shard.core.bridge.subprocess.run",
                side_effect=[_completed("2"), _completed(shell_output)],
            ) as mock_run,
        ):
            result = bridge.extract(DocumentFormat.XML, xml_file, "//shelf/book[1]")
        assert result.paths == ("/library/shelf[1]/book[1]", "/library/shelf[2]/book")
        count_call, shell_call = mock_run.call_args_list
        assert count_call[0][0][1:3] == ["--xpath", "count(//shelf/book[1])"]
        assert shell_call[1]["input"] == "cd (//shelf/book[1])[1]\npwd\ncd (//shelf/book[1])[2]\npwd\n"

    def test_xmllint_empty_node_set(self, xml_file: Path) -> None:
        bridge = _bridge(xmllint=True)
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/xmllint"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed("0")) as mock_run,
        ):
            result = bridge.extract(DocumentFormat.XML, xml_file, "/missing")
        assert result.success is True
        assert result.paths == ()
        assert mock_run.call_count == 1

    def test_xmllint_namespaced_path_is_unmappable(self, xml_file: Path) -> None:
        bridge = _bridge(xmllint=True)
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/usr/bin/xmllint"),
            patch(
                "doc_shard.core.bridge.subprocess.run",
                side_effect=[_completed("1"), _completed("/ > /*/*[1]\n")],
            ),
        ):
            result = bridge.extract(DocumentFormat.XML, xml_file, "//*[1]")
        assert result.success is False
        assert "no tree counterpart" in str(result.error)


class TestExtractLines:
    def test_uses_sed(self, json_file: Path) -> None:
        bridge = _bridge(sed=True)
        with (
            patch("doc_shard.core.bridge.shutil.which", return_value="/bin/sed"),
            patch("doc_shard.core.bridge.subprocess.run", return_value=_completed("a\nb\n")) as mock_run,
        ):
            result = bridge.extract_lines(json_file, 2, 3)
        assert result.success is True
        assert result.text == "a\nb\n"
        assert mock_run.call_args[0][0][1:3] == ["-n", "2,3p"]

    def test_without_sed(self, json_file: Path) -> None:
        result = _bridge(sed=False).extract_lines(json_file, 1, 2)
        assert result.success is False
        assert result.tool == "sed"


def test_decode_path_lines_rejects_garbage() -> None:
    with pytest.raises(ExternalToolFailed, match="unparsable"):
        _decode_path_lines("jq", '{"a": 1}\n', "src")
