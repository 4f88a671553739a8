import json
import logging
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from doc_shard.core.errors import (
    ExternalToolError,
    ExternalToolFailed,
    ExternalToolUnavailable,
    UnrecognizedFormat,
)
from doc_shard.core.formats import DocumentFormat, normalize_format
from doc_shard.core.helpers import path_from_steps
from doc_shard.core.settings import DEFAULT_TOOL_TIMEOUT, get_settings

logger = logging.getLogger(__name__)

PROBED_TOOLS = ("jq", "yq", "xmllint", "sed")

# Resolves negative indices against the document and drops paths that do not exist,
# so the result lines up with what the in-process selectors return.
_JQ_PATHS = (
    ". as $r | path({query}) | . as $p"
    " | reduce range(0; $p | length) as $i ([]; . as $q | . + [if ($p[$i] | type) == \"number\""
    " and $p[$i] < 0 then ($r | getpath($q) | length) + $p[$i] else $p[$i] end])"
    " | select(length == 0 or (. as $p | $r | try (getpath($p[:-1]) | has($p[-1])) catch false))"
)
_XMLLINT_PWD = re.compile(r"(/[^\s>]*)$")
_UNMAPPABLE_XML_STEP = re.compile(r"(^|/)(\*|text\(\)|comment\(\)|processing-instruction\(\))")
_XMLLINT_EMPTY_SET = 11


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    returncode: int


@dataclass(frozen=True)
class ToolCommand:
    """One external process invocation: binary, arguments, timeout and optional stdin."""

    binary: str
    args: tuple[str, ...] = ()
    timeout: float = DEFAULT_TOOL_TIMEOUT
    stdin: str | None = None
    accept_codes: tuple[int, ...] = (0,)

    def run(self) -> CommandResult:
        executable = shutil.which(self.binary)
        if executable is None:
            raise ExternalToolUnavailable(self.binary, "not found on PATH")
        logger.debug("Running %s %s", self.binary, " ".join(self.args))
        try:
            completed = subprocess.run(
                [executable, *self.args],
                check=False,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                input=self.stdin,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise ExternalToolFailed(self.binary, f"timed out after {self.timeout:g}s") from exc
        except OSError as exc:
            raise ExternalToolUnavailable(self.binary, str(exc)) from exc
        if completed.returncode not in self.accept_codes:
            stderr = completed.stderr.strip()
            raise ExternalToolFailed(
                self.binary,
                f"exited with status {completed.returncode}: {stderr or 'no output'}",
                returncode=completed.returncode,
                stderr=stderr,
            )
        return CommandResult(stdout=completed.stdout, stderr=completed.stderr, returncode=completed.returncode)


@dataclass(frozen=True)
class ToolAvailability:
    jq: bool = False
    yq: bool = False
    xmllint: bool = False
    sed: bool = False
    yq_flavor: str | None = None

    def available(self, tool: str) -> bool:
        return bool(getattr(self, tool, False))

    def as_dict(self) -> dict[str, bool | str | None]:
        return {
            "jq": self.jq,
            "yq": self.yq,
            "xmllint": self.xmllint,
            "sed": self.sed,
            "yq_flavor": self.yq_flavor,
        }


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of an accelerated call. Failures carry the typed error instead of raising."""

    success: bool
    tool: str | None
    paths: tuple[str, ...] = ()
    text: str | None = None
    error: ExternalToolError | None = field(default=None, compare=False)

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


class BashExecutorBridge:
    """Accelerated extraction through jq, yq, xmllint and sed.

    Every public call returns an :class:`ExtractionResult`; tool errors never
    escape, so callers can fall back to in-process parsing.
    """

    def __init__(self, timeout: float = DEFAULT_TOOL_TIMEOUT) -> None:
        self.timeout = timeout
        self._availability: ToolAvailability | None = None

    def probe(self) -> ToolAvailability:
        if self._availability is None:
            found = {tool: shutil.which(tool) is not None for tool in PROBED_TOOLS}
            flavor = self._yq_flavor() if found["yq"] else None
            self._availability = ToolAvailability(yq_flavor=flavor, **found)
            logger.debug("Probed external tools: %s", self._availability)
        return self._availability

    def reset(self) -> None:
        self._availability = None

    def extract(self, fmt: DocumentFormat | str, source_path: str | Path, query: str) -> ExtractionResult:
        tool = None
        try:
            resolved = fmt if isinstance(fmt, DocumentFormat) else normalize_format(fmt)
            tool = resolved.tool if resolved is not None else None
            if resolved is None or tool is None:
                raise ExternalToolUnavailable(str(fmt), "no external tool for this format", str(source_path))
            self._require(tool, source_path)
            if resolved is DocumentFormat.XML:
                paths = self._xml_paths(Path(source_path), query)
            elif tool == "yq" and self.probe().yq_flavor == "go":
                paths = self._go_yq_paths(Path(source_path), query)
            else:
                paths = self._jq_paths(tool, Path(source_path), query)
        except UnrecognizedFormat as exc:
            return ExtractionResult(success=False, tool=None, error=ExternalToolUnavailable(str(fmt), str(exc)))
        except ExternalToolError as exc:
            logger.info("Accelerated extraction unavailable for %s: %s", source_path, exc)
            return ExtractionResult(success=False, tool=tool, error=exc)
        return ExtractionResult(success=True, tool=tool, paths=tuple(paths))

    def extract_lines(self, source_path: str | Path, start: int, end: int) -> ExtractionResult:
        """Print lines ``start``..``end`` (1-based, inclusive) with sed."""
        try:
            self._require("sed", source_path)
            result = self._command("sed", "-n", f"{start},{end}p", str(source_path)).run()
        except ExternalToolError as exc:
            logger.info("sed line extraction unavailable for %s: %s", source_path, exc)
            return ExtractionResult(success=False, tool="sed", error=exc)
        return ExtractionResult(success=True, tool="sed", text=result.stdout)

    def _require(self, tool: str, source_path: str | Path) -> None:
        if not self.probe().available(tool):
            raise ExternalToolUnavailable(tool, "not found on PATH", str(source_path))

    def _command(self, binary: str, *args: str, stdin: str | None = None, accept_codes: tuple[int, ...] = (0,)) -> ToolCommand:
        return ToolCommand(binary, tuple(args), timeout=self.timeout, stdin=stdin, accept_codes=accept_codes)

    def _yq_flavor(self) -> str:
        try:
            version = self._command("yq", "--version").run()
        except ExternalToolError:
            return "python"
        output = version.stdout + version.stderr
        return "go" if "mikefarah" in output else "python"

    def _jq_paths(self, tool: str, source: Path, query: str) -> list[str]:
        result = self._command(tool, "-c", _JQ_PATHS.format(query=query), str(source)).run()
        return _decode_path_lines(tool, result.stdout, str(source))

    def _go_yq_paths(self, source: Path, query: str) -> list[str]:
        result = self._command("yq", "-o=json", "-I=0", f"({query}) | path", str(source)).run()
        return _decode_path_lines("yq", result.stdout, str(source))

    def _xml_paths(self, source: Path, query: str) -> list[str]:
        counted = self._command(
            "xmllint", "--xpath", f"count({query})", str(source), accept_codes=(0, _XMLLINT_EMPTY_SET)
        ).run()
        try:
            total = int(float(counted.stdout.strip()))
        except ValueError:
            raise ExternalToolFailed("xmllint", f"unexpected count output {counted.stdout.strip()!r}", str(source)) from None
        if total == 0:
            return []

        script = "".join(f"cd ({query})[{position}]\npwd\n" for position in range(1, total + 1))
        shell = self._command("xmllint", "--shell", str(source), stdin=script).run()
        paths = []
        for line in shell.stdout.splitlines():
            match = _XMLLINT_PWD.search(line.rstrip())
            if match:
                paths.append(match.group(1))
        if len(paths) != total:
            raise ExternalToolFailed("xmllint", f"expected {total} node paths, got {len(paths)}", str(source))
        unmappable = [path for path in paths if _UNMAPPABLE_XML_STEP.search(path)]
        if unmappable:
            raise ExternalToolFailed("xmllint", f"node path {unmappable[0]!r} has no tree counterpart", str(source))
        return paths


def _decode_path_lines(tool: str, stdout: str, source: str) -> list[str]:
    paths = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        try:
            steps = json.loads(line)
            if not isinstance(steps, list):
                raise TypeError(f"expected a path array, got {type(steps).__name__}")
            paths.append(path_from_steps(steps))
        except (ValueError, TypeError) as exc:
            raise ExternalToolFailed(tool, f"unparsable path output {line!r}: {exc}", source) from exc
    return paths


_default_bridge: BashExecutorBridge | None = None


def get_bridge() -> BashExecutorBridge:
    """Process-wide bridge so tool probing happens once."""
    global _default_bridge
    if _default_bridge is None:
        _default_bridge = BashExecutorBridge(timeout=get_settings().tool_timeout)
    return _default_bridge


def extract_accelerated(fmt: DocumentFormat | str, source_path: str | Path, query: str) -> ExtractionResult:
    return get_bridge().extract(fmt, source_path, query)
