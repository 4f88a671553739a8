"""Error taxonomy shared by the parsers, index manager, bridge and sharder."""


class DocShardError(Exception):
    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(f"{source}: {message}" if source else message)


class UnrecognizedFormat(DocShardError, ValueError):
    pass


class ParseError(DocShardError):
    """Malformed input. Parsing is all-or-nothing, so no tree accompanies it."""

    def __init__(self, source: str, offset: int, reason: str, line: int | None = None) -> None:
        self.offset = offset
        self.line = line
        self.reason = reason
        location = f"line {line}, byte {offset}" if line is not None else f"byte {offset}"
        super().__init__(f"{reason} ({location})", source)


class CorruptIndex(DocShardError):
    pass


class StaleIndex(DocShardError):
    def __init__(self, source: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"index is stale: {reason}", source)


class ExternalToolError(DocShardError):
    def __init__(self, tool: str, message: str, source: str | None = None) -> None:
        self.tool = tool
        super().__init__(f"{tool}: {message}", source)


class ExternalToolUnavailable(ExternalToolError):
    pass


class ExternalToolFailed(ExternalToolError):
    def __init__(
        self,
        tool: str,
        message: str,
        source: str | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(tool, message, source)


class ShardPolicyViolation(DocShardError):
    pass


class QueryError(DocShardError, ValueError):
    pass
