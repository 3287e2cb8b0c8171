from __future__ import annotations

import json
import re
import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from termagent.errors import DirectoryNotFoundError
from termagent.log import logger
from termagent.services.commands import quote_posix, quote_powershell
from termagent.services.platform import PlatformService
from termagent.services.shell import ShellExecutor, ShellResult
from termagent.services.working_directory import WorkingDirectoryService


class SearchOptions(BaseModel):
    pattern: str
    search_path: str = "."
    file_type: str | None = None
    case_sensitive: bool = False
    context_lines: int = Field(0, ge=0)
    max_results: int = Field(100, ge=1)
    is_regex: bool = False
    timeout_seconds: int = Field(30, ge=1)


class SearchMatch(BaseModel):
    file_path: str
    line_number: int
    line_content: str
    context_before: list[str] = Field(default_factory=list)
    context_after: list[str] = Field(default_factory=list)


class SearchResult(BaseModel):
    success: bool
    matches: list[SearchMatch] = Field(default_factory=list)
    total_matches: int = 0
    backend_command: str = ""
    backend: str = ""
    error: str | None = None


class _MatchCollector:
    """Attach surrounding lines to the matches they fall near.

    Every line seen, match or context, counts as ``context_after`` for the
    earlier matches of the same file within ``context_lines``, and is kept as
    a candidate ``context_before`` for the next match.
    """

    def __init__(self, context_lines: int) -> None:
        self.context_lines = context_lines
        self.matches: list[SearchMatch] = []
        self._pending: list[tuple[str, int, str]] = []

    def add_match(self, file_path: str, line_number: int, content: str) -> None:
        before = [
            text
            for path, number, text in self._pending
            if path == file_path and line_number - self.context_lines <= number < line_number
        ]
        self._follow(file_path, line_number, content)
        self.matches.append(
            SearchMatch(
                file_path=file_path,
                line_number=line_number,
                line_content=content,
                context_before=before,
            )
        )
        self._remember(file_path, line_number, content)

    def add_context(self, file_path: str, line_number: int, content: str) -> None:
        self._follow(file_path, line_number, content)
        self._remember(file_path, line_number, content)

    def reset(self) -> None:
        self._pending.clear()

    def _follow(self, file_path: str, line_number: int, content: str) -> None:
        for match in reversed(self.matches):
            if match.file_path != file_path or line_number - match.line_number > self.context_lines:
                break
            if line_number > match.line_number:
                match.context_after.append(content)

    def _remember(self, file_path: str, line_number: int, content: str) -> None:
        self._pending.append((file_path, line_number, content))
        if len(self._pending) > max(self.context_lines, 0):
            self._pending.pop(0)


class SearchBackend(ABC):
    """One way of running a content search and reading its output back."""

    name: str

    @abstractmethod
    def build_command(self, options: SearchOptions, search_path: str) -> str: ...

    @abstractmethod
    def is_success(self, result: ShellResult) -> bool: ...

    @abstractmethod
    def parse(self, output: str, options: SearchOptions) -> list[SearchMatch]: ...


class RipgrepBackend(SearchBackend):
    name = "ripgrep"

    def build_command(self, options: SearchOptions, search_path: str) -> str:
        args = ["rg", "--json", "-n"]
        if not options.is_regex:
            args.append("-F")
        if not options.case_sensitive:
            args.append("-i")
        if options.context_lines > 0:
            args.append(f"-C {options.context_lines}")
        args.append(f"-m {options.max_results}")
        if options.file_type:
            args.append(f"--glob {quote_posix('*.' + options.file_type.lstrip('.'))}")
        args.append(f"-e {quote_posix(options.pattern)}")
        args.append(quote_posix(search_path))
        return " ".join(args)

    def is_success(self, result: ShellResult) -> bool:
        # 1 means "no matches" for rg.
        return result.exit_code in (0, 1)

    def parse(self, output: str, options: SearchOptions) -> list[SearchMatch]:
        collector = _MatchCollector(options.context_lines)
        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                record = json.loads(line)
                kind = record["type"]
                if kind not in ("match", "context"):
                    if kind == "begin":
                        collector.reset()
                    continue
                data = record["data"]
                file_path = data["path"]["text"]
                line_number = int(data["line_number"])
                content = data["lines"]["text"].rstrip("\r\n")
            except (ValueError, KeyError, TypeError):
                logger.debug(f"Skipping malformed ripgrep record: {line!r}")
                continue

            if kind == "match":
                collector.add_match(file_path, line_number, content)
            else:
                collector.add_context(file_path, line_number, content)
        return collector.matches


_GREP_LINE = re.compile(r"^(\d+)([:-])(.*)$", re.DOTALL)


class GrepBackend(SearchBackend):
    name = "grep"

    def build_command(self, options: SearchOptions, search_path: str) -> str:
        args = ["grep", "-r", "-n", "--null"]
        if not options.case_sensitive:
            args.append("-i")
        if options.context_lines > 0:
            args.append(f"-C {options.context_lines}")
        args.append(f"-m {options.max_results}")
        if not options.is_regex:
            args.append("-F")
        else:
            args.append("-E")
        if options.file_type:
            args.append(f"--include={quote_posix('*.' + options.file_type.lstrip('.'))}")
        args.append(f"-e {quote_posix(options.pattern)}")
        args.append(quote_posix(search_path))
        return " ".join(args)

    def is_success(self, result: ShellResult) -> bool:
        # grep exits 1 when nothing matched, 2 on errors.
        return result.exit_code in (0, 1)

    def parse(self, output: str, options: SearchOptions) -> list[SearchMatch]:
        collector = _MatchCollector(options.context_lines)
        for line in output.split("\n"):
            line = line.rstrip("\r")
            if line == "--":
                collector.reset()
                continue
            if "\0" not in line:
                continue
            file_path, rest = line.split("\0", 1)
            parsed = _GREP_LINE.match(rest)
            if not file_path or not parsed:
                logger.debug(f"Skipping malformed grep line: {line!r}")
                continue

            line_number, separator, content = int(parsed.group(1)), parsed.group(2), parsed.group(3)
            if separator == ":":
                collector.add_match(file_path, line_number, content)
            else:
                collector.add_context(file_path, line_number, content)
        return collector.matches


class _PowerShellContext(BaseModel):
    pre_context: list[str] | None = Field(None, alias="PreContext")
    post_context: list[str] | None = Field(None, alias="PostContext")


class _PowerShellMatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(alias="Path")
    line_number: int = Field(alias="LineNumber")
    line: str = Field(alias="Line")
    context: _PowerShellContext | None = Field(None, alias="Context")


class PowerShellBackend(SearchBackend):
    name = "powershell"

    def build_command(self, options: SearchOptions, search_path: str) -> str:
        parts = [f"Get-ChildItem -Path {quote_powershell(search_path)} -Recurse -File"]
        if options.file_type:
            parts[0] += f" -Filter {quote_powershell('*.' + options.file_type.lstrip('.'))}"

        select = f"Select-String -Pattern {quote_powershell(options.pattern)}"
        if not options.is_regex:
            select += " -SimpleMatch"
        if options.case_sensitive:
            select += " -CaseSensitive"
        if options.context_lines > 0:
            select += f" -Context {options.context_lines},{options.context_lines}"
        parts.append(select)
        parts.append(f"Select-Object -First {options.max_results}")
        parts.append("Select-Object Path, LineNumber, Line, Context")
        parts.append("ConvertTo-Json -Depth 3")
        return " | ".join(parts)

    def is_success(self, result: ShellResult) -> bool:
        return result.exit_code == 0

    def parse(self, output: str, options: SearchOptions) -> list[SearchMatch]:
        if not output.strip():
            return []
        try:
            document = json.loads(output)
        except ValueError:
            logger.debug("PowerShell search output is not JSON")
            return []

        items = document if isinstance(document, list) else [document]
        matches = []
        for item in items:
            try:
                parsed = _PowerShellMatch.model_validate(item)
            except ValidationError:
                logger.debug(f"Skipping malformed PowerShell item: {item!r}")
                continue

            context = parsed.context or _PowerShellContext()
            matches.append(
                SearchMatch(
                    file_path=parsed.path,
                    line_number=parsed.line_number,
                    line_content=parsed.line,
                    context_before=context.pre_context or [],
                    context_after=context.post_context or [],
                )
            )
        return matches


def select_backend(
    platform: PlatformService,
    which: Callable[[str], str | None] = shutil.which,
) -> SearchBackend:
    if platform.is_windows:
        return PowerShellBackend()
    if which("rg"):
        return RipgrepBackend()
    return GrepBackend()


class SearchEngine:
    def __init__(
        self,
        platform: PlatformService,
        shell: ShellExecutor,
        working_directory: WorkingDirectoryService,
        backend: SearchBackend | None = None,
    ) -> None:
        self.platform = platform
        self.shell = shell
        self.working_directory = working_directory
        self.backend = backend or select_backend(platform)
        logger.debug(f"Search backend: {self.backend.name}")

    async def search(self, options: SearchOptions) -> SearchResult:
        search_path = self.working_directory.resolve(options.search_path)
        if not self.working_directory.exists(search_path):
            return SearchResult(
                success=False,
                backend=self.backend.name,
                error=str(DirectoryNotFoundError(search_path)),
            )

        command = self.backend.build_command(options, search_path)
        result = await self.shell.execute(command, search_path, options.timeout_seconds)
        if not self.backend.is_success(result):
            logger.info(f"Search failed with exit code {result.exit_code}: {command}")
            return SearchResult(
                success=False,
                backend_command=command,
                backend=self.backend.name,
                error=result.stderr.strip() or "Search failed",
            )

        matches = self.backend.parse(result.stdout, options)
        return SearchResult(
            success=True,
            matches=matches[: options.max_results],
            total_matches=len(matches),
            backend_command=command,
            backend=self.backend.name,
        )
