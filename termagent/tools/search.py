from __future__ import annotations

from pydantic import BaseModel, Field

from termagent.services.search import SearchEngine, SearchOptions
from termagent.tools import Tool, ToolExecutionResult


class SearchTool(Tool):
    name = "search"
    description = (
        "Search for text patterns in files. Supports regex, file type filters, and context lines. "
        "Uses ripgrep or grep on Linux/macOS and PowerShell on Windows."
    )

    class Arguments(BaseModel):
        pattern: str = Field(description="The text or regex pattern to search for")
        path: str = Field(".", description="Directory to search in (default: current directory)")
        file_type: str | None = Field(None, description="Filter by file extension (e.g., 'py', 'txt', 'json')")
        case_sensitive: bool = Field(False, description="Whether the search should be case-sensitive (default: false)")
        context_lines: int = Field(
            0, ge=0, description="Number of context lines to show before and after match (default: 0)"
        )
        max_results: int = Field(100, ge=1, description="Maximum number of results to return (default: 100)")
        regex: bool = Field(False, description="Treat pattern as regex (default: false, literal search)")

    def __init__(self, engine: SearchEngine, timeout_seconds: int = 30) -> None:
        self.engine = engine
        self.timeout_seconds = timeout_seconds

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        if not arguments.pattern:
            return ToolExecutionResult.fail("Pattern cannot be empty")

        result = await self.engine.search(
            SearchOptions(
                pattern=arguments.pattern,
                search_path=arguments.path,
                file_type=arguments.file_type,
                case_sensitive=arguments.case_sensitive,
                context_lines=arguments.context_lines,
                max_results=arguments.max_results,
                is_regex=arguments.regex,
                timeout_seconds=self.timeout_seconds,
            )
        )
        if not result.success:
            return ToolExecutionResult.fail(result.error or "Search failed")

        return ToolExecutionResult.ok(result.model_dump_json(exclude={"success", "error"}))
