from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError
from pydantic_ai.tools import ToolDefinition

from termagent.errors import AgentError
from termagent.log import logger


class ToolExecutionResult(BaseModel):
    success: bool
    output: str = ""
    error: str = ""
    exit_code: int = 0

    @classmethod
    def ok(cls, output: str = "", error: str = "", exit_code: int = 0) -> ToolExecutionResult:
        return cls(success=True, output=output, error=error, exit_code=exit_code)

    @classmethod
    def fail(cls, error: str, output: str = "", exit_code: int = 1) -> ToolExecutionResult:
        return cls(success=False, output=output, error=error, exit_code=exit_code)

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "stdout": self.output,
            "stderr": self.error,
            "exitCode": self.exit_code,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), ensure_ascii=False)


class Tool(ABC):
    """A named local capability the model can call with JSON arguments.

    Subclasses declare ``Arguments`` as a pydantic model; its JSON schema is
    what the model sees, and ``run`` receives the validated instance.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    Arguments: ClassVar[type[BaseModel]]

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters_json_schema=self.Arguments.model_json_schema(),
        )

    async def execute(self, arguments_json: str | None) -> ToolExecutionResult:
        try:
            arguments = self.Arguments.model_validate_json(arguments_json or "{}")
        except ValidationError as e:
            return ToolExecutionResult.fail(f"Invalid arguments for {self.name}: {_describe(e)}")

        try:
            return await self.run(arguments)
        except AgentError as e:
            logger.info(f"Tool {self.name} failed: {e}")
            return ToolExecutionResult.fail(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in tool {self.name}: {e}")
            return ToolExecutionResult.fail(f"Error executing {self.name}: {e}")

    @abstractmethod
    async def run(self, arguments: Any) -> ToolExecutionResult:
        pass


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)
