from __future__ import annotations

import enum
import json

from pydantic import BaseModel, Field

from termagent.tools import Tool, ToolExecutionResult

COMPLETION_TOOL_NAME = "workflow_done"


class PlanStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class PlanItem(BaseModel):
    title: str = Field(description="Task title")
    status: PlanStatus = Field(PlanStatus.PENDING, description="Task status: pending|in_progress|done")


class SetPlanTool(Tool):
    name = "set_plan"
    description = "Updates the current execution plan shown to the user."

    class Arguments(BaseModel):
        title: str | None = Field(None, description="Headline for the plan block")
        items: list[PlanItem] = Field(description="Plan steps in order")

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        return ToolExecutionResult.ok("plan updated")


class ShareReasoningTool(Tool):
    name = "share_reasoning"
    description = "Shares private reasoning or chain-of-thought content without exposing it in the main reply."

    class Arguments(BaseModel):
        text: str = Field(description="Reasoning text to display in the thinking block")

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        return ToolExecutionResult.ok(arguments.text)


class WorkflowDoneTool(Tool):
    name = COMPLETION_TOOL_NAME
    description = "Signals that the assistant has finished."

    class Arguments(BaseModel):
        pass

    async def run(self, arguments: Arguments) -> ToolExecutionResult:
        return ToolExecutionResult.ok(json.dumps({"status": "done"}))
