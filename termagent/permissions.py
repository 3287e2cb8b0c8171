from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Iterable

from pydantic import BaseModel

from termagent.log import logger
from termagent.policy import PolicyStore


class PermissionDecision(str, enum.Enum):
    ALLOW_ONCE = "allow_once"
    ALLOW_ALWAYS = "allow_always"
    DENY = "deny"
    NEVER = "never"


class ApprovalRequest(BaseModel):
    tool_name: str
    command: str
    working_directory: str | None = None


class ApprovalResponse(BaseModel):
    decision: PermissionDecision
    reason: str | None = None
    # Prefix persisted for ALLOW_ALWAYS / NEVER; the whole command when unset.
    prefix: str | None = None


class PermissionOutcome(BaseModel):
    allowed: bool
    decision: PermissionDecision
    reason: str | None = None


class ApprovalChannel(ABC):
    @abstractmethod
    async def request(self, request: ApprovalRequest) -> ApprovalResponse:
        pass


class DenyAllApprovalChannel(ApprovalChannel):
    async def request(self, request: ApprovalRequest) -> ApprovalResponse:
        return ApprovalResponse(decision=PermissionDecision.DENY, reason="Approval is not available")


class ScriptedApprovalChannel(ApprovalChannel):
    """Answers approval requests from a fixed queue, recording what was asked."""

    def __init__(self, responses: Iterable[ApprovalResponse | PermissionDecision] = ()) -> None:
        self.responses: deque[ApprovalResponse] = deque(
            r if isinstance(r, ApprovalResponse) else ApprovalResponse(decision=r) for r in responses
        )
        self.requests: list[ApprovalRequest] = []

    async def request(self, request: ApprovalRequest) -> ApprovalResponse:
        self.requests.append(request)
        if not self.responses:
            return ApprovalResponse(decision=PermissionDecision.DENY, reason="No scripted response")
        return self.responses.popleft()


class PermissionGate:
    def __init__(self, policy: PolicyStore, channel: ApprovalChannel) -> None:
        self.policy = policy
        self.channel = channel

    async def check(
        self, command: str, tool_name: str = "run_command", working_directory: str | None = None
    ) -> PermissionOutcome:
        blocked = self.policy.match_blocked(command)
        if blocked is not None:
            logger.info(f"Blocked {command!r} by prefix {blocked!r}")
            return PermissionOutcome(
                allowed=False,
                decision=PermissionDecision.NEVER,
                reason=f"Command matches blocked prefix '{blocked}'",
            )

        if not self.policy.has_allow_list():
            return PermissionOutcome(allowed=True, decision=PermissionDecision.ALLOW_ONCE)

        if self.policy.match_allowed(command) is not None:
            return PermissionOutcome(allowed=True, decision=PermissionDecision.ALLOW_ONCE)

        # The channel may wait on a human, so no policy lock is held here.
        response = await self.channel.request(
            ApprovalRequest(tool_name=tool_name, command=command, working_directory=working_directory)
        )
        prefix = response.prefix or command.strip()
        logger.info(f"Approval for {command!r}: {response.decision.value}")

        if response.decision is PermissionDecision.ALLOW_ALWAYS:
            self.policy.add_allowed(prefix)
            return PermissionOutcome(allowed=True, decision=response.decision)
        if response.decision is PermissionDecision.ALLOW_ONCE:
            return PermissionOutcome(allowed=True, decision=response.decision)
        if response.decision is PermissionDecision.NEVER:
            self.policy.add_blocked(prefix)
        return PermissionOutcome(allowed=False, decision=response.decision, reason=response.reason)
