from __future__ import annotations


class AgentError(Exception):
    """Base class for failures a tool reports back to the model as a result."""


class ToolValidationError(AgentError):
    """Arguments that parsed but cannot be acted on, such as a missing operand."""


class NotFoundError(AgentError):
    pass


class DirectoryNotFoundError(NotFoundError):
    def __init__(self, path: str):
        super().__init__(f"Directory not found: {path}")
        self.path = path


class FileNotFoundInWorkspaceError(NotFoundError):
    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path


class FileTooLargeError(AgentError):
    def __init__(self, path: str, limit: int):
        super().__init__(f"File is too large to read (limit {limit} bytes): {path}")
        self.path = path
        self.limit = limit


class PermissionDeniedError(AgentError):
    def __init__(self, message: str, reason: str | None = None):
        super().__init__(f"{message}: {reason}" if reason else message)
        self.reason = reason


class TurnInProgressError(RuntimeError):
    """Raised when a second turn is started on a conversation that is still busy."""


class ModelNotConfiguredError(RuntimeError):
    pass
