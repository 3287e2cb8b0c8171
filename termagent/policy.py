from __future__ import annotations

import json
import threading
from functools import cache
from os import PathLike
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from termagent.config import Config
from termagent.log import logger

DEFAULT_BLOCKED_COMMANDS = [
    "rm -rf /",
    "rm -rf .*",
    "dd ",
    "mkfs",
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    "format",
    "del /s /q",
    "remove-item -recurse -force",
    "stop-computer",
    "restart-computer",
]


def get_policy_store(config: Config) -> PolicyStore:
    return _get_policy_store(config.get_policy_path())


@cache
def _get_policy_store(path: PathLike) -> PolicyStore:
    return PolicyStore(path)


class PolicyDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str | None = Field(
        None, validation_alias=AliasChoices("XAI_API_KEY", "api_key"), serialization_alias="XAI_API_KEY"
    )
    pre_prompt: str | None = Field(None, validation_alias=AliasChoices("pre_prompt", "pre-prompt"))
    allowed_commands: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("allowed_commands", "allowed-commands")
    )
    blocked_commands: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCKED_COMMANDS),
        validation_alias=AliasChoices("blocked_commands", "blocked-commands"),
    )


def _matches_prefix(command: str, prefixes: list[str]) -> str | None:
    normalized = command.lstrip().lower()
    for prefix in prefixes:
        candidate = prefix.lstrip().lower()
        if candidate and normalized.startswith(candidate):
            return prefix
    return None


class PolicyStore:
    """The persisted credential, pre-prompt and allow/block command lists.

    Loaded once; every mutation rewrites the JSON file under the same lock
    used for lookups.
    """

    def __init__(self, path: str | PathLike) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._document = self._load()

    def _load(self) -> PolicyDocument:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info(f"Policy file {self.path} not found, creating defaults")
            return self._reset()

        if not raw.strip():
            logger.info(f"Policy file {self.path} is empty, creating defaults")
            return self._reset()

        try:
            document = PolicyDocument.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Policy file {self.path} is corrupt ({e}), creating defaults")
            return self._reset()

        logger.info(
            f"Loaded policy from {self.path}: {len(document.allowed_commands)} allowed, "
            f"{len(document.blocked_commands)} blocked"
        )
        return document

    def _reset(self) -> PolicyDocument:
        document = PolicyDocument()
        self._write(document)
        return document

    def _write(self, document: PolicyDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = document.model_dump(by_alias=True)
        self.path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @property
    def api_key(self) -> str | None:
        with self._lock:
            return self._document.api_key

    @property
    def pre_prompt(self) -> str | None:
        with self._lock:
            return self._document.pre_prompt

    @property
    def allowed_commands(self) -> list[str]:
        with self._lock:
            return list(self._document.allowed_commands)

    @property
    def blocked_commands(self) -> list[str]:
        with self._lock:
            return list(self._document.blocked_commands)

    def match_blocked(self, command: str) -> str | None:
        with self._lock:
            return _matches_prefix(command, self._document.blocked_commands)

    def match_allowed(self, command: str) -> str | None:
        with self._lock:
            return _matches_prefix(command, self._document.allowed_commands)

    def has_allow_list(self) -> bool:
        with self._lock:
            return bool(self._document.allowed_commands)

    def add_allowed(self, prefix: str) -> None:
        self._append("allowed_commands", prefix)

    def add_blocked(self, prefix: str) -> None:
        self._append("blocked_commands", prefix)

    def _append(self, field: str, prefix: str) -> None:
        prefix = prefix.lstrip()
        if not prefix.strip():
            return

        with self._lock:
            entries: list[str] = getattr(self._document, field)
            if any(entry.strip().lower() == prefix.strip().lower() for entry in entries):
                return
            entries.append(prefix)
            self._write(self._document)
        logger.info(f"Persisted {prefix!r} to {field}")
