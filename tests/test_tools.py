import json
import sys
from pathlib import Path

import pytest

from termagent.errors import ToolValidationError

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell semantics")


class _SpawnSpy:
    def __init__(self, shell):
        self.shell = shell
        self.spawned = []

    def install(self, monkeypatch):
        original = self.shell._spawn

        async def spawn(argv, working_directory):
            self.spawned.append(list(argv))
            return await original(argv, working_directory)

        monkeypatch.setattr(self.shell, "_spawn", spawn)


async def test_blocked_command_never_spawns(registry, shell, monkeypatch):
    spy = _SpawnSpy(shell)
    spy.install(monkeypatch)

    result = await registry.execute("run_command", json.dumps({"command": "rm -rf /"}))

    assert not result.success
    assert "blocked" in result.error
    assert spy.spawned == []


async def test_blocked_command_reported_before_missing_directory(registry, shell, monkeypatch):
    spy = _SpawnSpy(shell)
    spy.install(monkeypatch)

    result = await registry.execute("run_command", json.dumps({"command": "rm -rf /", "working_directory": "gone"}))

    assert not result.success
    assert "blocked prefix" in result.error
    assert "Directory not found" not in result.error
    assert spy.spawned == []


@posix_only
async def test_run_command_succeeds(registry):
    result = await registry.execute("run_command", json.dumps({"command": "echo hello", "timeout_seconds": 1}))

    assert result.success
    assert result.exit_code == 0
    assert "hello" in result.output
    payload = result.to_payload()
    assert payload == {"success": True, "stdout": result.output, "stderr": "", "exitCode": 0}


@posix_only
async def test_run_command_in_subdirectory(registry, workspace):
    (workspace / "sub").mkdir()

    result = await registry.execute("run_command", json.dumps({"command": "ls", "working_directory": "sub"}))
    missing = await registry.execute("run_command", json.dumps({"command": "ls", "working_directory": "nope"}))

    assert result.success
    assert not missing.success
    assert "Directory not found" in missing.error


@posix_only
async def test_run_command_failure_keeps_output(registry):
    result = await registry.execute("run_command", json.dumps({"command": "echo partial; echo broken 1>&2; exit 4"}))

    assert not result.success
    assert result.exit_code == 4
    assert result.error == "broken"
    assert "partial" in result.output


async def test_run_command_validation_errors(registry):
    empty = await registry.execute("run_command", json.dumps({"command": "   "}))
    missing = await registry.execute("run_command", "{}")
    broken = await registry.execute("run_command", '{"command": ')

    assert not empty.success
    assert empty.error == "Command cannot be empty"
    assert not missing.success
    assert "command" in missing.error
    assert not broken.success
    assert "Invalid arguments" in broken.error


async def test_denied_command_reports_reason(registry, policy_store, approval_channel):
    policy_store.add_allowed("git ")

    result = await registry.execute("run_command", json.dumps({"command": "make deploy"}))

    assert not result.success
    assert result.error.startswith("Command not permitted")
    assert approval_channel.requests[0].command == "make deploy"


async def test_code_execution(registry):
    result = await registry.execute("code_execution", json.dumps({"code": "print(6 * 7)"}))

    assert result.success
    assert result.output.strip() == "42"


async def test_code_execution_error(registry):
    result = await registry.execute("code_execution", json.dumps({"code": "raise SystemExit(3)"}))

    assert not result.success
    assert result.exit_code == 3


@posix_only
async def test_file_operation(registry, workspace):
    (workspace / "a.txt").write_text("payload")

    read = await registry.execute("file_operation", json.dumps({"operation": "read", "path": "a.txt"}))
    copied = await registry.execute(
        "file_operation", json.dumps({"operation": "copy", "path": "a.txt", "destination": "b.txt"})
    )
    invalid = await registry.execute("file_operation", json.dumps({"operation": "move", "path": "a.txt"}))

    assert read.success
    assert read.output == "payload"
    assert copied.success
    assert (workspace / "b.txt").read_text() == "payload"
    assert not invalid.success
    assert "destination" in invalid.error


async def test_read_local_file(registry, workspace):
    (workspace / "notes.txt").write_text("remember")

    result = await registry.execute("read_local_file", json.dumps({"path": "notes.txt"}))
    escape = await registry.execute("read_local_file", json.dumps({"path": "../outside.txt"}))
    missing = await registry.execute("read_local_file", json.dumps({"path": "nope.txt"}))

    assert result.success
    assert result.output == "remember"
    assert not escape.success
    assert escape.error == "Path must stay inside the working directory"
    assert not missing.success
    assert missing.error.startswith("File not found")


async def test_read_local_file_size_limit(registry, workspace):
    (workspace / "big.txt").write_bytes(b"x" * 200_001)

    result = await registry.execute("read_local_file", json.dumps({"path": "big.txt"}))

    assert not result.success
    assert "too large" in result.error


async def test_change_directory(registry, working_directory, workspace):
    (workspace / "sub").mkdir()

    moved = await registry.execute("change_directory", json.dumps({"path": "sub"}))

    assert moved.success
    assert working_directory.get() == str(workspace / "sub")


async def test_change_directory_missing(registry, working_directory):
    before = working_directory.get()

    result = await registry.execute("change_directory", json.dumps({"path": "does/not/exist"}))

    assert not result.success
    assert "not found" in result.error
    assert working_directory.get() == before


async def test_edit_file_replace_with_backup(registry, workspace):
    target = workspace / "a.txt"
    target.write_text("foo foo")

    result = await registry.execute(
        "edit_file",
        json.dumps(
            {
                "file_path": "a.txt",
                "operation": "replace",
                "search_text": "foo",
                "replacement_text": "bar",
                "create_backup": True,
            }
        ),
    )

    assert result.success
    summary = json.loads(result.output)
    assert summary["lines_modified"] == 2
    assert Path(summary["backup_path"]).read_text() == "foo foo"
    assert target.read_text() == "bar bar"


async def test_edit_file_argument_checks(registry, workspace):
    (workspace / "a.txt").write_text("1\n2\n3\n")

    missing = await registry.execute("edit_file", json.dumps({"file_path": "a.txt", "operation": "insert"}))
    bad_op = await registry.execute("edit_file", json.dumps({"file_path": "a.txt", "operation": "explode"}))
    deleted = await registry.execute(
        "edit_file", json.dumps({"file_path": "a.txt", "operation": "delete", "start_line": 2, "create_backup": False})
    )

    assert not missing.success
    assert "line_number" in missing.error
    assert not bad_op.success
    assert deleted.success
    assert (workspace / "a.txt").read_text() == "1\n3\n"


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX search backends")
async def test_search_tool(registry, workspace):
    (workspace / "code.py").write_text("def needle():\n    pass\n")

    result = await registry.execute("search", json.dumps({"pattern": "needle", "file_type": "py"}))

    assert result.success
    payload = json.loads(result.output)
    assert payload["total_matches"] == 1
    assert payload["matches"][0]["line_number"] == 1


async def test_workflow_tools(registry):
    plan = await registry.execute(
        "set_plan", json.dumps({"title": "Fix", "items": [{"title": "read"}, {"title": "edit", "status": "done"}]})
    )
    reasoning = await registry.execute("share_reasoning", json.dumps({"text": "thinking"}))
    done = await registry.execute("workflow_done", "")

    assert plan.success
    assert reasoning.output == "thinking"
    assert json.loads(done.output) == {"status": "done"}


async def test_unexpected_tool_error_becomes_result(registry, monkeypatch):
    tool = registry.tools["share_reasoning"]

    async def explode(arguments):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(tool, "run", explode)

    result = await registry.execute("share_reasoning", json.dumps({"text": "x"}))

    assert not result.success
    assert "kaboom" in result.error


async def test_edit_file_missing_operand_raises_validation_error(registry):
    tool = registry.tools["edit_file"]
    arguments = tool.Arguments(file_path="a.txt", operation="append")

    with pytest.raises(ToolValidationError, match="'append' requires 'content'"):
        await tool.run(arguments)

    result = await tool.execute(arguments.model_dump_json())
    assert not result.success
    assert result.error == "'append' requires 'content'"


async def test_file_operation_missing_operand_raises_validation_error(registry):
    tool = registry.tools["file_operation"]

    with pytest.raises(ToolValidationError, match="destination"):
        await tool.run(tool.Arguments(operation="copy", path="a.txt"))
