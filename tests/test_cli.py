import asyncio
import os

import pytest
from click.testing import CliRunner
from conftest import ScriptedChatModel, text, tool_call

from termagent import cli as cli_module
from termagent.cli import ConsoleApprovalChannel, ConsoleInput, _repl, cli
from termagent.llms.agent import ConversationEngine
from termagent.llms.session import ChatSession
from termagent.permissions import ApprovalRequest, PermissionDecision


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("XAI_API_KEY", raising=False)
    monkeypatch.delenv("TERMAGENT_API_KEY", raising=False)
    monkeypatch.setenv("TERMAGENT_POLICY_FILE_PATH", str(tmp_path / "termagent.config.json"))
    monkeypatch.setenv("TERMAGENT_LOG_FILE", str(tmp_path / "logs" / "termagent.log"))
    return tmp_path


def test_run_without_api_key(env):
    result = CliRunner().invoke(cli, ["run", "hello"])

    assert result.exit_code == 1
    assert "No API key configured" in result.output


def test_run_single_prompt(env, monkeypatch):
    model = ScriptedChatModel(
        [
            [tool_call(0, "run_command", '{"command": "rm -rf /"}')],
            [text("Refused to do that.")],
        ]
    )
    monkeypatch.setattr(cli_module, "init_model", lambda config, model_name=None, api_key=None: model)

    result = CliRunner().invoke(cli, ["run", "clean up"])

    assert result.exit_code == 0, result.output
    assert "run_command" in result.output
    assert "blocked prefix" in result.output
    assert "Refused to do that." in result.output
    assert (env / "termagent.config.json").exists()


@pytest.fixture
def console():
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "r")
    writer = os.fdopen(write_fd, "w")
    console = ConsoleInput(reader)
    yield console, writer
    if not writer.closed:
        writer.close()
    if console._thread is not None:
        console._thread.join(timeout=5)
    reader.close()


def _type(writer, text):
    writer.write(text)
    writer.flush()


APPROVAL = ApprovalRequest(tool_name="run_command", command="make deploy", working_directory="/tmp")


async def test_cancelled_approval_leaves_next_line_to_repl(console):
    console, writer = console
    channel = ConsoleApprovalChannel(console)

    pending = asyncio.create_task(channel.request(APPROVAL))
    await asyncio.sleep(0.05)
    pending.cancel()
    with pytest.raises(asyncio.CancelledError):
        await pending

    _type(writer, "o\nlist the files\n")

    assert await asyncio.wait_for(console.readline("> "), 5) == "o"
    assert await asyncio.wait_for(console.readline("> "), 5) == "list the files"


async def test_approval_choices(console):
    console, writer = console
    channel = ConsoleApprovalChannel(console)

    _type(writer, "maybe\nA\n")
    always = await asyncio.wait_for(channel.request(APPROVAL), 5)
    _type(writer, "d\nnot today\n")
    denied = await asyncio.wait_for(channel.request(APPROVAL), 5)
    _type(writer, "\n\n")
    default = await asyncio.wait_for(channel.request(APPROVAL), 5)

    assert always.decision is PermissionDecision.ALLOW_ALWAYS
    assert (denied.decision, denied.reason) == (PermissionDecision.DENY, "not today")
    assert (default.decision, default.reason) == (PermissionDecision.DENY, None)


async def test_approval_at_end_of_input_denies(console):
    console, writer = console
    channel = ConsoleApprovalChannel(console)
    writer.close()

    response = await asyncio.wait_for(channel.request(APPROVAL), 5)

    assert response.decision is PermissionDecision.DENY
    assert response.reason == "No input available"
    with pytest.raises(EOFError):
        await console.readline("> ")


async def test_repl_reads_from_console(console, registry):
    console, writer = console
    model = ScriptedChatModel([[text("hi there")]])
    session = ChatSession(ConversationEngine(model, registry))

    _type(writer, "\nhello\n/clear\n/exit\nignored\n")
    await asyncio.wait_for(_repl(session, console), 5)

    assert len(model.calls) == 1
    assert session.conversation == []
    assert await asyncio.wait_for(console.readline("> "), 5) == "ignored"
