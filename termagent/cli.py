from __future__ import annotations

import asyncio
import signal
import sys
import threading
from functools import partial
from typing import TextIO

import click

from termagent.config import Config, get_config
from termagent.errors import ModelNotConfiguredError, TurnInProgressError
from termagent.llms import UsageInfo
from termagent.llms.agent import ConversationEngine, ConversationListener
from termagent.llms.models import KNOWN_MODELS, init_model
from termagent.llms.session import ChatSession
from termagent.log import logger, setup_logging
from termagent.permissions import (
    ApprovalChannel,
    ApprovalRequest,
    ApprovalResponse,
    DenyAllApprovalChannel,
    PermissionDecision,
    PermissionGate,
)
from termagent.policy import get_policy_store
from termagent.services.file_edit import FileEditService
from termagent.services.platform import get_platform_service
from termagent.services.search import SearchEngine
from termagent.services.shell import ShellExecutor
from termagent.services.working_directory import WorkingDirectoryService
from termagent.tools import ToolExecutionResult
from termagent.tools.registry import ToolRegistry, build_tools

_CHOICES = {
    "o": PermissionDecision.ALLOW_ONCE,
    "a": PermissionDecision.ALLOW_ALWAYS,
    "d": PermissionDecision.DENY,
    "n": PermissionDecision.NEVER,
}


class ConsoleInput:
    """Reads stdin on one daemon thread and hands lines to the event loop.

    Every prompt awaits the same queue, so a cancelled prompt leaves no reader
    behind to take the next line, and shutdown never waits on a blocked read.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream or sys.stdin
        self._queue: asyncio.Queue[str | None] | None = None
        self._thread: threading.Thread | None = None

    def _start(self) -> asyncio.Queue[str | None]:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._thread = threading.Thread(
                target=self._pump,
                args=(asyncio.get_running_loop(), self._queue),
                name="termagent-stdin",
                daemon=True,
            )
            self._thread.start()
        return self._queue

    def _pump(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str | None]) -> None:
        for line in iter(self.stream.readline, ""):
            if not _deliver(loop, queue, line.rstrip("\r\n")):
                return
        _deliver(loop, queue, None)

    async def readline(self, prompt: str) -> str:
        queue = self._start()
        click.echo(prompt, nl=False)
        line = await queue.get()
        if line is None:
            # EOF stays visible to later prompts.
            queue.put_nowait(None)
            raise EOFError
        return line


def _deliver(loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str | None], line: str | None) -> bool:
    try:
        loop.call_soon_threadsafe(queue.put_nowait, line)
    except RuntimeError:
        logger.debug("Event loop closed, stopping stdin reader")
        return False
    return True


class ConsoleApprovalChannel(ApprovalChannel):
    def __init__(self, console: ConsoleInput) -> None:
        self.console = console

    async def request(self, request: ApprovalRequest) -> ApprovalResponse:
        click.echo()
        click.secho(f"{request.tool_name} wants to run:", fg="yellow")
        click.echo(f"  {request.command}")
        if request.working_directory:
            click.echo(f"  in {request.working_directory}")

        try:
            decision = await self._ask_decision()
            reason = None
            if decision is PermissionDecision.DENY:
                reason = (await self.console.readline("Reason (optional): ")).strip() or None
        except EOFError:
            return ApprovalResponse(decision=PermissionDecision.DENY, reason="No input available")
        return ApprovalResponse(decision=decision, reason=reason)

    async def _ask_decision(self) -> PermissionDecision:
        while True:
            choice = (await self.console.readline("[o]nce / [a]lways / [d]eny / [n]ever [d]: ")).strip().lower()
            choice = choice or "d"
            if choice in _CHOICES:
                return _CHOICES[choice]
            click.secho(f"Error: {choice!r} is not one of {', '.join(_CHOICES)}.", fg="red")


class ConsoleListener(ConversationListener):
    def __init__(self, show_reasoning: bool = False) -> None:
        self.show_reasoning = show_reasoning

    def on_text_delta(self, text: str) -> None:
        click.echo(text, nl=False)

    def on_reasoning_delta(self, text: str) -> None:
        if self.show_reasoning:
            click.secho(text, nl=False, dim=True)

    def on_tool_called(self, name: str, tool_call_id: str, arguments_json: str) -> None:
        click.echo()
        click.secho(f"-> {name} {arguments_json}", fg="cyan")

    def on_tool_result(self, name: str, tool_call_id: str, arguments_json: str, result: ToolExecutionResult) -> None:
        if result.success:
            click.secho(f"<- {name} ok", fg="green")
        else:
            click.secho(f"<- {name} failed: {result.error}", fg="red")

    def on_usage(self, usage: UsageInfo) -> None:
        logger.debug(f"Usage: {usage.input_tokens} in / {usage.output_tokens} out")


def build_session(
    config: Config,
    approval_channel: ApprovalChannel,
    listener: ConversationListener,
    model_name: str | None = None,
) -> ChatSession:
    platform = get_platform_service()
    policy = get_policy_store(config)
    api_key = config.api_key or policy.api_key

    working_directory = WorkingDirectoryService(platform)
    shell = ShellExecutor(platform)
    file_edit = FileEditService(working_directory, platform)
    tools = build_tools(
        platform=platform,
        working_directory=working_directory,
        shell=shell,
        gate=PermissionGate(policy, approval_channel),
        search_engine=SearchEngine(platform, shell, working_directory),
        file_edit=file_edit,
        command_timeout=config.command_timeout_seconds,
        search_timeout=config.search_timeout_seconds,
    )

    engine = ConversationEngine(
        init_model(config, model_name, api_key=api_key),
        ToolRegistry(tools),
        listener=listener,
        pre_prompt=policy.pre_prompt,
    )
    return ChatSession(engine, model_factory=partial(init_model, config, api_key=api_key))


async def _run_turn(session: ChatSession, text: str) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False

    try:
        await session.send_message(text)
        click.echo()
    except asyncio.CancelledError:
        click.echo()
        click.secho("Turn cancelled.", fg="yellow")
    except TurnInProgressError as e:
        click.secho(str(e), fg="yellow")
    except Exception as e:
        logger.exception(f"Turn failed: {e}")
        click.echo()
        click.secho(f"Error: {e}", fg="red")
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _repl(session: ChatSession, console: ConsoleInput) -> None:
    click.secho(f"termagent ({session.engine.model.model_name}). /clear, /model <id>, /exit", bold=True)
    while True:
        try:
            line = await console.readline("> ")
        except EOFError:
            click.echo()
            return

        line = line.strip()
        if not line:
            continue
        if line in ("/exit", "/quit"):
            return
        if line == "/clear":
            session.clear()
            click.secho("Conversation cleared.", fg="green")
            continue
        if line.startswith("/model"):
            _, _, model_id = line.partition(" ")
            model_id = model_id.strip()
            if not model_id:
                click.echo("Known models: " + ", ".join(KNOWN_MODELS))
                continue
            session.set_model(model_id)
            click.secho(f"Model set to {model_id}.", fg="green")
            continue

        await _run_turn(session, line)


@click.group()
@click.option("--verbose", is_flag=True, help="Also log to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    config = get_config()
    setup_logging(config.log_level, config.log_file, stderr=verbose)
    ctx.obj = config


@cli.command()
@click.option("--model", "model_name", default=None, help="Model id to start with.")
@click.option("--show-reasoning", is_flag=True, help="Print the model's reasoning stream.")
@click.pass_obj
def chat(config: Config, model_name: str | None, show_reasoning: bool) -> None:
    """Start an interactive chat session."""
    console = ConsoleInput()
    try:
        session = build_session(config, ConsoleApprovalChannel(console), ConsoleListener(show_reasoning), model_name)
    except ModelNotConfiguredError as e:
        raise click.ClickException(str(e)) from e
    asyncio.run(_repl(session, console))


@cli.command()
@click.argument("prompt")
@click.option("--model", "model_name", default=None, help="Model id to use.")
@click.option("--ask", is_flag=True, help="Ask for command approval instead of denying it.")
@click.pass_obj
def run(config: Config, prompt: str, model_name: str | None, ask: bool) -> None:
    """Run a single PROMPT and exit."""
    channel = ConsoleApprovalChannel(ConsoleInput()) if ask else DenyAllApprovalChannel()
    try:
        session = build_session(config, channel, ConsoleListener(), model_name)
    except ModelNotConfiguredError as e:
        raise click.ClickException(str(e)) from e
    asyncio.run(_run_turn(session, prompt))


if __name__ == "__main__":
    cli()
