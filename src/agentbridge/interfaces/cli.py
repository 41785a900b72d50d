"""CLI interface for agentbridge using Click."""

from __future__ import annotations

import asyncio
import json
import logging

import click

from agentbridge.core.config import Settings, load_settings
from agentbridge.core.service import AgentService, ChatRequest
from agentbridge.llm.errors import UnsupportedProviderError
from agentbridge.llm.events import ActionEnd, ActionStart, ErrorEvent, MessageDelta, ToolCallsEvent
from agentbridge.llm.registry import ADAPTERS
from agentbridge.llm.types import Message


def _settings(provider: str | None, model: str | None) -> Settings:
    settings = load_settings()
    if provider:
        settings.llm.provider = provider
    if model:
        settings.llm.model = model
    return settings


def _service(provider: str | None, model: str | None) -> AgentService:
    service = AgentService(settings=_settings(provider, model))
    try:
        service.adapter
    except (UnsupportedProviderError, ValueError) as e:
        raise click.ClickException(str(e))
    return service


@click.group()
@click.version_option(version="0.1.0", prog_name="agentbridge")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """agentbridge - one agent loop over many LLM vendors"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--provider", "-p", default=None, help="Override LLM provider")
@click.option("--model", "-m", default=None, help="Override LLM model")
@click.option("--system", "system_prompt", default=None, help="System prompt")
def chat(provider: str | None, model: str | None, system_prompt: str | None):
    """Start an interactive chat session."""
    asyncio.run(_chat(provider, model, system_prompt))


async def _chat(provider: str | None, model: str | None, system_prompt: str | None):
    service = _service(provider, model)
    history: list[Message] = []

    click.echo(f"Chat session started with {service.adapter.provider} ({service.adapter.model})")
    click.echo("Type 'exit' or 'quit' to end the session.\n")

    while True:
        try:
            user_input = click.prompt("You", prompt_suffix="> ")
        except (EOFError, KeyboardInterrupt, click.Abort):
            click.echo("\nGoodbye!")
            break

        if user_input.strip().lower() in ("exit", "quit"):
            click.echo("Goodbye!")
            break

        if not user_input.strip():
            continue

        history.append(Message(role="user", content=user_input))
        request = ChatRequest(messages=list(history), system_prompt=system_prompt)

        click.echo("\nAgent> ", nl=False)
        result = service.stream(request)
        async for event in result:
            _echo_event(event)
        history.extend(result.state.new_messages)
        click.echo("\n")


def _echo_event(event) -> None:
    if isinstance(event, MessageDelta):
        click.echo(event.content, nl=False)
    elif isinstance(event, ActionStart):
        click.echo(f"\n[calling {event.name}]", nl=False)
    elif isinstance(event, ActionEnd) and event.error:
        click.echo(f"\n[{event.name} failed: {event.error}]", nl=False)
    elif isinstance(event, ToolCallsEvent):
        names = ", ".join(tc.name for tc in event.tool_calls)
        click.echo(f"\n[client tools requested: {names}]", nl=False)
    elif isinstance(event, ErrorEvent):
        click.echo(f"\nError ({event.code}): {event.message}", err=True)


@cli.command()
@click.argument("message")
@click.option("--provider", "-p", default=None, help="Override LLM provider")
@click.option("--model", "-m", default=None, help="Override LLM model")
@click.option("--system", "system_prompt", default=None, help="System prompt")
@click.option("--sse", is_flag=True, help="Print the raw SSE event stream")
@click.option("--json", "as_json", is_flag=True, help="Run non-streaming and print a JSON result")
def run(message: str, provider: str | None, model: str | None, system_prompt: str | None, sse: bool, as_json: bool):
    """Run a single message through the agent loop and exit."""
    asyncio.run(_run(message, provider, model, system_prompt, sse, as_json))


async def _run(message: str, provider: str | None, model: str | None, system_prompt: str | None, sse: bool, as_json: bool):
    service = _service(provider, model)
    request = ChatRequest(
        messages=[Message(role="user", content=message)],
        system_prompt=system_prompt,
        streaming=not as_json,
    )

    if as_json:
        result = await service.generate(request)
        body = result.to_response(include_usage=service.settings.agent.include_usage)
        click.echo(json.dumps(body, indent=2, default=str))
        return

    stream = service.stream(request)
    if sse:
        async for line in stream.to_sse():
            click.echo(line, nl=False)
        return

    async for event in stream:
        _echo_event(event)
    click.echo()


@cli.command("providers")
def list_providers():
    """List supported provider names."""
    click.echo(f"{'Name':<15} {'Adapter'}")
    click.echo("-" * 40)
    for name, cls in sorted(ADAPTERS.items()):
        click.echo(f"{name:<15} {cls.__name__}")


@cli.command("tools")
def list_tools():
    """List registered server tools."""
    settings = load_settings()
    service = AgentService(settings=settings, adapter=None)
    tools = service.tool_registry.definitions()
    if not tools:
        click.echo("No tools registered.")
        return

    click.echo(f"{'Name':<25} {'Description'}")
    click.echo("-" * 70)
    for t in tools:
        desc = t.description.strip().split("\n")[0][:45]
        click.echo(f"{t.name:<25} {desc}")


if __name__ == "__main__":
    cli()
