# The module is the command line entry point: 'serve' runs the HTTP API and
# 'chat' opens an interactive conversation in the terminal.
# Version: 0.1.0

import argparse
import asyncio
from typing import Optional
from rich.prompt import Confirm, Prompt
from ai_agent.core.config import get_settings
from ai_agent.core.orchestrator import Agent, get_agent
from ai_agent.utils.logger import console

EXIT_COMMANDS = ("exit", "quit", "salir")


def serve(host: Optional[str] = None, port: Optional[int] = None, reload: bool = False):
    import uvicorn

    settings = get_settings()
    host = host or settings.SERVER_HOST
    port = port or settings.SERVER_PORT
    console.info(f"Starting {settings.AGENT_NAME} API server on {host}:{port}")
    uvicorn.run("ai_agent.main:app", host=host, port=port, reload=reload, log_level=settings.LOG_LEVEL.lower())


async def _ask_confirmation(agent: Agent, user_id: str, event) -> None:
    console.display_data_as_table(
        {"recipient": event.recipient, "amount": f"{event.amount:.2f}€", "concept": event.concept},
        title="Bizum pendiente de confirmación",
    )
    confirmed = await asyncio.to_thread(Confirm.ask, "¿Confirmas el Bizum?")
    result = await agent.confirm_transaction(user_id, event.confirmation_id, confirmed)
    if result.get("success"):
        console.print(f"[green]{result.get('message')}[/green] {result.get('details', '')}")
        if result.get("reference"):
            console.print(f"[dim]{result['reference']}[/dim]")
    else:
        console.display_error_panel("Bizum", result.get("error", "Unknown error"))


async def _run_turn(agent: Agent, user_id: str, message: str) -> None:
    pending = None
    async for event in agent.process_message_stream(message, user_id):
        if event.type == "tool_execution":
            console.print(f"[dim]🔧 {', '.join(event.tools or [])}[/dim]")
        elif event.type == "content":
            console.print(event.content, end="")
        elif event.type == "bizum_confirmation":
            pending = event
        elif event.type == "complete":
            if pending is not None:
                console.print(event.response)
                await _ask_confirmation(agent, user_id, pending)
            else:
                console.print()
            break
        elif event.type == "error":
            console.print()
            console.display_error_panel("Error", event.error or "Unknown error")
            break


async def chat(user_id: Optional[str] = None):
    agent = get_agent()
    user_id = await agent.create_session(user_id) if user_id is None else user_id
    console.rule(f"{agent.agent_name} · {user_id}")
    console.print("[dim]Commands: 'tools', 'clear', 'exit'[/dim]")

    while True:
        message = (await asyncio.to_thread(Prompt.ask, "[bold cyan]You[/bold cyan]")).strip()
        if not message:
            continue
        command = message.lower()
        if command in EXIT_COMMANDS:
            break
        if command == "clear":
            await agent.clear_history(user_id)
            console.success("Conversation history cleared.")
            continue
        if command == "tools":
            console.display_rows_as_table(
                [{"name": tool["name"], "description": tool["description"]} for tool in agent.get_available_tools()],
                title="Available tools",
            )
            continue
        await _run_turn(agent, user_id, message)


def main(argv=None):
    parser = argparse.ArgumentParser(prog="ai_agent", description="Conversational agent with tools.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true")

    chat_parser = subparsers.add_parser("chat", help="Chat with the agent in the terminal")
    chat_parser.add_argument("--user-id", default=None, help="Resume the session of this user")

    args = parser.parse_args(argv)
    if args.command == "serve":
        serve(args.host, args.port, args.reload)
    else:
        try:
            asyncio.run(chat(args.user_id))
        except (KeyboardInterrupt, EOFError):
            console.print()
        console.info("Bye!")


if __name__ == "__main__":
    main()
