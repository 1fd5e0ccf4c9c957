"""Interactive command-line interface for the agent engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional

from aegisAgent.agents.schema import DEFAULT_AGENT_ID
from aegisAgent.runtime.app import AegisApplication
from aegisAgent.streaming.session import StreamSession
from aegisAgent.tools.invoker import ApprovalRequest, ApprovalResponse
from aegisAgent.utils.error_handler import AegisAgentError, handle_model_error
from aegisAgent.utils.logging_utils import log_error

LOGGER = logging.getLogger("aegis.cli")

STEP_LABELS = {
    "planning-check": "🔍",
    "planning": "🗺️",
    "executing": "⚙️",
    "reflecting": "🧐",
    "retrying": "🔁",
}


async def _read_line(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: input(prompt).strip())


async def cli_approval_resolver(request: ApprovalRequest) -> ApprovalResponse:
    """Ask on the terminal whether a tool call may run."""
    print(f"\n⚠️  {request.tool_name} needs approval ({request.risk_level}): {request.reason}")
    print(f"   args: {request.params}")
    answer = (await _read_line("   Allow? [y]es / [n]o / [a]lways > ")).lower()
    if answer in ("a", "always"):
        return ApprovalResponse(approved=True, remember=True, scope=request.conversation_id)
    return ApprovalResponse(approved=answer in ("y", "yes"))


class AegisCLI:
    """Input loop with slash commands.

    Step events are printed as they happen; with streaming on, the answer is
    printed chunk by chunk.
    """

    COMMANDS: Dict[str, str] = {
        "/quit": "Exit",
        "/exit": "Exit",
        "/help": "Show commands",
        "/new": "Start a new conversation",
        "/agent <id>": "Switch agent (new conversation)",
        "/agents": "List agents",
        "/tasks": "List tasks",
        "/current": "Show the current conversation",
    }

    def __init__(self, app: AegisApplication, agent_id: str = DEFAULT_AGENT_ID):
        self.app = app
        self.agent_id = agent_id
        self.conversation_id = app.new_conversation(agent_id).id
        self.streaming = app.settings.agent.streaming
        self._attached = set()
        self._handlers: Dict[str, Callable] = {
            "/quit": self._handle_quit,
            "/exit": self._handle_quit,
            "/help": self._handle_help,
            "/new": self._handle_new,
            "/agent": self._handle_agent,
            "/agents": self._handle_agents,
            "/tasks": self._handle_tasks,
            "/current": self._handle_current,
        }
        self._attach_listener()

    def _attach_listener(self) -> None:
        if self.agent_id not in self._attached:
            self.app.loop_for(self.agent_id).on_step(self._print_step)
            self._attached.add(self.agent_id)

    @staticmethod
    def _print_step(phase: str, detail: str) -> None:
        print(f"{STEP_LABELS.get(phase, '•')} {detail}")

    @staticmethod
    def _print_chunk(delta: str, full_text: str, session: StreamSession) -> None:
        print(delta, end="", flush=True)

    def print_welcome(self) -> None:
        print("Aegis CLI ready.")
        print(f"Agent: {self.agent_id} | Conversation: {self.conversation_id[:8]}...")
        print("Type /help for commands.\n")

    async def run(self) -> None:
        self.print_welcome()
        while True:
            try:
                user_input = await _read_line("You> ")
                if not user_input:
                    continue
                if user_input.startswith("/"):
                    if not await self.handle_command(user_input):
                        break
                else:
                    await self.handle_user_message(user_input)
            except (KeyboardInterrupt, EOFError):
                print("\nBye!")
                LOGGER.info("Session interrupted by user")
                break
            except Exception as e:
                log_error(LOGGER, e, context="main loop")
                print(f"❌ Error: {e}")

    async def handle_command(self, command: str) -> bool:
        """Run a slash command; False ends the loop."""
        parts = command.split(maxsplit=1)
        name = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else None
        handler = self._handlers.get(name)
        if handler is None:
            print(f"❌ Unknown command: {name} (try /help)")
            return True
        return await handler(arg)

    async def handle_user_message(self, message: str) -> None:
        loop = self.app.loop_for(self.agent_id)
        try:
            if self.streaming:
                print("Agent> ", end="", flush=True)
                result = await loop.execute(message, self.conversation_id, on_chunk=self._print_chunk)
                print()
            else:
                result = await loop.execute(message, self.conversation_id)
                print(f"Agent> {result.response}")
        except AegisAgentError as e:
            log_error(LOGGER, e, context="agent loop")
            print(f"\n❌ {e.user_message}")
            return
        except Exception as e:
            log_error(LOGGER, e, context="agent loop")
            print(f"\n❌ {handle_model_error(e)}")
            return

        if result.cancelled:
            print("[stream cancelled]")
        if result.retries:
            print(f"[revised {result.retries} time(s)]")

    # ========== Command handlers ==========

    async def _handle_quit(self, arg: Optional[str]) -> bool:
        print("Session ended.")
        LOGGER.info("Exit requested by /quit command")
        return False

    async def _handle_help(self, arg: Optional[str]) -> bool:
        print("\nCommands:")
        for name, description in self.COMMANDS.items():
            print(f"  {name:<14} {description}")
        print()
        return True

    async def _handle_new(self, arg: Optional[str]) -> bool:
        self.conversation_id = self.app.new_conversation(self.agent_id).id
        print(f"New conversation: {self.conversation_id[:8]}...")
        return True

    async def _handle_agent(self, arg: Optional[str]) -> bool:
        if not arg:
            print("Usage: /agent <id>")
            return True
        if not self.app.agents.is_enabled(arg):
            print(f"❌ Unknown or disabled agent: {arg}")
            return True
        self.agent_id = arg
        self._attach_listener()
        return await self._handle_new(None)

    async def _handle_agents(self, arg: Optional[str]) -> bool:
        for profile in self.app.agents.list_enabled():
            marker = "*" if profile.id == self.agent_id else " "
            print(f" {marker} {profile.id:<12} {profile.name} - {profile.description}")
        return True

    async def _handle_tasks(self, arg: Optional[str]) -> bool:
        tasks = self.app.tasks.list()
        if not tasks:
            print("No tasks.")
            return True
        for task in tasks:
            agent = task.assigned_agent_id or "-"
            print(f"  [{task.status.value:<11}] {task.id} {task.title} → {agent} (depth {task.delegation_depth})")
        return True

    async def _handle_current(self, arg: Optional[str]) -> bool:
        conversation = self.app.store.get_conversation(self.conversation_id)
        turns = self.app.store.turns(self.conversation_id)
        print(f"Agent: {self.agent_id}")
        print(f"Conversation: {self.conversation_id} ({len(turns)} turns)")
        if conversation is not None and conversation.summary:
            print(f"Summary: {conversation.summary[:200]}")
        return True

