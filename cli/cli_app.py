"""Interactive CLI for overmind, talking to a running web server."""

import aiohttp

from agent.config import AgentConfig
from agent.messages import ChatMessage
from agent.stream_codec import FrameDecoder, StreamCodec


# ANSI color codes
RESET = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
CYAN = "\033[36m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
MAGENTA = "\033[35m"


class CLIApp:
    """Interactive REPL that streams agent turns from /api/chat."""

    def __init__(
        self,
        config: AgentConfig,
        server_url: str = "http://localhost:5000",
        credential: str | None = None,
        project_id: str | None = None,
        user_id: str | None = None,
    ):
        self.config = config
        self.server_url = server_url.rstrip("/")
        self.credential = credential
        self.project_id = project_id
        self.user_id = user_id
        self.codec = StreamCodec.from_config(config.stream)
        self.history: list[ChatMessage] = []

    async def run(self):
        """Main REPL loop."""
        self._print_banner()

        while True:
            try:
                user_input = input(f"{BOLD}You:{RESET} ").strip()
            except (EOFError, KeyboardInterrupt):
                print(f"\n{DIM}Goodbye!{RESET}")
                break

            if not user_input:
                continue

            # Commands
            if user_input.lower() in ("exit", "quit", "/exit", "/quit"):
                print(f"{DIM}Goodbye!{RESET}")
                break
            if user_input.lower() in ("reset", "/reset", "/new"):
                self.history = []
                print(f"{DIM}[Conversation reset]{RESET}")
                continue
            if user_input.lower().startswith("/project"):
                parts = user_input.split(maxsplit=1)
                if len(parts) < 2:
                    print(f"{YELLOW}[Usage] /project <project_id>{RESET}")
                    continue
                self.project_id = parts[1].strip()
                print(f"{DIM}[Active project {self.project_id}]{RESET}")
                continue
            if user_input.lower() in ("help", "/help"):
                self._print_help()
                continue

            self.history.append(ChatMessage(role="user", content=user_input))
            print()
            try:
                answer = await self.send_turn()
            except aiohttp.ClientError as e:
                print(f"\n{RED}[Error: cannot reach {self.server_url}: {e}]{RESET}")
                self.history.pop()
                continue

            if answer:
                self.history.append(ChatMessage(role="assistant", content=answer))
            print()

    async def send_turn(self) -> str:
        """Post the conversation and render events as they arrive. Returns the final answer."""
        body = {
            "messages": [m.to_dict() for m in self.history],
            "project_id": self.project_id,
            "user_id": self.user_id,
            "credential": self.credential,
        }
        decoder = FrameDecoder(self.codec)
        answer = ""
        async with aiohttp.ClientSession() as session:
            async with session.post(f"{self.server_url}/api/chat", json=body) as resp:
                if resp.status != 200:
                    print(f"{RED}[Error: HTTP {resp.status}: {await resp.text()}]{RESET}")
                    return ""
                async for chunk in resp.content.iter_any():
                    for event in decoder.feed(chunk):
                        answer = self.render_event(event) or answer
                    if decoder.done:
                        break
        return answer

    def render_event(self, event: dict) -> str | None:
        """Print one event. Returns the final answer on a done event."""
        kind = event.get("type")
        if kind == "content":
            print(event.get("content", ""), end="", flush=True)
        elif kind == "reasoning":
            print(f"{DIM}{event.get('content', '')}{RESET}", end="", flush=True)
        elif kind == "tool_start":
            print(f"\n{MAGENTA}[tool] {event.get('tool')} {event.get('args', {})}{RESET}")
        elif kind == "tool_result":
            if event.get("success"):
                print(f"{CYAN}[result] {event.get('tool')}: {event.get('result')}{RESET}")
            else:
                print(f"{RED}[failed] {event.get('tool')}: {event.get('error')}{RESET}")
        elif kind == "error":
            print(f"\n{RED}[Error: {event.get('error')}]{RESET}")
        elif kind == "done":
            return event.get("content", "")
        return None

    def _print_banner(self):
        print(f"""
{BOLD}{CYAN}╔══════════════════════════════════════╗
║             overmind CLI             ║
╚══════════════════════════════════════╝{RESET}
{DIM}Server: {self.server_url}
Model: {self.config.chat_model.model_name}{RESET}
""")

    def _print_help(self):
        print(f"""
{BOLD}Commands:{RESET}
  {CYAN}/reset{RESET}         Start a new conversation
  {CYAN}/project{RESET} <id>  Set the active project
  {CYAN}/help{RESET}          Show this help
  {CYAN}/exit{RESET}          Quit
""")
