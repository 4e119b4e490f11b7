"""Command-line interfaces for Keepsake.

``CLI`` is an interactive console chat that plays the messaging transport.
``run_data_cli`` exposes read-only queries over the fact store.
"""

import argparse
import json
import uuid

from .app import create_state_machine, create_store
from .config import Settings
from .dialogue import NoAction, Outcome
from .logging import configure_logger, get_logger
from .memory import build_profile, list_facts, search_facts
from .memory.store import FactStore

BANNER = """
╔══════════════════════════════════════════╗
║              📒 Keepsake                 ║
║   Tell me things, ask me about them      ║
╚══════════════════════════════════════════╝

Commands:
  /exit, /quit  - Exit the CLI
  /reset        - Start over as a new sender
  /help         - Show this help

Type your message and press Enter.
"""


class ConsoleSender:
    """MessageSender that prints replies."""

    async def send(self, sender_id: str, text: str) -> None:
        print(f"\n{text}\n")


class CLI:
    """Interactive console chat with the assistant."""

    def __init__(
        self,
        settings: Settings | None = None,
        store: FactStore | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.logger = get_logger()
        self.store = store or create_store(self.settings, self.logger)
        self.assistant = create_state_machine(
            self.settings, ConsoleSender(), store=self.store, json_logger=self.logger
        )
        self.sender_id = self._new_sender_id()

    def _new_sender_id(self) -> str:
        """Generate a new sender ID."""
        return f"cli-{uuid.uuid4().hex[:8]}"

    def _reset(self) -> None:
        """Drop the session and continue as a new sender."""
        old_sender_id = self.sender_id
        self.assistant.sessions.destroy_session(old_sender_id)
        self.sender_id = self._new_sender_id()
        self.logger.log("session_reset", sender_id=self.sender_id, old_sender_id=old_sender_id)
        print(f"\n✓ Session reset. New sender: {self.sender_id}")

    async def _process_message(self, message: str) -> Outcome:
        """Send a message through the assistant."""
        outcome = await self.assistant.handle_message(self.sender_id, message, display_name="You")
        if isinstance(outcome, NoAction):
            print("\n(no reply)\n")
        return outcome

    def _handle_command(self, command: str) -> bool:
        """Handle a special command. Returns True if should continue, False to exit."""
        cmd = command.lower().strip()

        if cmd in ("/exit", "/quit", "exit", "quit"):
            print("\n👋 Goodbye!")
            self.logger.log("session_end", sender_id=self.sender_id)
            return False

        if cmd == "/reset":
            self._reset()
            return True

        if cmd == "/help":
            print(BANNER)
            return True

        return True  # Unknown command, continue

    async def run(self) -> None:
        """Run the interactive CLI."""
        print(BANNER)
        print(f"Sender: {self.sender_id}\n")

        try:
            while True:
                try:
                    user_input = input("you> ").strip()
                except (KeyboardInterrupt, EOFError):
                    print("\n👋 Goodbye!")
                    break

                if not user_input:
                    continue

                if user_input.startswith("/") or user_input.lower() in ("exit", "quit"):
                    if not self._handle_command(user_input):
                        break
                    continue

                await self._process_message(user_input)
        finally:
            self.store.close()


async def run_cli() -> None:
    """Run the console chat with settings from the environment."""
    settings = Settings.from_env()
    configure_logger(settings.log_dir)

    if not settings.groq_api_key:
        print("ℹ️  GROQ_API_KEY not set, using rule-based understanding only")

    cli = CLI(settings=settings)
    await cli.run()


def cmd_profile(args: argparse.Namespace, store: FactStore) -> int:
    """Print a sender's aggregated profile."""
    print(json.dumps(build_profile(store, args.sender).to_dict(), indent=2, ensure_ascii=False))
    return 0


def cmd_list(args: argparse.Namespace, store: FactStore) -> int:
    """Print a sender's raw facts."""
    facts = list_facts(store, args.sender, query=args.query, limit=args.limit)
    print(json.dumps([f.to_dict() for f in facts], indent=2, ensure_ascii=False))
    return 0


def cmd_search(args: argparse.Namespace, store: FactStore) -> int:
    """Print facts across all senders matching a query."""
    try:
        facts = search_facts(store, args.query, limit=args.limit)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    print(json.dumps([f.to_dict() for f in facts], indent=2, ensure_ascii=False))
    return 0


def build_data_parser() -> argparse.ArgumentParser:
    """Build the argument parser for ``keepsake data``."""
    parser = argparse.ArgumentParser(
        prog="keepsake data",
        description="Read-only queries over stored facts",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    profile = subparsers.add_parser("profile", help="Show a sender's profile")
    profile.add_argument("sender", help="Sender id")
    profile.set_defaults(func=cmd_profile)

    listing = subparsers.add_parser("list", help="List a sender's facts")
    listing.add_argument("sender", help="Sender id")
    listing.add_argument("--query", "-q", default=None, help="Substring filter")
    listing.add_argument("--limit", "-n", type=int, default=10, help="Max results")
    listing.set_defaults(func=cmd_list)

    search = subparsers.add_parser("search", help="Search facts across senders")
    search.add_argument("query", help="Search query")
    search.add_argument("--limit", "-n", type=int, default=5, help="Max results")
    search.set_defaults(func=cmd_search)

    return parser


def run_data_cli(argv: list[str], store: FactStore | None = None) -> int:
    """Run a ``keepsake data`` subcommand.

    Args:
        argv: Arguments after 'data'.
        store: Store to query; defaults to the configured one.

    Returns:
        Exit code.
    """
    args = build_data_parser().parse_args(argv)
    owns_store = store is None
    if store is None:
        store = create_store(Settings.from_env())
    try:
        return args.func(args, store)
    finally:
        if owns_store:
            store.close()
