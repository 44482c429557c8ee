"""CLI entry point for the Agentic Services agents.

This provides a simple terminal-based chat interface for testing and
development. For production, use the FastAPI server (src/server.py).

Usage:
    uv run python -m src.main                      # sales agent, anonymous
    uv run python -m src.main --agent assistant    # pick a specialist
    uv run python -m src.main --agent auto         # route by intent
    uv run python -m src.main --token <jwt>        # act as a signed-in user
    uv run python -m src.main --debug              # debug mode (shows API calls)
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from src.runner import ConversationError, build_runner
from src.specialists import SPECIALISTS

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("src").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Agentic Services CLI")
    parser.add_argument(
        "--agent", default="sales",
        help=(
            "Specialist to talk to: "
            + ", ".join(s.key for s in SPECIALISTS)
            + " (anything else routes by intent)"
        ),
    )
    parser.add_argument("--token", default=None, help="Bearer token of the user to act as")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    runner = build_runner()
    specialist = runner.select(args.agent)

    print("\n" + "=" * 60)
    print(f"  Agentic Services - {specialist.role_name}")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new conversation.")
    print("=" * 60 + "\n")

    history: list[dict] = []
    session_id: str | None = None

    try:
        while True:
            try:
                user_input = input("You: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if not user_input:
                continue

            if user_input.lower() in ("exit", "quit", "q"):
                print("\nGoodbye!")
                break

            if user_input.lower() == "new":
                history, session_id = [], None
                print("\n>> New conversation started.\n")
                continue

            history.append({"role": "user", "content": user_input})
            try:
                result = runner.run_turn(history, args.agent, session_id, args.token)
            except KeyboardInterrupt:
                print("\n\nGoodbye!")
                break
            except ConversationError as e:
                history.pop()
                print(f"\nAgent: {e}")
                print("       Please try again or type 'new' to start over.\n")
                continue

            history.append({"role": "assistant", "content": result.response})
            if result.session_id and result.session_id != session_id:
                session_id = result.session_id
                logger.info("Conversation persisted as session %s", session_id)
            print(f"\nAgent: {result.response}\n")
    finally:
        runner.close()


if __name__ == "__main__":
    main()
