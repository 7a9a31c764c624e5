"""
Offline console demo: runs full chat conversations without any API keys.

Drives the real orchestrator, booking flow, slot manager and response
cache. Open questions are answered by a small scripted generator instead
of the upstream model, and the cache snapshot stays in memory.

Usage:
    python console_demo.py
    python console_demo.py --scenario booking
    python console_demo.py --scenario questions
"""

import argparse
import asyncio
import time
import uuid
from typing import Any, Optional, Sequence

from vetchat.cache.snapshot import MemorySnapshotStore
from vetchat.config import settings
from vetchat.context import AppContext, build_app_context
from vetchat.schemas.conversation_schema import ChatMessage
from vetchat.tools.generator import GenerationResult

BLUE = "\033[94m"
GREEN = "\033[92m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"


class ScriptedGenerator:
    """Keyword-matched stand-in for the upstream model."""

    ANSWERS: dict[str, str] = {
        "flea": (
            "Monthly flea prevention is recommended year-round. Ask us which "
            "topical or chewable product suits your pet's weight and age."
        ),
        "groom": (
            "Most dogs benefit from brushing a few times a week and a bath every "
            "four to six weeks. Long-haired breeds need more frequent brushing."
        ),
    }
    DEFAULT = (
        "That's a great question. For anything specific to your pet's health, "
        f"please call us at {settings.clinic.phone} so a veterinarian can help."
    )

    def __init__(self) -> None:
        self.calls = 0

    async def generate(
        self,
        prompt: str,
        history: Sequence[ChatMessage],
        context: Optional[dict[str, Any]] = None,
    ) -> GenerationResult:
        self.calls += 1
        started = time.perf_counter()
        lowered = prompt.lower()
        text = next((a for k, a in self.ANSWERS.items() if k in lowered), self.DEFAULT)
        return GenerationResult(text=text, duration_ms=(time.perf_counter() - started) * 1000)


class ConsoleSession:
    """Simulates a chat widget conversation in the terminal."""

    SCENARIOS: dict[str, list[str]] = {
        "booking": [
            "Hi, I'd like to book an appointment",
            "Jane Doe",
            "go back",
            "Jane Doe",
            "Rex",
            "555-123-4567",
            "next sunday at 2pm",
            "next tuesday at 2pm",
            "yes",
        ],
        "questions": [
            "What is the vaccination schedule for puppies?",
            "How often should I give flea treatment?",
            "How often should I give flea treatments?",
            "How often should I groom my dog?",
        ],
        "cancel": [
            "I need to see a vet",
            "Sam Lee",
            "never mind, stop",
        ],
    }

    def __init__(self, context: Optional[AppContext] = None) -> None:
        self.generator = ScriptedGenerator()
        self.context = context or build_app_context(
            generator=self.generator, snapshot_store=MemorySnapshotStore()
        )
        self.session_id = str(uuid.uuid4())
        self._loop = asyncio.new_event_loop()

    def agent_say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[Assistant]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def send(self, text: str) -> None:
        response = self._loop.run_until_complete(
            self.context.orchestrator.handle_message(text, self.session_id)
        )
        self.agent_say(response.message)
        self.system_log(f"State: {response.booking_state.value}")

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  VET CHAT BACKEND - {title}{RESET}")
        print(f"{BOLD}  Clinic: {settings.clinic.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    def _summary(self) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{DIM}  Slot stats: {self.context.slot_manager.get_statistics()}{RESET}")
        cache = self.context.cache.get_statistics()
        print(
            f"{DIM}  Cache: {cache['hits']} hits, {cache['misses']} misses, "
            f"{self.generator.calls} generator calls{RESET}"
        )
        print(f"{BOLD}{'=' * 60}{RESET}")

    def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        for step in steps:
            print(f"\n{BLUE}[Visitor] {RESET}{step}")
            self.send(step)
        self._summary()
        self.close()

    def run(self) -> None:
        self._banner("Console Demo (type 'quit' to exit)")
        self.agent_say(f"Hello! Welcome to {settings.clinic.name}. How can I help your pet today?")

        while True:
            try:
                user_input = input(f"\n{BLUE}[Visitor] {RESET}").strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                break
            self.send(user_input)

        print(f"\n{DIM}Session ended.{RESET}")
        self._summary()
        self.close()

    def close(self) -> None:
        self._loop.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
