"""
Command prompt built on LinePrompt.

This example demonstrates:
- Starting a prompt and reacting to each completed line
- Printing output and redrawing the prompt afterwards
- Closing the prompt from a command

Usage:
    python examples/01_prompt_commands.py

Commands:
    hello    greets you
    time     prints the current time
    exit     leaves the prompt (so does Ctrl-D)
"""

import logging
from datetime import datetime

import anyio

from duplex_chat.prompt import LinePrompt

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def main() -> None:
    prompt = LinePrompt()
    prompt.on_close(lambda: prompt.print_line("Goodbye!"))

    def handle_command(line: str) -> None:
        command = line.strip()
        if command == "hello":
            prompt.print_line("Hello there!")
        elif command == "time":
            prompt.print_line(f"Current time: {datetime.now():%H:%M:%S}")
        elif command == "exit":
            prompt.close()
            return
        else:
            prompt.print_line(f"You entered: {command}")
        prompt.redisplay_prompt()

    await prompt.start("CLI> ", handle_command)


if __name__ == "__main__":
    anyio.run(main)
