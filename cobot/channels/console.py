"""Console channel: read lines from a stream and answer each one."""

import sys
from typing import Callable, Optional, TextIO

from rich.console import Console

from ..agent import AgentContext


def for_each_input(stream: TextIO, callback: Callable[[str], None],
                   console: Optional[Console] = None, prompt: str = "> ") -> int:
    """
    Call ``callback`` for each input line until an empty line or end of input.

    Returns:
        Number of lines handled
    """
    console = console or Console()
    handled = 0
    while True:
        console.print(prompt, end="", markup=False, highlight=False)
        line = stream.readline()
        text = line.rstrip("\r\n")
        if not text:
            break
        callback(text)
        handled += 1
    return handled


def start(agent: AgentContext, stream: Optional[TextIO] = None,
          console: Optional[Console] = None) -> int:
    """Greet, answer input lines until an empty one, say goodbye."""
    console = console or Console()
    stream = stream or sys.stdin

    def answer(text: str) -> None:
        console.print(agent.dispatch(text), markup=False, highlight=False)

    console.print(agent.say_hello(), markup=False, highlight=False)
    handled = for_each_input(stream, answer, console=console)
    console.print()
    console.print(agent.say_goodbye(), markup=False, highlight=False)
    return handled
