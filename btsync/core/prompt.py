"""Interactive prompt primitive used by the pairing agent."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Protocol, TextIO

import typer

LOGGER = logging.getLogger(__name__)

_YES = ("y", "yes")
_NO = ("n", "no")


class PromptInterrupted(Exception):
    """The user quit an interactive read instead of answering it."""


class Prompter(Protocol):
    async def read_string(self, prompt: str) -> str:
        """Read a line of text."""

    async def read_number(self, prompt: str) -> int:
        """Read an integer."""

    async def confirm(self, prompt: str) -> bool:
        """Ask a yes/no question."""

    def message(self, text: str) -> None:
        """Show a notice without waiting for input."""


class ConsolePrompter:
    """Terminal prompts answered by lines from one long-lived reader thread.

    The thread owns the input stream for the prompter's lifetime and hands
    every line to the event loop, so cancelling a read never leaves a blocked
    read behind. Lines that arrived while no prompt was waiting belong to an
    abandoned prompt and are dropped when the next prompt is shown.

    A prompter serves the event loop that made its first read. End of input
    interrupts the pending read and every later one.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._lines: asyncio.Queue[str | None] | None = None
        self._reader: threading.Thread | None = None
        self._closed = False

    def _start(self) -> asyncio.Queue[str | None]:
        if self._lines is not None:
            return self._lines
        loop = asyncio.get_running_loop()
        lines: asyncio.Queue[str | None] = asyncio.Queue()
        stream = self._stream if self._stream is not None else sys.stdin

        def pump() -> None:
            try:
                try:
                    for line in iter(stream.readline, ""):
                        loop.call_soon_threadsafe(lines.put_nowait, line.rstrip("\r\n"))
                except (OSError, ValueError) as exc:
                    LOGGER.debug("Prompt input failed: %s", exc)
                loop.call_soon_threadsafe(lines.put_nowait, None)
            except RuntimeError:
                LOGGER.debug("Prompt input outlived its event loop")

        self._lines = lines
        self._reader = threading.Thread(target=pump, name="btsync-prompt", daemon=True)
        self._reader.start()
        return lines

    async def _readline(self, prompt: str) -> str:
        lines = self._start()
        while not lines.empty():
            if lines.get_nowait() is None:
                self._closed = True
            else:
                LOGGER.debug("Dropping input typed for an earlier prompt")
        if self._closed:
            raise PromptInterrupted()
        typer.echo(prompt, nl=False, err=True)
        line = await lines.get()
        if line is None:
            self._closed = True
            typer.echo(err=True)
            raise PromptInterrupted()
        return line

    async def read_string(self, prompt: str) -> str:
        return await self._readline(prompt)

    async def read_number(self, prompt: str) -> int:
        while True:
            line = await self._readline(prompt)
            try:
                return int(line.strip())
            except ValueError:
                typer.echo(f"Error: '{line.strip()}' is not a valid integer.", err=True)

    async def confirm(self, prompt: str) -> bool:
        while True:
            answer = (await self._readline(f"{prompt} [y/N]: ")).strip().lower()
            if answer in _YES:
                return True
            if not answer or answer in _NO:
                return False
            typer.echo("Error: invalid input", err=True)

    def message(self, text: str) -> None:
        typer.echo(text, err=True)
