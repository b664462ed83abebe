"""
Operator Console
================

Line-oriented operator commands mapped onto the PlaybackCoordinator.

Commands:
    start                 Start playback on every viewer
    stop | abort          Abort playback and rewind
    setInterval <ms>      Change the frame interval
    reload [delayMs]      Ask viewers to reload
    sync                  Ask viewers to resynchronize
    status                Log the playback state
    help                  List commands

Lines come from stdin (run()) or from the HTTP control endpoint
(execute()). Errors are reported and the command ignored; nothing a
command does can stop the server.
"""

import asyncio
import logging
import shlex
import sys
import threading
from dataclasses import dataclass
from typing import List, Optional, TextIO

from tilestream.errors import Conflict, Malformed, TileStreamError
from tilestream.playback.coordinator import PlaybackCoordinator
from tilestream.tiles.service import INTEGER_PATTERN


logger = logging.getLogger(__name__)

PROMPT = "» "

HELP_TEXT = (
    "Commands: start | stop | abort | setInterval <ms> | reload [delayMs] | "
    "sync | status | help"
)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one console command."""

    ok: bool
    message: str


def _int_arg(args: List[str], position: int, command: str) -> int:
    try:
        raw = args[position]
    except IndexError:
        raise Malformed(f"{command} requires an argument")
    if not INTEGER_PATTERN.fullmatch(raw):
        raise Malformed(f"{command} args[{position}] \"{raw}\" is not a number")
    return int(raw)


class OperatorConsole:
    """
    Parses and executes operator commands.

    Example:
        console = OperatorConsole(coordinator)
        result = await console.execute("setInterval 750")
    """

    def __init__(self, coordinator: PlaybackCoordinator) -> None:
        self.coordinator = coordinator

    async def execute(self, line: str) -> CommandResult:
        """
        Run one command line.

        Returns:
            CommandResult; ok=False for unknown, malformed or conflicting commands
        """
        try:
            args = shlex.split(line)
        except ValueError as e:
            logger.error(f"Unparseable command line: {e}")
            return CommandResult(ok=False, message=str(e))

        if not args:
            return CommandResult(ok=True, message="")

        command, args = args[0], args[1:]

        try:
            message = await self._dispatch(command, args)
        except Conflict as e:
            logger.warning(f"{command}: {e}")
            return CommandResult(ok=False, message=str(e))
        except TileStreamError as e:
            logger.error(f"{command}: {e}")
            return CommandResult(ok=False, message=str(e))

        if message is None:
            logger.info(f"Unknown command \"{command}\"")
            return CommandResult(ok=False, message=f"Unknown command \"{command}\"")

        return CommandResult(ok=True, message=message)

    async def _dispatch(self, command: str, args: List[str]) -> Optional[str]:
        coordinator = self.coordinator

        if command == "start":
            await coordinator.start()
            return f"started (interval {coordinator.state.interval_ms}ms)"

        if command in ("stop", "abort"):
            await coordinator.stop()
            return "stopped"

        if command == "setInterval":
            interval = _int_arg(args, 0, command)
            coordinator.set_interval(interval)
            return f"interval {interval}ms"

        if command == "reload":
            delay = _int_arg(args, 0, command) if args else None
            delivered = await coordinator.reload(delay)
            return f"reload sent to {delivered} viewer(s)"

        if command == "sync":
            delivered = await coordinator.sync()
            return f"sync sent to {delivered} viewer(s)"

        if command == "status":
            message = str(coordinator.state.model_dump(mode="json"))
            logger.info(message)
            return message

        if command == "help":
            logger.info(HELP_TEXT)
            return HELP_TEXT

        return None

    async def run(self, stream: TextIO = sys.stdin) -> None:
        """
        Read commands from a text stream until EOF or cancellation.

        A daemon thread does the blocking reads so neither the event loop
        nor interpreter shutdown ever waits on the stream.
        """
        loop = asyncio.get_running_loop()
        lines: asyncio.Queue[Optional[str]] = asyncio.Queue()

        def reader() -> None:
            try:
                for line in iter(stream.readline, ""):
                    loop.call_soon_threadsafe(lines.put_nowait, line)
                loop.call_soon_threadsafe(lines.put_nowait, None)
            except RuntimeError:
                pass  # Event loop closed during shutdown

        threading.Thread(target=reader, name="operator-console", daemon=True).start()
        logger.info("Operator console ready")

        while True:
            print(PROMPT, end="", flush=True)
            line = await lines.get()
            if line is None:
                logger.info("Console input closed")
                return
            await self.execute(line.strip())
