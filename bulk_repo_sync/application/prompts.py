import asyncio
import logging
import sys
import threading
from typing import Iterable, List, Optional, Sequence, TextIO

from bulk_repo_sync.domain.exceptions import ConsoleInputException
from bulk_repo_sync.domain.selection import parse_selection

logger = logging.getLogger(__name__)

YES_TOKENS = {"y", "yes"}
NO_TOKENS = {"n", "no"}


def _deliver(future: asyncio.Future, line: Optional[str], error: Optional[BaseException]) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(line)


class ConsoleReader:
    """
    Reads lines from a blocking stream without blocking the event loop.

    A blocked read cannot be cancelled, so at most one read is outstanding.
    When a prompt times out its read stays pending: if a line arrives later it
    is thrown away before the next prompt, and if nothing arrived yet the next
    prompt simply waits on the same read.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream if stream is not None else sys.stdin
        self._pending: Optional[asyncio.Future] = None

    def _start_read(self, loop: asyncio.AbstractEventLoop) -> asyncio.Future:
        future = loop.create_future()
        stream = self._stream

        def worker() -> None:
            line, error = None, None
            try:
                line = stream.readline()
            except (OSError, ValueError) as e:
                error = e
            try:
                loop.call_soon_threadsafe(_deliver, future, line, error)
            except RuntimeError:
                # Event loop already closed; nobody is waiting for this line.
                pass

        # Daemon thread: a read still blocked at exit must not keep the process alive.
        threading.Thread(target=worker, name="console-reader", daemon=True).start()
        return future

    def discard_stale(self) -> None:
        """Drops a line that was typed after its prompt had already timed out."""
        pending = self._pending
        if pending is None or not pending.done():
            return
        self._pending = None
        if not pending.cancelled() and pending.exception() is None:
            logger.debug(f"Discarding late input {pending.result()!r}.")

    async def read_line(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Returns the next line without its newline, "" at end of input,
        or None when the timeout elapses first.
        """
        loop = asyncio.get_running_loop()
        if self._pending is not None and self._pending.get_loop() is not loop:
            self._pending = None
        self.discard_stale()

        if self._pending is None:
            self._pending = self._start_read(loop)

        try:
            line = await asyncio.wait_for(asyncio.shield(self._pending), timeout)
        except asyncio.TimeoutError:
            return None
        except (OSError, ValueError) as e:
            self._pending = None
            raise ConsoleInputException(f"Could not read from the console: {e}") from e

        self._pending = None
        return line.rstrip("\r\n")


class TimedPrompt:
    """Console questions that give up after a deadline and let the caller pick the default."""

    def __init__(self, reader: Optional[ConsoleReader] = None, output: Optional[TextIO] = None):
        self.reader = reader or ConsoleReader()
        self.output = output if output is not None else sys.stdout

    def _write(self, text: str, newline: bool = True) -> None:
        self.output.write(text + ("\n" if newline else ""))
        self.output.flush()

    @staticmethod
    def _deadline_hint(timeout: Optional[float]) -> str:
        return f" [{timeout:g}s]" if timeout is not None else ""

    async def ask(self, text: str, timeout: Optional[float] = None) -> Optional[bool]:
        """
        Asks a yes/no question.

        Returns:
            True or False for a recognised answer, None on timeout or unrecognised input.
        """
        self._write(f"{text} (y/n){self._deadline_hint(timeout)}: ", newline=False)
        line = await self.reader.read_line(timeout)
        if line is None:
            self._write("")
            logger.debug(f"No answer within {timeout}s for: {text}")
            return None

        answer = line.strip().lower()
        if answer in YES_TOKENS:
            return True
        if answer in NO_TOKENS:
            return False
        return None

    async def ask_text(self, text: str) -> str:
        """Asks for a free-text value without a deadline."""
        self._write(f"{text}: ", newline=False)
        line = await self.reader.read_line(None)
        return (line or "").strip()

    def show_items(self, items: Sequence[str], preselected: Iterable[str] = ()) -> None:
        marked = {name.casefold() for name in preselected}
        width = len(str(len(items)))
        for number, item in enumerate(items, start=1):
            marker = "*" if item.casefold() in marked else " "
            self._write(f" {marker} {number:>{width}}. {item}")

    async def ask_selection(
        self,
        items: Sequence[str],
        text: str,
        timeout: Optional[float],
        default_on_timeout: Sequence[str],
        preselected: Iterable[str] = (),
    ) -> List[str]:
        """
        Lets the operator pick items by number, e.g. "1,3-5".

        Timeout or a blank answer returns `default_on_timeout` unchanged. A
        malformed answer is reported and asked again, each attempt with its
        own deadline.
        """
        self.show_items(items, preselected)

        while True:
            self._write(f"{text}{self._deadline_hint(timeout)}: ", newline=False)
            line = await self.reader.read_line(timeout)
            if line is None:
                self._write("")
                logger.info("No selection made in time, keeping the default.")
                return list(default_on_timeout)
            if not line.strip():
                return list(default_on_timeout)

            result = parse_selection(line, len(items))
            if result.ok:
                return result.pick(items)
            self._write(f"Invalid selection: {result.message} Please try again.")
