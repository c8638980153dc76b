import logging
import math
import sys
import threading
from concurrent.futures import CancelledError
from typing import Callable, List, Optional, TextIO

import anyio
from anyio.from_thread import BlockingPortal
from anyio.streams.memory import MemoryObjectSendStream

logger = logging.getLogger(__name__)


class LinePrompt:
    """
    Interactive line prompt that owns the terminal cursor.

    Lines are read on a daemon thread, so a blocked ``readline`` never holds up
    the event loop or process exit, and handed over to the loop through a
    blocking portal. ``on_line`` therefore always runs on the event loop, one
    line at a time, in input order.

    Nothing else should write to ``output`` while the prompt is running: callers
    go through ``print_line`` and ``redisplay_prompt`` instead.
    """

    CLEAR_LINE = "\r\x1b[K"

    def __init__(
        self, input: Optional[TextIO] = None, output: Optional[TextIO] = None
    ) -> None:
        self._input = input if input is not None else sys.stdin
        self._output = output if output is not None else sys.stdout
        self._prompt_text = ""
        self._displayed = False
        self._closed = False
        self._close_callbacks: List[Callable[[], None]] = []
        self._cancel_scope: Optional[anyio.CancelScope] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_tty(self) -> bool:
        isatty = getattr(self._output, "isatty", None)
        return bool(isatty and isatty())

    def on_close(self, callback: Callable[[], None]) -> None:
        self._close_callbacks.append(callback)

    async def start(self, prompt_text: str, on_line: Callable[[str], None]) -> None:
        """
        Display ``prompt_text`` and deliver completed lines to ``on_line``.

        Returns once the input stream ends or ``close()`` is called.
        """
        if self._closed:
            return
        self._prompt_text = prompt_text
        send_stream, receive_stream = anyio.create_memory_object_stream(math.inf)

        try:
            with anyio.CancelScope() as self._cancel_scope:
                async with BlockingPortal() as portal, receive_stream:
                    reader = threading.Thread(
                        target=self._read_lines,
                        args=(portal, send_stream),
                        name="line-prompt-reader",
                        daemon=True,
                    )
                    reader.start()
                    self.redisplay_prompt()

                    async for line in receive_stream:
                        if self._closed:
                            break
                        # the terminal already moved past the prompt on Enter
                        self._displayed = False
                        on_line(line)
        finally:
            self._cancel_scope = None
            self.close()

    def _read_lines(
        self, portal: BlockingPortal, send_stream: MemoryObjectSendStream
    ) -> None:
        try:
            while True:
                try:
                    line = self._input.readline()
                except (OSError, ValueError) as e:
                    logger.debug("Input stream failed, closing prompt: %s", e)
                    break
                if not line:
                    logger.debug("Input stream reached end of file")
                    break
                portal.call(send_stream.send_nowait, line.rstrip("\r\n"))
            portal.call(send_stream.close)
        except (
            RuntimeError,
            CancelledError,
            anyio.BrokenResourceError,
            anyio.ClosedResourceError,
        ):
            # the prompt stopped while this thread was blocked on input
            logger.debug("Prompt stopped before input ended")

    def redisplay_prompt(self) -> None:
        if not self._prompt_text or self._closed:
            return
        if self.is_tty:
            self._output.write(self.CLEAR_LINE)
        elif self._displayed:
            return
        self._output.write(self._prompt_text)
        self._output.flush()
        self._displayed = True

    def print_line(self, text: str) -> None:
        if self._displayed:
            self._output.write(self.CLEAR_LINE if self.is_tty else "\n")
            self._displayed = False
        self._output.write(f"{text}\n")
        self._output.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()
        for callback in self._close_callbacks:
            callback()
