"""Single in-flight command/reply exchange over a duplex byte stream.

The device answers commands in order on the same stream it uses for
unsolicited events, so only one command may be outstanding at a time.
Callers queue on a FIFO lock; each exchange fully resolves (reply, error,
timeout or cancellation) before the next command is written.

A command abandoned by its caller (cancelled or timed out) may still be
answered later. Such commands are remembered as orphans and the first reply
matching the oldest orphan is discarded, so it is never handed to an
unrelated request.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from ..errors import (
    CommandCancelledError,
    CommandTimeoutError,
    DeviceError,
    ProtocolError,
)
from ..protocol.commands import expected_reply
from ..protocol.framing import ERROR_FLAG, Frame, FrameReader, MessageType

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1.0


@dataclass
class _PendingCommand:
    command: Frame
    accepted: tuple[MessageType, ...]
    future: asyncio.Future = field(repr=False)


@dataclass
class _Orphan:
    address: int
    kind: MessageType
    expires_at: float

    def matches(self, frame: Frame) -> bool:
        # Only the acknowledgement of the abandoned command; events never consume an orphan.
        return frame.address == self.address and (
            frame.is_error or frame.message_type == self.kind
        )


class AsyncCommandChannel:
    """Serializes commands to one device and correlates their replies.

    Usage::

        reader, writer = await open_serial("/dev/ttyUSB0")
        channel = AsyncCommandChannel(reader, writer)
        reply = await channel.send(read_command(resolve("WhoAmI")))
        await channel.close()
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        orphan_timeout: float | None = None,
        on_event: Callable[[Frame], None] | None = None,
    ) -> None:
        self._frames = FrameReader(reader)
        self._writer = writer
        self._timeout = timeout
        self._orphan_timeout = timeout if orphan_timeout is None else orphan_timeout
        self._on_event = on_event
        self._lock = asyncio.Lock()
        self._pending: _PendingCommand | None = None
        self._orphans: deque[_Orphan] = deque()
        self._receive_task: asyncio.Task | None = None
        self._closed = False

    @property
    def busy(self) -> bool:
        """True while a command is awaiting its reply."""
        return self._pending is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def orphan_count(self) -> int:
        return len(self._orphans)

    def start(self) -> None:
        """Start the background receive loop if it is not running yet."""
        if self._receive_task is None:
            self._receive_task = asyncio.get_running_loop().create_task(self._receive_loop())

    async def send(
        self,
        command: Frame,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> Frame:
        """Send a command and wait for its reply.

        Args:
            command: The command frame to transmit.
            cancel: Optional event; setting it abandons the wait.
            timeout: Seconds to wait for the reply (default: channel timeout).

        Returns:
            The matching reply frame.

        Raises:
            CommandTimeoutError: No matching reply arrived in time.
            CommandCancelledError: ``cancel`` was set before the reply arrived.
            DeviceError: The device answered with an error reply.
            ProtocolError: A malformed frame arrived while waiting.
            ConnectionError: The channel is closed or the stream ended.
        """
        if self._closed:
            raise ConnectionError("Command channel is closed")
        self.start()
        timeout = self._timeout if timeout is None else timeout

        async with self._lock:
            if self._closed:
                raise ConnectionError("Command channel is closed")
            if cancel is not None and cancel.is_set():
                raise CommandCancelledError(command.address)

            pending = _PendingCommand(
                command=command,
                accepted=expected_reply(command),
                future=asyncio.get_running_loop().create_future(),
            )
            self._pending = pending
            try:
                data = command.to_bytes()
                logger.debug("TX %s", data.hex(" "))
                self._writer.write(data)
                await self._writer.drain()
                return await self._wait(pending, cancel, timeout)
            except (asyncio.CancelledError, CommandCancelledError, CommandTimeoutError):
                if not pending.future.done():
                    self._abandon(pending)
                raise
            finally:
                self._pending = None

    async def _wait(
        self,
        pending: _PendingCommand,
        cancel: asyncio.Event | None,
        timeout: float,
    ) -> Frame:
        waiters: set[asyncio.Future] = {pending.future}
        cancel_task = None
        if cancel is not None:
            cancel_task = asyncio.ensure_future(cancel.wait())
            waiters.add(cancel_task)
        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if cancel_task is not None:
                cancel_task.cancel()

        if pending.future.done():
            return pending.future.result()
        if cancel_task is not None and cancel.is_set():
            raise CommandCancelledError(pending.command.address)
        raise CommandTimeoutError(pending.command.address, timeout)

    def _abandon(self, pending: _PendingCommand) -> None:
        expires_at = asyncio.get_running_loop().time() + self._orphan_timeout
        self._orphans.append(
            _Orphan(pending.command.address, pending.command.message_type, expires_at)
        )
        pending.future.cancel()
        logger.debug(
            "Abandoned command for address %d; %d orphan(s) outstanding",
            pending.command.address,
            len(self._orphans),
        )

    def _expire_orphans(self) -> None:
        now = asyncio.get_running_loop().time()
        while self._orphans and self._orphans[0].expires_at <= now:
            orphan = self._orphans.popleft()
            logger.debug("Orphan for address %d expired unanswered", orphan.address)

    def _fail_pending(self, exc: BaseException) -> bool:
        pending = self._pending
        if pending is None or pending.future.done():
            return False
        pending.future.set_exception(exc)
        return True

    def _dispatch(self, frame: Frame) -> None:
        self._expire_orphans()
        if self._orphans and self._orphans[0].matches(frame):
            self._orphans.popleft()
            logger.debug("Discarding late reply %r", frame)
            return

        pending = self._pending
        if (
            pending is not None
            and not pending.future.done()
            and frame.address == pending.command.address
        ):
            if frame.is_error:
                code = int(frame.message_type) | ERROR_FLAG
                pending.future.set_exception(DeviceError(frame.address, code))
                return
            if frame.message_type in pending.accepted:
                pending.future.set_result(frame)
                return

        if frame.message_type == MessageType.EVENT:
            logger.debug("Event %r", frame)
            if self._on_event is not None:
                try:
                    self._on_event(frame)
                except Exception:
                    logger.exception("Event callback failed for %r", frame)
            return
        logger.debug("Ignoring unmatched frame %r", frame)

    async def _receive_loop(self) -> None:
        while True:
            try:
                frame = await self._frames.read()
            except ProtocolError as e:
                if not self._fail_pending(e):
                    logger.warning("Discarding malformed frame: %s", e)
                continue
            except (asyncio.IncompleteReadError, OSError) as e:
                logger.info("Device stream ended: %s", e)
                self._closed = True
                self._fail_pending(ConnectionError("Device stream ended while awaiting reply"))
                return
            self._dispatch(frame)

    async def close(self) -> None:
        """Stop the receive loop and close the underlying stream."""
        if self._closed and self._receive_task is None:
            return
        self._closed = True
        if self._receive_task is not None:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None
        self._fail_pending(ConnectionError("Command channel closed"))

        try:
            self._writer.close()
            await self._writer.wait_closed()
        except Exception as e:
            logger.warning("Error closing stream: %s", e)
