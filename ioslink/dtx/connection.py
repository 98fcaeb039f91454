"""A DTX connection: the global channel, requested channels and the reader."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, BinaryIO, Optional, Protocol

from .channel import DEFAULT_TIMEOUT, Archiver, Channel, Dispatcher, Unarchiver, _send_ack_if_needed
from .decoder import read_message
from .errors import DtxError
from .message import Message, MessageType
from .primitive_dictionary import PrimitiveDictionary

log = logging.getLogger(__name__)

REQUEST_CHANNEL = "_requestChannelWithCode:identifier:"
OUTPUT_RECEIVED = "outputReceived:fromProcess:atTime:"
NOTIFY_PUBLISHED_CAPABILITIES = "_notifyOfPublishedCapabilities:"
DEFAULT_CHANNEL_CODE = 0xFFFFFFFF


class Transport(Protocol):
    """A byte connection to a DTX service on the device."""

    def send(self, data: bytes) -> None: ...

    def reader(self) -> BinaryIO: ...

    def close(self) -> None: ...


def send_ack_if_needed(connection: Any, msg: Message) -> None:
    """Send an acknowledgement if ``msg`` expects a reply."""
    _send_ack_if_needed(connection, msg)


def _notify_of_published_capabilities(msg: Message) -> None:
    log.debug("capabs received")


class GlobalDispatcher:
    """Dispatcher of the global channel: acks, logs and collects channel requests."""

    def __init__(self, request_channel_messages: queue.Queue, connection: Connection) -> None:
        self.request_channel_messages = request_channel_messages
        self.connection = connection
        self.dispatch_functions = {
            NOTIFY_PUBLISHED_CAPABILITIES: _notify_of_published_capabilities,
        }

    def dispatch(self, msg: Message) -> None:
        send_ack_if_needed(self.connection, msg)
        if msg.payload:
            selector = msg.payload[0]
            if selector == REQUEST_CHANNEL:
                self.request_channel_messages.put(msg)
            if selector == OUTPUT_RECEIVED:
                self._log_output(msg)
                return
            if isinstance(selector, str) and selector in self.dispatch_functions:
                self.dispatch_functions[selector](msg)
        log.debug("Global Dispatcher Received: %s %s", msg.payload, msg.auxiliary)
        if msg.has_error():
            log.error("%s", msg.payload[0] if msg.payload else msg)

    def _log_output(self, msg: Message) -> None:
        arguments = msg.auxiliary.arguments()
        try:
            text = self.connection._unarchive(arguments[0])[0]
            pid, when = arguments[1], arguments[2]
        except (IndexError, TypeError, ValueError, DtxError):
            return
        log.info("%s msg=%s pid=%s time=%s", OUTPUT_RECEIVED, text, pid, when)


class Connection:
    """Manages the channels of one DTX service connection.

    ``archiver`` turns objects into archived bytes for payloads and arguments;
    ``unarchiver`` turns archived bytes back into a list of objects.
    """

    def __init__(
        self,
        transport: Transport,
        archiver: Optional[Archiver] = None,
        unarchiver: Optional[Unarchiver] = None,
    ) -> None:
        self._transport = transport
        self.archiver = archiver
        self.unarchiver = unarchiver
        self._lock = threading.Lock()
        self._channel_code_counter = 1
        self._active_channels: dict[int, Channel] = {}
        self._request_channel_messages: queue.Queue[Message] = queue.Queue(maxsize=5)
        self.global_channel = Channel(
            self,
            0,
            "global_channel",
            GlobalDispatcher(self._request_channel_messages, self),
            message_identifier=5,
            timeout=DEFAULT_TIMEOUT,
        )
        self._reader: Optional[threading.Thread] = None

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _archive(self, obj: Any) -> bytes:
        if self.archiver is None:
            raise DtxError("no archiver configured for this connection")
        return self.archiver(obj)

    def _unarchive(self, data: bytes) -> list[Any]:
        if self.unarchiver is None:
            return [data]
        return list(self.unarchiver(data))

    def close(self) -> None:
        """Close the underlying transport."""
        self._transport.close()

    def send(self, data: bytes) -> None:
        """Send raw bytes over the transport."""
        self._transport.send(data)

    def start(self) -> threading.Thread:
        """Start the background reader and return its thread."""
        thread = threading.Thread(target=self._read_loop, name="dtx-reader", daemon=True)
        self._reader = thread
        thread.start()
        return thread

    def _read_loop(self) -> None:
        stream = self._transport.reader()
        while True:
            try:
                msg = read_message(stream, self.unarchiver)
            except (EOFError, OSError, ValueError) as exc:
                log.debug("DTX Connection closed: %s", exc)
                return
            except DtxError as exc:
                log.error("error reading dtx connection %s", exc)
                return
            channel = self._active_channels.get(msg.channel_code, self.global_channel)
            channel.dispatch(msg)

    def for_channel_request(
        self, dispatcher: Dispatcher, timeout: Optional[float] = None
    ) -> Channel:
        """Wait for the device to request a channel and open it on code -1."""
        try:
            msg = self._request_channel_messages.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError("Timed out waiting for a channel request") from None
        with self._lock:
            arguments = msg.auxiliary.arguments()
            if len(arguments) < 2:
                raise DtxError(f"channel request without identifier: {msg}")
            identifier = self._unarchive(arguments[1])[0]
            if isinstance(identifier, (bytes, bytearray)):
                identifier = bytes(identifier).decode("utf-8", errors="replace")
            channel = Channel(self, -1, str(identifier), dispatcher, message_identifier=1)
            self._active_channels[DEFAULT_CHANNEL_CODE] = channel
        return channel

    def add_default_channel_receiver(self, dispatcher: Dispatcher) -> Channel:
        """Install a dispatcher for the channel with code -1 (0xFFFFFFFF)."""
        channel = Channel(
            self, -1, "c -1/ 4294967295 receiver channel ", dispatcher, message_identifier=1
        )
        self._active_channels[DEFAULT_CHANNEL_CODE] = channel
        return channel

    def request_channel_identifier(
        self, identifier: str, dispatcher: Dispatcher, timeout: float = DEFAULT_TIMEOUT
    ) -> Channel:
        """Ask the device to open a channel named ``identifier`` on the next code."""
        with self._lock:
            code = self._channel_code_counter
            self._channel_code_counter += 1
            payload = self._archive(REQUEST_CHANNEL)
            auxiliary = PrimitiveDictionary()
            auxiliary.add_int32(code)
            auxiliary.add_bytes(self._archive(identifier))
            log.debug("Requesting channel %s", identifier)
            try:
                reply = self.global_channel.send_and_await_reply(
                    True, MessageType.METHOD_INVOCATION, payload, auxiliary
                )
                log.debug("%s", reply)
            except (DtxError, TimeoutError, OSError) as exc:
                log.error("failed requesting channel %s: %s", identifier, exc)
            log.debug("Channel open %s", identifier)
            channel = Channel(self, code, identifier, dispatcher, message_identifier=1, timeout=timeout)
            self._active_channels[code] = channel
        return channel