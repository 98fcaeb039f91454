"""Channels multiplexed over a DTX connection."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from .decoder import decode_non_blocking
from .encoder import build_ack_message, encode
from .errors import DtxError
from .fragments import FragmentDecoder
from .message import Message, MessageType
from .primitive_dictionary import PrimitiveDictionary

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0

Archiver = Callable[[Any], bytes]
Unarchiver = Callable[[bytes], "list[Any]"]


@runtime_checkable
class Dispatcher(Protocol):
    """Receives messages that are neither replies nor registered method calls."""

    def dispatch(self, msg: Message) -> None: ...


class _Link(Protocol):
    archiver: Optional[Archiver]
    unarchiver: Optional[Unarchiver]

    def send(self, data: bytes) -> None: ...


def _send_ack_if_needed(link: _Link, msg: Message) -> None:
    if not msg.expects_reply:
        return
    try:
        link.send(build_ack_message(msg))
    except OSError as exc:
        log.error("Error sending ack:%s", exc)


class Channel:
    """One logical channel on a DTX connection.

    Outgoing messages get increasing identifiers; replies are matched to the
    waiting caller by identifier, fragmented replies are reassembled first.
    """

    def __init__(
        self,
        connection: _Link,
        code: int,
        name: str,
        dispatcher: Dispatcher,
        message_identifier: int = 1,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.connection = connection
        self.code = code
        self.name = name
        self.dispatcher = dispatcher
        self.message_identifier = message_identifier
        self.timeout = timeout
        self._lock = threading.Lock()
        self._response_waiters: dict[int, queue.Queue[Message]] = {}
        self._defragmenters: dict[int, FragmentDecoder] = {}
        self._registered_methods: dict[str, queue.Queue[Message]] = {}

    def __repr__(self) -> str:
        return f"Channel(code={self.code}, name={self.name!r})"

    def _archive(self, obj: Any) -> bytes:
        archiver = self.connection.archiver
        if archiver is None:
            raise DtxError("no archiver configured for this connection")
        return archiver(obj)

    def register_method_for_remote(self, selector: str) -> None:
        """Route incoming method invocations of ``selector`` to receive_method_call."""
        with self._lock:
            self._registered_methods[selector] = queue.Queue()

    def receive_method_call(self, selector: str, timeout: Optional[float] = None) -> Message:
        """Wait for the next invocation of a registered selector."""
        with self._lock:
            inbox = self._registered_methods.get(selector)
        if inbox is None:
            raise KeyError(f"selector not registered: {selector}")
        try:
            return inbox.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"Timed out waiting for call of '{selector}'") from None

    def _invocation(self, selector: str, args: tuple[Any, ...]) -> tuple[bytes, PrimitiveDictionary]:
        payload = self._archive(selector)
        auxiliary = PrimitiveDictionary()
        for arg in args:
            auxiliary.add_bytes(self._archive(arg))
        return payload, auxiliary

    def method_call(self, selector: str, *args: Any) -> Message:
        """Invoke a remote selector with archived arguments and return the reply."""
        payload, auxiliary = self._invocation(selector, args)
        try:
            msg = self.send_and_await_reply(True, MessageType.METHOD_INVOCATION, payload, auxiliary)
        except (DtxError, TimeoutError, OSError) as exc:
            log.info("failed invoking method %s on channel %s: %s", selector, self.name, exc)
            raise
        if msg.has_error():
            detail = msg.payload[0] if msg.payload else None
            raise DtxError(f"Failed invoking method '{selector}' with error: {detail}")
        return msg

    def method_call_async(self, selector: str, *args: Any) -> None:
        """Invoke a remote selector without waiting for a reply."""
        payload, auxiliary = self._invocation(selector, args)
        try:
            self.send(False, MessageType.METHOD_INVOCATION, payload, auxiliary)
        except (DtxError, OSError) as exc:
            log.info("failed invoking method %s on channel %s: %s", selector, self.name, exc)
            raise

    def _next_identifier(self) -> int:
        with self._lock:
            identifier = self.message_identifier
            self.message_identifier += 1
        return identifier

    def send(
        self,
        expects_reply: bool,
        message_type: int,
        payload: bytes,
        auxiliary: Optional[PrimitiveDictionary] = None,
    ) -> None:
        """Encode and send a message on this channel."""
        identifier = self._next_identifier()
        data = encode(identifier, 0, self.code, expects_reply, message_type, payload, auxiliary)
        self.connection.send(data)

    def send_and_await_reply(
        self,
        expects_reply: bool,
        message_type: int,
        payload: bytes,
        auxiliary: Optional[PrimitiveDictionary] = None,
    ) -> Message:
        """Send a message and block until its reply arrives or the timeout passes."""
        identifier = self._next_identifier()
        data = encode(identifier, 0, self.code, expects_reply, message_type, payload, auxiliary)
        inbox: queue.Queue[Message] = queue.Queue()
        with self._lock:
            self._response_waiters[identifier] = inbox
        try:
            self.connection.send(data)
            return inbox.get(timeout=self.timeout)
        except queue.Empty:
            raise TimeoutError(
                f"Timed out waiting for response for message:{identifier} channel:{self.code}"
            ) from None
        finally:
            with self._lock:
                self._response_waiters.pop(identifier, None)

    def dispatch(self, msg: Message) -> None:
        """Handle a message received for this channel."""
        inbox = None
        with self._lock:
            if msg.identifier >= self.message_identifier:
                self.message_identifier = msg.identifier + 1
            if (
                msg.payload_header.message_type == MessageType.METHOD_INVOCATION
                and msg.payload
                and isinstance(msg.payload[0], str)
            ):
                log.debug("Dispatching: %s", msg.payload[0])
                inbox = self._registered_methods.get(msg.payload[0])
        if inbox is not None:
            inbox.put(msg)
            return
        if msg.conversation_index > 0:
            self._dispatch_reply(msg)
            return
        self.dispatcher.dispatch(msg)

    def _dispatch_reply(self, msg: Message) -> None:
        if msg.is_first_fragment():
            with self._lock:
                self._defragmenters[msg.identifier] = FragmentDecoder(msg)
            _send_ack_if_needed(self.connection, msg)
            return
        if msg.is_fragment():
            with self._lock:
                decoder = self._defragmenters.get(msg.identifier)
            if decoder is None:
                log.warning("received message fragment without first message, dropping it")
                with self._lock:
                    self._response_waiters.pop(msg.identifier, None)
                return
            decoder.add_fragment(msg)
            if not msg.is_last_fragment():
                return
            with self._lock:
                self._defragmenters.pop(msg.identifier, None)
            try:
                assembled, leftover = decode_non_blocking(
                    decoder.extract(), self.connection.unarchiver
                )
            except (DtxError, RuntimeError) as exc:
                log.error("Decoding fragmented message failed: %s", exc)
                return
            if leftover:
                log.error("Decoding fragmented message left %d bytes", len(leftover))
            msg = assembled
        self._deliver(msg)

    def _deliver(self, msg: Message) -> None:
        with self._lock:
            inbox = self._response_waiters.pop(msg.identifier, None)
        if inbox is None:
            log.warning("no one waiting for reply %d on channel %s", msg.identifier, self.name)
            return
        inbox.put(msg)