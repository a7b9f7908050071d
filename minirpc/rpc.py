"""Minimal RPC framework: binary messages, services, a TCP server and client."""

from __future__ import annotations

import dataclasses
import functools
import selectors
import socket
import threading
from dataclasses import dataclass
from typing import Callable, ClassVar, Mapping, Optional, TypeVar

from minirpc.log import get_logger, log_error, log_info
from minirpc.thread_pool import ThreadPool

_MASK64 = (1 << 64) - 1
_WIRE_VARINT = 0
_WIRE_I64 = 1
_WIRE_LEN = 2
_WIRE_I32 = 5
_WIRE_TYPES = {int: _WIRE_VARINT, bool: _WIRE_VARINT, str: _WIRE_LEN, bytes: _WIRE_LEN}
_KINDS_BY_NAME = {"int": int, "bool": bool, "str": str, "bytes": bytes}

RECV_SIZE = 1024

M = TypeVar("M", bound="Message")


class MessageError(ValueError):
    """Raised when bytes cannot be decoded as a message."""


@dataclass(frozen=True)
class _FieldSpec:
    name: str
    number: int
    kind: type


@functools.lru_cache(maxsize=None)
def _schema(cls: type) -> tuple[_FieldSpec, ...]:
    if not dataclasses.is_dataclass(cls):
        raise TypeError(f"{cls.__name__} must be a dataclass")
    specs = []
    for position, field in enumerate(dataclasses.fields(cls)):
        kind = field.type
        if isinstance(kind, str):
            kind = _KINDS_BY_NAME.get(kind.strip(), kind)
        if kind not in _WIRE_TYPES:
            raise TypeError(f"unsupported field type for {field.name}: {kind!r}")
        number = field.metadata.get("number", position + 1)
        specs.append(_FieldSpec(field.name, number, kind))
    return tuple(specs)


def _varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    for shift in range(0, 70, 7):
        if pos >= len(data):
            raise MessageError("truncated varint")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _MASK64, pos
    raise MessageError("varint is too long")


def _take(data: bytes, pos: int, size: int) -> tuple[bytes, int]:
    end = pos + size
    if end > len(data):
        raise MessageError("truncated field")
    return data[pos:end], end


class Message:
    """Base for dataclass messages with int, bool, str and bytes fields.

    Fields are numbered by declaration order unless their metadata holds a
    ``"number"``. Fields at their zero value are left out of the encoding.
    """

    def serialize(self) -> bytes:
        """Encode the message in protocol-buffer wire format."""
        out = bytearray()
        for spec in _schema(type(self)):
            value = getattr(self, spec.name)
            if not value:
                continue
            if spec.kind in (int, bool):
                out += _varint(spec.number << 3 | _WIRE_VARINT)
                out += _varint(int(value) & _MASK64)
            else:
                payload = value.encode("utf-8") if spec.kind is str else bytes(value)
                out += _varint(spec.number << 3 | _WIRE_LEN)
                out += _varint(len(payload))
                out += payload
        return bytes(out)

    @classmethod
    def parse(cls: type[M], data: bytes) -> M:
        """Decode ``data``; unknown fields are skipped."""
        data = bytes(data)
        by_number = {spec.number: spec for spec in _schema(cls)}
        values: dict[str, object] = {}
        pos = 0
        while pos < len(data):
            key, pos = _read_varint(data, pos)
            number, wire = key >> 3, key & 7
            if number == 0:
                raise MessageError("invalid field number 0")
            if wire == _WIRE_VARINT:
                raw, pos = _read_varint(data, pos)
            elif wire == _WIRE_I64:
                raw, pos = _take(data, pos, 8)
            elif wire == _WIRE_LEN:
                size, pos = _read_varint(data, pos)
                raw, pos = _take(data, pos, size)
            elif wire == _WIRE_I32:
                raw, pos = _take(data, pos, 4)
            else:
                raise MessageError(f"unsupported wire type {wire}")
            spec = by_number.get(number)
            if spec is None:
                continue
            if wire != _WIRE_TYPES[spec.kind]:
                raise MessageError(f"wrong wire type {wire} for field {spec.name}")
            values[spec.name] = _decode(spec, raw)
        return cls(**values)


def _decode(spec: _FieldSpec, raw: object) -> object:
    if spec.kind is int:
        assert isinstance(raw, int)
        return raw - (1 << 64) if raw >= 1 << 63 else raw
    if spec.kind is bool:
        return bool(raw)
    if spec.kind is str:
        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MessageError(f"field {spec.name} is not valid UTF-8") from exc
    return bytes(raw)


Closure = Callable[[], object]


class Service:
    """Base for RPC services.

    Subclasses set ``full_name`` and ``rpc_methods``, which maps each method
    name to ``(handler attribute, request type, response type)``. A handler
    takes ``(request, response, done)`` and fills in ``response``.
    """

    full_name: ClassVar[str] = ""
    rpc_methods: ClassVar[Mapping[str, tuple[str, type[Message], type[Message]]]] = {}

    def methods(self) -> dict[str, tuple[type[Message], type[Message]]]:
        """Return each method name with its request and response types."""
        return {
            name: (request_type, response_type)
            for name, (_, request_type, response_type) in self.rpc_methods.items()
        }

    def call_method(
        self, name: str, request: Message, done: Optional[Closure] = None
    ) -> Message:
        """Run the method ``name`` on ``request`` and return the response."""
        try:
            handler_name, _, response_type = self.rpc_methods[name]
        except KeyError:
            raise KeyError(f"no method {name!r} in {self.full_name!r}") from None
        response = response_type()
        getattr(self, handler_name)(request, response, done)
        return response


@dataclass
class MethodProperty:
    service: Service
    name: str
    request_type: type[Message]
    response_type: type[Message]


class RpcServer:
    """TCP server that dispatches ``Service.Method|payload`` requests."""

    def __init__(self, port: int) -> None:
        self.port = port
        self.handlers: dict[str, MethodProperty] = {}
        self.listening = threading.Event()
        self._close_log = 1
        self._log_write = 0
        self._thread_num = 1
        self._pool: Optional[ThreadPool] = None
        self._stop_event = threading.Event()
        self._finished = threading.Event()
        self._finished.set()

    def init(self, close_log: int, log_write: int, thread_num: int) -> None:
        """Set the logging switches and the number of worker threads."""
        self._close_log = close_log
        self._log_write = log_write
        self._thread_num = thread_num

    def log_write(self) -> None:
        """Start the process-wide logger unless logging is switched off."""
        if self._close_log == 0:
            queue_size = 800 if self._log_write == 1 else 0
            get_logger().init("./ServerLog", self._close_log, 2000, 800000, queue_size)

    def register_service(self, service: Service) -> None:
        """Make every method of ``service`` callable as ``Service.Method``."""
        service_name = service.full_name or type(service).__name__
        for name, (request_type, response_type) in service.methods().items():
            full_name = f"{service_name}.{name}"
            self.handlers[full_name] = MethodProperty(
                service, name, request_type, response_type
            )
            log_info(f"[Server] Registered service: {full_name}")

    def init_thread_pool(self) -> None:
        """Create the worker pool that handles client connections."""
        self._pool = ThreadPool(self._thread_num)

    def handle_request(self, data: bytes) -> Optional[bytes]:
        """Answer one raw request; return None if it is malformed."""
        full_name, sep, args = bytes(data).partition(b"|")
        if not sep:
            log_error(
                "[Server] Invalid request format: " + data.decode("utf-8", "replace")
            )
            return None
        name = full_name.decode("utf-8", "replace")
        prop = self.handlers.get(name)
        if prop is None:
            result = b"Method not found"
        else:
            try:
                request = prop.request_type.parse(args)
            except MessageError:
                result = b"Failed to parse request"
            else:
                log_info(f"[Server] Calling method: {name}")
                response = prop.service.call_method(prop.name, request, lambda: None)
                log_info(f"[Server] Method call completed: {name}")
                try:
                    result = response.serialize()
                except (TypeError, ValueError):
                    result = b"Failed to serialize response"
        log_info("[Server] Sending response: " + result.decode("utf-8", "replace"))
        return result

    def _handle_client(self, conn: socket.socket) -> None:
        with conn:
            conn.setblocking(True)
            try:
                data = conn.recv(RECV_SIZE)
            except OSError:
                return
            if not data:
                return
            result = self.handle_request(data)
            if result is not None:
                conn.sendall(result)

    def start(self) -> None:
        """Listen on the port and serve clients until :meth:`stop` is called."""
        if self._pool is None:
            raise RuntimeError("thread pool is not initialised")
        pool = self._pool
        self._finished.clear()
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server_sock, \
                    selectors.DefaultSelector() as selector:
                server_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                server_sock.bind(("0.0.0.0", self.port))
                server_sock.listen(10)
                server_sock.setblocking(False)
                self.port = server_sock.getsockname()[1]
                log_info(f"[Server] Listening on port {self.port}")
                selector.register(server_sock, selectors.EVENT_READ)
                self.listening.set()
                try:
                    self._serve(server_sock, selector, pool)
                finally:
                    self.listening.clear()
                    for key in list(selector.get_map().values()):
                        if key.fileobj is not server_sock:
                            selector.unregister(key.fileobj)
                            key.fileobj.close()
            logger = get_logger()
            if logger.is_open():
                logger.flush_local_buffer()
        finally:
            self._finished.set()

    def _serve(
        self,
        server_sock: socket.socket,
        selector: selectors.BaseSelector,
        pool: ThreadPool,
    ) -> None:
        while not self._stop_event.is_set():
            for key, _ in selector.select(timeout=0.1):
                if key.fileobj is server_sock:
                    while True:
                        try:
                            conn, _ = server_sock.accept()
                        except BlockingIOError:
                            break
                        conn.setblocking(False)
                        selector.register(conn, selectors.EVENT_READ)
                else:
                    conn = key.fileobj
                    selector.unregister(conn)
                    pool.add_task(functools.partial(self._handle_client, conn))

    def stop(self) -> None:
        """Stop serving, then finish pending requests and stop the workers."""
        self._stop_event.set()
        self._finished.wait()
        self._stop_event.clear()
        if self._pool is not None:
            self._pool.shutdown()
            self._pool = None


class RpcClient:
    """Client that sends one request per connection."""

    def __init__(self, ip: str, port: int) -> None:
        self.ip = ip
        self.port = port

    def call(self, full_method_name: str, args: bytes) -> bytes:
        """Send ``full_method_name|args`` and return the raw reply."""
        request = full_method_name.encode("utf-8") + b"|" + bytes(args)
        with socket.create_connection((self.ip, self.port)) as sock:
            sock.sendall(request)
            response = sock.recv(RECV_SIZE)
        log_info("[Client] Received response: " + response.decode("utf-8", "replace"))
        return response