# minirpc

minirpc is a small RPC framework that runs over plain TCP. The client sends
one request on each connection. A request has three parts: the full method
name, a `|`, and the serialized request message. The server sends back one of
these:

- the serialized response message;
- `Method not found`, when the name is not registered;
- `Failed to parse request`, when the request bytes cannot be decoded.

When a request has no `|`, the server logs an error and closes the connection
without sending a reply. In that case `RpcClient.call` returns `b""`.

## Modules

- `minirpc.rpc` holds the framework:
  - `Message` is the base for dataclass messages. A message field can be an
    `int`, `bool`, `str` or `bytes`. Messages use the protocol-buffer wire
    format.
    - Fields are numbered in declaration order. A field can set its own number
      with `"number"` in its metadata.
    - `serialize()` leaves out fields that hold their zero value.
    - `parse(data)` skips unknown fields and raises `MessageError` on bad
      input.
  - `Service` is the base for services. A subclass sets `full_name`, and sets
    `rpc_methods` to map each method name to
    `(handler attribute, request type, response type)`.
    - `methods()` lists the methods.
    - `call_method(name, request, done)` runs a handler and returns its
      response.
  - `RpcServer` listens on a port and hands each readable connection to a
    `ThreadPool`.
    - Its methods are `init(close_log, log_write, thread_num)`, `log_write()`,
      `register_service(service)`, `init_thread_pool()`, `start()`, `stop()`
      and `handle_request(data)`.
    - `handle_request` answers one raw request without a socket.
    - Registered methods are in `handlers`, keyed by `Service.Method`.
    - The `listening` event is set once the socket is bound. After that,
      `port` holds the real port, which matters when you pass port `0`.
  - `RpcClient(ip, port).call(full_method_name, args)` sends a request and
    returns the raw reply.
- `minirpc.thread_pool` has `ThreadPool(thread_count)`.
  - `add_task(func)` queues a task. It raises `RuntimeError` after shutdown.
  - `shutdown()` finishes the queued tasks and joins the workers. The pool also
    works as a context manager.
  - Each task runs as a coroutine on its worker thread's scheduler. A task
    written as a generator function can `yield` to give up control.
- `minirpc.coroutine` holds the scheduler:
  - `Coroutine` wraps a plain callable or a generator function. `resume()`
    runs it to its next `yield`. Its state is a `CoroutineState`: `READY`,
    `RUNNING`, `BLOCKED` or `FINISHED`.
  - `Scheduler` is a round-robin scheduler. Its methods are
    `create_coroutine`/`add_coroutine`, `run`, `block_current`, `wake` and
    `stop`.
  - `get_scheduler()` returns the calling thread's own scheduler.
- `minirpc.log` holds the logger:
  - `Logger` collects lines in a per-thread buffer. It moves them in batches
    into a `BlockQueue`, and a background thread writes them to a
    date-stamped file.
    - The file rolls over to a new date when the day changes, and to a
      numbered file every `split_lines` lines.
    - `init(...)` returns the path of the file it opened.
    - `close()` writes what is still queued and closes the file.
  - `get_logger()` returns the process-wide logger.
  - `log_debug`, `log_info`, `log_warn` and `log_error` write to the logger
    only when logging is switched on.
  - `LogLevel` lists the levels.
- `minirpc.block_queue` has `BlockQueue(max_size)`, a bounded thread-safe FIFO.
  - `push` returns `False` when the queue is full.
  - `pop`, `front` and `back` raise `QueueEmpty` when the queue is empty.
  - `drain()` empties the queue and returns everything that was in it.
- `minirpc.closure_guard` has `ClosureGuard(done)`. It runs a completion
  callback when the guard is closed or its `with` block exits. It also has
  `reset`, `release`, `swap` and `empty`.
- `minirpc.calculator` is an example service:
  - `CalculatorService` is the service, under the name
    `testrpc.CalculatorService`. It has two methods:
    - `Add`, with `AddRequest(a, b)` and `AddResponse(sum)`.
    - `Sub`, with `SubRequest(a, b)` and `SubResponse(diff)`.
  - The module also has the demo's `main()`.

## Installation

```
pip install .
```

## Demo

```
minirpc-demo
```

The demo works like this:

1. It starts a server with 5 worker threads on port 12345. Use `--port` to
   choose another port.
2. It switches logging on, to `./<YYYY_MM_DD>_ServerLog`.
3. It registers the calculator service.
4. It calls `testrpc.CalculatorService.Add` and then
   `testrpc.CalculatorService.Sub`, each with `a=10, b=4`.
5. It prints and logs `[Client] Add result = 14` and
   `[Client] Sub result = 6`.
6. It stops the server.

## Using it in code

```python
import threading

from minirpc.calculator import AddRequest, AddResponse, CalculatorService
from minirpc.rpc import RpcClient, RpcServer

server = RpcServer(0)           # 0: let the system pick a free port
server.init(1, 0, 4)            # logging off, 4 worker threads
server.register_service(CalculatorService())
server.init_thread_pool()
threading.Thread(target=server.start, daemon=True).start()
server.listening.wait()

client = RpcClient("127.0.0.1", server.port)
reply = client.call("testrpc.CalculatorService.Add", AddRequest(a=10, b=4).serialize())
print(AddResponse.parse(reply).sum)   # 14
server.stop()
```

`RpcServer.log_write()` starts the logger when `close_log` is `0`. With
`log_write` set to `1`, its queue holds 800 lines. Any other value asks for a
queue of size 0, and `BlockQueue` rejects that with `ValueError`.

## Limits

- Each side reads at most 1024 bytes in a single receive. Larger requests or
  replies are cut short.
- A connection carries exactly one request and one reply. There are no
  timeouts, retries, service discovery or authentication.
- Message fields can be scalars only (`int`, `bool`, `str`, `bytes`). Nested,
  repeated and map fields are not supported.

## Tests

```
pip install .[test]
pytest
```