"""Calculator service and a demo that serves it and calls it over TCP."""

from __future__ import annotations

import argparse
import threading
from dataclasses import dataclass
from typing import Optional

from minirpc.closure_guard import Closure, ClosureGuard
from minirpc.log import get_logger, log_info
from minirpc.rpc import Message, RpcClient, RpcServer, Service


@dataclass
class AddRequest(Message):
    a: int = 0
    b: int = 0


@dataclass
class AddResponse(Message):
    sum: int = 0


@dataclass
class SubRequest(Message):
    a: int = 0
    b: int = 0


@dataclass
class SubResponse(Message):
    diff: int = 0


class CalculatorService(Service):
    """Adds and subtracts two integers."""

    full_name = "testrpc.CalculatorService"
    rpc_methods = {
        "Add": ("add", AddRequest, AddResponse),
        "Sub": ("sub", SubRequest, SubResponse),
    }

    def add(
        self, request: AddRequest, response: AddResponse, done: Optional[Closure] = None
    ) -> None:
        with ClosureGuard(done):
            response.sum = request.a + request.b

    def sub(
        self, request: SubRequest, response: SubResponse, done: Optional[Closure] = None
    ) -> None:
        with ClosureGuard(done):
            response.diff = request.a - request.b


def main(argv=None) -> int:
    """Serve the calculator, call Add and Sub on it, then shut down."""
    parser = argparse.ArgumentParser(
        prog="minirpc", description="Run the calculator RPC demo."
    )
    parser.add_argument("--port", type=int, default=12345, help="port to serve on")
    args = parser.parse_args(argv)

    server = RpcServer(args.port)
    server.init(0, 1, 5)
    server.log_write()
    server.register_service(CalculatorService())
    server.init_thread_pool()

    thread = threading.Thread(target=server.start, name="rpc-server", daemon=True)
    thread.start()
    try:
        if not server.listening.wait(5):
            raise RuntimeError("server did not start listening")
        client = RpcClient("127.0.0.1", server.port)

        add_reply = client.call(
            "testrpc.CalculatorService.Add", AddRequest(a=10, b=4).serialize()
        )
        add_line = f"[Client] Add result = {AddResponse.parse(add_reply).sum}"
        log_info(add_line)
        print(add_line)

        sub_reply = client.call(
            "testrpc.CalculatorService.Sub", SubRequest(a=10, b=4).serialize()
        )
        sub_line = f"[Client] Sub result = {SubResponse.parse(sub_reply).diff}"
        log_info(sub_line)
        print(sub_line)
    finally:
        server.stop()
        thread.join()
        logger = get_logger()
        if logger.is_open():
            logger.flush_local_buffer()
        logger.close()
    return 0