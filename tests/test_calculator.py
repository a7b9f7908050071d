import threading

import pytest

from minirpc.calculator import (
    AddRequest,
    AddResponse,
    CalculatorService,
    SubRequest,
    SubResponse,
    main,
)
from minirpc.log import get_logger
from minirpc.rpc import RpcClient, RpcServer


@pytest.fixture(autouse=True)
def _close_logger():
    yield
    get_logger().close()


def test_add_and_sub_of_demo_values():
    service = CalculatorService()
    add = AddResponse()
    service.add(AddRequest(a=10, b=4), add, None)
    sub = SubResponse()
    service.sub(SubRequest(a=10, b=4), sub, None)
    assert add.sum == 14
    assert sub.diff == 6


def test_done_runs_exactly_once():
    calls = []
    service = CalculatorService()
    service.add(AddRequest(a=1, b=2), AddResponse(), lambda: calls.append("add"))
    service.sub(SubRequest(a=1, b=2), SubResponse(), lambda: calls.append("sub"))
    assert calls == ["add", "sub"]


@pytest.mark.parametrize("a,b", [(0, 0), (10, 4), (-7, 3), (123456, -654321)])
def test_sub_undoes_add(a, b):
    service = CalculatorService()
    total = service.call_method("Add", AddRequest(a=a, b=b))
    back = service.call_method("Sub", SubRequest(a=total.sum, b=b))
    assert back.diff == a


def test_add_request_wire_bytes():
    data = AddRequest(a=10, b=4).serialize()
    assert data == b"\x08\x0a\x10\x04"
    assert AddRequest.parse(data) == AddRequest(a=10, b=4)


def test_service_description():
    service = CalculatorService()
    assert service.full_name == "testrpc.CalculatorService"
    assert service.methods() == {
        "Add": (AddRequest, AddResponse),
        "Sub": (SubRequest, SubResponse),
    }


def test_registered_names():
    server = RpcServer(0)
    server.register_service(CalculatorService())
    assert set(server.handlers) == {
        "testrpc.CalculatorService.Add",
        "testrpc.CalculatorService.Sub",
    }


def test_calls_over_tcp_match_direct_calls():
    service = CalculatorService()
    server = RpcServer(0)
    server.init(1, 0, 3)
    server.register_service(service)
    server.init_thread_pool()
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    try:
        assert server.listening.wait(5)
        client = RpcClient("127.0.0.1", server.port)
        request = AddRequest(a=-3, b=40)
        reply = client.call("testrpc.CalculatorService.Add", request.serialize())
        assert AddResponse.parse(reply) == service.call_method("Add", request)
        sub_request = SubRequest(a=5, b=9)
        reply = client.call("testrpc.CalculatorService.Sub", sub_request.serialize())
        assert SubResponse.parse(reply) == service.call_method("Sub", sub_request)
    finally:
        server.stop()
        thread.join(5)


def test_main_prints_results_and_writes_log(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["--port", "0"]) == 0
    out = capsys.readouterr().out
    assert "[Client] Add result = 14" in out
    assert "[Client] Sub result = 6" in out
    logs = list(tmp_path.glob("*_ServerLog"))
    assert len(logs) == 1
    content = logs[0].read_text(encoding="utf-8")
    assert "[info]: [Client] Add result = 14" in content
    assert "[Server] Registered service: testrpc.CalculatorService.Add" in content
    assert not get_logger().is_open()