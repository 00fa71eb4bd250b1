import pytest

from metals_standalone.lsp.protocol import (
    INTERNAL_ERROR,
    MessageShapeError,
    Notification,
    Request,
    Response,
    make_error,
    make_notification,
    make_request,
    make_result,
    parse_message,
)


def test_parse_request_notification_and_response():
    req = parse_message({"jsonrpc": "2.0", "id": 4, "method": "workspace/configuration", "params": {"items": []}})
    assert isinstance(req, Request)
    assert req.id == 4
    assert req.params == {"items": []}

    note = parse_message({"jsonrpc": "2.0", "method": "window/logMessage", "params": {"type": 3}})
    assert isinstance(note, Notification)
    assert note.method == "window/logMessage"

    resp = parse_message({"jsonrpc": "2.0", "id": 1, "result": None})
    assert isinstance(resp, Response)
    assert resp.ok is True
    assert resp.result is None


def test_parse_string_id_request():
    req = parse_message({"jsonrpc": "2.0", "id": "abc", "method": "client/registerCapability"})
    assert isinstance(req, Request)
    assert req.id == "abc"


def test_parse_error_response_normalizes_error():
    resp = parse_message({"jsonrpc": "2.0", "id": 2, "error": {"code": -32601, "message": "nope", "data": [1]}})
    assert isinstance(resp, Response)
    assert resp.ok is False
    assert resp.error.code == -32601
    assert resp.error.data == [1]

    odd = parse_message({"id": 3, "error": "boom"})
    assert odd.error.code == INTERNAL_ERROR
    assert odd.error.message == "rpc failed"


@pytest.mark.parametrize(
    "payload",
    [
        [1, 2],
        "text",
        {"jsonrpc": "2.0", "id": 9},
        {"jsonrpc": "2.0", "result": 1},
        {"jsonrpc": "2.0", "id": 1, "method": 5},
        {"jsonrpc": "2.0", "id": [1], "result": 1},
        {"jsonrpc": "2.0", "id": {"a": 1}, "result": 1},
        {"jsonrpc": "2.0", "id": True, "result": 1},
        {"jsonrpc": "2.0", "id": 1.5, "result": 1},
        {"jsonrpc": "2.0", "id": False, "method": "workspace/configuration"},
    ],
)
def test_parse_rejects_unrecognised_shapes(payload):
    with pytest.raises(MessageShapeError):
        parse_message(payload)


def test_builders_omit_missing_params():
    assert make_request(1, "shutdown") == {"jsonrpc": "2.0", "id": 1, "method": "shutdown"}
    assert make_notification("initialized", {}) == {"jsonrpc": "2.0", "method": "initialized", "params": {}}
    assert make_result(5, None) == {"jsonrpc": "2.0", "id": 5, "result": None}
    assert make_error(6, INTERNAL_ERROR, "bad") == {
        "jsonrpc": "2.0",
        "id": 6,
        "error": {"code": -32603, "message": "bad"},
    }
