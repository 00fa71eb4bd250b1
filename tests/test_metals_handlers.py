from loguru import logger

from metals_standalone.metals.handlers import METALS_WORKSPACE_SETTINGS, MetalsHandlers, default_handlers


def _capture():
    records: list[tuple[str, str]] = []
    sink_id = logger.add(lambda m: records.append((m.record["level"].name, m.record["message"])), level="DEBUG")
    return records, sink_id


def test_default_table_covers_server_initiated_methods():
    table = default_handlers()
    for method in (
        "window/showMessage",
        "window/showMessageRequest",
        "window/logMessage",
        "textDocument/publishDiagnostics",
        "workspace/applyEdit",
        "metals/status",
        "metals/executeClientCommand",
        "client/registerCapability",
        "client/unregisterCapability",
        "window/workDoneProgress/create",
        "$/progress",
        "workspace/configuration",
    ):
        assert method in table


def test_show_message_request_picks_first_action():
    handlers = MetalsHandlers()
    actions = [{"title": "Import build"}, {"title": "Not now"}]
    assert handlers.show_message_request({"type": 3, "message": "New sbt workspace", "actions": actions}) == actions[0]
    assert handlers.show_message_request({"type": 3, "message": "FYI"}) is None
    assert handlers.show_message_request(None) is None


def test_apply_edit_is_acknowledged():
    assert MetalsHandlers().apply_edit({"edit": {}}) == {"applied": True}


def test_configuration_answers_one_entry_per_item():
    result = MetalsHandlers().configuration({"items": [{"section": "metals"}, {"section": "files"}, "junk"]})
    assert result == [METALS_WORKSPACE_SETTINGS, {}, {}]
    assert result[0]["startMcpServer"] is True
    assert MetalsHandlers().configuration({}) == []


def test_log_message_levels():
    records, sink_id = _capture()
    try:
        handlers = MetalsHandlers()
        handlers.log_message({"type": 1, "message": "compile failed"})
        handlers.log_message({"type": 4, "message": "indexing"})
    finally:
        logger.remove(sink_id)
    assert ("WARNING", "Metals: compile failed") in records
    assert ("INFO", "Metals: indexing") in records


def test_notification_handlers_return_none():
    handlers = MetalsHandlers()
    assert handlers.show_message({"type": 2, "message": "hi"}) is None
    assert handlers.publish_diagnostics({"uri": "file:///a.scala", "diagnostics": [{}, {}]}) is None
    assert handlers.metals_status({"text": "$(sync~spin) bloop"}) is None
    assert handlers.execute_client_command({"command": "metals-doctor-run"}) is None
    assert handlers.progress({"token": "x", "value": {}}) is None
    assert handlers.acknowledge({"registrations": []}) is None
