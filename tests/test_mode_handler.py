import json

import pytest

from devserver.local.errors import CompileError
from devserver.local.supervisor import STORE_KEY_EXTERNAL_SERVER, JsonFileStore, ServerModeHandler


class FakeStore:
    def __init__(self, values=None):
        self.values = dict(values or {})

    def get(self, key):
        return self.values[key]

    def set(self, key, value):
        self.values[key] = value


class FakeUI:
    def __init__(self):
        self.refreshes = 0

    def refresh_ui(self):
        self.refreshes += 1


class FakeHandler:
    def __init__(self, error=None):
        self.modes = []
        self.error = error

    def set_mode(self, external, progress=None):
        self.modes.append(external)
        if progress is not None:
            progress("switching")
        if self.error is not None:
            raise self.error


def test_label_defaults_to_internal():
    assert ServerModeHandler(FakeHandler(), FakeStore()).label() == "SERVER: INTERNAL"


def test_label_reflects_stored_mode():
    store = FakeStore({STORE_KEY_EXTERNAL_SERVER: "true"})
    assert ServerModeHandler(FakeHandler(), store).label() == "SERVER: EXTERNAL"


def test_execute_toggles_store_mode_and_ui():
    handler, store, ui = FakeHandler(), FakeStore(), FakeUI()
    mode_handler = ServerModeHandler(handler, store, ui)

    mode_handler.execute()
    assert store.values[STORE_KEY_EXTERNAL_SERVER] == "true"
    assert mode_handler.label() == "SERVER: EXTERNAL"

    mode_handler.execute()
    assert store.values[STORE_KEY_EXTERNAL_SERVER] == "false"

    assert handler.modes == [True, False]
    assert ui.refreshes == 2


def test_execute_without_ui():
    handler = FakeHandler()
    ServerModeHandler(handler, FakeStore()).execute()
    assert handler.modes == [True]


def test_failed_switch_is_logged_and_ui_still_refreshed(caplog):
    handler, ui = FakeHandler(error=CompileError("main.py: SyntaxError")), FakeUI()

    ServerModeHandler(handler, FakeStore(), ui).execute()

    assert ui.refreshes == 1
    assert "Server mode switch failed" in caplog.text


def test_json_store_round_trip(tmp_path):
    path = tmp_path / "state" / "store.json"
    store = JsonFileStore(path)

    with pytest.raises(KeyError):
        store.get(STORE_KEY_EXTERNAL_SERVER)

    store.set(STORE_KEY_EXTERNAL_SERVER, "true")

    assert JsonFileStore(path).get(STORE_KEY_EXTERNAL_SERVER) == "true"
    assert json.loads(path.read_text(encoding="utf-8")) == {STORE_KEY_EXTERNAL_SERVER: "true"}
    assert not path.with_suffix(".tmp").exists()


def test_json_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonFileStore(path)

    with pytest.raises(KeyError):
        store.get("anything")

    store.set("anything", "1")
    assert store.get("anything") == "1"


def test_switch_progress_is_logged(caplog):
    caplog.set_level("INFO")

    ServerModeHandler(FakeHandler(), FakeStore()).execute()

    assert "ServerMode: switching" in caplog.text
