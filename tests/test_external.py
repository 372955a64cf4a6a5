import threading

import pytest

from conftest import http_app, port_is_free, wait_for_http
from devserver.local.errors import CompileError
from devserver.local.supervisor import ExternalProcessStrategy, ServerHandler, ServerMode
from devserver.local.supervisor import strategies


@pytest.fixture
def external_handler(make_config, write_source, free_port):
    write_source(http_app(free_port, "v1"))
    handler = ServerHandler(make_config())
    assert handler.mode is ServerMode.EXTERNAL
    yield handler
    handler.stop()


def _get(port):
    response = wait_for_http(f"http://127.0.0.1:{port}/")
    return response.text if response is not None else None


def test_start_compiles_and_serves(external_handler, tmp_path):
    external_handler.start()

    assert _get(external_handler.config.app_port) == "v1"
    assert (tmp_path / "build" / "main.pyc").exists()


def test_restart_picks_up_new_source(external_handler, write_source):
    port = external_handler.config.app_port
    external_handler.start()
    assert _get(port) == "v1"

    write_source(http_app(port, "v2"))
    assert external_handler.strategy.restart() is True

    assert _get(port) == "v2"


def test_compile_failure_leaves_nothing_running_until_fixed(external_handler, write_source):
    port = external_handler.config.app_port
    strategy = external_handler.strategy
    external_handler.start()
    assert _get(port) == "v1"

    write_source("def broken(:\n")
    with pytest.raises(CompileError):
        strategy.restart()
    assert not strategy.runner.is_running()
    assert port_is_free(port)

    write_source(http_app(port, "fixed"))
    assert strategy.restart() is True
    assert _get(port) == "fixed"


def test_stop_frees_port_and_ignores_later_restarts(external_handler):
    port = external_handler.config.app_port
    strategy = external_handler.strategy
    external_handler.start()
    assert _get(port) == "v1"

    external_handler.stop()
    assert port_is_free(port)

    assert strategy.restart() is False
    assert not strategy.runner.is_running()


def test_runner_gets_arguments_and_app_environment(make_config, write_source, tmp_path):
    write_source("print('app')\n")
    handler = ServerHandler(make_config(run_arguments=lambda: ["dev"], compile_arguments=lambda: ["-O"]))
    strategy = handler.strategy

    assert strategy.runner.run_arguments() == ["dev"]
    assert strategy.compiler.compile_arguments() == ["-O"]
    assert strategy.runner.exec_path == tmp_path / "build" / "main.pyc"
    assert strategy.runner.env["DEVSERVER_APP_ROOT"] == str(tmp_path.resolve())
    assert str((tmp_path / "web").resolve()) in strategy.runner.env["PYTHONPATH"]


#* --- Restart coalescing ---
class FakeCompiler:
    def __init__(self):
        self.calls = 0
        self.release = threading.Event()
        self.entered = threading.Event()

    def compile(self):
        self.calls += 1
        self.entered.set()
        self.release.wait(timeout=10)

    def unobserved_files(self):
        return []


class FakeRunner:
    def __init__(self):
        self.runs = 0
        self.stops = 0

    def run(self):
        self.runs += 1

    def stop(self):
        self.stops += 1

    def is_running(self):
        return True

    def raise_for_exit(self):
        return None


@pytest.fixture
def fake_strategy(make_config, write_source, free_port, monkeypatch):
    write_source("print('app')\n")
    handler = ServerHandler(make_config())
    strategy = handler.strategy
    assert isinstance(strategy, ExternalProcessStrategy)
    strategy.compiler = FakeCompiler()
    strategy.runner = FakeRunner()
    monkeypatch.setattr(strategies, "port_in_use", lambda port: False)
    monkeypatch.setattr(strategies, "wait_for_port", lambda port, is_alive=None: True)
    monkeypatch.setattr(strategies.default_settings, "RESTART_GRACE_SECONDS", 0)
    return strategy


def test_concurrent_restarts_are_coalesced(fake_strategy):
    compiler = fake_strategy.compiler
    first = threading.Thread(target=fake_strategy.restart)
    first.start()
    assert compiler.entered.wait(timeout=5)

    assert fake_strategy.restart() is False
    assert fake_strategy.restart() is False

    compiler.release.set()
    first.join(timeout=10)

    assert not first.is_alive()
    assert compiler.calls == 2
    assert fake_strategy.runner.runs == 2


def test_sequential_restarts_each_run(fake_strategy):
    fake_strategy.compiler.release.set()

    assert fake_strategy.restart() is True
    assert fake_strategy.restart() is True

    assert fake_strategy.compiler.calls == 2


def test_start_always_compiles(fake_strategy):
    fake_strategy.compiler.release.set()

    fake_strategy.start()
    fake_strategy.start()

    assert fake_strategy.compiler.calls == 2
    assert fake_strategy.runner.runs == 2


#* --- File events ---
def test_write_event_restarts(fake_strategy, monkeypatch):
    calls = []
    monkeypatch.setattr(fake_strategy, "restart", lambda: calls.append("restart") or True)

    fake_strategy.handle_file_event("main.py", ".py", "/x/web/main.py", "write")

    assert calls == ["restart"]


def test_create_of_main_file_starts(fake_strategy, monkeypatch):
    calls = []
    monkeypatch.setattr(fake_strategy, "start", lambda: calls.append("start"))

    fake_strategy.handle_file_event("other.py", ".py", "/x/web/other.py", "create")
    fake_strategy.handle_file_event("main.py", ".py", "/x/web/main.py", "create")

    assert calls == ["start"]


def test_remove_and_rename_are_ignored(fake_strategy, monkeypatch):
    calls = []
    monkeypatch.setattr(fake_strategy, "start", lambda: calls.append("start"))
    monkeypatch.setattr(fake_strategy, "restart", lambda: calls.append("restart") or True)

    fake_strategy.handle_file_event("main.py", ".py", "/x/web/main.py", "remove")
    fake_strategy.handle_file_event("main.py", ".py", "/x/web/main.py", "rename")

    assert calls == []


def test_failed_restart_from_event_is_raised(fake_strategy, monkeypatch):
    def failing_restart():
        raise CompileError("main.py: SyntaxError")

    monkeypatch.setattr(fake_strategy, "restart", failing_restart)

    with pytest.raises(CompileError):
        fake_strategy.handle_file_event("main.py", ".py", "/x/web/main.py", "write")


def test_create_after_stop_does_not_start(fake_strategy, monkeypatch):
    calls = []
    monkeypatch.setattr(fake_strategy, "_compile_and_run", lambda stop_first: calls.append(stop_first))
    fake_strategy.stop()

    fake_strategy.handle_file_event("main.py", ".py", "/x/web/main.py", "create")

    assert calls == []
    assert fake_strategy.cancelled.is_set()


def test_write_after_stop_reports_no_restart(fake_strategy, caplog):
    caplog.set_level("INFO")
    fake_strategy.compiler.release.set()
    fake_strategy.stop()

    fake_strategy.handle_file_event("main.py", ".py", "/x/web/main.py", "write")

    assert fake_strategy.compiler.calls == 0
    assert "Restart succeeded" not in caplog.text


def test_start_after_shutdown_signal_does_nothing(fake_strategy):
    fake_strategy.compiler.release.set()
    fake_strategy.config.shutdown_event.set()

    fake_strategy.start()

    assert fake_strategy.compiler.calls == 0
    assert fake_strategy.runner.runs == 0
    assert fake_strategy.cancelled.is_set()
