import logging
import threading

import devserver.settings as default_settings
from devserver.local.config import Config, resolve_config


def test_empty_config_gets_all_defaults():
    config = resolve_config(Config())

    assert config.app_root_dir == default_settings.APP_ROOT_DIR
    assert config.source_dir == default_settings.SOURCE_DIR
    assert config.output_dir == default_settings.OUTPUT_DIR
    assert config.public_dir == default_settings.PUBLIC_DIR
    assert config.main_input_file == default_settings.MAIN_INPUT_FILE
    assert config.app_port == default_settings.APP_PORT
    assert config.compile_arguments() == []
    assert config.run_arguments() == []
    assert isinstance(config.logger, logging.Logger)
    assert isinstance(config.shutdown_event, threading.Event)
    assert config.routes is None


def test_none_means_defaults():
    config = resolve_config(None)
    assert config.main_input_file == default_settings.MAIN_INPUT_FILE
    assert config.shutdown_event is not None


def test_set_fields_are_kept():
    event = threading.Event()
    logger = logging.getLogger("custom")
    config = resolve_config(Config(app_root_dir="/tmp/app", app_port="9000", shutdown_event=event, logger=logger))

    assert config.app_root_dir == "/tmp/app"
    assert config.app_port == "9000"
    assert config.shutdown_event is event
    assert config.logger is logger
    assert config.source_dir == default_settings.SOURCE_DIR


def test_input_config_is_not_modified():
    original = Config(app_root_dir="/tmp/app")
    resolved = resolve_config(original)

    assert resolved is not original
    assert original.source_dir == ""
    assert original.logger is None
    assert original.shutdown_event is None


def test_numeric_port_is_coerced_to_string():
    config = resolve_config(Config(app_port=9001))  # type: ignore[arg-type]
    assert config.app_port == "9001"


def test_main_file_path_joins_root_source_and_file():
    config = resolve_config(Config(app_root_dir="/tmp/app", source_dir="web", main_input_file="main.py"))
    assert str(config.main_file_path).replace("\\", "/") == "/tmp/app/web/main.py"
