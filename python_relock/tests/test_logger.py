import os
import sys
import io
import json
import logging

# ensure project root on path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from relock.common.config.models import LoggingConfig, RelockConfig
from relock.utils.logger import JsonFormatter, LockLogAdapter, TextFormatter, setup_logging, setup_logging_from_config


def _record(**extra):
    record = logging.LogRecord("relock.sync.lock", logging.DEBUG, __file__, 1, "Acquired %s", ("jobs:a",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_renders_lock_fields():
    entry = json.loads(JsonFormatter().format(_record(namespace="jobs", lock_key="jobs:a", lock_index=7)))
    assert entry["message"] == "Acquired jobs:a"
    assert entry["level"] == "DEBUG"
    assert entry["logger"] == "relock.sync.lock"
    assert entry["namespace"] == "jobs"
    assert entry["lock_key"] == "jobs:a"
    assert entry["lock_index"] == 7
    assert "lock_result" not in entry


def test_text_formatter_appends_lock_fields():
    line = TextFormatter().format(_record(namespace="jobs", lock_result="conflict"))
    assert line.endswith("Acquired jobs:a namespace=jobs lock_result=conflict")

    assert TextFormatter().format(_record()).endswith("Acquired jobs:a")


def test_adapter_stamps_namespace_and_keeps_call_extras():
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    base = logging.getLogger("relock.test.adapter")
    base.addHandler(handler)
    base.setLevel(logging.DEBUG)
    base.propagate = False
    try:
        LockLogAdapter(base, "jobs").info("released", extra={"lock_key": "jobs:a", "lock_result": "released"})
    finally:
        base.removeHandler(handler)

    entry = json.loads(stream.getvalue())
    assert entry["namespace"] == "jobs"
    assert entry["lock_key"] == "jobs:a"
    assert entry["lock_result"] == "released"


def test_setup_logging_from_config_replaces_handlers():
    root = logging.getLogger()
    saved = (root.level, root.handlers[:])
    stream = io.StringIO()
    try:
        setup_logging(level="debug", format_type="text", stream=stream)
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, TextFormatter)

        config = RelockConfig(logging=LoggingConfig(level="INFO", format="json"))
        setup_logging_from_config(config, stream=stream)
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("redis").level == logging.WARNING

        logging.getLogger("relock.test").warning("hello")
        assert json.loads(stream.getvalue().splitlines()[-1])["message"] == "hello"
    finally:
        root.setLevel(saved[0])
        root.handlers[:] = saved[1]
