import json
import logging

import pytest
from structlog.testing import capture_logs

from cqlops.core.logging import configure_logging, get_logger


@pytest.fixture
def root_handlers():
    root = logging.getLogger()
    saved = (list(root.handlers), root.level)
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])


def test_named_logger_can_be_created_at_import_time():
    log = get_logger("cqlops.core.sample")

    with capture_logs() as logs:
        log.bind(table="users").warning("something odd", column="email")

    assert logs == [
        {"event": "something odd", "log_level": "warning", "table": "users", "column": "email"}
    ]


def test_configured_output_names_the_module(capsys, root_handlers):
    log = get_logger("cqlops.core.sample")
    configure_logging(level="DEBUG", json_format=True)

    log.bind(table="users").info("table created")

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "table created"
    assert record["logger"] == "cqlops.core.sample"
    assert record["table"] == "users"
    assert record["level"] == "info"


def test_level_filters_debug_events(capsys, root_handlers):
    log = get_logger("cqlops.core.sample")
    configure_logging(level="WARNING", json_format=True)

    log.debug("row inserted")

    assert capsys.readouterr().err == ""
