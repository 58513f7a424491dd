import logging

from aidflow.utils.logging import ROOT_LOGGER_NAME, KeyValueFormatter, configure_logging, get_logger


def test_get_logger_namespaces_names():
    assert get_logger("aidflow.client").name == "aidflow.client"
    assert get_logger("scripts.run").name == "aidflow.scripts.run"
    assert get_logger(ROOT_LOGGER_NAME).name == ROOT_LOGGER_NAME


def test_formatter_appends_extra_fields():
    formatter = KeyValueFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("aidflow.test", logging.INFO, __file__, 1, "Step recorded", (), None)
    record.step_id = 3
    record.tx_hash = "0xabc"

    assert formatter.format(record) == "INFO Step recorded | step_id=3 tx_hash=0xabc"


def test_formatter_without_extras():
    formatter = KeyValueFormatter("%(message)s")
    record = logging.LogRecord("aidflow.test", logging.INFO, __file__, 1, "plain", (), None)
    assert formatter.format(record) == "plain"


def test_configure_logging_replaces_handlers():
    first = logging.NullHandler()
    second = logging.NullHandler()

    configure_logging("debug", handler=first)
    root = configure_logging("warning", handler=second)

    assert root.handlers == [second]
    assert root.level == logging.WARNING
    assert isinstance(second.formatter, KeyValueFormatter)
    root.removeHandler(second)
    root.setLevel(logging.NOTSET)
