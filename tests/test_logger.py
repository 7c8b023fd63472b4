import logging

from docindex_client.logger import TRACE_LEVEL, BoundLogger, create_logger


class RecordingLogger:
    def __init__(self) -> None:
        self.records = []

    def debug(self, msg, *args):
        self.records.append(("debug", msg % args))

    def warn(self, msg, *args):
        self.records.append(("warn", msg % args))


class ExplodingLogger:
    def log(self, level, msg, *args):
        raise RuntimeError("handler is broken")


def test_level_filtering_with_duck_typed_logger() -> None:
    target = RecordingLogger()
    logger = BoundLogger(target, level="warn")
    logger.debug("hidden %s", 1)
    logger.warn("shown %s", 2)
    assert target.records == [("warn", "shown 2")]
    assert logger.is_enabled("error")
    assert not logger.is_enabled("info")


def test_child_derives_stdlib_logger_name(caplog) -> None:
    base = logging.getLogger("docindex.tests")
    child = BoundLogger(base, level="trace").child("poller")
    with caplog.at_level(TRACE_LEVEL, logger="docindex.tests.poller"):
        child.trace("task %s observed", 7)
    assert [(r.name, r.levelno, r.getMessage()) for r in caplog.records] == [
        ("docindex.tests.poller", TRACE_LEVEL, "task 7 observed")
    ]


def test_logging_failures_are_swallowed() -> None:
    BoundLogger(ExplodingLogger(), level="trace").error("boom")


def test_create_logger_reuses_bound_logger() -> None:
    bound = BoundLogger(RecordingLogger(), level="debug")
    assert create_logger(logger=bound) is bound
    assert create_logger(level="error").level == "error"
