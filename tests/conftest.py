#!/usr/bin/env python3

import logging

import pytest

assertion_count = 0


def pytest_assertion_pass(item, lineno, orig, expl):
    global assertion_count
    assertion_count += 1


def pytest_terminal_summary(terminalreporter, exitstatus, config):
    print(f'{assertion_count} assertions tested.')


@pytest.fixture(autouse=True)
def restore_root_logger():
    # The CLI reconfigures the root logger with a RichHandler. Do not let that leak into other tests.
    rootLogger = logging.getLogger()
    handlers = rootLogger.handlers[:]
    level = rootLogger.level
    yield
    for handler in rootLogger.handlers[:]:
        if handler not in handlers:
            rootLogger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in rootLogger.handlers:
            rootLogger.addHandler(handler)
    rootLogger.setLevel(level)
