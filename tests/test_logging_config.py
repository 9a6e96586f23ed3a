"""
Logging Setup Tests
===================
"""

import logging

import colorama
import pytest

from riskworker.logging_config import LevelColorFormatter, setup_logging


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_console_colour_does_not_leak_into_the_record():
    record = logging.makeLogRecord({'levelno': logging.ERROR, 'levelname': 'ERROR', 'msg': 'db down'})
    text = LevelColorFormatter('%(levelname)s %(message)s').format(record)

    assert colorama.Fore.RED in text
    assert record.levelname == 'ERROR'
    assert logging.Formatter('%(levelname)s %(message)s').format(record) == 'ERROR db down'


def test_setup_logging_writes_rotating_file(tmp_path, restore_root):
    log_file = tmp_path / 'logs' / 'riskworker.log'
    root = setup_logging(log_file=str(log_file), log_level='debug')

    assert root.level == logging.DEBUG
    assert len(root.handlers) == 2
    logging.getLogger('riskworker.test').warning('channel c1 skipped')
    for handler in root.handlers:
        handler.flush()

    line = log_file.read_text()
    assert 'WARNING' in line
    assert 'channel c1 skipped' in line
    assert '\x1b[' not in line


def test_setup_logging_twice_does_not_duplicate_handlers(restore_root):
    setup_logging()
    root = setup_logging()
    assert len(root.handlers) == 1


def test_noisy_libraries_are_quieted(restore_root):
    setup_logging(log_level='DEBUG')
    assert logging.getLogger('sqlalchemy.engine').level == logging.WARNING


def test_unknown_level_rejected(restore_root):
    with pytest.raises(ValueError):
        setup_logging(log_level='LOUD')
