from __future__ import annotations

import logging

import pytest

from frontweave.logging_config import configure_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger("frontweave")
    previous = logger.level
    yield logger
    logger.setLevel(previous)


def test_explicit_level(package_logger):
    configure_logging("warning")
    assert package_logger.level == logging.WARNING


def test_verbose_forces_debug(package_logger):
    configure_logging("error", verbose=True)
    assert package_logger.level == logging.DEBUG


def test_unknown_level_falls_back_to_info(package_logger):
    configure_logging("chatty")
    assert package_logger.level == logging.INFO
