import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_html2blocks_logger():
    logger = logging.getLogger("html2blocks")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
