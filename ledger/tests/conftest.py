import logging
from datetime import datetime, timezone

import pytest

from ledger.core import FixedClock, new_subject_id


@pytest.fixture
def subject_id():
    return new_subject_id()


@pytest.fixture
def clock():
    return FixedClock(current=datetime(2024, 6, 1, tzinfo=timezone.utc))


@pytest.fixture
def restore_logging():
    """Undo setup_logging() so handlers never outlive a test's captured stderr."""
    root = logging.getLogger()
    before, level = list(root.handlers), root.level
    yield
    for handler in root.handlers[:]:
        if handler not in before:
            root.removeHandler(handler)
    root.setLevel(level)
