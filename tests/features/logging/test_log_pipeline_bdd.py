"""BDD tests for log pipeline buffering and level filtering."""

import pytest
from pytest_bdd import scenarios

scenarios(".")

pytestmark = [
    pytest.mark.tier(1),
    pytest.mark.tra("Core.Logging.Buffering"),
]
