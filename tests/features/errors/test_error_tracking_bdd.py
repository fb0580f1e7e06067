"""BDD tests for error grouping and alert cooldown."""

import pytest
from pytest_bdd import scenarios

# Load every feature file in this directory
scenarios(".")

pytestmark = [
    pytest.mark.tier(1),
    pytest.mark.tra("Core.ErrorTracking.Grouping"),
]
