"""Autoscale wizard."""
from wizard.autoscale import (
    AutoScaleWizard, DEFAULT_EXPRESSION, UNITS_MAX_EXPRESSION, UNITS_MIN_EXPRESSION,
)
