"""Library card eligibility and patron provisioning for the ILS."""

__version__ = "0.3.0"
