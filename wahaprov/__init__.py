"""wahaprov — provision a host for the WAHA container stack."""

__version__ = "0.1.0"
