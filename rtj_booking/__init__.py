"""Scheduled login and resilient tee-time clicking for the RTJ CPS Golf portal."""

__version__ = "0.1.0"
