"""Smart-start HVAC pre-conditioning engine."""

__version__ = "0.1.0"
