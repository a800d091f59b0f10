"""Run a script inside a studio application and report its output as an exit code."""

__version__ = "0.1.0"
