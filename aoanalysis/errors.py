"""
Exception types raised by the analysis package.

Configuration problems are detected while settings are being resolved and
abort before any computation. Precondition failures are detected by a routine
just before it needs the offending value; the command-line front end turns
them into a -1 return code.
"""


class AOAnalysisError(Exception):
    """Base class for all package errors."""


class ConfigurationError(AOAnalysisError, ValueError):
    """Invalid or unknown configuration value (WFS type, PSD component, ...)."""


class PreconditionError(AOAnalysisError, ValueError):
    """A routine was asked to run without a value it requires."""
