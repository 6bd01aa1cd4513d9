"""
Errors
======

Exceptions shared across the detection pipeline.
"""


class ConfigurationError(Exception):
    """
    Raised for programmer or configuration errors.

    Examples: invalid component parameters, a flow field whose shape does
    not match the radial grid, or a frame delivered without an active
    session. These are fatal for the frame and must be surfaced.
    """
    pass
