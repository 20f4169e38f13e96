"""
Jetson Clocks Errors
Typed failures raised by the board abstraction and clock control core
"""


class ClocksError(Exception):
    """Base exception for jetson_clocks errors"""
    pass


class PermissionDenied(ClocksError):
    """Operation requires elevated privilege that is not held"""
    pass


class UnsupportedPlatform(ClocksError):
    """SoC family or machine unknown, or not in the registry for a domain"""
    pass


class PathNotFound(ClocksError):
    """Control file missing or not accessible in the required mode"""
    pass


class InvalidValue(ClocksError):
    """Requested value is not in the currently available set"""
    pass


class ParseFailure(ClocksError):
    """Control file contents could not be interpreted"""
    pass


class IOFailure(ClocksError):
    """Read or write of an existing, permitted path failed at the OS level"""
    pass
