"""Custom exceptions for the chart calculation core."""


class ChartCoreException(Exception):
    """Base exception for all chart calculation errors."""
    pass


class TimeConversionError(ChartCoreException):
    """Raised when a date, time or timezone cannot be converted to UTC."""
    pass


class EphemerisComputationError(ChartCoreException):
    """Raised when the ephemeris solver fails for a body or house system."""
    pass


class UnsupportedHouseSystemError(ChartCoreException):
    """Raised when house assignment is requested for a system other than Whole Sign."""

    def __init__(self, house_system: str, message: str = None):
        self.house_system = house_system
        super().__init__(message or f"House system '{house_system}' is not supported for house assignment")


class ChartCalculationError(ChartCoreException):
    """Raised when chart calculation fails. The original error is kept in __cause__."""

    def __init__(self, chart_type: str, message: str):
        self.chart_type = chart_type
        super().__init__(f"{chart_type} chart calculation failed: {message}")

    @property
    def root_cause(self):
        """First cause in the chain that is not itself a ChartCalculationError."""
        cause = self.__cause__
        while isinstance(cause, ChartCalculationError):
            cause = cause.__cause__
        return cause

    @property
    def is_input_error(self) -> bool:
        """True when the underlying cause is bad caller input rather than a solver failure."""
        return isinstance(self.root_cause, (TimeConversionError, UnsupportedHouseSystemError, ValueError))
