"""Exception classes for spendcast, one per pipeline stage."""


class SpendcastError(Exception):
    """Base exception for spendcast."""
    pass


class DataLoadError(SpendcastError):
    """Source file missing, unreadable or not valid delimited text."""
    pass


class SchemaError(SpendcastError):
    """A required column is absent."""
    pass


class ParseError(SpendcastError):
    """A Date or Amount value cannot be converted."""
    pass


class InputError(SpendcastError):
    """Monthly series is empty or malformed."""
    pass


class ModelError(SpendcastError):
    """Automatic model fitting or forecasting failed."""
    pass


class ConfigError(SpendcastError):
    """Invalid configuration value."""
    pass
