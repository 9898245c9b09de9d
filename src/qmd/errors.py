"""Exception types raised by qmd components."""


class QmdError(Exception):
    """Base class for qmd errors."""


class ConfigurationError(QmdError):
    """Missing credentials or an embedding model with unknown dimensions."""


class ProviderError(QmdError):
    """An embedding or generation call failed or timed out."""


class DataIntegrityError(QmdError):
    """A vector does not match the declared dimension of its model."""


class SearchError(QmdError):
    """A query could not be answered at all."""
