"""
Custom Exceptions

Defines custom exception classes for the OLM bundle extractor.
"""


class ExtractorError(Exception):
    """Base exception class for bundle extractor errors"""
    pass


class ConfigurationError(ExtractorError):
    """Raised when configuration is invalid or missing"""
    pass


class AuthenticationError(ExtractorError):
    """Raised when registry authentication fails"""
    pass


class NetworkError(ExtractorError):
    """Raised when network operations fail"""
    pass


class RegistryError(ExtractorError):
    """Raised when pulling an image from a registry fails"""
    pass


class ExtractionError(ExtractorError):
    """Raised when image layers cannot be extracted safely"""
    pass


class CatalogError(ExtractorError):
    """Raised when catalog loading or bundle resolution fails"""
    pass


class BundleLoadError(ExtractorError):
    """Raised when a bundle directory cannot be loaded"""
    pass


class FilterError(ExtractorError):
    """Raised when a filter expression cannot be compiled"""
    pass


class TransformationError(ExtractorError):
    """Raised when manifest synthesis or provisioning fails"""
    pass


class ParsingError(ExtractorError):
    """Raised when data parsing fails"""
    pass
