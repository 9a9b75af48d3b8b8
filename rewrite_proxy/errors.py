class ProxyError(Exception):
    """Base class for failures that terminate a proxied request."""


class ConfigurationError(ProxyError):
    """The route configuration is missing or unusable."""


class TransportError(ProxyError):
    """The outbound fetch to the backend failed or timed out."""


class BodyDecodeError(ProxyError):
    """A textual response body could not be decoded with its declared charset."""
