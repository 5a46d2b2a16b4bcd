class LLMError(RuntimeError):
    pass


class ProviderError(LLMError):
    """Raised by completion providers when a completion could not be obtained."""


class ProviderDisabledError(ProviderError):
    """AI features are switched off in settings."""


class MissingCredentialError(ProviderError):
    """The active provider has no API key configured."""


class HttpStatusError(ProviderError):
    """The provider answered with a non-2xx status."""

    def __init__(self, message: str, *, status: int, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class AuthError(HttpStatusError):
    """The provider rejected the credential (HTTP 401)."""


class ProviderNetworkError(ProviderError):
    """The request never produced an HTTP response (connection failure, timeout)."""


class ParseError(LLMError):
    """Raised when text cannot be turned into a structured value."""
