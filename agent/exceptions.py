"""Custom exceptions for Overmind."""


class ProviderConnectionError(Exception):
    """Raised when the chat completion endpoint cannot be reached."""
    pass


class ProviderResponseError(Exception):
    """Raised when the chat completion endpoint answers with a non-2xx status."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ToolValidationError(Exception):
    """Raised when a tool call names an unknown tool or lacks required args."""
    pass


class ToolExecutionError(Exception):
    """Raised when a tool fails during execution."""
    pass


class PromptTemplateError(Exception):
    """Raised when a prompt template fails to render."""
    pass


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


class RelayError(Exception):
    """Raised when a relay request is missing its credential scope."""
    pass
