from typing import Optional, Dict, Any


class BaseAppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BaseAppException):
    pass


class ConfigurationException(BaseAppException):
    """Exception raised for configuration errors."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=500, details=details)


class WhmcsError(BaseAppException):
    """Transport or HTTP failure talking to the WHMCS API."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=502, details=details)


class WhmcsApiError(WhmcsError):
    """WHMCS answered with result=error."""

    @property
    def is_not_found(self) -> bool:
        return "not found" in self.message.lower()


class AssistantError(BaseAppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=502, details=details)


class AssistantRunError(AssistantError):
    pass


class AssistantTimeoutError(AssistantError):
    pass


class MessagingError(BaseAppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=502, details=details)
