# Exceptions raised by the portal services and handled by the views


class PortalError(Exception):
    """Base class for every error the views know how to surface."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class AuthError(PortalError):
    """Identity provider rejected the request. `code` is the provider code."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class NotAuthenticatedError(PortalError):
    """No signed-in user. Views redirect to the login page."""


class PermissionDeniedError(PortalError):
    pass


class ProfileNotFoundError(PortalError):
    """The user has no stored profile. Views redirect to the profile page."""


class StoreError(PortalError):
    """A read or write against the document store failed."""


class AttachmentError(PortalError):
    pass


class PanicContactMissingError(PortalError):
    """No trusted phone configured. Views redirect to the panic configuration."""


class GeolocationError(PortalError):
    pass


class RosterUnavailableError(PortalError):
    pass


class CnpjLookupError(PortalError):
    pass
