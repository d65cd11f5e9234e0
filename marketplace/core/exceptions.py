"""Failure taxonomy shared by the marketplace workflows."""


class MarketplaceError(Exception):
    """Base exception for marketplace operations."""

    pass


class AuthRequired(MarketplaceError):
    """Raised when an operation needs a session and there is none."""

    pass


class PermissionDenied(MarketplaceError):
    """Raised when the session lacks the role an operation requires."""

    pass


class NotFound(MarketplaceError):
    """Raised when a referenced asset, category or purchase does not exist."""

    pass


class AlreadyExists(MarketplaceError):
    """
    Raised by the ledger insert when the buyer already owns the asset.

    PurchaseWorkflow.record reports it as success, never as an error.
    """

    def __init__(self, purchase_id: object) -> None:
        super().__init__(f"Purchase {purchase_id} already recorded")
        self.purchase_id = purchase_id


class UpstreamFailure(MarketplaceError):
    """Raised when the payment gateway or storage provider fails."""

    pass


class ValidationFailure(MarketplaceError):
    """Raised when submitted fields are invalid. Nothing has been written."""

    pass
