"""External integrations for the asset marketplace."""
from .identity import Session, SessionProvider
from .paypal_client import CaptureResult, PayPalClient, PayPalError, PayPalOrder
from .upload_signer import UploadCredential, UploadSigner, UploadSigningError

__all__ = [
    "CaptureResult",
    "PayPalClient",
    "PayPalError",
    "PayPalOrder",
    "Session",
    "SessionProvider",
    "UploadCredential",
    "UploadSigner",
    "UploadSigningError",
]
