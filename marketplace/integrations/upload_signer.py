"""
Signed upload credentials for the object-storage provider.

The browser uploads the binary straight to Cloudinary; this service only
signs the upload parameters with the shared API secret.
"""
from dataclasses import dataclass
from typing import Optional

import cloudinary.utils
import structlog

from marketplace.config import get_settings

logger = structlog.get_logger(__name__)


class UploadSigningError(Exception):
    """Raised when upload parameters cannot be signed."""

    pass


@dataclass(frozen=True)
class UploadCredential:
    """Short-lived credential the client attaches to its upload."""

    signature: str
    timestamp: int
    api_key: str
    folder: str


class UploadSigner:
    """Signs ``{timestamp, folder}`` for direct-to-storage uploads."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        folder: Optional[str] = None,
    ) -> None:
        settings = get_settings() if None in (api_key, api_secret, folder) else None
        self.api_key = api_key or settings.cloudinary_api_key
        self.api_secret = api_secret or settings.cloudinary_api_secret
        self.folder = folder or settings.cloudinary_upload_folder

    def sign(self, timestamp: int) -> UploadCredential:
        """
        Sign an upload for the configured folder.

        Args:
            timestamp: Unix timestamp chosen by the client

        Returns:
            UploadCredential: Signature plus the values the client must echo

        Raises:
            UploadSigningError: If the timestamp is unusable or signing fails
        """
        if timestamp <= 0:
            raise UploadSigningError("Timestamp must be a positive unix time")

        try:
            signature = cloudinary.utils.api_sign_request(
                {"timestamp": timestamp, "folder": self.folder},
                self.api_secret,
            )
        except Exception as e:
            logger.error("upload_signing_failed", error=str(e))
            raise UploadSigningError(f"Failed to sign upload: {e}") from e

        logger.info("upload_signed", folder=self.folder, timestamp=timestamp)

        return UploadCredential(
            signature=signature,
            timestamp=timestamp,
            api_key=self.api_key,
            folder=self.folder,
        )
