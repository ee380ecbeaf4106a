from __future__ import annotations

import logging
import os
from pathlib import Path

from sames.errors import InvalidRequestError, StorageError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
MAX_PFP_BYTES = 2 * 1024 * 1024
PFP_SUBDIR = "pfp"


class BlobStore:
    """Profile pictures on local disk, served back under ``/uploads``."""

    def __init__(self, root: str = "uploads", url_prefix: str = "/uploads") -> None:
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")
        (self.root / PFP_SUBDIR).mkdir(parents=True, exist_ok=True)

    def save_pfp(self, wallet: str, filename: str | None, content_type: str | None, data: bytes) -> str:
        """Store ``data`` as ``<wallet><ext>`` and return its public URL."""
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise InvalidRequestError(f"Unsupported image type: {content_type}")
        if len(data) > MAX_PFP_BYTES:
            raise InvalidRequestError("File too large (max 2MB)")
        # The wallet becomes a file name, so it must not walk out of the pfp dir.
        if not wallet or os.path.basename(wallet) != wallet or wallet in {".", ".."}:
            raise InvalidRequestError("Invalid wallet")

        ext = os.path.splitext(filename or "")[1].lower() or ".png"
        name = f"{wallet}{ext}"
        try:
            (self.root / PFP_SUBDIR / name).write_bytes(data)
        except OSError as exc:
            logger.exception("Failed to write profile picture for %s", wallet)
            raise StorageError(str(exc)) from exc

        logger.info("Saved profile picture %s (%d bytes)", name, len(data))
        return f"{self.url_prefix}/{PFP_SUBDIR}/{name}"
