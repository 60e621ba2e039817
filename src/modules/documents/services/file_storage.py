import logging
import os
import uuid

import config
from modules.documents.errors import InfrastructureError, NotFoundError

logger = logging.getLogger(__name__)

ORIGINALS = "originals"
SIGNED = "signed"


class FileStorage:
    """Path-addressed blob store for original and signed PDFs."""

    def __init__(self, base_dir: str = None):
        self.base_dir = base_dir or config.UPLOAD_DIR

    def save(self, contents: bytes, folder: str, filename: str) -> str:
        """Write ``contents`` under ``folder`` and return the stored path."""
        directory = os.path.join(self.base_dir, folder)
        safe_name = os.path.basename(filename) or "document.pdf"
        path = os.path.join(directory, f"{uuid.uuid4().hex}_{safe_name}")
        try:
            os.makedirs(directory, exist_ok=True)
            with open(path, "wb") as f:
                f.write(contents)
        except OSError as e:
            raise InfrastructureError("Could not store file") from e
        return path

    def read(self, path: str) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFoundError("Document file not found") from e
        except OSError as e:
            raise InfrastructureError("Could not read file") from e

    def delete(self, path: str) -> bool:
        """Remove a stored file; a missing file is not an error."""
        if not path:
            return False
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError:
            logger.warning("Error deleting %s", path, exc_info=True)
            return False
