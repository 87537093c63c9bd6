"""Storage path building utilities.

All attachment paths are built here:
    chat/{category}/{uuid}{ext}

Rules:
    - No leading slash
    - No user identifiers or client-supplied names in paths
    - Extension is lowercased and kept only when it is a plain suffix
"""

import re
from pathlib import PurePosixPath
from uuid import uuid4

_SAFE_EXT = re.compile(r"^\.[a-z0-9]{1,16}$")


def get_file_extension(filename: str) -> str:
    """Get the lowercased extension of a client filename ("" if none or unsafe)."""
    ext = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
    return ext if _SAFE_EXT.match(ext) else ""


def build_storage_path(category: str, filename: str) -> str:
    """Build a fresh storage path for an uploaded file.

    Example:
        >>> build_storage_path("code", "main.py")
        'chat/code/0b6f...e1.py'
    """
    return f"chat/{category}/{uuid4()}{get_file_extension(filename)}"
