import re
import uuid
from datetime import datetime
from pathlib import Path


def safe_stem(filename: str, max_length: int = 40) -> str:
    """Lowercase file stem with anything but alphanumerics, dash and underscore replaced."""
    stem = Path(filename or "file").stem
    cleaned = re.sub(r"[^a-zA-Z0-9_\-]", "_", stem).lower().strip("_")
    return (cleaned or "file")[:max_length]


def generate_session_id() -> str:
    """Generate a unique session ID with timestamp."""
    now = datetime.now()

    day = now.strftime("%d")  # 18
    month = now.strftime("%b").lower()  # oct
    year = now.strftime("%Y")  # 2026
    time_part = now.strftime("%I-%M_%p")  # 03-13_PM

    # remove leading 0, lowercase am/pm
    time_part = time_part.lstrip("0").lower()

    unique_id = uuid.uuid4().hex[:8]
    return f"session_{day}_{month}_{year}_{time_part}_{unique_id}"


def generate_document_id() -> str:
    return uuid.uuid4().hex


def generate_collection_name(filename: str) -> str:
    """
    Chunk store collection key for an upload.

    The readable part comes from the filename, the uuid part makes two
    uploads of identically named files land in different collections.
    """
    return f"{safe_stem(filename)}_{uuid.uuid4().hex}"
