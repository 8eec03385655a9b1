from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

from doc_chat.exception.custom_exception import StoreWriteError, UnsupportedFormatError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.identifiers import safe_stem

SUPPORTED_EXTENSIONS = {".pdf"}
SUPPORTED_CONTENT_TYPES = {"application/pdf"}
# declared by clients that do not know the type (curl -F, some browsers)
GENERIC_CONTENT_TYPES = {"application/octet-stream", "binary/octet-stream", "application/x-download"}
PDF_MAGIC = b"%PDF-"


def validate_pdf_upload(
    file_bytes: bytes, filename: str, content_type: Optional[str] = None
) -> None:
    """
    Reject anything that is not PDF-like.

    Checks the declared content type (when the client sent a specific one),
    the file extension and the %PDF- header of the payload. A generic type
    such as application/octet-stream leaves the decision to the other two.
    """
    if not file_bytes:
        raise UnsupportedFormatError("No file provided")

    declared = (content_type or "").split(";")[0].strip().lower()
    if declared and declared not in GENERIC_CONTENT_TYPES and declared not in SUPPORTED_CONTENT_TYPES:
        log.warning("Rejected upload | filename=%s | content_type=%s", filename, content_type)
        raise UnsupportedFormatError("Only PDF files are supported")

    extension = Path(filename or "").suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        log.warning("Rejected upload | filename=%s | extension=%s", filename, extension)
        raise UnsupportedFormatError("Only PDF files are supported")

    if not file_bytes.lstrip()[: len(PDF_MAGIC)] == PDF_MAGIC:
        log.warning("Rejected upload without PDF header | filename=%s", filename)
        raise UnsupportedFormatError("Only PDF files are supported")


def save_uploaded_pdf(file_bytes: bytes, filename: str, target_dir: Path) -> Path:
    """
    Write the upload to target_dir as "<epoch millis>-<safe name>.pdf" and
    return the path.
    """
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        file_name = f"{int(time.time() * 1000)}-{safe_stem(filename)}.pdf"
        output_path = target_dir / file_name

        with open(output_path, "wb") as f:
            f.write(file_bytes)

        log.info("File saved for ingestion | uploaded=%s | saved_as=%s", filename, str(output_path))
        return output_path
    except OSError as e:
        log.error("Failed to save uploaded file | error=%s | dir=%s", str(e), str(target_dir))
        raise StoreWriteError("Failed to save uploaded file", e) from e
