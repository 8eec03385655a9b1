import sys
import traceback
from typing import Optional


class DocumentChatException(Exception):
    """
    Base error for the document chat backend.

    Usage mirrors the rest of the code base:
        raise RetrievalError("Similarity search failed", e) from e

    The second argument may be the causing exception (preferred) or the
    `sys` module, in which case the exception currently being handled is used.
    File name, line number and the formatted traceback of the cause are kept
    for logging; `str()` stays short enough to show to API clients.
    """

    def __init__(self, error_message: object, error_details: object = None):
        self.error_message = str(error_message)
        self.cause: Optional[BaseException] = (
            error_details if isinstance(error_details, BaseException) else None
        )

        if self.cause is not None:
            exc_type, exc_value, exc_tb = (
                type(self.cause),
                self.cause,
                self.cause.__traceback__,
            )
        elif error_details is sys:
            exc_type, exc_value, exc_tb = sys.exc_info()
        else:
            exc_type, exc_value, exc_tb = None, None, None

        # walk to the innermost frame, that is where the error was raised
        last_tb = exc_tb
        while last_tb is not None and last_tb.tb_next is not None:
            last_tb = last_tb.tb_next

        self.file_name = last_tb.tb_frame.f_code.co_filename if last_tb else "<unknown>"
        self.lineno = last_tb.tb_lineno if last_tb else -1

        if exc_type is not None:
            self.traceback_str = "".join(
                traceback.format_exception(exc_type, exc_value, exc_tb)
            )
        else:
            self.traceback_str = ""

        super().__init__(str(self))

    def __str__(self) -> str:
        if self.cause is not None and str(self.cause):
            return f"{self.error_message}: {self.cause}"
        return self.error_message

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.error_message!r}, "
            f"file={self.file_name!r}, line={self.lineno})"
        )


class NotFoundError(DocumentChatException):
    """A document or chat session does not exist."""


class MissingDocumentError(NotFoundError):
    """A chat session points at a document that no longer exists."""


class UnsupportedFormatError(DocumentChatException):
    """The upload is not a readable PDF."""


class RetrievalError(DocumentChatException):
    """The chunk store collection is missing or the embedding/search call failed."""


class AnswerPipelineError(DocumentChatException):
    """Any failure while producing an answer (retrieval, history, generation)."""


class StoreWriteError(DocumentChatException):
    """Persisting to the session store or the chunk store failed."""
