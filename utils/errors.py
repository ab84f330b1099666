"""Error types shared by the MigraineMinder tools."""


class DiaryError(Exception):
    """Base class for errors surfaced to the user as a non-fatal message."""


class ValidationFailed(DiaryError):
    """Input was rejected before any request was sent to the record store."""


class RecordNotFound(DiaryError):
    """The requested document does not exist or belongs to another user."""

    def __init__(self, index: str, doc_id: str):
        super().__init__(f"No record {doc_id} in {index}")
        self.index = index
        self.doc_id = doc_id
