class ClipTrailError(Exception):
    """Base class for every error raised by the capture pipeline"""


class TransientIOError(ClipTrailError):
    """Clipboard read or directory listing failed, retried on the next poll"""


class StorageError(ClipTrailError):
    """Database unavailable or a row could not be written"""


class NetworkError(ClipTrailError):
    """URL metadata could not be fetched"""


class EnrichmentError(ClipTrailError):
    """OCR or thumbnail rendering failed"""


class NotFoundError(ClipTrailError):
    """Item was deleted before the mutation reached it"""

    def __init__(self, item_id):
        super().__init__(f"Item {item_id} no longer exists")
        self.item_id = item_id
