"""Chat domain exports."""

from .receipts import ReadReceiptProcessor
from .service import IngestResult, MessageIngest

__all__ = [
	"IngestResult",
	"MessageIngest",
	"ReadReceiptProcessor",
]
