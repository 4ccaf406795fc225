from src.core.documents.models import DocumentSequence
from src.core.documents.number_generator import DocumentNumberGenerator, get_document_number

__all__ = ["DocumentSequence", "DocumentNumberGenerator", "get_document_number"]
