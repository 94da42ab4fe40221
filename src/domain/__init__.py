"""Domain layer: ORM models, errors and schemas."""

from .errors import AppError, ErrorCodes
from .models import AiLog, Base, Conversation, Document, Form, Message, User
from .schemas import ArtifactInfo, DownloadLink, ExportResult

__all__ = [
    "AppError",
    "ErrorCodes",
    "Base",
    "User",
    "Conversation",
    "Message",
    "Document",
    "Form",
    "AiLog",
    "ArtifactInfo",
    "DownloadLink",
    "ExportResult",
]
