from __future__ import annotations


class DocumentError(Exception):
    """Base error for document generation and storage failures."""


class RenderError(DocumentError):
    """Raised when a template is unknown, required data is missing, or the renderer fails."""

    def __init__(self, template_id: str, message: str) -> None:
        self.template_id = template_id
        super().__init__(f"{template_id}: {message}")


class StorageError(DocumentError):
    """Raised when a generated document cannot be written to or read from the store."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        super().__init__(f"{path}: {message}")
