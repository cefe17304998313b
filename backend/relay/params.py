"""
Connection parameters supplied with the upgrade request.

    apiKey        required, upstream credential (validated by the session)
    documentName  optional, defaults to "Unknown Document"
    documentText  optional, full extracted document / transcript
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from spec import DEFAULT_DOCUMENT_NAME


@dataclass(frozen=True)
class DocumentContext:
    """Document embedded into the system instructions. Immutable."""
    title: str
    text: str

    def __len__(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class ConnectParams:
    api_key: str | None
    document: DocumentContext | None = None

    @property
    def has_document_context(self) -> bool:
        return self.document is not None

    @staticmethod
    def from_query(query: Mapping[str, str]) -> ConnectParams:
        """
        Build params from query-string values.

        An empty documentText means "no document", same as absent.
        """
        api_key = query.get("apiKey") or None
        text = query.get("documentText") or ""
        title = query.get("documentName") or DEFAULT_DOCUMENT_NAME

        document = DocumentContext(title=title, text=text) if text else None
        return ConnectParams(api_key=api_key, document=document)
