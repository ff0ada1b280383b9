from __future__ import annotations

from typing import Protocol


class DrivePort(Protocol):
    def upload_pdf(self, folder_name: str, filename: str, content: bytes) -> str:
        """Upload a PDF into a named folder and return its view URL."""

    def upload_png(self, folder_name: str, filename: str, content: bytes) -> str:
        """Upload a PNG into a named folder and return its view URL."""
