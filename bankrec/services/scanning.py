"""Content checks applied to uploaded statements before they are stored.

This is a signature and active-content heuristic, not an antivirus engine.
Deployments plug a real scanner in through ``ContentScanner``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

_PDF_MAGIC = b"%PDF-"
_PDF_ACTIVE_CONTENT = re.compile(rb"/(?:JavaScript|JS|Launch|EmbeddedFile)\b")
_XML_DOCTYPE_ENTITY = re.compile(rb"<!ENTITY", re.IGNORECASE)
_UTF8_BOM = b"\xef\xbb\xbf"


@dataclass(frozen=True)
class ScanResult:
    clean: bool
    reason: str | None = None


class ContentScanner(Protocol):
    def scan(self, content: bytes, extension: str) -> ScanResult: ...


class SignatureScanner:
    """Checks that bytes match the declared type and carry no active content."""

    def scan(self, content: bytes, extension: str) -> ScanResult:
        if extension == "pdf":
            return self._scan_pdf(content)
        if extension == "xml":
            return self._scan_xml(content)
        return ScanResult(clean=False, reason=f"No scanner for .{extension} files")

    def _scan_pdf(self, content: bytes) -> ScanResult:
        if not content.startswith(_PDF_MAGIC):
            return ScanResult(clean=False, reason="File is not a PDF document")
        match = _PDF_ACTIVE_CONTENT.search(content)
        if match:
            marker = match.group(0).decode("ascii")
            return ScanResult(clean=False, reason=f"PDF contains active content ({marker})")
        return ScanResult(clean=True)

    def _scan_xml(self, content: bytes) -> ScanResult:
        head = content.removeprefix(_UTF8_BOM).lstrip()
        if not head.startswith(b"<"):
            return ScanResult(clean=False, reason="File is not an XML document")
        # Entity declarations enable expansion and external entity attacks.
        if _XML_DOCTYPE_ENTITY.search(content):
            return ScanResult(clean=False, reason="XML declares entities")
        return ScanResult(clean=True)


default_scanner = SignatureScanner()
