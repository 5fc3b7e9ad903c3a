"""Retrieval of exported documents by id."""

from __future__ import annotations

import http.client
import urllib.error
import urllib.parse
import urllib.request
from typing import Optional

from .core import LOG, EmptyDocumentIdError, FetchError

EXPORT_URL_ENV = "HTML2BLOCKS_EXPORT_URL"
DEFAULT_EXPORT_URL = "https://docs.google.com/document/d/{doc_id}/export?format=html"
DEFAULT_TIMEOUT = 30.0


def build_export_url(doc_id: str, template: Optional[str] = None) -> str:
    cleaned = (doc_id or "").strip()
    if not cleaned:
        raise EmptyDocumentIdError("Document id must not be empty")
    return (template or DEFAULT_EXPORT_URL).format(doc_id=urllib.parse.quote(cleaned, safe=""))


def fetch_document(doc_id: str, template: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT) -> str:
    url = build_export_url(doc_id, template)
    LOG.info("Fetching document: %s", url)
    request = urllib.request.Request(url, headers={"Accept": "text/html"})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            charset = response.headers.get_content_charset() or "utf-8"
            return response.read().decode(charset, errors="replace")
    except (
        urllib.error.URLError,
        urllib.error.HTTPError,
        http.client.HTTPException,
        TimeoutError,
        OSError,
        ValueError,
        LookupError,
    ) as exc:
        raise FetchError(f"Unable to fetch document {doc_id!r}: {exc}") from exc
