"""
Document store: discovers the documents of a site tree and looks them up.
"""
from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Sequence, Union
from urllib.parse import unquote

from html_scout.logger import get_logger
from html_scout.parser.html_parser import Document

log = get_logger("documents")


class DocumentStore:
    """Documents under ``base_path`` with a given extension, in sorted discovery order."""

    def __init__(
        self,
        base_path: Union[str, Path],
        document_extension: str = ".html",
        directory_index: str = "index.html",
        ignore_patterns: Sequence[str] = (),
    ) -> None:
        self.base_path = Path(base_path).resolve()
        self.document_extension = document_extension
        self.directory_index = directory_index
        self.ignore_patterns = [re.compile(p) for p in ignore_patterns]
        self.documents: List[Document] = []
        self._by_site_path: Dict[str, Document] = {}
        self._by_file_path: Dict[Path, Document] = {}

    def is_ignored(self, site_dir: str) -> bool:
        # Patterns are matched against "dir/sub/" style relative paths.
        return any(p.search(site_dir) for p in self.ignore_patterns)

    def discover(self) -> List[Document]:
        """Walk ``base_path`` and register every matching document."""
        self.documents.clear()
        self._by_site_path.clear()
        self._by_file_path.clear()
        for root, dirs, files in os.walk(self.base_path):
            dirs.sort()
            rel_dir = Path(root).relative_to(self.base_path).as_posix()
            site_dir = "" if rel_dir == "." else f"{rel_dir}/"
            if site_dir and self.is_ignored(site_dir):
                dirs[:] = []
                continue
            for name in sorted(files):
                if not name.endswith(self.document_extension):
                    continue
                self.add(Document(file_path=Path(root) / name, site_path=f"{site_dir}{name}"))
        log.debug("Discovered %d documents under %s", len(self.documents), self.base_path)
        return self.documents

    def add(self, document: Document) -> None:
        self.documents.append(document)
        self._by_site_path[document.site_path] = document
        self._by_file_path[document.file_path] = document

    def resolve_path(self, path: str) -> Optional[Document]:
        """Find a document by site path (``/a/b.html``, ``a/b/`` → ``a/b/index.html``)."""
        clean = unquote(path.split("#", 1)[0].split("?", 1)[0]).strip()
        as_dir = clean.endswith("/") or clean == ""
        key = str(PurePosixPath("/" + clean.lstrip("/"))).lstrip("/")
        if as_dir:
            key = f"{key}/{self.directory_index}" if key else self.directory_index
        document = self._by_site_path.get(key)
        if document is None and not as_dir:
            document = self._by_site_path.get(f"{key}/{self.directory_index}")
        return document

    def find(self, file_path: Union[str, Path]) -> Optional[Document]:
        """Find a document by filesystem path; directories map to their index."""
        resolved = Path(file_path).resolve()
        document = self._by_file_path.get(resolved)
        if document is None:
            document = self._by_file_path.get(resolved / self.directory_index)
        return document

    def __len__(self) -> int:
        return len(self.documents)


__all__ = ["DocumentStore"]
