# modules/rma/services/services_rma_storage.py
from __future__ import annotations

import re
import uuid
from urllib.parse import unquote
from pathlib import Path
from typing import Protocol

from core.config import settings


# =========================================================
# Contrato
# =========================================================

class BlobStorageError(Exception):
    pass


class BlobStorage(Protocol):
    def upload(self, contenido: bytes, content_type: str, nombre: str) -> str:
        ...

    def delete(self, url: str) -> None:
        ...

    def leer(self, url: str) -> bytes:
        ...


# =========================================================
# Storage baseline (local disk)
# =========================================================

def _safe_filename(name: str) -> str:
    """
    Sanitiza nombre para filesystem. Mantiene extensión si existe.
    """
    name = (name or "").strip()
    if not name:
        return "archivo"

    # quita path traversal
    name = name.replace("\\", "/").split("/")[-1]

    name = re.sub(r"[^a-zA-Z0-9._\-\s]", "", name).strip()
    name = re.sub(r"\s+", "_", name)
    return name or "archivo"


class LocalBlobStorage:
    """
    Guarda cotizaciones en STORAGE_DIR/cotizaciones y devuelve una URL file://.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root or settings.STORAGE_DIR).resolve()

    def _carpeta(self) -> Path:
        folder = self.root / "cotizaciones"
        folder.mkdir(parents=True, exist_ok=True)
        return folder

    def upload(self, contenido: bytes, content_type: str, nombre: str) -> str:
        if not contenido:
            raise BlobStorageError("Contenido vacío.")

        dest = self._carpeta() / f"{uuid.uuid4().hex[:10]}_{_safe_filename(nombre)}"
        try:
            dest.write_bytes(contenido)
        except OSError as exc:
            raise BlobStorageError(f"No fue posible guardar el archivo: {exc}") from exc
        return dest.as_uri()

    def _path_desde_url(self, url: str) -> Path:
        raw = unquote(url[len("file://"):]) if url.startswith("file://") else url
        path = Path(raw).resolve()
        if self.root not in path.parents:
            raise BlobStorageError("URL fuera del storage configurado.")
        return path

    def delete(self, url: str) -> None:
        path = self._path_desde_url(url)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise BlobStorageError(f"No fue posible eliminar el archivo: {exc}") from exc

    def leer(self, url: str) -> bytes:
        path = self._path_desde_url(url)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise BlobStorageError(f"No fue posible leer el archivo: {exc}") from exc
