"""
Destino en sistema de archivos local
"""
import os
from pathlib import Path

from .base_destination import DestinationAdapter
from ..config import Config
from ..errors import PathNotWritableError
from ..models import DestinationKind


def resolve_local_root(path: str) -> Path:
    """Las rutas relativas se resuelven contra el directorio base del proyecto"""
    root = Path(path).expanduser()
    if not root.is_absolute():
        root = Config.BASE_DIR / root
    return root


class LocalDestination(DestinationAdapter):
    """Guarda cada backup en <raíz>/<namespace>/<archivo>"""

    kind = DestinationKind.LOCAL

    @property
    def root(self) -> Path:
        return resolve_local_root(self.config.path)

    def _put(self, filename: str, payload: bytes, namespace: str) -> str:
        directory = self.root / namespace
        file_path = directory / filename
        try:
            directory.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(payload)
        except OSError as e:
            raise PathNotWritableError(
                f"No se puede escribir en {directory}: {e.strerror or e}",
                remediation="Verifica que el directorio exista y que el proceso tenga permisos de escritura."
            )
        return str(file_path)

    def _check(self) -> str:
        root = self.root
        if not root.is_dir():
            raise PathNotWritableError(
                f"El directorio {root} no existe",
                remediation=f"Crea el directorio: mkdir -p {root}"
            )
        if not os.access(root, os.W_OK):
            raise PathNotWritableError(
                f"El directorio {root} no tiene permisos de escritura",
                remediation="Ajusta los permisos del directorio para el usuario del servicio."
            )
        return f"Directorio con permisos de escritura: {root}"
