"""
Jerarquía de errores del motor de backups

Las excepciones se lanzan dentro de cada capa y se convierten en valores de
resultado (JobResult, StoreResult, ConnectionTestResult...) en los límites
públicos. Cada error lleva un código estable y, cuando aplica, instrucciones
de remediación para mostrar al usuario.
"""
from typing import Optional


class BackupError(Exception):
    """Error base con mensaje legible y remediación opcional"""

    code = "backup_error"
    fatal = True

    def __init__(self, message: str, remediation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.remediation = remediation

    def __str__(self):
        if self.remediation:
            return f"{self.message}\n\n{self.remediation}"
        return self.message


class NotFoundError(BackupError):
    """Base de datos, destino o programación inexistente"""
    code = "not_found"


class MisconfiguredError(BackupError):
    """Configuración incompleta o inválida"""
    code = "misconfigured"


class NoDestinationError(MisconfiguredError):
    """La base de datos no tiene destino asociado y no se indicó ninguno"""


class InvalidCronExpressionError(MisconfiguredError):
    """Expresión cron que no cumple el formato de 5 campos"""


class UnsupportedKindError(BackupError):
    """Tipo de destino o motor de base de datos no soportado"""
    code = "unsupported_kind"


class ToolUnavailableError(BackupError):
    """Herramienta externa requerida no instalada"""
    code = "tool_unavailable"


class AuthenticationFailedError(BackupError):
    code = "authentication_failed"


class HostUnreachableError(BackupError):
    code = "host_unreachable"


class PathNotWritableError(BackupError):
    code = "path_not_writable"


class DumpFailedError(BackupError):
    """Fallo fatal al generar el volcado"""
    code = "dump_failed"


class EmptyDatabaseError(BackupError):
    """
    El volcado falló porque la base de datos está vacía.

    No es fatal: el orquestador lo sustituye por un contenido de marcador.
    """
    code = "empty_database"
    fatal = False


class MetadataStoreError(BackupError):
    """Fallo al leer el almacén de metadatos"""
    code = "metadata_store_error"


class MetadataStoreUnwritableError(MetadataStoreError):
    """El almacén de metadatos no admite escrituras (p.ej. abierto en solo lectura)"""
    code = "metadata_store_unwritable"
