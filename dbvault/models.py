"""
Modelos de datos del sistema
"""
import re
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import MisconfiguredError, UnsupportedKindError


class EngineType(str, Enum):
    """Motores de base de datos soportados"""
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SQLSERVER = "sqlserver"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: Union[str, "EngineType"]) -> "EngineType":
        """
        Convierte un nombre (o alias) de motor en EngineType

        Args:
            value: Nombre del motor (mysql, mariadb, postgres, mssql, sqlite3...)

        Returns:
            EngineType correspondiente

        Raises:
            UnsupportedKindError: Si el motor no está soportado
        """
        if isinstance(value, cls):
            return value
        engine = _ENGINE_ALIASES.get(str(value or "").strip().lower())
        if engine is None:
            raise UnsupportedKindError(f"Tipo de base de datos no soportado: {value}")
        return engine

    @property
    def default_port(self) -> Optional[int]:
        return _DEFAULT_PORTS.get(self)


_ENGINE_ALIASES = {
    'mysql': EngineType.MYSQL,
    'mariadb': EngineType.MYSQL,
    'postgresql': EngineType.POSTGRESQL,
    'postgres': EngineType.POSTGRESQL,
    'sqlserver': EngineType.SQLSERVER,
    'mssql': EngineType.SQLSERVER,
    'sqlite': EngineType.SQLITE,
    'sqlite3': EngineType.SQLITE,
}

_DEFAULT_PORTS = {
    EngineType.MYSQL: 3306,
    EngineType.POSTGRESQL: 5432,
    EngineType.SQLSERVER: 1433,
}


class DestinationKind(str, Enum):
    """Tipos de destino de almacenamiento"""
    LOCAL = "local"
    OBJECT_STORE = "object_store"
    SECURE_COPY = "secure_copy"
    CLOUD_DRIVE = "cloud_drive"

    @classmethod
    def parse(cls, value: Union[str, "DestinationKind"]) -> "DestinationKind":
        if isinstance(value, cls):
            return value
        kind = _KIND_ALIASES.get(str(value or "").strip().lower().replace("-", "_"))
        if kind is None:
            raise UnsupportedKindError(f"Tipo de destino no soportado: {value}")
        return kind


_KIND_ALIASES = {
    'local': DestinationKind.LOCAL,
    'object_store': DestinationKind.OBJECT_STORE,
    's3': DestinationKind.OBJECT_STORE,
    'secure_copy': DestinationKind.SECURE_COPY,
    'sftp': DestinationKind.SECURE_COPY,
    'scp': DestinationKind.SECURE_COPY,
    'cloud_drive': DestinationKind.CLOUD_DRIVE,
    'google_drive': DestinationKind.CLOUD_DRIVE,
    'gdrive': DestinationKind.CLOUD_DRIVE,
}


class JobStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


def sanitize_name(name: str) -> str:
    """Reemplaza todo carácter no alfanumérico por '_'"""
    return re.sub(r'[^a-zA-Z0-9]', '_', name or "")


def build_namespace(target_id: Optional[int], target_name: str) -> str:
    """
    Construye el espacio de nombres de una base de datos dentro de un destino

    Args:
        target_id: Identificador de la base de datos
        target_name: Nombre de la base de datos

    Returns:
        Prefijo de ruta/clave, p.ej. 'db_3_ventas_2024'
    """
    return f"db_{target_id}_{sanitize_name(target_name)}"


@dataclass
class DatabaseTarget:
    """Configuración de una base de datos a respaldar"""
    name: str
    engine: EngineType
    host: str = "localhost"
    port: Optional[int] = None
    user: str = ""
    password: str = field(default="", repr=False)
    database: Optional[str] = None
    id: Optional[int] = None
    schedule_id: Optional[int] = None
    destination_id: Optional[int] = None
    backup_enabled: bool = True

    def __post_init__(self):
        """Validación después de inicialización"""
        if not self.name:
            raise ValueError("El nombre de la base de datos es obligatorio")
        if not self.engine:
            raise ValueError("El tipo de base de datos es obligatorio")
        self.engine = EngineType.parse(self.engine)
        if self.port is None:
            self.port = self.engine.default_port

    @property
    def database_name(self) -> str:
        """Nombre lógico de la base de datos (o ruta del archivo en SQLite)"""
        return self.database or self.name

    @property
    def namespace(self) -> str:
        return build_namespace(self.id, self.name)

    @property
    def address(self) -> str:
        if self.engine is EngineType.SQLITE:
            return self.database_name
        return f"{self.host}:{self.port}"

    def secrets(self) -> List[str]:
        """Valores que nunca deben aparecer en logs ni errores"""
        return [self.password] if self.password else []


# ---------------------------------------------------------------------------
# Configuraciones de destino (unión etiquetada por DestinationKind)
# ---------------------------------------------------------------------------

def _require(blob: Dict[str, Any], key: str, kind: str) -> Any:
    value = blob.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MisconfiguredError(f"Configuración de destino {kind} incompleta: falta '{key}'")
    return value


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false", "1", "0", "yes", "no"):
        return value.lower() in ("true", "1", "yes")
    raise MisconfiguredError(f"El valor de '{key}' debe ser booleano")


def _as_port(value: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise MisconfiguredError(f"Puerto inválido: {value}")
    if not 0 < port < 65536:
        raise MisconfiguredError(f"Puerto fuera de rango: {port}")
    return port


@dataclass
class LocalConfig:
    path: str

    @classmethod
    def from_blob(cls, blob: Dict[str, Any]) -> "LocalConfig":
        return cls(path=str(_require(blob, "path", "local")))


@dataclass
class ObjectStoreConfig:
    bucket: str
    access_key_id: str
    secret_access_key: str = field(repr=False)
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    key_prefix: str = ""
    live_probe: bool = True

    @classmethod
    def from_blob(cls, blob: Dict[str, Any]) -> "ObjectStoreConfig":
        return cls(
            bucket=str(_require(blob, "bucket", "object_store")),
            access_key_id=str(_require(blob, "access_key_id", "object_store")),
            secret_access_key=str(_require(blob, "secret_access_key", "object_store")),
            region=str(blob.get("region") or "us-east-1"),
            endpoint_url=blob.get("endpoint_url") or None,
            key_prefix=str(blob.get("key_prefix") or "").strip("/"),
            live_probe=_as_bool(blob.get("live_probe", True), "live_probe"),
        )


@dataclass
class SecureCopyConfig:
    host: str
    username: str
    port: int = 22
    password: Optional[str] = field(default=None, repr=False)
    private_key_path: Optional[str] = None
    remote_path: str = "/"

    @classmethod
    def from_blob(cls, blob: Dict[str, Any]) -> "SecureCopyConfig":
        return cls(
            host=str(_require(blob, "host", "secure_copy")),
            username=str(_require(blob, "username", "secure_copy")),
            port=_as_port(blob.get("port") or 22),
            password=blob.get("password") or None,
            private_key_path=blob.get("private_key_path") or None,
            remote_path=str(blob.get("remote_path") or "/"),
        )


@dataclass
class CloudDriveConfig:
    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    token_uri: str = "https://oauth2.googleapis.com/token"
    folder_id: Optional[str] = None
    live_probe: bool = True

    @classmethod
    def from_blob(cls, blob: Dict[str, Any]) -> "CloudDriveConfig":
        return cls(
            access_token=str(_require(blob, "access_token", "cloud_drive")),
            refresh_token=blob.get("refresh_token") or None,
            client_id=blob.get("client_id") or None,
            client_secret=blob.get("client_secret") or None,
            token_uri=str(blob.get("token_uri") or "https://oauth2.googleapis.com/token"),
            folder_id=blob.get("folder_id") or None,
            live_probe=_as_bool(blob.get("live_probe", True), "live_probe"),
        )


DestinationConfig = Union[LocalConfig, ObjectStoreConfig, SecureCopyConfig, CloudDriveConfig]

CONFIG_TYPES = {
    DestinationKind.LOCAL: LocalConfig,
    DestinationKind.OBJECT_STORE: ObjectStoreConfig,
    DestinationKind.SECURE_COPY: SecureCopyConfig,
    DestinationKind.CLOUD_DRIVE: CloudDriveConfig,
}


def parse_destination_config(kind: DestinationKind, blob: Optional[Dict[str, Any]]) -> DestinationConfig:
    """
    Valida el bloque de configuración de un destino según su tipo

    Args:
        kind: Tipo de destino
        blob: Diccionario de configuración

    Returns:
        Variante de configuración tipada

    Raises:
        MisconfiguredError: Si la configuración no es válida
    """
    if not isinstance(blob, dict):
        raise MisconfiguredError(f"La configuración del destino {kind.value} debe ser un objeto")
    return CONFIG_TYPES[kind].from_blob(blob)


@dataclass
class Destination:
    """Destino de almacenamiento de backups"""
    name: str
    kind: DestinationKind
    config: DestinationConfig
    id: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            raise MisconfiguredError("El nombre del destino es obligatorio")
        self.kind = DestinationKind.parse(self.kind)
        if isinstance(self.config, dict):
            self.config = parse_destination_config(self.kind, self.config)
        elif not isinstance(self.config, CONFIG_TYPES[self.kind]):
            raise MisconfiguredError(
                f"La configuración no corresponde al tipo de destino {self.kind.value}"
            )

    def config_blob(self) -> Dict[str, Any]:
        return asdict(self.config)


@dataclass
class Schedule:
    """Programación recurrente asociada a varias bases de datos"""
    name: str
    cron: str
    retention_days: int = 30
    enabled: bool = True
    id: Optional[int] = None
    target_ids: List[int] = field(default_factory=list)

    def __post_init__(self):
        """Validación después de inicialización"""
        if not self.name:
            raise ValueError("El nombre de la programación es obligatorio")
        if self.retention_days < 1:
            raise ValueError("retention_days debe ser mayor a 0")


@dataclass
class Job:
    """Registro de una ejecución de backup"""
    id: int
    target_id: int
    destination_id: int
    status: JobStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    location: Optional[str] = None
    size: Optional[int] = None
    log: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


# ---------------------------------------------------------------------------
# Resultados
# ---------------------------------------------------------------------------

@dataclass
class DumpPayload:
    """Contenido producido por un volcado"""
    content: bytes
    placeholder: bool = False
    duration_seconds: float = 0.0

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class StoreResult:
    success: bool
    location: Optional[str] = None
    size: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    remediation: Optional[str] = None


@dataclass
class ConnectionTestResult:
    success: bool
    detail: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    remediation: Optional[str] = None
    inferred: bool = False


@dataclass
class JobResult:
    """Resultado de una operación de backup"""
    success: bool
    target_id: Optional[int] = None
    target_name: Optional[str] = None
    job_id: Optional[int] = None
    destination_id: Optional[int] = None
    location: Optional[str] = None
    size: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    remediation: Optional[str] = None
    placeholder: bool = False
    duration_seconds: float = 0.0

    def __str__(self):
        name = self.target_name or self.target_id
        if self.success:
            return f"✓ {name}: {self.location} ({self.duration_seconds:.2f}s)"
        else:
            return f"✗ {name}: {self.error}"


@dataclass
class ScheduleRunReport:
    """Resultados de ejecutar todas las bases de datos de una programación"""
    schedule_id: int
    schedule_name: Optional[str] = None
    results: List[JobResult] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def success(self) -> bool:
        return self.error is None and self.success_count > 0


@dataclass
class ProbeResult:
    """Resultado de comprobar la conectividad de una base de datos"""
    target_id: Optional[int]
    target_name: str
    engine: EngineType
    reachable: bool
    checked_at: datetime
    error: Optional[str] = None
    latency_ms: Optional[float] = None


@dataclass
class ReconcileResult:
    schedule_id: int
    registered: bool
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class TimerStatus:
    schedule_id: int
    schedule_name: str
    cron: str
    target_count: int
    is_running: bool
    next_run: Optional[datetime] = None
    last_fired_at: Optional[datetime] = None


@dataclass
class SchedulerStatus:
    loop_running: bool
    active_timers: int
    timers: List[TimerStatus] = field(default_factory=list)


@dataclass
class MonitorStatus:
    running: bool
    interval_minutes: Optional[int] = None
    last_checked_at: Optional[datetime] = None
    last_results: List[ProbeResult] = field(default_factory=list)
