"""
Productor base de volcados (Strategy Pattern)
"""
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL
from sqlalchemy.pool import NullPool

from ..config import Config
from ..errors import BackupError, DumpFailedError, EmptyDatabaseError
from ..logger import LoggerService, redact
from ..models import DatabaseTarget, DumpPayload, EngineType
from ..process import ExternalCommand, ProcessRunner


EMPTY_DATABASE_MARKER = "-- EMPTY DATABASE"


class DumpProducer(ABC):
    """Interfaz abstracta para productores de volcados (Open/Closed Principle)"""

    engine: EngineType = None
    engine_label = "Database"
    file_extension = "sql"
    dump_tool: Optional[str] = None

    # Mensajes de la herramienta que indican una base de datos vacía
    EMPTY_DATABASE_PATTERNS = ("query was empty", "er_empty_query")

    def __init__(self, runner: Optional[ProcessRunner] = None, timeout: Optional[int] = None):
        """
        Inicializa el productor

        Args:
            runner: Ejecutor de procesos externos
            timeout: Timeout del volcado en segundos
        """
        self.runner = runner or ProcessRunner()
        self.timeout = timeout or Config.DUMP_TIMEOUT_SECONDS
        self.logger = LoggerService.get_logger(self.__class__.__name__)

    @abstractmethod
    def dump(self, target: DatabaseTarget) -> bytes:
        """
        Genera el volcado lógico completo de la base de datos

        Args:
            target: Base de datos a volcar

        Returns:
            Contenido del volcado

        Raises:
            EmptyDatabaseError: Si la base de datos está vacía (no fatal)
            DumpFailedError: Ante cualquier otro fallo
        """
        pass

    def produce(self, target: DatabaseTarget) -> DumpPayload:
        """
        Template method que ejecuta el volcado midiendo el tiempo

        Args:
            target: Base de datos a volcar

        Returns:
            Contenido producido

        Raises:
            EmptyDatabaseError: Si la base de datos está vacía
            DumpFailedError: Si el volcado falla
        """
        self.logger.info(f"Iniciando volcado de {target.name} ({self.engine_label} en {target.address})...")
        start_time = time.time()

        try:
            content = self.dump(target)
        except EmptyDatabaseError:
            self.logger.warning(f"La base de datos {target.name} está vacía")
            raise
        except BackupError as e:
            self.logger.error(f"Volcado fallido de {target.name}: {e.message}")
            raise
        except Exception as e:
            message = redact(str(e), target.secrets())
            self.logger.error(f"Error al ejecutar volcado de {target.name}: {message}")
            raise DumpFailedError(f"Error al volcar {target.name}: {message}")

        duration = time.time() - start_time
        self.logger.info(
            f"Volcado completado: {target.name} "
            f"({len(content) / (1024 * 1024):.2f} MB, {duration:.2f}s)"
        )
        return DumpPayload(content=content, duration_seconds=duration)

    def placeholder(self, target: DatabaseTarget) -> DumpPayload:
        """
        Contenido de marcador para una base de datos vacía

        Args:
            target: Base de datos vacía

        Returns:
            Volcado sintético, claramente comentado
        """
        generated_at = datetime.now(timezone.utc).isoformat()
        lines = [
            f"-- {self.engine_label} backup for empty database: {target.database_name}",
            f"-- Generated at: {generated_at}",
            f"-- Host: {target.address}",
            f"-- Database: {target.database_name}",
            "",
            f"{EMPTY_DATABASE_MARKER}: this database currently contains no tables or data",
            "-- The connection was successful; nothing else to dump.",
            "",
        ]
        lines.extend(self._placeholder_statements())
        return DumpPayload(content=("\n".join(lines) + "\n").encode("utf-8"), placeholder=True)

    def _placeholder_statements(self):
        return []

    def _run_dump_command(self, target: DatabaseTarget, command: ExternalCommand) -> bytes:
        """
        Ejecuta la herramienta de volcado y clasifica el resultado

        Args:
            target: Base de datos a volcar
            command: Comando a ejecutar

        Returns:
            Salida estándar del comando
        """
        if not self.runner.is_available(command.program):
            raise DumpFailedError(f"La herramienta {command.program} no está instalada")

        output = self.runner.run(command)

        if output.timed_out:
            raise DumpFailedError(
                f"Timeout: el volcado de {target.name} superó {command.timeout} segundos"
            )

        if output.returncode != 0:
            stderr = redact(output.stderr_text, target.secrets())
            if self._is_empty_database_error(stderr):
                raise EmptyDatabaseError(f"La base de datos {target.name} está vacía: {stderr}")
            raise DumpFailedError(
                f"{command.program} terminó con código {output.returncode}: "
                f"{stderr or 'sin detalle'}"
            )

        if not output.stdout.strip():
            raise EmptyDatabaseError(f"{command.program} no produjo contenido para {target.name}")

        return output.stdout

    def _is_empty_database_error(self, message: str) -> bool:
        lowered = (message or "").lower()
        return any(pattern in lowered for pattern in self.EMPTY_DATABASE_PATTERNS)

    # ------------------------------------------------------------------
    # Comprobación de conectividad
    # ------------------------------------------------------------------

    @abstractmethod
    def probe_url(self, target: DatabaseTarget) -> URL:
        """URL de SQLAlchemy para conectar con la base de datos"""
        pass

    def probe_connect_args(self, target: DatabaseTarget, timeout: int) -> dict:
        return {}

    def probe(self, target: DatabaseTarget, timeout: Optional[int] = None) -> None:
        """
        Conecta, ejecuta SELECT 1 y desconecta

        Args:
            target: Base de datos a comprobar
            timeout: Timeout de conexión en segundos

        Raises:
            Exception: Si la conexión no es posible
        """
        timeout = timeout or Config.PROBE_TIMEOUT_SECONDS
        engine = create_engine(
            self.probe_url(target),
            poolclass=NullPool,
            connect_args=self.probe_connect_args(target, timeout)
        )
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        finally:
            engine.dispose()
