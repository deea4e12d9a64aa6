"""
Productor de volcados para SQLite
"""
from pathlib import Path

from sqlalchemy.engine import URL

from .base_producer import DumpProducer
from ..errors import DumpFailedError, EmptyDatabaseError
from ..models import DatabaseTarget, EngineType
from ..process import ExternalCommand


class SQLiteDumpProducer(DumpProducer):
    """Volcado de SQLite usando el comando .dump de sqlite3"""

    engine = EngineType.SQLITE
    engine_label = "SQLite"
    dump_tool = "sqlite3"

    def build_command(self, target: DatabaseTarget) -> ExternalCommand:
        return ExternalCommand(
            program=self.dump_tool,
            args=[target.database_name, '.dump'],
            timeout=self.timeout
        )

    def dump(self, target: DatabaseTarget) -> bytes:
        # sqlite3 crearía un archivo vacío si la ruta no existe
        if not Path(target.database_name).is_file():
            raise DumpFailedError(f"No existe el archivo de base de datos: {target.database_name}")

        content = self._run_dump_command(target, self.build_command(target))

        if b"CREATE " not in content.upper():
            raise EmptyDatabaseError(f"La base de datos {target.name} no contiene tablas")
        return content

    def probe_url(self, target: DatabaseTarget) -> URL:
        # Modo solo lectura: la comprobación nunca crea el archivo
        return URL.create(
            "sqlite",
            database=f"file:{target.database_name}",
            query={"mode": "ro", "uri": "true"}
        )

    def probe_connect_args(self, target: DatabaseTarget, timeout: int) -> dict:
        return {"timeout": timeout}
