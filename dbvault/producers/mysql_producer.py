"""
Productor de volcados para MySQL/MariaDB
"""
from sqlalchemy.engine import URL

from .base_producer import DumpProducer
from ..models import DatabaseTarget, EngineType
from ..process import ExternalCommand


class MySQLDumpProducer(DumpProducer):
    """Volcado de MySQL/MariaDB usando mysqldump"""

    engine = EngineType.MYSQL
    engine_label = "MySQL"
    dump_tool = "mysqldump"

    def build_command(self, target: DatabaseTarget) -> ExternalCommand:
        """
        Construye el comando mysqldump

        La contraseña viaja en MYSQL_PWD (entorno del proceso hijo), nunca
        en los argumentos.

        Args:
            target: Base de datos a volcar

        Returns:
            Comando listo para ejecutar
        """
        return ExternalCommand(
            program=self.dump_tool,
            args=[
                f'--host={target.host}',
                f'--port={target.port}',
                f'--user={target.user}',
                '--single-transaction',  # Para InnoDB sin bloqueo
                '--routines',            # Incluir procedures y functions
                '--triggers',            # Incluir triggers
                '--events',              # Incluir eventos
                '--quick',               # Para tablas grandes
                '--lock-tables=false',   # No bloquear tablas
                '--add-drop-database',   # Agregar DROP DATABASE
                '--databases',           # Especificar que es una BD
                target.database_name
            ],
            timeout=self.timeout,
            env={'MYSQL_PWD': target.password} if target.password else {}
        )

    def dump(self, target: DatabaseTarget) -> bytes:
        return self._run_dump_command(target, self.build_command(target))

    def _placeholder_statements(self):
        return [
            "SET NAMES utf8mb4;",
            "SET FOREIGN_KEY_CHECKS = 0;",
            'SET SQL_MODE = "NO_AUTO_VALUE_ON_ZERO";',
            "SET AUTOCOMMIT = 0;",
            "START TRANSACTION;",
            'SET time_zone = "+00:00";',
            "",
            "-- Database structure dump completed (empty database)",
            "",
            "COMMIT;",
            "SET FOREIGN_KEY_CHECKS = 1;",
        ]

    def probe_url(self, target: DatabaseTarget) -> URL:
        return URL.create(
            "mysql+pymysql",
            username=target.user or None,
            password=target.password or None,
            host=target.host,
            port=target.port,
            database=target.database_name
        )

    def probe_connect_args(self, target: DatabaseTarget, timeout: int) -> dict:
        return {"connect_timeout": timeout}
