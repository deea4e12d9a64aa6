"""
Productor de volcados para PostgreSQL
"""
from sqlalchemy.engine import URL

from .base_producer import DumpProducer
from ..models import DatabaseTarget, EngineType
from ..process import ExternalCommand


class PostgreSQLDumpProducer(DumpProducer):
    """Volcado de PostgreSQL usando pg_dump"""

    engine = EngineType.POSTGRESQL
    engine_label = "PostgreSQL"
    dump_tool = "pg_dump"

    def build_command(self, target: DatabaseTarget) -> ExternalCommand:
        """
        Construye el comando pg_dump

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
                f'--username={target.user}',
                '--format=plain',        # Formato SQL plano
                '--clean',               # Incluir DROP statements
                '--if-exists',           # Usar IF EXISTS en DROP
                '--create',              # Incluir CREATE DATABASE
                '--encoding=UTF8',       # Encoding
                '--no-owner',            # No incluir comandos de ownership
                '--no-privileges',       # No incluir comandos de privilegios
                '--no-password',         # Nunca pedir contraseña interactiva
                f'--dbname={target.database_name}'
            ],
            timeout=self.timeout,
            env={'PGPASSWORD': target.password} if target.password else {}
        )

    def dump(self, target: DatabaseTarget) -> bytes:
        return self._run_dump_command(target, self.build_command(target))

    def probe_url(self, target: DatabaseTarget) -> URL:
        return URL.create(
            "postgresql+psycopg2",
            username=target.user or None,
            password=target.password or None,
            host=target.host,
            port=target.port,
            database=target.database_name
        )

    def probe_connect_args(self, target: DatabaseTarget, timeout: int) -> dict:
        return {"connect_timeout": timeout}
