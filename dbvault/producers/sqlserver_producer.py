"""
Productor de volcados para SQL Server
Genera script SQL completo con estructura y datos a través de pyodbc
"""
import io
from datetime import datetime, timezone

from sqlalchemy.engine import URL

from .base_producer import DumpProducer
from .sqlserver.data_generator import DataGenerator
from .sqlserver.schema_generator import SchemaGenerator, list_user_tables
from ..config import Config
from ..errors import DumpFailedError, EmptyDatabaseError
from ..logger import redact
from ..models import DatabaseTarget, EngineType


def build_connection_string(target: DatabaseTarget, driver: str = None) -> str:
    return (
        f"DRIVER={{{driver or Config.SQLSERVER_ODBC_DRIVER}}};"
        f"SERVER={target.host},{target.port};"
        f"DATABASE={target.database_name};"
        f"UID={target.user};"
        f"PWD={target.password};"
        f"TrustServerCertificate=yes;"
    )


class SQLServerDumpProducer(DumpProducer):
    """Volcado de SQL Server generando script de estructura + datos"""

    engine = EngineType.SQLSERVER
    engine_label = "SQL Server"
    connect_timeout = 30

    def dump(self, target: DatabaseTarget) -> bytes:
        # pyodbc requiere unixODBC en el sistema; solo se carga al volcar
        import pyodbc

        if not target.user or not target.password:
            raise DumpFailedError("Usuario o contraseña no configurados")

        try:
            conn = pyodbc.connect(build_connection_string(target), timeout=self.connect_timeout)
        except pyodbc.Error as e:
            raise DumpFailedError(
                f"No se pudo conectar a {target.address}: {redact(str(e), target.secrets())}"
            )

        try:
            conn.timeout = self.timeout
            cursor = conn.cursor()

            tables = list_user_tables(cursor)
            if not tables:
                raise EmptyDatabaseError(f"La base de datos {target.database_name} no contiene tablas")

            out = io.StringIO()
            out.write("-- =============================================\n")
            out.write(f"-- BACKUP OF DATABASE: {target.database_name}\n")
            out.write(f"-- DATE: {datetime.now(timezone.utc).isoformat()}\n")
            out.write(f"-- SERVER: {target.address}\n")
            out.write("-- =============================================\n\n")
            out.write(f"USE [{target.database_name}];\nGO\n\n")

            # Paso 1: estructura, paso 2: datos
            SchemaGenerator(self.logger).generate(cursor, tables, out)
            DataGenerator(self.logger).generate(cursor, tables, out)

            return out.getvalue().encode("utf-8")
        except pyodbc.Error as e:
            raise DumpFailedError(f"Error generando script: {redact(str(e), target.secrets())}")
        finally:
            conn.close()

    def probe_url(self, target: DatabaseTarget) -> URL:
        return URL.create(
            "mssql+pyodbc",
            username=target.user or None,
            password=target.password or None,
            host=target.host,
            port=target.port,
            database=target.database_name,
            query={"driver": Config.SQLSERVER_ODBC_DRIVER, "TrustServerCertificate": "yes"}
        )

    def probe_connect_args(self, target: DatabaseTarget, timeout: int) -> dict:
        return {"timeout": timeout}
