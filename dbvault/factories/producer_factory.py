"""
Factory para crear productores de volcados
"""
from typing import Optional
from ..errors import UnsupportedKindError
from ..models import EngineType
from ..process import ProcessRunner
from ..producers.base_producer import DumpProducer
from ..producers.mysql_producer import MySQLDumpProducer
from ..producers.postgresql_producer import PostgreSQLDumpProducer
from ..producers.sqlite_producer import SQLiteDumpProducer
from ..producers.sqlserver_producer import SQLServerDumpProducer


class DumpProducerFactory:
    """Factory para crear productores de volcados (Factory Pattern)"""

    # Mapeo de motores a productores
    _producers = {
        EngineType.MYSQL: MySQLDumpProducer,
        EngineType.POSTGRESQL: PostgreSQLDumpProducer,
        EngineType.SQLSERVER: SQLServerDumpProducer,
        EngineType.SQLITE: SQLiteDumpProducer,
    }

    @classmethod
    def create(cls, engine, runner: Optional[ProcessRunner] = None) -> Optional[DumpProducer]:
        """
        Crea un productor según el motor de base de datos

        Args:
            engine: EngineType o nombre del motor (mysql, postgres, mssql...)
            runner: Ejecutor de procesos externos (opcional)

        Returns:
            Instancia de DumpProducer o None si el motor no es soportado
        """
        try:
            engine = EngineType.parse(engine)
        except UnsupportedKindError:
            return None
        producer_class = cls._producers.get(engine)
        if producer_class:
            return producer_class(runner=runner)
        return None

    @classmethod
    def register_producer(cls, engine: EngineType, producer_class: type):
        """
        Registra un nuevo productor (permite extender sin modificar - Open/Closed)

        Args:
            engine: Motor de base de datos
            producer_class: Clase de productor a registrar
        """
        cls._producers[EngineType.parse(engine)] = producer_class

    @classmethod
    def get_supported_types(cls) -> list:
        """
        Obtiene lista de motores soportados

        Returns:
            Lista de motores soportados
        """
        return [engine.value for engine in cls._producers.keys()]
