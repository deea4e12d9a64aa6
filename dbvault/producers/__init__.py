"""
Productores de volcados para los diferentes motores de BD
"""
from .base_producer import DumpProducer, EMPTY_DATABASE_MARKER
from .mysql_producer import MySQLDumpProducer
from .postgresql_producer import PostgreSQLDumpProducer
from .sqlite_producer import SQLiteDumpProducer
from .sqlserver_producer import SQLServerDumpProducer

__all__ = [
    'DumpProducer',
    'EMPTY_DATABASE_MARKER',
    'MySQLDumpProducer',
    'PostgreSQLDumpProducer',
    'SQLiteDumpProducer',
    'SQLServerDumpProducer'
]
