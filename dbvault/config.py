"""
Configuración centralizada del sistema de backup
"""
import logging
import os
from pathlib import Path
from dotenv import load_dotenv, find_dotenv


def _env_int(name: str, default: int) -> int:
    """Lee un entero desde el entorno, usando el valor por defecto si no es válido"""
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    return Path(value) if value else default


class Config:
    """Configuración centralizada del sistema"""

    ENV_FILE = find_dotenv()

    # Cargar variables de entorno desde la raíz real del proyecto
    load_dotenv(ENV_FILE)

    # BASE_DIR es la raíz donde está main.py
    BASE_DIR = Path(ENV_FILE).parent if ENV_FILE else Path(__file__).resolve().parents[1]

    # Raíz por defecto para destinos locales con ruta relativa
    BACKUP_DIR = _env_path("BACKUP_DIR", BASE_DIR / "Backups")
    TEMP_DIR = _env_path("DBVAULT_TEMP_DIR", BASE_DIR / "temp")
    LOG_DIR = _env_path("DBVAULT_LOG_DIR", BASE_DIR / "Logs")
    CONFIG_FILE = BASE_DIR / "config.json"

    METADATA_URL = os.getenv("DBVAULT_METADATA_URL", f"sqlite:///{BASE_DIR / 'dbvault.db'}")

    DUMP_TIMEOUT_SECONDS = _env_int("DBVAULT_DUMP_TIMEOUT", 3600)
    PROBE_TIMEOUT_SECONDS = _env_int("DBVAULT_PROBE_TIMEOUT", 5)
    SSH_CONNECT_TIMEOUT_SECONDS = _env_int("DBVAULT_SSH_TIMEOUT", 10)
    TRANSFER_TIMEOUT_SECONDS = _env_int("DBVAULT_TRANSFER_TIMEOUT", 1800)

    MONITOR_INTERVAL_MINUTES = _env_int("DBVAULT_MONITOR_INTERVAL", 10)
    SCHEDULER_TICK_SECONDS = _env_int("DBVAULT_SCHEDULER_TICK", 30)
    HEALTH_WINDOW_HOURS = _env_int("DBVAULT_HEALTH_WINDOW_HOURS", 24)

    SQLSERVER_ODBC_DRIVER = os.getenv("DBVAULT_ODBC_DRIVER", "ODBC Driver 17 for SQL Server")

    LOG_LEVEL = getattr(logging, os.getenv("DBVAULT_LOG_LEVEL", "INFO").upper(), logging.INFO)
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    SUPPORTED_DB_TYPES = ['mysql', 'mariadb', 'postgresql', 'postgres', 'sqlserver', 'mssql', 'sqlite', 'sqlite3']

    DEFAULT_CONFIG = {
        "destinations": [
            {
                "name": "Local",
                "kind": "local",
                "config": {"path": "Backups"}
            }
        ],
        "databases": [
            {
                "name": "tienda",
                "type": "mysql",
                "host": "localhost",
                "port": 3306,
                "user": "${DB_USER}",
                "password": "${DB_PASSWORD}",
                "database": "tienda",
                "destination": "Local",
                "schedule": "Nocturno",
                "enabled": True
            }
        ],
        "schedules": [
            {
                "name": "Nocturno",
                "cron": "0 2 * * *",
                "retention_days": 30,
                "enabled": True
            }
        ]
    }

    @classmethod
    def ensure_directories(cls):
        """Crea los directorios necesarios si no existen"""
        cls.BACKUP_DIR.mkdir(parents=True, exist_ok=True)
        cls.TEMP_DIR.mkdir(parents=True, exist_ok=True)
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)
