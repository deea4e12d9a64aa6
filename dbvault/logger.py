"""
Servicio de logging siguiendo principio Single Responsibility
"""
import logging
import re
import sys
from datetime import datetime
from typing import Iterable, Optional
from .config import Config


REDACTED = "***"

# Fragmentos que suelen transportar credenciales en mensajes de herramientas
_SECRET_PATTERNS = [
    re.compile(r'(?i)(--password=|password=|pwd=|pgpassword=|mysql_pwd=|sshpass=)([^\s;\'"]+)'),
    re.compile(r'(?i)(://[^:/\s@]+:)([^@\s]+)(@)'),
    re.compile(r"(?i)(sshpass\s+-p\s*)('[^']*'|\S+)"),
]


def redact(text: Optional[str], secrets: Iterable[Optional[str]] = ()) -> str:
    """
    Elimina credenciales de un texto antes de mostrarlo o registrarlo

    Args:
        text: Texto original (salida de una herramienta, mensaje de error...)
        secrets: Valores secretos conocidos que deben ocultarse literalmente

    Returns:
        Texto sin credenciales
    """
    if not text:
        return ""

    cleaned = str(text)
    for secret in secrets:
        if secret:
            cleaned = cleaned.replace(secret, REDACTED)

    for pattern in _SECRET_PATTERNS:
        if pattern.groups == 3:
            cleaned = pattern.sub(lambda m: f"{m.group(1)}{REDACTED}{m.group(3)}", cleaned)
        else:
            cleaned = pattern.sub(lambda m: f"{m.group(1)}{REDACTED}", cleaned)
    return cleaned


class RedactingFilter(logging.Filter):
    """Filtro que oculta credenciales en cualquier registro emitido"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = ()
        return True


class LoggerService:
    """Servicio centralizado de logging"""

    _loggers = {}

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Obtiene o crea un logger con el nombre especificado

        Args:
            name: Nombre del logger

        Returns:
            Logger configurado
        """
        if name in cls._loggers:
            return cls._loggers[name]

        logger = cls._setup_logger(name)
        cls._loggers[name] = logger
        return logger

    @classmethod
    def _setup_logger(cls, name: str) -> logging.Logger:
        """
        Configura un nuevo logger

        Args:
            name: Nombre del logger

        Returns:
            Logger configurado
        """
        Config.LOG_DIR.mkdir(parents=True, exist_ok=True)

        logger = logging.getLogger(f"dbvault.{name}")
        logger.setLevel(Config.LOG_LEVEL)
        logger.propagate = False

        # Evitar duplicar handlers
        if logger.handlers:
            return logger

        redacting_filter = RedactingFilter()
        formatter = logging.Formatter(Config.LOG_FORMAT)

        # Handler para archivo
        log_file = Config.LOG_DIR / f"{name}_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(Config.LOG_LEVEL)

        # Handler para consola
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(Config.LOG_LEVEL)

        for handler in (file_handler, console_handler):
            handler.setFormatter(formatter)
            handler.addFilter(redacting_filter)
            logger.addHandler(handler)

        return logger
