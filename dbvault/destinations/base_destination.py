"""
Adaptador base de destinos de almacenamiento
"""
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import BackupError
from ..logger import LoggerService
from ..models import ConnectionTestResult, Destination, DestinationKind, StoreResult
from ..process import ProcessRunner


class DestinationAdapter(ABC):
    """
    Contrato uniforme para guardar un blob con nombre bajo el espacio de
    nombres de una base de datos.

    Las subclases implementan _put() y _check(), que lanzan BackupError;
    store() y test_connection() nunca lanzan y devuelven resultados.
    """

    kind: DestinationKind = None

    def __init__(self, destination: Destination, runner: Optional[ProcessRunner] = None):
        """
        Inicializa el adaptador

        Args:
            destination: Destino configurado
            runner: Ejecutor de procesos externos (solo para destinos que lo usan)
        """
        self.destination = destination
        self.config = destination.config
        self.runner = runner or ProcessRunner()
        self.logger = LoggerService.get_logger(self.__class__.__name__)

    @property
    def supports_live_probe(self) -> bool:
        """False si la conectividad debe inferirse del historial de jobs"""
        return True

    @abstractmethod
    def _put(self, filename: str, payload: bytes, namespace: str) -> str:
        """
        Guarda el contenido y devuelve su ubicación

        Raises:
            BackupError: Si el almacenamiento falla
        """
        pass

    @abstractmethod
    def _check(self) -> str:
        """
        Comprueba la conectividad y devuelve un detalle legible

        Raises:
            BackupError: Si el destino no es accesible
        """
        pass

    def store(self, filename: str, payload: bytes, namespace: str) -> StoreResult:
        """
        Guarda un backup en el destino

        Args:
            filename: Nombre del archivo
            payload: Contenido del backup
            namespace: Espacio de nombres de la base de datos

        Returns:
            Resultado con ubicación y tamaño
        """
        self.logger.info(
            f"Guardando {filename} en {self.destination.name} ({self.kind.value}) bajo {namespace}"
        )
        try:
            location = self._put(filename, payload, namespace)
        except BackupError as e:
            self.logger.error(f"Error guardando en {self.destination.name}: {e.message}")
            return StoreResult(
                success=False,
                error=e.message,
                error_code=e.code,
                remediation=e.remediation
            )
        except Exception as e:
            self.logger.error(f"Error inesperado guardando en {self.destination.name}: {e}", exc_info=True)
            return StoreResult(success=False, error=str(e), error_code=BackupError.code)

        self.logger.info(f"Backup guardado: {location} ({len(payload)} bytes)")
        return StoreResult(success=True, location=location, size=len(payload))

    def test_connection(self) -> ConnectionTestResult:
        """
        Comprueba la conectividad con el destino

        Returns:
            Resultado con detalle o error
        """
        try:
            detail = self._check()
        except BackupError as e:
            self.logger.warning(f"Destino {self.destination.name} no disponible: {e.message}")
            return ConnectionTestResult(
                success=False,
                error=e.message,
                error_code=e.code,
                remediation=e.remediation
            )
        except Exception as e:
            self.logger.error(f"Error comprobando {self.destination.name}: {e}", exc_info=True)
            return ConnectionTestResult(success=False, error=str(e), error_code=BackupError.code)

        return ConnectionTestResult(success=True, detail=detail)
