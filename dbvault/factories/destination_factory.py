"""
Factory para crear adaptadores de destino
"""
from typing import Optional
from ..destinations.base_destination import DestinationAdapter
from ..destinations.cloud_drive_destination import CloudDriveDestination
from ..destinations.local_destination import LocalDestination
from ..destinations.object_store_destination import ObjectStoreDestination
from ..destinations.secure_copy_destination import SecureCopyDestination
from ..errors import UnsupportedKindError
from ..models import Destination, DestinationKind
from ..process import ProcessRunner


class DestinationAdapterFactory:
    """Factory para crear adaptadores de destino (Factory Pattern)"""

    _adapters = {
        DestinationKind.LOCAL: LocalDestination,
        DestinationKind.OBJECT_STORE: ObjectStoreDestination,
        DestinationKind.SECURE_COPY: SecureCopyDestination,
        DestinationKind.CLOUD_DRIVE: CloudDriveDestination,
    }

    @classmethod
    def create(
        cls,
        destination: Destination,
        runner: Optional[ProcessRunner] = None,
    ) -> Optional[DestinationAdapter]:
        """
        Crea el adaptador correspondiente al tipo del destino

        Args:
            destination: Destino configurado
            runner: Ejecutor de procesos externos (opcional)

        Returns:
            Instancia de DestinationAdapter o None si el tipo no es soportado
        """
        adapter_class = cls._adapters.get(destination.kind)
        if adapter_class:
            return adapter_class(destination, runner=runner)
        return None

    @classmethod
    def register_adapter(cls, kind, adapter_class: type):
        """
        Registra un nuevo adaptador de destino

        Args:
            kind: Tipo de destino
            adapter_class: Clase de adaptador a registrar
        """
        cls._adapters[DestinationKind.parse(kind)] = adapter_class

    @classmethod
    def get_supported_types(cls) -> list:
        return [kind.value for kind in cls._adapters.keys()]

    @classmethod
    def is_supported(cls, kind) -> bool:
        try:
            return DestinationKind.parse(kind) in cls._adapters
        except UnsupportedKindError:
            return False
