"""
Adaptadores de destino de almacenamiento
"""
from .base_destination import DestinationAdapter
from .local_destination import LocalDestination
from .object_store_destination import ObjectStoreDestination
from .secure_copy_destination import SecureCopyDestination
from .cloud_drive_destination import CloudDriveDestination

__all__ = [
    'DestinationAdapter',
    'LocalDestination',
    'ObjectStoreDestination',
    'SecureCopyDestination',
    'CloudDriveDestination',
]
