"""
Repositorios: almacén de metadatos y catálogo JSON
"""
from .metadata_store import MetadataStore
from .config_repository import ConfigRepository

__all__ = ['MetadataStore', 'ConfigRepository']
