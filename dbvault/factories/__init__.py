"""
Factories de productores y adaptadores de destino
"""
from .producer_factory import DumpProducerFactory
from .destination_factory import DestinationAdapterFactory

__all__ = ['DumpProducerFactory', 'DestinationAdapterFactory']
