"""
Servicios: orquestación de backups, programación y monitor de conectividad
"""
from .backup_service import BackupService
from .scheduler_service import BackupScheduler
from .monitor_service import ConnectivityMonitor

__all__ = ['BackupService', 'BackupScheduler', 'ConnectivityMonitor']
