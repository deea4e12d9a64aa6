"""
Repositorio para manejar el catálogo en JSON (Dependency Inversion)

El archivo config.json describe destinos, bases de datos y programaciones;
sync_to_store() lo vuelca al almacén de metadatos resolviendo las
referencias por nombre.
"""
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import Config
from ..errors import BackupError, MetadataStoreUnwritableError, MisconfiguredError
from ..logger import LoggerService
from ..models import DatabaseTarget, Destination, Schedule
from .metadata_store import MetadataStore

_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigRepository:
    """Repositorio para manejar el catálogo"""

    def __init__(self, config_file: Optional[Path] = None):
        """
        Inicializa el repositorio de configuración

        Args:
            config_file: Ruta al archivo de configuración (opcional)
        """
        self.config_file = Path(config_file) if config_file else Config.CONFIG_FILE
        self.logger = LoggerService.get_logger("ConfigRepository")
        self._raw_config = None
        self._load_error: Optional[str] = None

    def load(self) -> Dict:
        """
        Carga configuración desde archivo JSON

        Returns:
            Diccionario con la configuración
        """
        self._load_error = None
        if not self.config_file.exists():
            self.logger.warning(f"El archivo de configuración no existe: {self.config_file}")
            self._raw_config = Config.DEFAULT_CONFIG
            return self._raw_config

        try:
            with open(self.config_file, "r", encoding='utf-8') as f:
                self._raw_config = json.load(f)
            self.logger.info(f"Configuración cargada exitosamente: {self.config_file}")
        except json.JSONDecodeError as e:
            self.logger.error(f"Error al parsear JSON: {e}")
            self._load_error = f"JSON inválido en {self.config_file}: {e}"
            self._raw_config = Config.DEFAULT_CONFIG
        except OSError as e:
            self.logger.error(f"Error al cargar la configuración: {e}")
            self._load_error = f"No se pudo leer {self.config_file}: {e}"
            self._raw_config = Config.DEFAULT_CONFIG
        return self._raw_config

    def save(self, config: Dict) -> bool:
        """
        Guarda configuración en archivo JSON

        Args:
            config: Diccionario con la configuración

        Returns:
            True si se guardó exitosamente
        """
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w", encoding='utf-8') as f:
                json.dump(config, f, indent=4, ensure_ascii=False)
            self.logger.info(f"Configuración guardada exitosamente: {self.config_file}")
            return True
        except (OSError, TypeError) as e:
            self.logger.error(f"Error al guardar la configuración: {e}")
            return False

    def _section(self, name: str) -> List[Dict[str, Any]]:
        if self._raw_config is None:
            self.load()
        return self._raw_config.get(name, [])

    def get_destinations(self) -> List[Destination]:
        """
        Obtiene los destinos del catálogo

        Returns:
            Lista de Destination (los inválidos se omiten y se registran)
        """
        destinations = []
        for dest_dict in self._section('destinations'):
            try:
                destinations.append(Destination(
                    name=dest_dict.get('name', ''),
                    kind=dest_dict.get('kind', 'local'),
                    config=self._resolve(dest_dict.get('config', {}))
                ))
            except BackupError as e:
                self.logger.error(f"Destino inválido '{dest_dict.get('name')}': {e.message}")
        return destinations

    def get_databases(self) -> List[DatabaseTarget]:
        """
        Obtiene lista de bases de datos del catálogo

        Returns:
            Lista de DatabaseTarget (sin ids ni vínculos; se resuelven al sincronizar)
        """
        databases = []
        for db_dict in self._section('databases'):
            try:
                databases.append(DatabaseTarget(
                    name=db_dict.get('name', ''),
                    engine=db_dict.get('type', 'mysql'),
                    host=db_dict.get('host', 'localhost'),
                    port=db_dict.get('port'),
                    user=self._resolve(db_dict.get('user', '')),
                    password=self._resolve(db_dict.get('password', '')),
                    database=db_dict.get('database'),
                    backup_enabled=db_dict.get('enabled', True)
                ))
            except (ValueError, BackupError) as e:
                self.logger.error(f"Error al cargar la base de datos '{db_dict.get('name')}': {e}")
        return databases

    def get_schedules(self) -> List[Schedule]:
        schedules = []
        for schedule_dict in self._section('schedules'):
            try:
                schedules.append(Schedule(
                    name=schedule_dict.get('name', ''),
                    cron=schedule_dict.get('cron', ''),
                    retention_days=int(schedule_dict.get('retention_days', 30)),
                    enabled=schedule_dict.get('enabled', True)
                ))
            except (ValueError, TypeError) as e:
                self.logger.error(f"Error al cargar la programación '{schedule_dict.get('name')}': {e}")
        return schedules

    def sync_to_store(self, store: MetadataStore) -> Dict[str, int]:
        """
        Vuelca el catálogo al almacén de metadatos (upsert por nombre)

        Las bases de datos referencian destino y programación por nombre;
        los vínculos de cada programación se reconstruyen a partir de ellas.

        Args:
            store: Almacén de metadatos

        Returns:
            Cantidad de destinos, bases de datos y programaciones sincronizados

        Raises:
            MetadataStoreUnwritableError: Si el almacén no admite escrituras
            MisconfiguredError: Si el archivo existe pero no se puede leer o parsear
        """
        self.load()
        if self._load_error:
            raise MisconfiguredError(
                self._load_error,
                "Corrige el archivo de configuración; no se sincronizó ningún registro."
            )
        store.create_schema()

        destination_ids = {}
        for destination in self.get_destinations():
            existing = store.get_destination_by_name(destination.name)
            destination.id = existing.id if existing else None
            try:
                destination_ids[destination.name] = store.save_destination(destination).id
            except MetadataStoreUnwritableError:
                raise
            except BackupError as e:
                self.logger.error(f"No se sincronizó el destino '{destination.name}': {e.message}")

        schedules = {}
        for schedule in self.get_schedules():
            existing = store.get_schedule_by_name(schedule.name)
            schedule.id = existing.id if existing else None
            schedules[schedule.name] = schedule

        db_dicts = {d.get('name'): d for d in self._section('databases')}
        target_count = 0
        for target in self.get_databases():
            raw = db_dicts.get(target.name, {})
            destination_name = raw.get('destination')
            schedule_name = raw.get('schedule')

            if destination_name and destination_name not in destination_ids:
                self.logger.warning(f"Destino '{destination_name}' no definido para {target.name}")
            target.destination_id = destination_ids.get(destination_name)

            existing = store.get_target_by_name(target.name)
            target.id = existing.id if existing else None
            store.save_target(target)
            target_count += 1

            if schedule_name:
                schedule = schedules.get(schedule_name)
                if schedule is None:
                    self.logger.warning(f"Programación '{schedule_name}' no definida para {target.name}")
                else:
                    schedule.target_ids.append(target.id)

        for schedule in schedules.values():
            store.save_schedule(schedule)
            # La programación principal de cada base de datos queda también en la fila
            for target_id in schedule.target_ids:
                target = store.get_target(target_id)
                if target and target.schedule_id != schedule.id:
                    target.schedule_id = schedule.id
                    store.save_target(target)

        summary = {
            "destinations": len(destination_ids),
            "databases": target_count,
            "schedules": len(schedules),
        }
        self.logger.info(
            f"Catálogo sincronizado: {summary['destinations']} destino(s), "
            f"{summary['databases']} base(s) de datos, {summary['schedules']} programación(es)"
        )
        return summary

    def _resolve(self, value: Any) -> Any:
        """
        Resuelve referencias ${VAR} desde variables de entorno

        Args:
            value: Cadena, diccionario o lista que puede contener referencias

        Returns:
            Valor resuelto
        """
        if isinstance(value, dict):
            return {key: self._resolve(item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._resolve(item) for item in value]
        if not isinstance(value, str):
            return value

        def substitute(match):
            env_var = match.group(1)
            resolved = os.getenv(env_var, "")
            if not resolved:
                self.logger.warning(f"Variable de entorno no encontrada: {env_var}")
            return resolved

        return _ENV_REFERENCE.sub(substitute, value)

    def create_example_config(self) -> bool:
        """
        Crea un archivo de configuración de ejemplo

        Returns:
            True si se creó exitosamente
        """
        return self.save(Config.DEFAULT_CONFIG)
