"""
Repositorio del almacén de metadatos (SQLAlchemy Core)

Guarda el catálogo (bases de datos, destinos, programaciones) y el historial
de jobs. El orquestador solo escribe filas de jobs; el resto de escrituras
pertenecen a la capa administrativa y al cargador del catálogo.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from ..config import Config
from ..errors import MetadataStoreError, MetadataStoreUnwritableError, MisconfiguredError, NotFoundError
from ..logger import LoggerService
from ..models import DatabaseTarget, Destination, DestinationKind, Job, JobStatus, Schedule

metadata = MetaData()

targets = Table(
    "targets",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False, unique=True),
    Column("engine", String(20), nullable=False),
    Column("host", String(255)),
    Column("port", Integer),
    Column("user", String(200)),
    Column("password", String(500)),
    Column("database", String(500)),
    Column("schedule_id", Integer),
    Column("destination_id", Integer),
    Column("backup_enabled", Boolean, nullable=False, default=True),
)

destinations = Table(
    "destinations",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False, unique=True),
    Column("kind", String(30), nullable=False),
    Column("config", JSON, nullable=False),
)

schedules = Table(
    "schedules",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(200), nullable=False, unique=True),
    Column("cron", String(100), nullable=False),
    Column("retention_days", Integer, nullable=False, default=30),
    Column("enabled", Boolean, nullable=False, default=True),
)

schedule_targets = Table(
    "schedule_targets",
    metadata,
    Column("schedule_id", Integer, primary_key=True),
    Column("target_id", Integer, primary_key=True),
)

jobs = Table(
    "jobs",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("target_id", Integer, nullable=False, index=True),
    Column("destination_id", Integer, nullable=False, index=True),
    Column("status", String(20), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("finished_at", DateTime(timezone=True)),
    Column("location", String(1000)),
    Column("size", BigInteger),
    Column("log", Text),
)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite devuelve fechas sin zona horaria; todo se guarda en UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_target(row) -> DatabaseTarget:
    return DatabaseTarget(
        id=row.id,
        name=row.name,
        engine=row.engine,
        host=row.host or "localhost",
        port=row.port,
        user=row.user or "",
        password=row.password or "",
        database=row.database,
        schedule_id=row.schedule_id,
        destination_id=row.destination_id,
        backup_enabled=bool(row.backup_enabled),
    )


def _row_to_destination(row) -> Destination:
    return Destination(id=row.id, name=row.name, kind=row.kind, config=row.config)


def _row_to_job(row) -> Job:
    return Job(
        id=row.id,
        target_id=row.target_id,
        destination_id=row.destination_id,
        status=JobStatus(row.status),
        started_at=_as_utc(row.started_at),
        finished_at=_as_utc(row.finished_at),
        location=row.location,
        size=row.size,
        log=row.log,
    )


class MetadataStore:
    """Acceso al almacén de metadatos sobre cualquier URL de SQLAlchemy"""

    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None):
        """
        Inicializa el repositorio

        Args:
            url: URL de SQLAlchemy (por defecto Config.METADATA_URL)
            engine: Engine ya construido (opcional, tiene prioridad sobre url)
        """
        self.logger = LoggerService.get_logger("MetadataStore")
        if engine is None:
            url = url or Config.METADATA_URL
            connect_args = {}
            if make_url(url).get_backend_name() == "sqlite":
                # El scheduler y el monitor usan la misma conexión desde otros hilos
                connect_args["check_same_thread"] = False
            engine = create_engine(url, connect_args=connect_args)
        self.engine = engine

    # ------------------------------------------------------------------
    # Transacciones
    # ------------------------------------------------------------------

    @contextmanager
    def _reading(self, what: str) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as e:
            raise MetadataStoreError(f"No se pudo leer {what} del almacén de metadatos: {e}")

    @contextmanager
    def _writing(self, what: str) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            raise MetadataStoreUnwritableError(
                f"No se pudo escribir {what} en el almacén de metadatos: {e}",
                remediation="Verifica que el almacén exista y que no esté abierto en solo lectura."
            )

    def create_schema(self):
        """Crea las tablas si no existen"""
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise MetadataStoreUnwritableError(f"No se pudo crear el esquema de metadatos: {e}")

    # ------------------------------------------------------------------
    # Lectura del catálogo
    # ------------------------------------------------------------------

    def get_target(self, target_id: int) -> Optional[DatabaseTarget]:
        with self._reading("la base de datos") as conn:
            row = conn.execute(select(targets).where(targets.c.id == target_id)).first()
        return _row_to_target(row) if row else None

    def get_target_by_name(self, name: str) -> Optional[DatabaseTarget]:
        with self._reading("la base de datos") as conn:
            row = conn.execute(select(targets).where(targets.c.name == name)).first()
        return _row_to_target(row) if row else None

    def list_targets(self) -> List[DatabaseTarget]:
        with self._reading("las bases de datos") as conn:
            rows = conn.execute(select(targets).order_by(targets.c.id)).all()
        return [_row_to_target(row) for row in rows]

    def get_destination(self, destination_id: int) -> Optional[Destination]:
        """
        Obtiene un destino por id

        Raises:
            MisconfiguredError: Si la configuración guardada no es válida
            UnsupportedKindError: Si el tipo guardado no es soportado
        """
        with self._reading("el destino") as conn:
            row = conn.execute(select(destinations).where(destinations.c.id == destination_id)).first()
        return _row_to_destination(row) if row else None

    def get_destination_by_name(self, name: str) -> Optional[Destination]:
        with self._reading("el destino") as conn:
            row = conn.execute(select(destinations).where(destinations.c.name == name)).first()
        return _row_to_destination(row) if row else None

    def list_destinations(self) -> List[Destination]:
        with self._reading("los destinos") as conn:
            rows = conn.execute(select(destinations).order_by(destinations.c.id)).all()
        return [_row_to_destination(row) for row in rows]

    def _schedule_target_ids(self, conn: Connection, schedule_id: int) -> List[int]:
        rows = conn.execute(
            select(schedule_targets.c.target_id)
            .where(schedule_targets.c.schedule_id == schedule_id)
            .order_by(schedule_targets.c.target_id)
        ).all()
        return [row.target_id for row in rows]

    def _row_to_schedule(self, conn: Connection, row) -> Schedule:
        return Schedule(
            id=row.id,
            name=row.name,
            cron=row.cron,
            retention_days=row.retention_days,
            enabled=bool(row.enabled),
            target_ids=self._schedule_target_ids(conn, row.id),
        )

    def get_schedule(self, schedule_id: int) -> Optional[Schedule]:
        with self._reading("la programación") as conn:
            row = conn.execute(select(schedules).where(schedules.c.id == schedule_id)).first()
            return self._row_to_schedule(conn, row) if row else None

    def get_schedule_by_name(self, name: str) -> Optional[Schedule]:
        with self._reading("la programación") as conn:
            row = conn.execute(select(schedules).where(schedules.c.name == name)).first()
            return self._row_to_schedule(conn, row) if row else None

    def list_schedules(self, enabled_only: bool = False) -> List[Schedule]:
        query = select(schedules).order_by(schedules.c.id)
        if enabled_only:
            query = query.where(schedules.c.enabled.is_(True))
        with self._reading("las programaciones") as conn:
            rows = conn.execute(query).all()
            return [self._row_to_schedule(conn, row) for row in rows]

    def get_schedule_targets(self, schedule_id: int) -> List[DatabaseTarget]:
        """Bases de datos vinculadas a una programación, en orden de id"""
        query = (
            select(targets)
            .join(schedule_targets, schedule_targets.c.target_id == targets.c.id)
            .where(schedule_targets.c.schedule_id == schedule_id)
            .order_by(targets.c.id)
        )
        with self._reading("las bases de datos de la programación") as conn:
            rows = conn.execute(query).all()
        return [_row_to_target(row) for row in rows]

    # ------------------------------------------------------------------
    # Escritura del catálogo (capa administrativa / cargador)
    # ------------------------------------------------------------------

    def save_target(self, target: DatabaseTarget) -> DatabaseTarget:
        values = {
            "name": target.name,
            "engine": target.engine.value,
            "host": target.host,
            "port": target.port,
            "user": target.user,
            "password": target.password,
            "database": target.database,
            "schedule_id": target.schedule_id,
            "destination_id": target.destination_id,
            "backup_enabled": target.backup_enabled,
        }
        with self._writing("la base de datos") as conn:
            if target.id is None:
                target.id = conn.execute(insert(targets).values(**values)).inserted_primary_key[0]
            else:
                conn.execute(update(targets).where(targets.c.id == target.id).values(**values))
        return target

    def save_destination(self, destination: Destination) -> Destination:
        """
        Inserta o actualiza un destino

        Raises:
            MisconfiguredError: Si otro destino local ya usa la misma ruta
        """
        if destination.kind is DestinationKind.LOCAL:
            self._ensure_unique_local_path(destination)

        values = {
            "name": destination.name,
            "kind": destination.kind.value,
            "config": destination.config_blob(),
        }
        with self._writing("el destino") as conn:
            if destination.id is None:
                destination.id = conn.execute(insert(destinations).values(**values)).inserted_primary_key[0]
            else:
                conn.execute(update(destinations).where(destinations.c.id == destination.id).values(**values))
        return destination

    def _ensure_unique_local_path(self, destination: Destination):
        from ..destinations.local_destination import resolve_local_root

        root = resolve_local_root(destination.config.path).resolve()
        for other in self.list_destinations():
            if other.kind is not DestinationKind.LOCAL or other.id == destination.id:
                continue
            if resolve_local_root(other.config.path).resolve() == root:
                raise MisconfiguredError(
                    f"La ruta {root} ya está asignada al destino local '{other.name}'"
                )

    def save_schedule(self, schedule: Schedule) -> Schedule:
        """Inserta o actualiza una programación y reemplaza sus vínculos"""
        values = {
            "name": schedule.name,
            "cron": schedule.cron,
            "retention_days": schedule.retention_days,
            "enabled": schedule.enabled,
        }
        with self._writing("la programación") as conn:
            if schedule.id is None:
                schedule.id = conn.execute(insert(schedules).values(**values)).inserted_primary_key[0]
            else:
                conn.execute(update(schedules).where(schedules.c.id == schedule.id).values(**values))
            conn.execute(delete(schedule_targets).where(schedule_targets.c.schedule_id == schedule.id))
            target_ids = sorted(set(schedule.target_ids))
            if target_ids:
                conn.execute(
                    insert(schedule_targets),
                    [{"schedule_id": schedule.id, "target_id": target_id} for target_id in target_ids]
                )
        return schedule

    def delete_target(self, target_id: int):
        """Elimina la base de datos y sus vínculos; su historial de jobs se conserva"""
        with self._writing("la base de datos") as conn:
            conn.execute(delete(schedule_targets).where(schedule_targets.c.target_id == target_id))
            conn.execute(delete(targets).where(targets.c.id == target_id))

    def delete_destination(self, destination_id: int):
        with self._writing("el destino") as conn:
            conn.execute(delete(destinations).where(destinations.c.id == destination_id))

    def delete_schedule(self, schedule_id: int):
        with self._writing("la programación") as conn:
            conn.execute(delete(schedule_targets).where(schedule_targets.c.schedule_id == schedule_id))
            conn.execute(delete(schedules).where(schedules.c.id == schedule_id))

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(self, target_id: int, destination_id: int, started_at: datetime) -> Job:
        """
        Registra un job en estado RUNNING

        Raises:
            MetadataStoreUnwritableError: Si el almacén no admite escrituras
        """
        with self._writing("el job") as conn:
            job_id = conn.execute(
                insert(jobs).values(
                    target_id=target_id,
                    destination_id=destination_id,
                    status=JobStatus.RUNNING.value,
                    started_at=started_at,
                )
            ).inserted_primary_key[0]
        return Job(
            id=job_id,
            target_id=target_id,
            destination_id=destination_id,
            status=JobStatus.RUNNING,
            started_at=started_at,
        )

    def finalize_job(
        self,
        job_id: int,
        status: JobStatus,
        finished_at: datetime,
        location: Optional[str] = None,
        size: Optional[int] = None,
        log: Optional[str] = None,
    ):
        """
        Pasa un job de RUNNING a su estado final (una única vez)

        Raises:
            ValueError: Si el estado indicado no es final
            NotFoundError: Si el job no existe
            MetadataStoreError: Si el job ya estaba finalizado
            MetadataStoreUnwritableError: Si el almacén no admite escrituras
        """
        status = JobStatus(status)
        if not status.is_terminal:
            raise ValueError(f"Estado final inválido: {status.value}")

        with self._writing("el job") as conn:
            result = conn.execute(
                update(jobs)
                .where(jobs.c.id == job_id, jobs.c.status == JobStatus.RUNNING.value)
                .values(
                    status=status.value,
                    finished_at=finished_at,
                    location=location,
                    size=size,
                    log=log,
                )
            )
            updated = result.rowcount

        if updated == 0:
            if self.get_job(job_id) is None:
                raise NotFoundError(f"Job no encontrado: {job_id}")
            raise MetadataStoreError(f"El job {job_id} ya fue finalizado")

    def get_job(self, job_id: int) -> Optional[Job]:
        with self._reading("el job") as conn:
            row = conn.execute(select(jobs).where(jobs.c.id == job_id)).first()
        return _row_to_job(row) if row else None

    def list_jobs(
        self,
        target_id: Optional[int] = None,
        destination_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Job]:
        """Jobs más recientes primero"""
        query = select(jobs).order_by(jobs.c.started_at.desc(), jobs.c.id.desc())
        if target_id is not None:
            query = query.where(jobs.c.target_id == target_id)
        if destination_id is not None:
            query = query.where(jobs.c.destination_id == destination_id)
        if limit:
            query = query.limit(limit)
        with self._reading("los jobs") as conn:
            rows = conn.execute(query).all()
        return [_row_to_job(row) for row in rows]

    def last_successful_job(self, destination_id: int, since: datetime) -> Optional[Job]:
        query = (
            select(jobs)
            .where(
                jobs.c.destination_id == destination_id,
                jobs.c.status == JobStatus.SUCCESS.value,
                jobs.c.finished_at >= since,
            )
            .order_by(jobs.c.finished_at.desc())
            .limit(1)
        )
        with self._reading("los jobs") as conn:
            row = conn.execute(query).first()
        return _row_to_job(row) if row else None

    def destination_usage(self, destination_id: int) -> Dict[str, int]:
        """
        Uso de un destino según el historial de jobs

        Returns:
            Diccionario con job_count, successful_jobs y total_size (bytes)
        """
        succeeded = jobs.c.status == JobStatus.SUCCESS.value
        query = select(
            func.count(jobs.c.id).label("job_count"),
            func.sum(case((succeeded, 1), else_=0)).label("successful_jobs"),
            func.sum(case((succeeded, jobs.c.size), else_=0)).label("total_size"),
        ).where(jobs.c.destination_id == destination_id)
        with self._reading("el uso del destino") as conn:
            row = conn.execute(query).one()
        return {
            "job_count": int(row.job_count or 0),
            "successful_jobs": int(row.successful_jobs or 0),
            "total_size": int(row.total_size or 0),
        }
