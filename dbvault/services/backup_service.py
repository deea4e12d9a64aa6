"""
Servicio principal que orquesta los backups

Coordina productor de volcados y adaptador de destino, y mantiene el
registro persistente de cada job (RUNNING -> SUCCESS | FAILED).
"""
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..config import Config
from ..destinations.base_destination import DestinationAdapter
from ..errors import (
    BackupError,
    EmptyDatabaseError,
    MetadataStoreError,
    MisconfiguredError,
    NoDestinationError,
    NotFoundError,
    UnsupportedKindError,
)
from ..factories.destination_factory import DestinationAdapterFactory
from ..factories.producer_factory import DumpProducerFactory
from ..logger import LoggerService, redact
from ..models import (
    ConnectionTestResult,
    DatabaseTarget,
    Destination,
    EngineType,
    Job,
    JobResult,
    JobStatus,
    ScheduleRunReport,
    sanitize_name,
)
from ..process import ProcessRunner
from ..producers.base_producer import DumpProducer
from ..repositories.metadata_store import MetadataStore


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def backup_filename(
    target: DatabaseTarget,
    moment: datetime,
    extension: str = "sql",
    job_id: Optional[int] = None
) -> str:
    """
    Nombre del artefacto: <base de datos>_<marca de tiempo UTC>[_job<id>].<extensión>

    Args:
        target: Base de datos respaldada
        moment: Instante del backup (UTC)
        extension: Extensión del archivo
        job_id: Job que produce el artefacto; dos ejecuciones simultáneas
            de la misma base de datos nunca comparten archivo

    Returns:
        Nombre de archivo sin separadores de ruta
    """
    base = target.database_name
    if target.engine is EngineType.SQLITE:
        base = Path(base).stem
    timestamp = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    timestamp = f"{timestamp}-{moment.microsecond // 1000:03d}Z"
    suffix = f"_job{job_id}" if job_id is not None else ""
    return f"{sanitize_name(base)}_{timestamp}{suffix}.{extension}"


class BackupService:
    """Servicio principal que orquesta los backups"""

    def __init__(
        self,
        store: MetadataStore,
        producer_factory=DumpProducerFactory,
        adapter_factory=DestinationAdapterFactory,
        runner: Optional[ProcessRunner] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Inicializa el servicio de backup

        Args:
            store: Almacén de metadatos
            producer_factory: Factory de productores de volcados
            adapter_factory: Factory de adaptadores de destino
            runner: Ejecutor de procesos externos compartido por productores y destinos
            clock: Reloj UTC (inyectable en tests)
        """
        self.store = store
        self.producer_factory = producer_factory
        self.adapter_factory = adapter_factory
        self.runner = runner or ProcessRunner()
        self.clock = clock or utc_now
        self.logger = LoggerService.get_logger("BackupService")

    # ------------------------------------------------------------------
    # Resolución
    # ------------------------------------------------------------------

    def _resolve_target(self, target_id: int) -> DatabaseTarget:
        target = self.store.get_target(target_id)
        if target is None:
            raise NotFoundError(f"Base de datos no encontrada: {target_id}")
        return target

    def _resolve_destination(self, target: DatabaseTarget, destination_id: Optional[int]) -> Destination:
        destination_id = destination_id if destination_id is not None else target.destination_id
        if destination_id is None:
            raise NoDestinationError(
                f"La base de datos {target.name} no tiene destino de almacenamiento",
                remediation="Asigna un destino a la base de datos o indica uno explícitamente."
            )
        destination = self.store.get_destination(destination_id)
        if destination is None:
            raise NotFoundError(f"Destino no encontrado: {destination_id}")
        return destination

    def _create_producer(self, target: DatabaseTarget) -> DumpProducer:
        producer = self.producer_factory.create(target.engine, runner=self.runner)
        if producer is None:
            raise UnsupportedKindError(f"Tipo de base de datos no soportado: {target.engine.value}")
        return producer

    def _create_adapter(self, destination: Destination) -> DestinationAdapter:
        adapter = self.adapter_factory.create(destination, runner=self.runner)
        if adapter is None:
            raise UnsupportedKindError(f"Tipo de destino no soportado: {destination.kind.value}")
        return adapter

    # ------------------------------------------------------------------
    # Ejecución de un job
    # ------------------------------------------------------------------

    def run_backup(self, target_id: int, destination_id: Optional[int] = None) -> JobResult:
        """
        Realiza el backup de una base de datos

        Args:
            target_id: Id de la base de datos
            destination_id: Destino explícito (opcional, sustituye al asociado)

        Returns:
            Resultado del backup; nunca lanza excepciones
        """
        self.logger.info("-" * 70)
        start_time = time.time()

        try:
            target = self._resolve_target(target_id)
            destination = self._resolve_destination(target, destination_id)
            producer = self._create_producer(target)
            adapter = self._create_adapter(destination)
        except BackupError as e:
            self.logger.error(f"No se puede iniciar el backup de {target_id}: {e.message}")
            return JobResult(
                success=False,
                target_id=target_id,
                destination_id=destination_id,
                error=e.message,
                error_code=e.code,
                remediation=e.remediation
            )

        # El job existe antes de cualquier trabajo de volcado
        try:
            job = self.store.create_job(target.id, destination.id, self.clock())
        except MetadataStoreError as e:
            self.logger.error(f"No se pudo registrar el job de {target.name}: {e.message}")
            return JobResult(
                success=False,
                target_id=target.id,
                target_name=target.name,
                destination_id=destination.id,
                error=e.message,
                error_code=e.code,
                remediation=e.remediation
            )

        self.logger.info(f"Job {job.id}: {target.name} -> {destination.name} ({destination.kind.value})")

        try:
            result = self._execute(job, target, destination, producer, adapter)
        except Exception as e:
            # Ningún job puede quedar en RUNNING al volver
            message = redact(str(e), target.secrets())
            self.logger.error(f"Error inesperado en el job {job.id}: {message}", exc_info=True)
            result = JobResult(
                success=False,
                target_id=target.id,
                target_name=target.name,
                job_id=job.id,
                destination_id=destination.id,
                error=message,
                error_code=BackupError.code
            )

        result.duration_seconds = time.time() - start_time
        self._finalize(job, result)
        self.logger.info(str(result))
        return result

    def _execute(
        self,
        job: Job,
        target: DatabaseTarget,
        destination: Destination,
        producer: DumpProducer,
        adapter: DestinationAdapter,
    ) -> JobResult:
        result = JobResult(
            success=False,
            target_id=target.id,
            target_name=target.name,
            job_id=job.id,
            destination_id=destination.id
        )

        try:
            payload = producer.produce(target)
        except EmptyDatabaseError as e:
            self.logger.warning(f"{e.message}; se guarda un volcado de marcador")
            payload = producer.placeholder(target)
        except BackupError as e:
            result.error = redact(e.message, target.secrets())
            result.error_code = e.code
            result.remediation = e.remediation
            return result

        filename = backup_filename(target, job.started_at, producer.file_extension, job.id)
        stored = adapter.store(filename, payload.content, target.namespace)
        if not stored.success:
            result.error = redact(stored.error, target.secrets())
            result.error_code = stored.error_code
            result.remediation = stored.remediation
            return result

        result.success = True
        result.location = stored.location
        result.size = stored.size
        result.placeholder = payload.placeholder
        return result

    def _finalize(self, job: Job, result: JobResult):
        """Cierra el job; un fallo aquí se registra pero no altera el resultado"""
        if result.success:
            status = JobStatus.SUCCESS
            log = "Backup completado"
            if result.placeholder:
                log += " (base de datos vacía, volcado de marcador)"
        else:
            status = JobStatus.FAILED
            log = result.error

        try:
            self.store.finalize_job(
                job.id,
                status,
                self.clock(),
                location=result.location,
                size=result.size,
                log=log
            )
        except BackupError as e:
            self.logger.error(f"No se pudo finalizar el job {job.id} ({status.value}): {e.message}")

    # ------------------------------------------------------------------
    # Ejecuciones múltiples
    # ------------------------------------------------------------------

    def run_targets(self, targets: List[DatabaseTarget]) -> List[JobResult]:
        """
        Ejecuta los backups de forma secuencial, continuando ante fallos

        Args:
            targets: Bases de datos a respaldar

        Returns:
            Lista de resultados (las deshabilitadas se omiten)
        """
        results = []
        for target in targets:
            if not target.backup_enabled:
                self.logger.info(f"Base de datos deshabilitada: {target.name}")
                continue
            results.append(self.run_backup(target.id))
        return results

    def run_schedule(self, schedule_id: int) -> ScheduleRunReport:
        """
        Ejecuta todas las bases de datos de una programación

        Args:
            schedule_id: Id de la programación

        Returns:
            Reporte con un resultado por base de datos
        """
        report = ScheduleRunReport(schedule_id=schedule_id)
        try:
            schedule = self.store.get_schedule(schedule_id)
            if schedule is None:
                raise NotFoundError(f"Programación no encontrada: {schedule_id}")
            report.schedule_name = schedule.name
            if not schedule.enabled:
                raise MisconfiguredError(f"La programación {schedule.name} está deshabilitada")
            targets = self.store.get_schedule_targets(schedule_id)
        except BackupError as e:
            self.logger.error(f"No se puede ejecutar la programación {schedule_id}: {e.message}")
            report.error = e.message
            report.error_code = e.code
            return report

        self.logger.info("=" * 70)
        self.logger.info(f"EJECUTANDO PROGRAMACIÓN: {schedule.name} ({len(targets)} base(s) de datos)")
        self.logger.info("=" * 70)

        report.results = self.run_targets(targets)
        self.logger.info(
            f"Programación {schedule.name}: {report.success_count} exitoso(s), "
            f"{report.failed_count} fallido(s)"
        )
        return report

    def backup_all_targets(self) -> List[JobResult]:
        """
        Realiza backup de todas las bases de datos habilitadas

        Returns:
            Lista de resultados de backup
        """
        self.logger.info("=" * 70)
        self.logger.info("INICIANDO PROCESO DE BACKUP")
        self.logger.info("=" * 70)

        try:
            targets = self.store.list_targets()
        except BackupError as e:
            self.logger.error(f"No se pudieron leer las bases de datos: {e.message}")
            return []

        results = self.run_targets(targets)
        self._print_summary(results)
        return results

    def _print_summary(self, results: List[JobResult]):
        """
        Imprime resumen de la operación de backup

        Args:
            results: Lista de resultados
        """
        success_count = sum(1 for r in results if r.success)
        failed_count = len(results) - success_count
        total_time = sum(r.duration_seconds for r in results)
        total_size = sum(r.size or 0 for r in results if r.success)

        self.logger.info("=" * 70)
        self.logger.info("RESUMEN DEL PROCESO DE BACKUP")
        self.logger.info("=" * 70)

        for result in results:
            status = "✓ EXITOSO" if result.success else "✗ FALLIDO"
            self.logger.info(f"{status}: {result.target_name or result.target_id} ({result.duration_seconds:.2f}s)")
            if result.success:
                size_mb = (result.size or 0) / (1024 * 1024)
                suffix = " [base de datos vacía]" if result.placeholder else ""
                self.logger.info(f"  Ubicación: {result.location} ({size_mb:.2f} MB){suffix}")
            else:
                self.logger.error(f"  Error: {result.error}")

        self.logger.info("-" * 70)
        self.logger.info(f"Total de bases de datos procesadas: {len(results)}")
        self.logger.info(f"Backups exitosos: {success_count}")
        self.logger.info(f"Backups fallidos: {failed_count}")
        self.logger.info(f"Tiempo total: {total_time:.2f}s")
        self.logger.info(f"Espacio utilizado: {total_size / (1024 * 1024):.2f} MB")
        self.logger.info("=" * 70)

        if failed_count > 0:
            self.logger.warning(
                f"ATENCIÓN: {failed_count} backup(s) fallaron. "
                "Revisa los errores arriba."
            )

    # ------------------------------------------------------------------
    # Destinos y reportes
    # ------------------------------------------------------------------

    def check_destination(self, destination_id: int) -> ConnectionTestResult:
        """
        Comprueba la conectividad de un destino

        Los destinos sin sonda en vivo se consideran conectados si tienen un
        backup exitoso dentro de la ventana de salud.

        Args:
            destination_id: Id del destino

        Returns:
            Resultado de la comprobación; nunca lanza excepciones
        """
        try:
            destination = self.store.get_destination(destination_id)
            if destination is None:
                raise NotFoundError(f"Destino no encontrado: {destination_id}")
            adapter = self._create_adapter(destination)
            if adapter.supports_live_probe:
                return adapter.test_connection()
            return self._infer_health(destination)
        except BackupError as e:
            self.logger.warning(f"Comprobación del destino {destination_id} fallida: {e.message}")
            return ConnectionTestResult(
                success=False,
                error=e.message,
                error_code=e.code,
                remediation=e.remediation
            )

    def _infer_health(self, destination: Destination) -> ConnectionTestResult:
        window = Config.HEALTH_WINDOW_HOURS
        since = self.clock() - timedelta(hours=window)
        job = self.store.last_successful_job(destination.id, since)
        if job is not None:
            return ConnectionTestResult(
                success=True,
                detail=f"Último backup exitoso: {job.finished_at.isoformat()}",
                inferred=True
            )
        return ConnectionTestResult(
            success=False,
            error=f"Sin backups exitosos en {destination.name} en las últimas {window} horas",
            inferred=True
        )

    def destination_usage(self, destination_id: int) -> Dict[str, object]:
        """
        Uso de un destino según el historial de jobs

        Raises:
            NotFoundError: Si el destino no existe
            MetadataStoreError: Si el almacén no se puede leer
        """
        destination = self.store.get_destination(destination_id)
        if destination is None:
            raise NotFoundError(f"Destino no encontrado: {destination_id}")
        usage = self.store.destination_usage(destination_id)
        usage["destination"] = destination.name
        usage["kind"] = destination.kind.value
        return usage

    def list_jobs(self, target_id: Optional[int] = None, limit: Optional[int] = None) -> List[Job]:
        return self.store.list_jobs(target_id=target_id, limit=limit)
