"""
Servicio de programación de tareas de backup

Un único BackupScheduler por proceso mantiene un temporizador por
programación habilitada. Cada temporizador es un job de `schedule` que se
revisa periódicamente y dispara cuando la expresión cron vence.
"""
import signal
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

import schedule
from croniter import croniter

from ..config import Config
from ..errors import BackupError, InvalidCronExpressionError
from ..logger import LoggerService
from ..models import (
    ReconcileResult,
    Schedule,
    ScheduleRunReport,
    SchedulerStatus,
    TimerStatus,
)
from .backup_service import BackupService, utc_now

CRON_FIELDS = ("minuto", "hora", "día del mes", "mes", "día de la semana")


def validate_cron(expression: str) -> str:
    """
    Valida una expresión cron estándar de 5 campos

    Args:
        expression: Expresión cron (minuto hora día-mes mes día-semana)

    Returns:
        Expresión normalizada

    Raises:
        InvalidCronExpressionError: Si la expresión no es válida
    """
    fields = (expression or "").split()
    if len(fields) != len(CRON_FIELDS):
        raise InvalidCronExpressionError(
            f"Expresión cron inválida '{expression}': se esperaban 5 campos "
            f"({', '.join(CRON_FIELDS)}) y se recibieron {len(fields)}",
            remediation="Ejemplo: '0 2 * * *' ejecuta todos los días a las 02:00 UTC."
        )
    normalized = " ".join(fields)
    if not croniter.is_valid(normalized):
        raise InvalidCronExpressionError(
            f"Expresión cron inválida '{expression}': algún campo está fuera de rango o mal formado"
        )
    return normalized


def next_run_estimate(expression: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Próxima ejecución de una expresión cron

    Args:
        expression: Expresión cron de 5 campos
        now: Instante de referencia (UTC por defecto)

    Returns:
        Fecha de la próxima ejecución, o None si la expresión no es válida
    """
    try:
        normalized = validate_cron(expression)
    except InvalidCronExpressionError:
        return None
    return croniter(normalized, now or utc_now()).get_next(datetime)


@dataclass
class ScheduleTimer:
    """Temporizador vivo de una programación"""
    schedule_id: int
    schedule_name: str
    cron: str
    target_ids: List[int]
    job: schedule.Job
    next_run: datetime
    last_fired_at: Optional[datetime] = None
    is_running: bool = False

    def is_due(self, now: datetime) -> bool:
        return not self.is_running and now >= self.next_run


class BackupScheduler:
    """Servicio para programar y ejecutar backups automáticos"""

    def __init__(
        self,
        backup_service: BackupService,
        clock: Optional[Callable[[], datetime]] = None,
        tick_seconds: Optional[int] = None,
    ):
        """
        Inicializa el programador

        Args:
            backup_service: Servicio de backup a ejecutar
            clock: Reloj UTC (inyectable en tests)
            tick_seconds: Cada cuántos segundos se revisa cada temporizador
        """
        self.backup_service = backup_service
        self.store = backup_service.store
        self.clock = clock or utc_now
        self.tick_seconds = tick_seconds or Config.SCHEDULER_TICK_SECONDS
        self.logger = LoggerService.get_logger("BackupScheduler")

        self._scheduler = schedule.Scheduler()
        self._timers: Dict[int, ScheduleTimer] = {}
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Reconciliación
    # ------------------------------------------------------------------

    def reconcile_all(self) -> List[ReconcileResult]:
        """
        Descarta todos los temporizadores y los reconstruye desde el almacén

        Returns:
            Un resultado por programación habilitada
        """
        with self._lock:
            previous = {schedule_id: self._remove(schedule_id) for schedule_id in list(self._timers)}

            try:
                schedules = self.store.list_schedules(enabled_only=True)
            except BackupError as e:
                self.logger.error(f"No se pudieron leer las programaciones: {e.message}")
                return []

            results = [self._register(item, previous.get(item.id)) for item in schedules]

        registered = sum(1 for r in results if r.registered)
        self.logger.info(f"Programaciones registradas: {registered} de {len(results)}")
        return results

    def reconcile_one(self, schedule_id: int) -> ReconcileResult:
        """
        Actualiza el temporizador de una programación tras modificarla

        Args:
            schedule_id: Id de la programación

        Returns:
            Resultado de la reconciliación
        """
        with self._lock:
            previous = self._remove(schedule_id)

            try:
                item = self.store.get_schedule(schedule_id)
            except BackupError as e:
                self.logger.error(f"No se pudo leer la programación {schedule_id}: {e.message}")
                return ReconcileResult(schedule_id, registered=False, error=e.message, error_code=e.code)

            if item is None:
                self.logger.info(f"Programación {schedule_id} eliminada: temporizador descartado")
                return ReconcileResult(schedule_id, registered=False)
            if not item.enabled:
                self.logger.info(f"Programación {item.name} deshabilitada: temporizador descartado")
                return ReconcileResult(schedule_id, registered=False)

            return self._register(item, previous)

    def _register(self, item: Schedule, previous: Optional[ScheduleTimer] = None) -> ReconcileResult:
        try:
            cron = validate_cron(item.cron)
        except InvalidCronExpressionError as e:
            self.logger.error(f"Programación {item.name} no registrada: {e.message}")
            return ReconcileResult(item.id, registered=False, error=e.message, error_code=e.code)

        if not item.target_ids:
            self.logger.warning(f"La programación {item.name} no tiene bases de datos asociadas")

        job = self._scheduler.every(self.tick_seconds).seconds.do(self._fire_if_due, item.id)
        job.tag(f"schedule-{item.id}")

        timer = ScheduleTimer(
            schedule_id=item.id,
            schedule_name=item.name,
            cron=cron,
            target_ids=list(item.target_ids),
            job=job,
            next_run=croniter(cron, self.clock()).get_next(datetime),
        )
        # Misma expresión: se conserva la ocurrencia pendiente aunque ya haya vencido
        if previous is not None and previous.cron == cron:
            timer.next_run = previous.next_run
            timer.last_fired_at = previous.last_fired_at
        self._timers[item.id] = timer
        self.logger.info(
            f"Programación registrada: {item.name} ({cron}), "
            f"{len(timer.target_ids)} base(s) de datos, próxima ejecución {timer.next_run.isoformat()}"
        )
        return ReconcileResult(item.id, registered=True)

    def _remove(self, schedule_id: int) -> Optional[ScheduleTimer]:
        timer = self._timers.pop(schedule_id, None)
        if timer is not None:
            self._scheduler.cancel_job(timer.job)
        return timer

    # ------------------------------------------------------------------
    # Disparo
    # ------------------------------------------------------------------

    def _fire_if_due(self, schedule_id: int):
        """Tick del job de `schedule`; nunca propaga excepciones al bucle"""
        now = self.clock()
        with self._lock:
            timer = self._timers.get(schedule_id)
            if timer is None or not timer.is_due(now):
                return
            timer.is_running = True
        self._fire(timer, now)

    def check_due(self, now: Optional[datetime] = None) -> List[int]:
        """
        Dispara todas las programaciones vencidas

        Args:
            now: Instante de referencia (por defecto el reloj del programador)

        Returns:
            Ids de las programaciones disparadas
        """
        now = now or self.clock()
        with self._lock:
            due = [timer for timer in self._timers.values() if timer.is_due(now)]
            for timer in due:
                timer.is_running = True
        for timer in due:
            self._fire(timer, now)
        return [timer.schedule_id for timer in due]

    def fire(self, schedule_id: int) -> Optional[ScheduleRunReport]:
        """
        Dispara un temporizador registrado sin esperar a su vencimiento

        Returns:
            Reporte de la ejecución, o None si no hay temporizador registrado
            o si la programación ya se está ejecutando
        """
        with self._lock:
            timer = self._timers.get(schedule_id)
            if timer is None:
                self.logger.warning(f"No hay temporizador registrado para la programación {schedule_id}")
                return None
            if timer.is_running:
                self.logger.warning(f"La programación {timer.schedule_name} ya se está ejecutando")
                return None
            timer.is_running = True
        return self._fire(timer, self.clock())

    def _fire(self, timer: ScheduleTimer, now: datetime) -> ScheduleRunReport:
        # El llamador ya marcó el temporizador como en ejecución
        timer.last_fired_at = now
        timer.next_run = croniter(timer.cron, now).get_next(datetime)
        report = ScheduleRunReport(schedule_id=timer.schedule_id, schedule_name=timer.schedule_name)

        self.logger.info("=" * 70)
        self.logger.info(f"Ejecutando programación {timer.schedule_name} a las {now.isoformat()}")
        self.logger.info("=" * 70)
        try:
            targets = []
            for target_id in timer.target_ids:
                target = self.store.get_target(target_id)
                if target is None:
                    self.logger.warning(f"Base de datos {target_id} ya no existe; se omite")
                    continue
                targets.append(target)

            # Secuencial: una base de datos detrás de otra
            report.results = self.backup_service.run_targets(targets)

            if report.failed_count:
                self.logger.warning(
                    f"Programación {timer.schedule_name} completada con {report.failed_count} error(es). "
                    "Revisa los logs para más detalles."
                )
            else:
                self.logger.info(f"Programación {timer.schedule_name} completada exitosamente")
        except Exception as e:
            self.logger.error(f"Error crítico durante la programación {timer.schedule_name}: {e}", exc_info=True)
            report.error = str(e)
            report.error_code = getattr(e, "code", BackupError.code)
        finally:
            timer.is_running = False

        self.logger.info(f"Próxima ejecución de {timer.schedule_name}: {timer.next_run.isoformat()}")
        return report

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    def get_status(self) -> SchedulerStatus:
        with self._lock:
            timers = [
                TimerStatus(
                    schedule_id=timer.schedule_id,
                    schedule_name=timer.schedule_name,
                    cron=timer.cron,
                    target_count=len(timer.target_ids),
                    is_running=timer.is_running,
                    next_run=timer.next_run,
                    last_fired_at=timer.last_fired_at,
                )
                for timer in self._timers.values()
            ]
        return SchedulerStatus(
            loop_running=self.is_running(),
            active_timers=len(timers),
            timers=timers,
        )

    def next_run_estimate(self, expression: str, now: Optional[datetime] = None) -> Optional[datetime]:
        return next_run_estimate(expression, now or self.clock())

    def active_schedule_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._timers)

    def get_next_run(self) -> str:
        """
        Obtiene la próxima ejecución entre todas las programaciones

        Returns:
            String con la fecha de la próxima ejecución
        """
        with self._lock:
            upcoming = [timer.next_run for timer in self._timers.values()]
        if upcoming:
            return min(upcoming).strftime('%Y-%m-%d %H:%M:%S UTC')
        return "No hay ejecuciones programadas"

    # ------------------------------------------------------------------
    # Bucle
    # ------------------------------------------------------------------

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self):
        while not self._stop_event.is_set():
            self._scheduler.run_pending()
            self._stop_event.wait(1)

    def start(self) -> bool:
        """
        Inicia el bucle del programador en un hilo en segundo plano

        Returns:
            False si ya estaba en ejecución
        """
        if self.is_running():
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="backup-scheduler", daemon=True)
        self._thread.start()
        self.logger.info("Programador de backups iniciado")
        return True

    def stop(self):
        """Detiene el bucle; los temporizadores registrados se conservan"""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
            self.logger.info("Programador de backups detenido")

    def serve_forever(self):
        """Ejecuta el bucle en el hilo actual hasta recibir SIGINT/SIGTERM"""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        status = self.get_status()
        self.logger.info("=" * 70)
        self.logger.info("SERVICIO DE BACKUP AUTOMÁTICO INICIADO")
        self.logger.info("=" * 70)
        self.logger.info(f"Programaciones activas: {status.active_timers}")
        for timer in status.timers:
            self.logger.info(f"  - {timer.schedule_name} ({timer.cron}): {timer.target_count} base(s) de datos")
        self.logger.info("-" * 70)
        self.logger.info(f"Próxima ejecución: {self.get_next_run()}")
        self.logger.info("Presiona Ctrl+C para detener el servicio")
        self.logger.info("=" * 70)

        self._stop_event.clear()
        self._loop()
        self._shutdown()

    def _signal_handler(self, signum, frame):
        """
        Manejador de señales para shutdown graceful

        Args:
            signum: Número de señal
            frame: Frame actual
        """
        try:
            signal_name = signal.Signals(signum).name
        except ValueError:
            signal_name = str(signum)

        self.logger.info(f"Señal recibida: {signal_name}")
        self._stop_event.set()

    def _shutdown(self):
        """Detiene el servicio de forma ordenada"""
        self.logger.info("Deteniendo servicio de backup...")
        with self._lock:
            for schedule_id in list(self._timers):
                self._remove(schedule_id)
        self._scheduler.clear()
        self.logger.info("Servicio detenido correctamente")
