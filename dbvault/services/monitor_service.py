"""
Monitor de conectividad de las bases de datos

Independiente del programador de backups: tiene su propio temporizador y
su propio hilo, y nunca escribe filas de jobs.
"""
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional

import schedule

from ..config import Config
from ..errors import BackupError
from ..factories.producer_factory import DumpProducerFactory
from ..logger import LoggerService, redact
from ..models import DatabaseTarget, MonitorStatus, ProbeResult
from ..repositories.metadata_store import MetadataStore
from .backup_service import utc_now


class ConnectivityMonitor:
    """Comprueba periódicamente que cada base de datos acepte conexiones"""

    def __init__(
        self,
        store: MetadataStore,
        producer_factory=DumpProducerFactory,
        probe_timeout: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Inicializa el monitor

        Args:
            store: Almacén de metadatos (solo lectura)
            producer_factory: Factory que provee la sonda de cada motor
            probe_timeout: Timeout de conexión en segundos
            clock: Reloj UTC (inyectable en tests)
        """
        self.store = store
        self.producer_factory = producer_factory
        self.probe_timeout = probe_timeout or Config.PROBE_TIMEOUT_SECONDS
        self.clock = clock or utc_now
        self.logger = LoggerService.get_logger("ConnectivityMonitor")

        self._scheduler = schedule.Scheduler()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._interval_minutes: Optional[int] = None
        self.last_checked_at: Optional[datetime] = None
        self.last_results: List[ProbeResult] = []

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, interval_minutes: Optional[int] = None) -> bool:
        """
        Inicia la comprobación periódica

        Args:
            interval_minutes: Intervalo entre comprobaciones

        Returns:
            False si el monitor ya estaba en ejecución
        """
        if self.is_running():
            self.logger.warning("El monitor de conectividad ya está en ejecución")
            return False

        interval = interval_minutes if interval_minutes is not None else Config.MONITOR_INTERVAL_MINUTES
        if interval < 1:
            raise ValueError("El intervalo del monitor debe ser de al menos 1 minuto")

        self._interval_minutes = interval
        self._scheduler.clear()
        self._scheduler.every(interval).minutes.do(self._run_check)
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="connectivity-monitor", daemon=True)
        self._thread.start()
        self.logger.info(f"Monitor de conectividad iniciado (cada {interval} minuto(s))")
        return True

    def stop(self):
        """Cancela el temporizador del monitor"""
        if not self.is_running():
            return
        self._stop_event.set()
        self._thread.join(timeout=self.probe_timeout + 5)
        self._thread = None
        self._scheduler.clear()
        self.logger.info("Monitor de conectividad detenido")

    def _loop(self):
        # Comprobación inicial al arrancar
        self._run_check()
        while not self._stop_event.is_set():
            self._scheduler.run_pending()
            self._stop_event.wait(1)

    def _run_check(self):
        try:
            self.check_once()
        except Exception as e:
            self.logger.error(f"Error durante la comprobación de conectividad: {e}", exc_info=True)

    def check_once(self) -> List[ProbeResult]:
        """
        Comprueba la conectividad de todas las bases de datos

        Returns:
            Un resultado por base de datos
        """
        try:
            targets = self.store.list_targets()
        except BackupError as e:
            self.logger.error(f"No se pudieron leer las bases de datos: {e.message}")
            return []

        results = [self.probe_target(target) for target in targets]

        reachable = sum(1 for r in results if r.reachable)
        self.logger.info(f"Conectividad: {reachable}/{len(results)} base(s) de datos accesibles")
        for result in results:
            if not result.reachable:
                self.logger.warning(f"  ✗ {result.target_name}: {result.error}")

        self.last_checked_at = self.clock()
        self.last_results = results
        return results

    def probe_target(self, target: DatabaseTarget) -> ProbeResult:
        """
        Conecta y desconecta de una base de datos con timeout acotado

        Args:
            target: Base de datos a comprobar

        Returns:
            Resultado de la comprobación
        """
        checked_at = self.clock()
        producer = self.producer_factory.create(target.engine)
        if producer is None:
            return ProbeResult(
                target_id=target.id,
                target_name=target.name,
                engine=target.engine,
                reachable=False,
                checked_at=checked_at,
                error=f"Tipo de base de datos no soportado: {target.engine.value}"
            )

        start_time = time.time()
        try:
            producer.probe(target, self.probe_timeout)
        except Exception as e:
            message = redact(str(e), target.secrets()).strip()
            return ProbeResult(
                target_id=target.id,
                target_name=target.name,
                engine=target.engine,
                reachable=False,
                checked_at=checked_at,
                error=message.splitlines()[0] if message else type(e).__name__
            )

        return ProbeResult(
            target_id=target.id,
            target_name=target.name,
            engine=target.engine,
            reachable=True,
            checked_at=checked_at,
            latency_ms=(time.time() - start_time) * 1000
        )

    def get_status(self) -> MonitorStatus:
        return MonitorStatus(
            running=self.is_running(),
            interval_minutes=self._interval_minutes if self.is_running() else None,
            last_checked_at=self.last_checked_at,
            last_results=list(self.last_results),
        )
