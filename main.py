#!/usr/bin/env python3
"""
Sistema de Backup de Bases de Datos
Punto de entrada principal

Uso:
    python main.py                  # Modo scheduler (automático) + monitor
    python main.py once             # Backup de todas las bases de datos una vez
    python main.py --db ID          # Backup de una BD específica
    python main.py --schedule ID    # Ejecutar todas las BD de una programación
    python main.py --help           # Ayuda
"""
import argparse
import sys

from dbvault.config import Config
from dbvault.errors import BackupError
from dbvault.logger import LoggerService
from dbvault.models import JobStatus
from dbvault.repositories.config_repository import ConfigRepository
from dbvault.repositories.metadata_store import MetadataStore
from dbvault.services.backup_service import BackupService
from dbvault.services.monitor_service import ConnectivityMonitor
from dbvault.services.scheduler_service import BackupScheduler


def parse_arguments(argv=None):
    """
    Parsea argumentos de línea de comandos

    Returns:
        Namespace con los argumentos parseados
    """
    parser = argparse.ArgumentParser(
        description='Sistema de Backup de Bases de Datos',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Ejemplos:
  python main.py                          # Iniciar servicio automático
  python main.py once                     # Backup de todas las bases de datos
  python main.py --db 3                   # Backup de la base de datos 3
  python main.py --db 3 --destination 2   # ... guardándolo en el destino 2
  python main.py --schedule 1             # Ejecutar la programación 1
  python main.py --jobs                   # Últimos jobs
  python main.py --check                  # Comprobar conectividad de las BD
  python main.py --test-destination 2     # Comprobar un destino
  python main.py --stats                  # Uso de cada destino
  python main.py --init                   # Crear archivos de configuración
  python main.py --sync                   # Volcar config.json al almacén
        """
    )

    parser.add_argument(
        'mode',
        nargs='?',
        choices=['once', 'scheduler'],
        default='scheduler',
        help='Modo de ejecución (default: scheduler)'
    )
    parser.add_argument('--db', type=int, metavar='ID', help='Realizar backup de una base de datos específica')
    parser.add_argument('--destination', type=int, metavar='ID', help='Destino explícito para --db')
    parser.add_argument('--schedule', type=int, metavar='ID', help='Ejecutar todas las bases de datos de una programación')
    parser.add_argument('--jobs', action='store_true', help='Listar los últimos jobs')
    parser.add_argument('--limit', type=int, default=20, help='Cantidad de jobs a listar (default: 20)')
    parser.add_argument('--check', action='store_true', help='Comprobar la conectividad de las bases de datos')
    parser.add_argument('--test-destination', type=int, metavar='ID', help='Comprobar la conectividad de un destino')
    parser.add_argument('--stats', action='store_true', help='Mostrar uso de cada destino')
    parser.add_argument('--sync', action='store_true', help='Sincronizar config.json con el almacén de metadatos')
    parser.add_argument('--init', action='store_true', help='Crear archivos de configuración de ejemplo')
    parser.add_argument('--now', action='store_true', help='Ejecutar backup inmediatamente al iniciar scheduler')

    return parser.parse_args(argv)


def initialize_config():
    """
    Inicializa archivos de configuración si no existen

    Returns:
        True si se creó algún archivo
    """
    logger = LoggerService.get_logger("Init")
    config_repo = ConfigRepository()

    created_files = []

    if not Config.CONFIG_FILE.exists():
        if config_repo.create_example_config():
            created_files.append(str(Config.CONFIG_FILE))
            logger.info(f"Creado: {Config.CONFIG_FILE}")

    env_example = Config.BASE_DIR / ".env.example"
    if not env_example.exists():
        env_content = """# Variables de entorno para credenciales
# Copia este archivo como .env y completa con tus credenciales

# Credenciales referenciadas desde config.json como ${VARIABLE}
DB_USER=backup_user
DB_PASSWORD=tu_password_seguro

# Almacén de metadatos (URL de SQLAlchemy)
# DBVAULT_METADATA_URL=sqlite:///dbvault.db

# Timeouts (segundos) e intervalos
# DBVAULT_DUMP_TIMEOUT=3600
# DBVAULT_PROBE_TIMEOUT=5
# DBVAULT_MONITOR_INTERVAL=10
"""
        try:
            with open(env_example, 'w', encoding='utf-8') as f:
                f.write(env_content)
            created_files.append(str(env_example))
            logger.info(f"Creado: {env_example}")
        except OSError as e:
            logger.error(f"Error creando .env.example: {e}")

    if created_files:
        logger.info("=" * 70)
        logger.info("ARCHIVOS DE CONFIGURACIÓN CREADOS")
        logger.info("=" * 70)
        for file in created_files:
            logger.info(f"  - {file}")
        logger.info("")
        logger.info("IMPORTANTE:")
        logger.info("1. Copia .env.example como .env")
        logger.info("2. Edita .env con tus credenciales")
        logger.info("3. Edita config.json con destinos, bases de datos y programaciones")
        logger.info("4. Ejecuta: python main.py --sync")
        logger.info("=" * 70)
        return True

    return False


def show_jobs(backup_service: BackupService, target_id=None, limit=20):
    logger = LoggerService.get_logger("Jobs")
    jobs = backup_service.list_jobs(target_id=target_id, limit=limit)

    logger.info("=" * 70)
    logger.info(f"ÚLTIMOS JOBS ({len(jobs)})")
    logger.info("=" * 70)
    for job in jobs:
        duration = f"{job.duration_seconds:.2f}s" if job.duration_seconds is not None else "-"
        size = f"{(job.size or 0) / (1024 * 1024):.2f} MB" if job.size is not None else "-"
        logger.info(
            f"#{job.id} BD {job.target_id} -> destino {job.destination_id}: {job.status.value} "
            f"({job.started_at:%Y-%m-%d %H:%M:%S}, {duration}, {size})"
        )
        if job.location:
            logger.info(f"  Ubicación: {job.location}")
        if job.status is JobStatus.FAILED and job.log:
            logger.info(f"  Error: {job.log}")
    logger.info("=" * 70)


def show_statistics(store: MetadataStore, backup_service: BackupService):
    """
    Muestra el uso de cada destino según el historial de jobs

    Args:
        store: Almacén de metadatos
        backup_service: Servicio de backup
    """
    logger = LoggerService.get_logger("Stats")

    logger.info("=" * 70)
    logger.info("ESTADÍSTICAS DE BACKUPS")
    logger.info("=" * 70)
    for destination in store.list_destinations():
        usage = backup_service.destination_usage(destination.id)
        logger.info(f"{usage['destination']} ({usage['kind']})")
        logger.info(f"  Jobs: {usage['job_count']} ({usage['successful_jobs']} exitosos)")
        logger.info(f"  Espacio utilizado: {usage['total_size'] / (1024 * 1024):.2f} MB")
    logger.info(f"Bases de datos registradas: {len(store.list_targets())}")
    logger.info("=" * 70)


def check_connectivity(monitor: ConnectivityMonitor) -> bool:
    logger = LoggerService.get_logger("Check")
    results = monitor.check_once()
    for result in results:
        if result.reachable:
            logger.info(f"✓ {result.target_name} ({result.engine.value}): {result.latency_ms:.0f} ms")
        else:
            logger.error(f"✗ {result.target_name} ({result.engine.value}): {result.error}")
    return all(r.reachable for r in results)


def run_service(backup_service: BackupService, run_immediately: bool = False):
    """
    Inicia programador y monitor hasta recibir una señal de parada

    Args:
        backup_service: Servicio de backup
        run_immediately: Si es True, ejecuta un backup de todas las BD al iniciar
    """
    logger = LoggerService.get_logger("Main")
    scheduler = BackupScheduler(backup_service)
    monitor = ConnectivityMonitor(backup_service.store)

    scheduler.reconcile_all()
    monitor.start(Config.MONITOR_INTERVAL_MINUTES)

    if run_immediately:
        logger.info("Ejecutando backup inicial...")
        backup_service.backup_all_targets()

    try:
        scheduler.serve_forever()
    finally:
        monitor.stop()


def main(argv=None) -> int:
    """Función principal"""
    args = parse_arguments(argv)
    logger = LoggerService.get_logger("Main")

    if args.init:
        initialize_config()
        return 0

    Config.ensure_directories()
    store = MetadataStore()
    store.create_schema()

    if args.sync:
        if not Config.CONFIG_FILE.exists():
            logger.error(f"No se encontró {Config.CONFIG_FILE}. Ejecuta: python main.py --init")
            return 1
        ConfigRepository().sync_to_store(store)
        return 0

    backup_service = BackupService(store)

    if args.jobs:
        show_jobs(backup_service, target_id=args.db, limit=args.limit)
        return 0

    if args.stats:
        show_statistics(store, backup_service)
        return 0

    if args.check:
        return 0 if check_connectivity(ConnectivityMonitor(store)) else 1

    if args.test_destination is not None:
        result = backup_service.check_destination(args.test_destination)
        if result.success:
            suffix = " (inferido del historial)" if result.inferred else ""
            logger.info(f"✓ Destino accesible: {result.detail}{suffix}")
            return 0
        logger.error(f"✗ Destino no accesible: {result.error}")
        if result.remediation:
            logger.info(result.remediation)
        return 1

    if args.db is not None:
        logger.info(f"Realizando backup de la base de datos {args.db}")
        result = backup_service.run_backup(args.db, destination_id=args.destination)
        if result.success:
            logger.info(f"✓ Backup exitoso: {result.location}")
            return 0
        logger.error(f"✗ Backup fallido: {result.error}")
        if result.remediation:
            logger.info(result.remediation)
        return 1

    if args.schedule is not None:
        report = backup_service.run_schedule(args.schedule)
        if report.error:
            logger.error(f"✗ {report.error}")
            return 1
        for result in report.results:
            logger.info(str(result))
        return 0 if report.failed_count == 0 else 1

    if args.mode == 'once':
        logger.info("Modo: Ejecución única")
        results = backup_service.backup_all_targets()
        failed = sum(1 for r in results if not r.success)
        return 1 if failed > 0 else 0

    run_service(backup_service, run_immediately=args.now)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nPrograma interrumpido por el usuario")
        sys.exit(0)
    except BackupError as e:
        print(f"Error: {e}")
        sys.exit(1)
