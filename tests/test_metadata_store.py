"""
Tests unitarios para el almacén de metadatos
"""
import shutil
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

# Agregar raíz del proyecto al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dbvault.errors import MetadataStoreError, MisconfiguredError, NotFoundError
from dbvault.models import DatabaseTarget, Destination, JobStatus, Schedule
from tests.fakes import make_store

T0 = datetime(2024, 5, 1, 2, 0, 0, tzinfo=timezone.utc)


class MetadataStoreTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.store = make_store(self.temp_dir)

    def tearDown(self):
        self.store.engine.dispose()
        shutil.rmtree(self.temp_dir)

    def add_destination(self, name="Local", path=None):
        path = path or str(self.temp_dir / name)
        return self.store.save_destination(Destination(name=name, kind="local", config={"path": path}))

    def add_target(self, name="ventas", **kwargs):
        return self.store.save_target(DatabaseTarget(name=name, engine=kwargs.pop("engine", "mysql"), **kwargs))


class TestCatalog(MetadataStoreTestCase):
    """Tests para el catálogo de bases de datos, destinos y programaciones"""

    def test_target_round_trip(self):
        destination = self.add_destination()
        target = self.add_target(user="root", password="clave", destination_id=destination.id, port=3307)

        loaded = self.store.get_target(target.id)
        self.assertEqual(loaded.name, "ventas")
        self.assertEqual(loaded.port, 3307)
        self.assertEqual(loaded.password, "clave")
        self.assertEqual(loaded.destination_id, destination.id)
        self.assertEqual(self.store.get_target_by_name("ventas").id, target.id)
        self.assertIsNone(self.store.get_target(999))

    def test_update_target(self):
        target = self.add_target()
        target.backup_enabled = False
        self.store.save_target(target)
        self.assertFalse(self.store.get_target(target.id).backup_enabled)
        self.assertEqual(len(self.store.list_targets()), 1)

    def test_destination_config_round_trip(self):
        saved = self.store.save_destination(Destination(
            name="S3",
            kind="s3",
            config={"bucket": "b", "access_key_id": "a", "secret_access_key": "s", "key_prefix": "p"}
        ))
        loaded = self.store.get_destination(saved.id)
        self.assertEqual(loaded.kind.value, "object_store")
        self.assertEqual(loaded.config.bucket, "b")
        self.assertEqual(loaded.config.key_prefix, "p")
        self.assertEqual(self.store.get_destination_by_name("S3").id, saved.id)

    def test_local_path_must_be_unique(self):
        """Test que dos destinos locales no pueden compartir ruta"""
        shared = str(self.temp_dir / "backups")
        self.add_destination("Uno", shared)
        with self.assertRaises(MisconfiguredError):
            self.add_destination("Dos", shared + "/")

    def test_local_destination_can_be_updated_in_place(self):
        destination = self.add_destination("Uno")
        destination.name = "Renombrado"
        self.store.save_destination(destination)
        self.assertEqual(self.store.get_destination(destination.id).name, "Renombrado")

    def test_schedule_bindings(self):
        first = self.add_target("a")
        second = self.add_target("b")
        schedule = self.store.save_schedule(Schedule(name="Nocturno", cron="0 2 * * *", target_ids=[second.id, first.id]))

        loaded = self.store.get_schedule(schedule.id)
        self.assertEqual(loaded.target_ids, [first.id, second.id])
        self.assertEqual([t.name for t in self.store.get_schedule_targets(schedule.id)], ["a", "b"])

        schedule.target_ids = [second.id]
        self.store.save_schedule(schedule)
        self.assertEqual(self.store.get_schedule(schedule.id).target_ids, [second.id])

    def test_list_enabled_schedules(self):
        self.store.save_schedule(Schedule(name="A", cron="0 2 * * *"))
        self.store.save_schedule(Schedule(name="B", cron="0 3 * * *", enabled=False))
        self.assertEqual([s.name for s in self.store.list_schedules()], ["A", "B"])
        self.assertEqual([s.name for s in self.store.list_schedules(enabled_only=True)], ["A"])

    def test_delete_schedule(self):
        target = self.add_target()
        schedule = self.store.save_schedule(Schedule(name="A", cron="0 2 * * *", target_ids=[target.id]))
        self.store.delete_schedule(schedule.id)
        self.assertIsNone(self.store.get_schedule(schedule.id))
        self.assertEqual(self.store.get_schedule_targets(schedule.id), [])


class TestJobs(MetadataStoreTestCase):
    """Tests para el historial de jobs"""

    def test_create_and_finalize(self):
        job = self.store.create_job(1, 2, T0)
        self.assertEqual(job.status, JobStatus.RUNNING)
        self.assertIsNone(self.store.get_job(job.id).finished_at)

        self.store.finalize_job(job.id, JobStatus.SUCCESS, T0 + timedelta(seconds=5), location="/b/x.sql", size=10)

        loaded = self.store.get_job(job.id)
        self.assertEqual(loaded.status, JobStatus.SUCCESS)
        self.assertEqual(loaded.started_at, T0)
        self.assertEqual(loaded.duration_seconds, 5)
        self.assertEqual(loaded.size, 10)

    def test_finalize_only_once(self):
        """Test que un job finalizado no puede volver a finalizarse"""
        job = self.store.create_job(1, 2, T0)
        self.store.finalize_job(job.id, JobStatus.FAILED, T0, log="boom")
        with self.assertRaises(MetadataStoreError):
            self.store.finalize_job(job.id, JobStatus.SUCCESS, T0)
        self.assertEqual(self.store.get_job(job.id).status, JobStatus.FAILED)

    def test_finalize_requires_terminal_status(self):
        job = self.store.create_job(1, 2, T0)
        with self.assertRaises(ValueError):
            self.store.finalize_job(job.id, JobStatus.RUNNING, T0)

    def test_finalize_missing_job(self):
        with self.assertRaises(NotFoundError):
            self.store.finalize_job(404, JobStatus.SUCCESS, T0)

    def test_list_jobs_most_recent_first(self):
        first = self.store.create_job(1, 1, T0)
        second = self.store.create_job(1, 1, T0 + timedelta(hours=1))
        other = self.store.create_job(2, 1, T0 + timedelta(hours=2))

        self.assertEqual([j.id for j in self.store.list_jobs()], [other.id, second.id, first.id])
        self.assertEqual([j.id for j in self.store.list_jobs(target_id=1)], [second.id, first.id])
        self.assertEqual(len(self.store.list_jobs(limit=1)), 1)

    def test_delete_target_keeps_jobs(self):
        target = self.add_target()
        job = self.store.create_job(target.id, 1, T0)
        self.store.delete_target(target.id)
        self.assertIsNone(self.store.get_target(target.id))
        self.assertEqual(self.store.get_job(job.id).target_id, target.id)

    def test_last_successful_job(self):
        ok = self.store.create_job(1, 7, T0)
        self.store.finalize_job(ok.id, JobStatus.SUCCESS, T0 + timedelta(minutes=1))
        failed = self.store.create_job(1, 7, T0 + timedelta(hours=1))
        self.store.finalize_job(failed.id, JobStatus.FAILED, T0 + timedelta(hours=1))

        self.assertEqual(self.store.last_successful_job(7, T0).id, ok.id)
        self.assertIsNone(self.store.last_successful_job(7, T0 + timedelta(minutes=30)))
        self.assertIsNone(self.store.last_successful_job(8, T0))

    def test_destination_usage(self):
        for size, status in ((100, JobStatus.SUCCESS), (50, JobStatus.SUCCESS), (None, JobStatus.FAILED)):
            job = self.store.create_job(1, 3, T0)
            self.store.finalize_job(job.id, status, T0, size=size)
        self.store.create_job(1, 3, T0)

        usage = self.store.destination_usage(3)
        self.assertEqual(usage, {"job_count": 4, "successful_jobs": 2, "total_size": 150})
        self.assertEqual(self.store.destination_usage(99), {"job_count": 0, "successful_jobs": 0, "total_size": 0})


def run_tests():
    """Ejecuta todos los tests"""
    loader = unittest.TestLoader()
    suite = loader.loadTestsFromModule(sys.modules[__name__])
    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)
    return result.wasSuccessful()


if __name__ == '__main__':
    success = run_tests()
    sys.exit(0 if success else 1)
