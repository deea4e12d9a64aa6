"""
Tests unitarios para el programador de backups
"""
import shutil
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
import sys

# Agregar raíz del proyecto al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dbvault.errors import InvalidCronExpressionError
from dbvault.models import DatabaseTarget, Destination, Schedule
from dbvault.services.backup_service import BackupService
from dbvault.services.scheduler_service import BackupScheduler, next_run_estimate, validate_cron
from tests.fakes import FakeRunner, make_store, ok

NOW = datetime(2024, 5, 1, 1, 0, 0, tzinfo=timezone.utc)


class TestCronHelpers(unittest.TestCase):
    """Tests para la validación de expresiones cron"""

    def test_validate_cron(self):
        self.assertEqual(validate_cron("  0   2 * * * "), "0 2 * * *")
        self.assertEqual(validate_cron("*/15 * * * 1-5"), "*/15 * * * 1-5")

    def test_invalid_field_count(self):
        with self.assertRaises(InvalidCronExpressionError) as ctx:
            validate_cron("0 2 * *")
        self.assertEqual(ctx.exception.code, "misconfigured")
        with self.assertRaises(InvalidCronExpressionError):
            validate_cron("0 0 2 * * *")
        with self.assertRaises(InvalidCronExpressionError):
            validate_cron("")

    def test_out_of_range(self):
        with self.assertRaises(InvalidCronExpressionError):
            validate_cron("61 2 * * *")

    def test_next_run_estimate(self):
        reference = datetime(2024, 5, 1, 10, 7, 0, tzinfo=timezone.utc)
        self.assertEqual(
            next_run_estimate("*/15 * * * *", reference),
            datetime(2024, 5, 1, 10, 15, 0, tzinfo=timezone.utc)
        )
        self.assertEqual(
            next_run_estimate("0 2 * * *", reference),
            datetime(2024, 5, 2, 2, 0, 0, tzinfo=timezone.utc)
        )
        self.assertIsNone(next_run_estimate("no es cron", reference))


class SchedulerTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.store = make_store(self.temp_dir)
        self.runner = FakeRunner()
        self.now = NOW
        self.service = BackupService(self.store, runner=self.runner, clock=lambda: self.now)
        self.scheduler = BackupScheduler(self.service, clock=lambda: self.now, tick_seconds=1)
        self.local = self.store.save_destination(
            Destination(name="Local", kind="local", config={"path": str(self.temp_dir / "backups")})
        )

    def tearDown(self):
        self.scheduler.stop()
        self.store.engine.dispose()
        shutil.rmtree(self.temp_dir)

    def add_target(self, name, with_destination=True):
        return self.store.save_target(DatabaseTarget(
            name=name,
            engine="mysql",
            destination_id=self.local.id if with_destination else None
        ))

    def add_schedule(self, name="Nocturno", cron="0 2 * * *", target_ids=(), enabled=True):
        return self.store.save_schedule(
            Schedule(name=name, cron=cron, target_ids=list(target_ids), enabled=enabled)
        )


class TestReconcile(SchedulerTestCase):
    """Tests para reconcile_all y reconcile_one"""

    def test_reconcile_all_is_idempotent(self):
        """Test que reconciliar dos veces no duplica temporizadores"""
        first = self.add_schedule("A")
        second = self.add_schedule("B", cron="30 3 * * 1")
        self.add_schedule("C", enabled=False)

        self.scheduler.reconcile_all()
        self.scheduler.reconcile_all()

        self.assertEqual(self.scheduler.active_schedule_ids(), [first.id, second.id])
        self.assertEqual(len(self.scheduler._scheduler.jobs), 2)

    def test_invalid_cron_is_never_registered(self):
        broken = self.add_schedule("Rota", cron="0 2 * *")
        valid = self.add_schedule("Buena")

        results = {r.schedule_id: r for r in self.scheduler.reconcile_all()}

        self.assertFalse(results[broken.id].registered)
        self.assertEqual(results[broken.id].error_code, "misconfigured")
        self.assertTrue(results[valid.id].registered)
        self.assertEqual(self.scheduler.active_schedule_ids(), [valid.id])

    def test_schedule_without_targets_is_registered(self):
        empty = self.add_schedule("Vacía")
        self.assertTrue(self.scheduler.reconcile_one(empty.id).registered)

    def test_reconcile_one_after_disable(self):
        item = self.add_schedule()
        self.scheduler.reconcile_all()

        item.enabled = False
        self.store.save_schedule(item)
        result = self.scheduler.reconcile_one(item.id)

        self.assertFalse(result.registered)
        self.assertEqual(self.scheduler.active_schedule_ids(), [])
        self.assertEqual(self.scheduler._scheduler.jobs, [])

    def test_reconcile_one_after_delete(self):
        item = self.add_schedule()
        self.scheduler.reconcile_all()
        self.store.delete_schedule(item.id)

        self.assertFalse(self.scheduler.reconcile_one(item.id).registered)
        self.assertEqual(self.scheduler.active_schedule_ids(), [])

    def test_reconcile_one_updates_cron(self):
        item = self.add_schedule(cron="0 2 * * *")
        self.scheduler.reconcile_all()
        item.cron = "0 4 * * *"
        self.store.save_schedule(item)

        self.scheduler.reconcile_one(item.id)

        status = self.scheduler.get_status()
        self.assertEqual(status.active_timers, 1)
        self.assertEqual(status.timers[0].cron, "0 4 * * *")
        self.assertEqual(status.timers[0].next_run, datetime(2024, 5, 1, 4, 0, tzinfo=timezone.utc))


    def test_reconcile_keeps_pending_occurrence(self):
        """Test que reconciliar tras vencer la hora no pierde la ejecución pendiente"""
        item = self.add_schedule(cron="0 2 * * *")
        self.scheduler.reconcile_all()

        self.now = datetime(2024, 5, 1, 2, 0, 10, tzinfo=timezone.utc)
        self.scheduler.reconcile_all()
        self.scheduler.reconcile_one(item.id)

        self.assertEqual(
            self.scheduler.get_status().timers[0].next_run,
            datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)
        )
        self.assertEqual(self.scheduler.check_due(), [item.id])


class TestFiring(SchedulerTestCase):
    """Tests para el disparo de programaciones"""

    def test_fire_runs_targets_in_order(self):
        """Test que un fallo no detiene al resto de bases de datos"""
        failing = self.add_target("sin_destino", with_destination=False)
        working = self.add_target("ventas")
        item = self.add_schedule(target_ids=[working.id, failing.id])
        self.runner.outputs = [ok(b"CREATE TABLE t (id int);")]
        self.scheduler.reconcile_all()

        report = self.scheduler.fire(item.id)

        self.assertEqual([r.target_id for r in report.results], [failing.id, working.id])
        self.assertEqual([r.success for r in report.results], [False, True])
        self.assertEqual(len(self.runner.commands), 1)
        self.assertFalse(self.scheduler.get_status().timers[0].is_running)

    def test_fire_unknown_schedule(self):
        self.assertIsNone(self.scheduler.fire(99))

    def test_fire_while_running(self):
        item = self.add_schedule()
        self.scheduler.reconcile_all()
        self.scheduler._timers[item.id].is_running = True
        self.assertIsNone(self.scheduler.fire(item.id))

    def test_fire_skips_deleted_target(self):
        target = self.add_target("ventas")
        item = self.add_schedule(target_ids=[target.id])
        self.scheduler.reconcile_all()
        self.store.delete_target(target.id)

        report = self.scheduler.fire(item.id)

        self.assertEqual(report.results, [])
        self.assertIsNone(report.error)

    def test_check_due_advances_next_run(self):
        """Test que la programación dispara al vencer y recalcula la siguiente"""
        item = self.add_schedule(cron="0 2 * * *")
        self.scheduler.reconcile_all()

        self.assertEqual(self.scheduler.check_due(datetime(2024, 5, 1, 1, 59, tzinfo=timezone.utc)), [])
        fired_at = datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc)
        self.assertEqual(self.scheduler.check_due(fired_at), [item.id])

        timer = self.scheduler.get_status().timers[0]
        self.assertEqual(timer.last_fired_at, fired_at)
        self.assertEqual(timer.next_run, datetime(2024, 5, 2, 2, 0, tzinfo=timezone.utc))
        self.assertEqual(self.scheduler.check_due(datetime(2024, 5, 1, 2, 0, 30, tzinfo=timezone.utc)), [])

    def test_tick_fires_when_due(self):
        item = self.add_schedule(cron="0 2 * * *")
        self.scheduler.reconcile_all()

        self.scheduler._fire_if_due(item.id)
        self.assertIsNone(self.scheduler.get_status().timers[0].last_fired_at)

        self.now = datetime(2024, 5, 1, 2, 0, 5, tzinfo=timezone.utc)
        self.scheduler._fire_if_due(item.id)
        self.assertEqual(self.scheduler.get_status().timers[0].last_fired_at, self.now)


class TestStatus(SchedulerTestCase):
    """Tests para el estado del programador"""

    def test_get_status(self):
        first = self.add_target("a")
        second = self.add_target("b")
        self.add_schedule(target_ids=[first.id, second.id])
        self.scheduler.reconcile_all()

        status = self.scheduler.get_status()

        self.assertFalse(status.loop_running)
        self.assertEqual(status.active_timers, 1)
        self.assertEqual(status.timers[0].target_count, 2)
        self.assertEqual(status.timers[0].next_run, datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc))
        self.assertEqual(self.scheduler.get_next_run(), "2024-05-01 02:00:00 UTC")

    def test_no_timers(self):
        self.assertEqual(self.scheduler.get_next_run(), "No hay ejecuciones programadas")
        self.assertEqual(self.scheduler.next_run_estimate("0 * * * *"), datetime(2024, 5, 1, 2, 0, tzinfo=timezone.utc))

    def test_start_and_stop(self):
        self.assertTrue(self.scheduler.start())
        self.assertFalse(self.scheduler.start())
        self.assertTrue(self.scheduler.get_status().loop_running)
        self.scheduler.stop()
        self.assertFalse(self.scheduler.is_running())


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
