"""
Tests unitarios para el monitor de conectividad
"""
import shutil
import sqlite3
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
import sys

# Agregar raíz del proyecto al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dbvault.models import DatabaseTarget, EngineType
from dbvault.services.monitor_service import ConnectivityMonitor
from tests.fakes import make_store

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FailingProducer:
    def probe(self, target, timeout=None):
        raise ConnectionError(f"Can't connect to mysql://root:{target.password}@{target.host}\nmás detalle")


class FailingProducerFactory:
    @classmethod
    def create(cls, engine, runner=None):
        return FailingProducer()


class NoProducerFactory:
    @classmethod
    def create(cls, engine, runner=None):
        return None


class TestConnectivityMonitor(unittest.TestCase):
    """Tests para ConnectivityMonitor"""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.store = make_store(self.temp_dir)
        self.existing = self.temp_dir / "app.db"
        conn = sqlite3.connect(str(self.existing))
        conn.execute("CREATE TABLE t (id INTEGER)")
        conn.commit()
        conn.close()
        self.monitor = ConnectivityMonitor(self.store, probe_timeout=2, clock=lambda: NOW)

    def tearDown(self):
        self.monitor.stop()
        self.store.engine.dispose()
        shutil.rmtree(self.temp_dir)

    def add_sqlite_target(self, name, path):
        return self.store.save_target(DatabaseTarget(name=name, engine="sqlite", database=str(path)))

    def test_check_once_sqlite(self):
        """Test archivo existente accesible, archivo inexistente no"""
        missing = self.temp_dir / "missing.db"
        self.add_sqlite_target("existe", self.existing)
        self.add_sqlite_target("falta", missing)

        results = {r.target_name: r for r in self.monitor.check_once()}

        self.assertTrue(results["existe"].reachable)
        self.assertIsNotNone(results["existe"].latency_ms)
        self.assertFalse(results["falta"].reachable)
        self.assertTrue(results["falta"].error)
        self.assertFalse(missing.exists())
        self.assertEqual(self.monitor.last_checked_at, NOW)
        self.assertEqual(len(self.monitor.last_results), 2)

    def test_monitor_never_writes_jobs(self):
        self.add_sqlite_target("existe", self.existing)
        self.monitor.check_once()
        self.assertEqual(self.store.list_jobs(), [])

    def test_probe_error_is_redacted_single_line(self):
        target = self.store.save_target(
            DatabaseTarget(name="ventas", engine="mysql", host="db.local", password="Sup3rS3cret")
        )
        monitor = ConnectivityMonitor(self.store, producer_factory=FailingProducerFactory, clock=lambda: NOW)

        result = monitor.probe_target(target)

        self.assertFalse(result.reachable)
        self.assertEqual(result.checked_at, NOW)
        self.assertNotIn("Sup3rS3cret", result.error)
        self.assertNotIn("\n", result.error)

    def test_unsupported_engine(self):
        target = DatabaseTarget(name="x", engine=EngineType.MYSQL, id=1)
        monitor = ConnectivityMonitor(self.store, producer_factory=NoProducerFactory, clock=lambda: NOW)
        result = monitor.probe_target(target)
        self.assertFalse(result.reachable)
        self.assertIn("mysql", result.error)

    def test_start_is_idempotent(self):
        """Test que iniciar dos veces no crea un segundo temporizador"""
        self.assertTrue(self.monitor.start(5))
        self.assertFalse(self.monitor.start(5))
        self.assertEqual(len(self.monitor._scheduler.jobs), 1)

        status = self.monitor.get_status()
        self.assertTrue(status.running)
        self.assertEqual(status.interval_minutes, 5)

        self.monitor.stop()
        self.assertFalse(self.monitor.is_running())
        self.assertIsNone(self.monitor.get_status().interval_minutes)

    def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            self.monitor.start(-1)
        with self.assertRaises(ValueError):
            self.monitor.start(0)
        self.assertFalse(self.monitor.is_running())


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
