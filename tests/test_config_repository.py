"""
Tests unitarios para el repositorio de configuración
"""
import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock
import sys

# Agregar raíz del proyecto al path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dbvault.config import Config
from dbvault.errors import MisconfiguredError
from dbvault.models import DestinationKind, EngineType
from dbvault.repositories.config_repository import ConfigRepository
from tests.fakes import make_store


class TestConfigRepository(unittest.TestCase):
    """Tests para ConfigRepository"""

    def setUp(self):
        """Setup para cada test"""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_file = self.temp_dir / "test_config.json"
        self.repo = ConfigRepository(self.config_file)

    def tearDown(self):
        """Cleanup después de cada test"""
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def write_config(self, config):
        self.config_file.write_text(json.dumps(config), encoding="utf-8")

    def test_load_nonexistent_file(self):
        """Test carga de archivo inexistente"""
        config = self.repo.load()
        self.assertEqual(config, Config.DEFAULT_CONFIG)

    def test_load_invalid_json(self):
        self.config_file.write_text("{ no es json", encoding="utf-8")
        self.assertEqual(self.repo.load(), Config.DEFAULT_CONFIG)

    def test_save_and_load(self):
        """Test guardar y cargar configuración"""
        test_config = {"databases": [], "destinations": [], "schedules": []}

        self.assertTrue(self.repo.save(test_config))
        self.assertTrue(self.config_file.exists())

        loaded = ConfigRepository(self.config_file).load()
        self.assertEqual(loaded, test_config)

    def test_create_example_config(self):
        self.assertTrue(self.repo.create_example_config())
        self.assertEqual(json.loads(self.config_file.read_text(encoding="utf-8")), Config.DEFAULT_CONFIG)

    def test_get_databases(self):
        self.write_config({
            "databases": [
                {"name": "ventas", "type": "postgres", "port": 5433, "enabled": False},
                {"name": "", "type": "mysql"},
                {"name": "legacy", "type": "oracle"},
            ]
        })
        databases = self.repo.get_databases()

        self.assertEqual(len(databases), 1)
        self.assertEqual(databases[0].engine, EngineType.POSTGRESQL)
        self.assertEqual(databases[0].port, 5433)
        self.assertFalse(databases[0].backup_enabled)

    def test_get_destinations_skips_invalid(self):
        self.write_config({
            "destinations": [
                {"name": "Local", "kind": "local", "config": {"path": "/backups"}},
                {"name": "S3 roto", "kind": "s3", "config": {"bucket": "b"}},
                {"name": "FTP", "kind": "ftp", "config": {}},
            ]
        })
        destinations = self.repo.get_destinations()
        self.assertEqual([d.name for d in destinations], ["Local"])
        self.assertEqual(destinations[0].kind, DestinationKind.LOCAL)

    def test_env_resolution(self):
        """Test resolución de ${VAR} en credenciales y configuración de destinos"""
        self.write_config({
            "destinations": [{
                "name": "S3",
                "kind": "s3",
                "config": {"bucket": "b", "access_key_id": "${TEST_S3_KEY}", "secret_access_key": "${TEST_S3_SECRET}"}
            }],
            "databases": [{"name": "ventas", "type": "mysql", "user": "${TEST_DB_USER}", "password": "${TEST_DB_PASS}"}],
        })
        env = {"TEST_S3_KEY": "AKIA1", "TEST_S3_SECRET": "s3cr3t", "TEST_DB_USER": "root", "TEST_DB_PASS": "pw"}
        with mock.patch.dict("os.environ", env):
            destination = self.repo.get_destinations()[0]
            target = self.repo.get_databases()[0]

        self.assertEqual(destination.config.access_key_id, "AKIA1")
        self.assertEqual(destination.config.secret_access_key, "s3cr3t")
        self.assertEqual(target.user, "root")
        self.assertEqual(target.password, "pw")

    def test_missing_env_variable_resolves_empty(self):
        self.write_config({"databases": [{"name": "ventas", "type": "mysql", "password": "${TEST_NO_EXISTE_XYZ}"}]})
        with mock.patch.dict("os.environ", {}, clear=False):
            self.assertEqual(self.repo.get_databases()[0].password, "")


class TestSyncToStore(unittest.TestCase):
    """Tests para sync_to_store"""

    CONFIG = {
        "destinations": [
            {"name": "Local", "kind": "local", "config": {"path": "PLACEHOLDER"}}
        ],
        "databases": [
            {"name": "ventas", "type": "mysql", "destination": "Local", "schedule": "Nocturno"},
            {"name": "crm", "type": "postgresql", "destination": "Local", "schedule": "Nocturno"},
            {"name": "suelta", "type": "sqlite", "database": "/data/suelta.db", "destination": "Desconocido"},
        ],
        "schedules": [
            {"name": "Nocturno", "cron": "0 2 * * *", "retention_days": 7}
        ]
    }

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_file = self.temp_dir / "config.json"
        config = json.loads(json.dumps(self.CONFIG))
        config["destinations"][0]["config"]["path"] = str(self.temp_dir / "backups")
        self.config_file.write_text(json.dumps(config), encoding="utf-8")
        self.store = make_store(self.temp_dir)

    def tearDown(self):
        self.store.engine.dispose()
        shutil.rmtree(self.temp_dir)

    def test_sync(self):
        summary = ConfigRepository(self.config_file).sync_to_store(self.store)

        self.assertEqual(summary, {"destinations": 1, "databases": 3, "schedules": 1})
        local = self.store.get_destination_by_name("Local")
        ventas = self.store.get_target_by_name("ventas")
        crm = self.store.get_target_by_name("crm")
        suelta = self.store.get_target_by_name("suelta")
        schedule = self.store.get_schedule_by_name("Nocturno")

        self.assertEqual(ventas.destination_id, local.id)
        self.assertIsNone(suelta.destination_id)
        self.assertEqual(schedule.retention_days, 7)
        self.assertEqual(schedule.target_ids, [ventas.id, crm.id])
        self.assertEqual(ventas.schedule_id, schedule.id)
        self.assertIsNone(suelta.schedule_id)

    def test_malformed_file_syncs_nothing(self):
        """Test que un JSON inválido no vuelca el catálogo de ejemplo"""
        self.config_file.write_text("{ no es json", encoding="utf-8")

        with self.assertRaises(MisconfiguredError):
            ConfigRepository(self.config_file).sync_to_store(self.store)

        self.assertEqual(self.store.list_targets(), [])
        self.assertEqual(self.store.list_destinations(), [])
        self.assertEqual(self.store.list_schedules(), [])

    def test_sync_twice_updates_in_place(self):
        repo = ConfigRepository(self.config_file)
        repo.sync_to_store(self.store)
        first_ids = [t.id for t in self.store.list_targets()]

        ConfigRepository(self.config_file).sync_to_store(self.store)

        self.assertEqual([t.id for t in self.store.list_targets()], first_ids)
        self.assertEqual(len(self.store.list_destinations()), 1)
        self.assertEqual(len(self.store.list_schedules()), 1)


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
