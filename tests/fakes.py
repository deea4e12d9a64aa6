"""
Dobles de prueba compartidos por los tests
"""
from pathlib import Path

from dbvault.process import CommandOutput, ProcessRunner
from dbvault.repositories.metadata_store import MetadataStore


class FakeRunner(ProcessRunner):
    """ProcessRunner con salidas programadas; registra cada comando ejecutado"""

    def __init__(self, outputs=None, available=None):
        """
        Args:
            outputs: Lista de CommandOutput (o funciones command -> CommandOutput)
            available: Programas instalados; None significa todos
        """
        self.outputs = list(outputs or [])
        self.available = set(available) if available is not None else None
        self.commands = []

    def run(self, command):
        self.commands.append(command)
        if not self.outputs:
            return CommandOutput(returncode=0)
        output = self.outputs.pop(0)
        return output(command) if callable(output) else output

    def is_available(self, program):
        return self.available is None or program in self.available


def ok(stdout=b""):
    return CommandOutput(returncode=0, stdout=stdout)


def failed(stderr, returncode=1):
    return CommandOutput(returncode=returncode, stderr=stderr)


def make_store(directory) -> MetadataStore:
    store = MetadataStore(f"sqlite:///{Path(directory) / 'metadata.db'}")
    store.create_schema()
    return store
