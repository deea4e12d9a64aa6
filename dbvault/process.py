"""
Ejecución de herramientas externas (mysqldump, pg_dump, ssh, scp...)

Todo proceso externo se describe con un ExternalCommand y se ejecuta a
través de un ProcessRunner, de modo que un motor o destino pueda cambiar a
un cliente nativo sin tocar el orquestador.
"""
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import ToolUnavailableError


@dataclass
class ExternalCommand:
    """Comando externo: programa + argumentos + timeout"""
    program: str
    args: List[str] = field(default_factory=list)
    timeout: Optional[float] = None
    # Variables añadidas al entorno del proceso hijo (credenciales incluidas)
    env: Dict[str, str] = field(default_factory=dict, repr=False)
    input: Optional[bytes] = field(default=None, repr=False)

    @property
    def argv(self) -> List[str]:
        return [self.program, *self.args]

    def describe(self) -> str:
        return " ".join(self.argv)


@dataclass
class CommandOutput:
    """Salida capturada de un comando"""
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace").strip()


class ProcessRunner:
    """Ejecuta comandos externos capturando stdout/stderr"""

    def run(self, command: ExternalCommand) -> CommandOutput:
        """
        Ejecuta el comando y captura su salida

        Args:
            command: Comando a ejecutar

        Returns:
            Salida del comando (timed_out=True si se superó el timeout)

        Raises:
            ToolUnavailableError: Si el programa no está instalado
        """
        env = os.environ.copy()
        env.update(command.env)

        try:
            completed = subprocess.run(
                command.argv,
                input=command.input,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                timeout=command.timeout
            )
        except FileNotFoundError:
            raise ToolUnavailableError(f"La herramienta {command.program} no está instalada")
        except subprocess.TimeoutExpired as e:
            return CommandOutput(
                returncode=-1,
                stdout=e.stdout or b"",
                stderr=e.stderr or b"",
                timed_out=True
            )

        return CommandOutput(
            returncode=completed.returncode,
            stdout=completed.stdout or b"",
            stderr=completed.stderr or b""
        )

    def is_available(self, program: str) -> bool:
        """Indica si el programa está en el PATH"""
        return shutil.which(program) is not None
