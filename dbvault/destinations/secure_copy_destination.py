"""
Destino SFTP/SCP usando las herramientas ssh/scp del sistema

No hay implementación del protocolo en proceso: tanto la comprobación de
conectividad como la subida invocan ssh, scp y, para autenticación por
contraseña, sshpass.
"""
import platform
import posixpath
import shlex
import uuid
from pathlib import Path
from typing import List, Optional

from .base_destination import DestinationAdapter
from ..config import Config
from ..errors import (
    AuthenticationFailedError,
    BackupError,
    HostUnreachableError,
    ToolUnavailableError,
)
from ..models import DestinationKind
from ..process import CommandOutput, ExternalCommand


_INSTALL_GUIDANCE = {
    "ssh": {
        "Darwin": (
            "SSH no está instalado. Instálalo con:\n"
            "1. Xcode Command Line Tools:\n"
            "   xcode-select --install\n"
            "2. O con Homebrew:\n"
            "   brew install openssh"
        ),
        "Linux": (
            "SSH no está instalado. Instálalo con el gestor de paquetes:\n"
            "# Ubuntu/Debian:\n"
            "sudo apt-get update\n"
            "sudo apt-get install openssh-client sshpass\n"
            "# CentOS/RHEL/Fedora:\n"
            "sudo dnf install openssh-clients sshpass"
        ),
        "Windows": (
            "SSH no está disponible. Opciones:\n"
            "1. Windows 10/11: Configuración > Aplicaciones > Características opcionales > "
            "agregar \"Cliente OpenSSH\"\n"
            "2. PowerShell:\n"
            "   Add-WindowsCapability -Online -Name OpenSSH.Client~~~~0.0.1.0\n"
            "3. Git for Windows (incluye SSH): https://git-scm.com/download/win"
        ),
    },
    "sshpass": {
        "Darwin": (
            "SSH está disponible pero falta sshpass para autenticación por contraseña.\n"
            "Instálalo con Homebrew:\n"
            "  brew install hudochenkov/sshpass/sshpass\n"
            "O usa autenticación por clave (private_key_path)."
        ),
        "Linux": (
            "SSH está disponible pero falta sshpass para autenticación por contraseña.\n"
            "# Ubuntu/Debian:\n"
            "sudo apt-get install sshpass\n"
            "# CentOS/RHEL/Fedora:\n"
            "sudo dnf install sshpass\n"
            "O usa autenticación por clave (private_key_path)."
        ),
        "Windows": (
            "sshpass no está disponible en Windows.\n"
            "Usa autenticación por clave (private_key_path) o WSL:\n"
            "  1. Instala WSL: https://docs.microsoft.com/en-us/windows/wsl/install\n"
            "  2. Dentro de WSL: sudo apt-get install sshpass"
        ),
    },
}

_UNREACHABLE_MARKERS = (
    "could not resolve hostname",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "no route to host",
    "network is unreachable",
    "connection closed by remote host",
)
_AUTH_MARKERS = (
    "permission denied",
    "authentication failed",
    "incorrect password",
    "too many authentication failures",
)

# sshpass devuelve 5 cuando la contraseña es rechazada
_SSHPASS_WRONG_PASSWORD = 5


def install_guidance(tool: str, system: Optional[str] = None) -> str:
    """
    Instrucciones de instalación de una herramienta según el sistema operativo

    Args:
        tool: 'ssh' o 'sshpass'
        system: Nombre del sistema (Darwin, Linux, Windows); por defecto el actual

    Returns:
        Texto con los pasos de instalación
    """
    system = system or platform.system()
    guidance = _INSTALL_GUIDANCE.get(tool, {})
    return guidance.get(system) or guidance.get("Linux", f"Instala {tool} en este sistema.")


class SecureCopyDestination(DestinationAdapter):
    """Sube backups a <remote_path>/<namespace>/<archivo> con scp"""

    kind = DestinationKind.SECURE_COPY

    @property
    def uses_password(self) -> bool:
        return bool(self.config.password)

    @property
    def remote_user_host(self) -> str:
        return f"{self.config.username}@{self.config.host}"

    def check_tooling(self):
        """
        Verifica que las herramientas necesarias estén instaladas

        Raises:
            ToolUnavailableError: Si falta ssh/scp, o sshpass con autenticación por contraseña
        """
        for tool in ("ssh", "scp"):
            if not self.runner.is_available(tool):
                raise ToolUnavailableError(
                    f"{tool} no está instalado en este sistema",
                    remediation=install_guidance("ssh")
                )
        if self.uses_password and not self.runner.is_available("sshpass"):
            raise ToolUnavailableError(
                "La autenticación por contraseña requiere sshpass",
                remediation=install_guidance("sshpass")
            )

    def _base_options(self) -> List[str]:
        options = [
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", f"ConnectTimeout={Config.SSH_CONNECT_TIMEOUT_SECONDS}",
        ]
        if not self.uses_password:
            # Sin contraseña nunca debe quedar esperando una entrada interactiva
            options += ["-o", "BatchMode=yes"]
        if self.config.private_key_path:
            options += ["-i", self.config.private_key_path]
        return options

    def _wrap(self, program: str, args: List[str], timeout: int) -> ExternalCommand:
        """Antepone sshpass cuando hay contraseña; esta viaja en SSHPASS"""
        if self.uses_password:
            return ExternalCommand(
                program="sshpass",
                args=["-e", program, *args],
                timeout=timeout,
                env={"SSHPASS": self.config.password}
            )
        return ExternalCommand(program=program, args=args, timeout=timeout)

    def ssh_command(self, remote_command: str) -> ExternalCommand:
        args = [*self._base_options(), "-p", str(self.config.port), self.remote_user_host, remote_command]
        return self._wrap("ssh", args, Config.SSH_CONNECT_TIMEOUT_SECONDS * 3)

    def scp_command(self, local_path: Path, remote_file: str) -> ExternalCommand:
        args = [
            *self._base_options(),
            "-P", str(self.config.port),
            str(local_path),
            f"{self.remote_user_host}:{remote_file}",
        ]
        return self._wrap("scp", args, Config.TRANSFER_TIMEOUT_SECONDS)

    def _run(self, command: ExternalCommand, action: str) -> CommandOutput:
        output = self.runner.run(command)
        if not output.ok:
            raise self._classify(output, action)
        return output

    def _classify(self, output: CommandOutput, action: str) -> BackupError:
        """Distingue host inaccesible de autenticación rechazada"""
        stderr = output.stderr_text
        lowered = stderr.lower()
        host = f"{self.config.host}:{self.config.port}"

        if output.timed_out or any(marker in lowered for marker in _UNREACHABLE_MARKERS):
            return HostUnreachableError(
                f"No se pudo conectar con {host} ({action}): {stderr or 'timeout'}",
                remediation="Verifica el host, el puerto y que el servidor SSH acepte conexiones."
            )
        if (self.uses_password and output.returncode == _SSHPASS_WRONG_PASSWORD) or \
                any(marker in lowered for marker in _AUTH_MARKERS):
            return AuthenticationFailedError(
                f"Autenticación rechazada por {host} para {self.config.username}",
                remediation="Revisa el usuario, la contraseña o la clave privada configurada."
            )
        if output.returncode == 255:
            return HostUnreachableError(f"Error de conexión SSH con {host}: {stderr or 'sin detalle'}")
        return BackupError(f"Falló {action} en {host} (código {output.returncode}): {stderr or 'sin detalle'}")

    def _check(self) -> str:
        self.check_tooling()
        output = self._run(self.ssh_command("pwd"), "prueba de conexión")
        return f"Conexión correcta (directorio de trabajo: {output.stdout_text or '?'})"

    def _put(self, filename: str, payload: bytes, namespace: str) -> str:
        self.check_tooling()

        remote_dir = posixpath.join(self.config.remote_path or "/", namespace)
        remote_file = posixpath.join(remote_dir, filename)

        # Archivo temporal único por base de datos y por intento
        temp_dir = Config.TEMP_DIR / namespace
        temp_file = temp_dir / f"{uuid.uuid4().hex}_{filename}"
        try:
            temp_dir.mkdir(parents=True, exist_ok=True)
            temp_file.write_bytes(payload)

            self._run(self.ssh_command(f"mkdir -p {shlex.quote(remote_dir)}"), "creación del directorio remoto")
            self._run(self.scp_command(temp_file, remote_file), "subida por scp")
        finally:
            self._cleanup(temp_file)

        return f"{self.remote_user_host}:{remote_file}"

    def _cleanup(self, temp_file: Path):
        try:
            temp_file.unlink(missing_ok=True)
            temp_file.parent.rmdir()
        except OSError as e:
            self.logger.debug(f"No se pudo limpiar el temporal {temp_file}: {e}")
