"""
Destino Google Drive mediante la API v3 y credenciales OAuth
"""
import io
from typing import Callable, Optional

from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from .base_destination import DestinationAdapter
from ..errors import AuthenticationFailedError, BackupError, HostUnreachableError, MisconfiguredError
from ..models import Destination, DestinationKind
from ..process import ProcessRunner

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


class CloudDriveDestination(DestinationAdapter):
    """Sube backups a una carpeta por base de datos dentro de folder_id"""

    kind = DestinationKind.CLOUD_DRIVE

    def __init__(
        self,
        destination: Destination,
        runner: Optional[ProcessRunner] = None,
        service_factory: Optional[Callable] = None,
    ):
        super().__init__(destination, runner)
        self._service_factory = service_factory or self._create_service
        self._service = None

    @property
    def supports_live_probe(self) -> bool:
        return self.config.live_probe

    @property
    def parent_id(self) -> str:
        return self.config.folder_id or "root"

    def _create_service(self):
        credentials = Credentials(
            token=self.config.access_token,
            refresh_token=self.config.refresh_token,
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            token_uri=self.config.token_uri,
            scopes=DRIVE_SCOPES,
        )
        return build("drive", "v3", credentials=credentials, cache_discovery=False)

    @property
    def service(self):
        if self._service is None:
            self._service = self._service_factory()
        return self._service

    def find_or_create_folder(self, name: str) -> str:
        """
        Obtiene el id de la carpeta del namespace, creándola si no existe

        Args:
            name: Nombre de la carpeta

        Returns:
            Id de la carpeta en Drive
        """
        query = (
            f"name = '{name}' and mimeType = '{FOLDER_MIME_TYPE}' "
            f"and '{self.parent_id}' in parents and trashed = false"
        )
        response = self.service.files().list(
            q=query, spaces="drive", fields="files(id, name)"
        ).execute()
        files = response.get("files", [])
        if files:
            return files[0]["id"]

        self.logger.info(f"Creando carpeta {name} en Drive")
        folder = self.service.files().create(
            body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [self.parent_id]},
            fields="id"
        ).execute()
        return folder["id"]

    def _put(self, filename: str, payload: bytes, namespace: str) -> str:
        try:
            folder_id = self.find_or_create_folder(namespace)
            media = MediaIoBaseUpload(io.BytesIO(payload), mimetype="application/sql", resumable=False)
            uploaded = self.service.files().create(
                body={"name": filename, "parents": [folder_id]},
                media_body=media,
                fields="id"
            ).execute()
        except (HttpError, RefreshError, TransportError, OSError) as e:
            raise self._translate(e)
        return f"gdrive://{uploaded['id']}"

    def _check(self) -> str:
        try:
            about = self.service.about().get(fields="user").execute()
        except (HttpError, RefreshError, TransportError, OSError) as e:
            raise self._translate(e)
        user = about.get("user", {})
        return f"Conectado a Google Drive como {user.get('emailAddress') or user.get('displayName') or '?'}"

    def _translate(self, error: Exception) -> BackupError:
        """Convierte errores de la API de Drive en la taxonomía de destinos"""
        if isinstance(error, RefreshError):
            return AuthenticationFailedError(
                "No se pudo renovar el token de acceso de Google Drive",
                remediation="Vuelve a autorizar la cuenta y actualiza access_token/refresh_token."
            )
        if isinstance(error, HttpError):
            status = getattr(error, "status_code", None) or error.resp.status
            if status in (401, 403):
                return AuthenticationFailedError(
                    f"Google Drive rechazó las credenciales (HTTP {status})",
                    remediation="Vuelve a autorizar la cuenta o revisa los permisos sobre la carpeta."
                )
            if status == 404:
                return MisconfiguredError(f"La carpeta {self.parent_id} no existe en Google Drive")
            return BackupError(f"Error de la API de Google Drive (HTTP {status}): {error}")
        return HostUnreachableError(
            f"No se pudo contactar con Google Drive: {error}",
            remediation="Verifica la conectividad de red."
        )
