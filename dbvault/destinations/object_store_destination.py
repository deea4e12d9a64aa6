"""
Destino de almacenamiento de objetos compatible con S3
"""
from typing import Callable, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
)

from .base_destination import DestinationAdapter
from ..errors import (
    AuthenticationFailedError,
    BackupError,
    HostUnreachableError,
    MisconfiguredError,
)
from ..models import Destination, DestinationKind
from ..process import ProcessRunner

_AUTH_ERROR_CODES = {
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "AccessDenied",
    "403",
    "ExpiredToken",
    "InvalidToken",
}
_MISSING_BUCKET_CODES = {"NoSuchBucket", "404"}


class ObjectStoreDestination(DestinationAdapter):
    """Sube backups a un bucket S3 bajo [prefijo/]<namespace>/<archivo>"""

    kind = DestinationKind.OBJECT_STORE

    def __init__(
        self,
        destination: Destination,
        runner: Optional[ProcessRunner] = None,
        client_factory: Optional[Callable] = None,
    ):
        super().__init__(destination, runner)
        self._client_factory = client_factory or self._create_client
        self._client = None

    @property
    def supports_live_probe(self) -> bool:
        return self.config.live_probe

    def _create_client(self):
        return boto3.client(
            "s3",
            endpoint_url=self.config.endpoint_url,
            aws_access_key_id=self.config.access_key_id,
            aws_secret_access_key=self.config.secret_access_key,
            region_name=self.config.region,
        )

    @property
    def client(self):
        if self._client is None:
            self._client = self._client_factory()
        return self._client

    def build_key(self, filename: str, namespace: str) -> str:
        parts = [self.config.key_prefix, namespace, filename]
        return "/".join(part for part in parts if part)

    def _put(self, filename: str, payload: bytes, namespace: str) -> str:
        key = self.build_key(filename, namespace)
        try:
            self.client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=payload,
                ContentType="application/sql",
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e)
        return f"s3://{self.config.bucket}/{key}"

    def _check(self) -> str:
        try:
            self.client.head_bucket(Bucket=self.config.bucket)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e)
        return f"Bucket accesible: {self.config.bucket}"

    def _translate(self, error: Exception) -> BackupError:
        """Convierte errores de botocore en la taxonomía de destinos"""
        if isinstance(error, NoCredentialsError):
            return AuthenticationFailedError(
                "No se encontraron credenciales para el almacenamiento de objetos",
                remediation="Configura access_key_id y secret_access_key en el destino."
            )
        if isinstance(error, EndpointConnectionError):
            return HostUnreachableError(
                f"No se pudo conectar con el endpoint: {error}",
                remediation="Verifica endpoint_url, la región y la conectividad de red."
            )
        if isinstance(error, ClientError):
            code = str(error.response.get("Error", {}).get("Code", ""))
            if code in _AUTH_ERROR_CODES:
                return AuthenticationFailedError(
                    f"Credenciales rechazadas por el almacenamiento de objetos ({code})",
                    remediation="Revisa las claves de acceso y los permisos sobre el bucket."
                )
            if code in _MISSING_BUCKET_CODES:
                return MisconfiguredError(f"El bucket {self.config.bucket} no existe")
            return BackupError(f"Error del almacenamiento de objetos ({code}): {error}")
        return HostUnreachableError(f"Error de comunicación con el almacenamiento de objetos: {error}")
