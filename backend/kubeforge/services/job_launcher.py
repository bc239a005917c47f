"""Scanner job creation for scan records."""

import asyncio
import logging
import re

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from kubeforge.config import DeleteJobPolicy, Settings
from kubeforge.services.k8s_client import KubernetesService
from kubeforge.services.scan_errors import LaunchError, classify_launch_error
from kubeforge.services.session_state import ScanRecord

logger = logging.getLogger(__name__)

SCANNER_APP_LABEL = "kubeforge-scanner"
SCANNER_CONTAINER_NAME = "scanner"
PULL_SECRET_MOUNT_PATH = "/var/run/secrets/registry"
MAX_JOB_NAME_LENGTH = 63


def make_job_name(image: str, scan_uuid: str) -> str:
    """Build a DNS-1123 compliant job name for an image scan."""
    suffix = scan_uuid.replace("-", "")[:8]
    slug = re.sub(r"[^a-z0-9]+", "-", image.lower()).strip("-")
    max_slug = MAX_JOB_NAME_LENGTH - len("scanner-") - len(suffix) - 1
    slug = slug[:max_slug].rstrip("-")
    if not slug:
        return f"scanner-{suffix}"
    return f"scanner-{slug}-{suffix}"


class JobLauncher:
    """Launches one scanner job per scan record."""

    def __init__(self, k8s: KubernetesService, settings: Settings):
        self.k8s = k8s
        self.settings = settings

    @property
    def result_service_path(self) -> str:
        """Callback URL scanner jobs post their results to."""
        return (
            f"http://{self.settings.result_service_host}:"
            f"{self.settings.result_listen_port}/result/"
        )

    def build_job(self, record: ScanRecord) -> tuple[str, client.V1Job]:
        """
        Build the job manifest for a record.

        Jobs that need a pull secret run in the namespace that owns the
        secret, everything else runs in the scanner namespace.

        Returns:
            Tuple of (namespace, job)
        """
        credential = record.credential_context
        namespace = credential.namespace if credential else self.settings.scanner_namespace

        env = [
            client.V1EnvVar(name="IMAGE_NAME", value=record.image),
            client.V1EnvVar(name="SCAN_UUID", value=record.scan_uuid),
            client.V1EnvVar(name="RESULT_SERVICE_PATH", value=self.result_service_path),
            client.V1EnvVar(name="SEVERITY_THRESHOLD", value=self.settings.severity_threshold),
        ]
        volumes = []
        volume_mounts = []
        if credential:
            env.append(
                client.V1EnvVar(name="K8S_IMAGE_SECRET_NAME", value=credential.image_pull_secret)
            )
            volumes.append(
                client.V1Volume(
                    name="registry-credentials",
                    secret=client.V1SecretVolumeSource(secret_name=credential.image_pull_secret),
                )
            )
            volume_mounts.append(
                client.V1VolumeMount(
                    name="registry-credentials",
                    mount_path=PULL_SECRET_MOUNT_PATH,
                    read_only=True,
                )
            )

        labels = {"app": SCANNER_APP_LABEL, "scan-uuid": record.scan_uuid}
        container = client.V1Container(
            name=SCANNER_CONTAINER_NAME,
            image=self.settings.scanner_image,
            args=[record.image],
            env=env,
            volume_mounts=volume_mounts or None,
        )
        pod_spec = client.V1PodSpec(
            containers=[container],
            restart_policy="Never",
            volumes=volumes or None,
        )

        ttl = 0 if self.settings.delete_job_policy == DeleteJobPolicy.ALL else None
        job = client.V1Job(
            api_version="batch/v1",
            kind="Job",
            metadata=client.V1ObjectMeta(
                name=make_job_name(record.image, record.scan_uuid),
                labels=labels,
            ),
            spec=client.V1JobSpec(
                backoff_limit=0,
                ttl_seconds_after_finished=ttl,
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(labels=labels),
                    spec=pod_spec,
                ),
            ),
        )
        return namespace, job

    async def launch(self, record: ScanRecord) -> tuple[str, str]:
        """
        Create the scanner job for a record.

        Returns:
            Tuple of (namespace, job name)

        Raises:
            LaunchError: If the job could not be created
        """
        namespace, job = self.build_job(record)
        # Set before creation; a result may arrive while the API call is in flight
        record.job_namespace = namespace
        record.job_name = job.metadata.name
        try:
            created = await asyncio.to_thread(self.k8s.create_job, namespace, job)
        except (ApiException, HTTPError) as e:
            record.job_namespace = None
            record.job_name = None
            classified = classify_launch_error(e)
            logger.warning(
                f"Job launch error classified as {classified.error_type.value}: "
                f"{classified.user_message} ({classified.original_error})"
            )
            raise LaunchError(record.image, classified) from e

        logger.info(
            f"Launched scanner job {created.metadata.name} for image {record.image} "
            f"(namespace={namespace}, scan uuid={record.scan_uuid})"
        )
        return namespace, created.metadata.name

    async def cleanup(self, record: ScanRecord) -> None:
        """Delete a record's job if the retention policy asks for it."""
        if not record.job_name or not record.job_namespace:
            return
        if self.settings.delete_job_policy != DeleteJobPolicy.SUCCESSFUL or not record.success:
            return
        await asyncio.to_thread(self.k8s.delete_job, record.job_namespace, record.job_name)
