"""Kubernetes client service for pod discovery and scanner job management."""

import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from kubeforge.config import settings

logger = logging.getLogger(__name__)


class KubernetesService:
    """Service for interacting with the Kubernetes API."""

    def __init__(self, kubeconfig: str | None = None):
        """Initialize Kubernetes API clients with configuration fallbacks."""
        self.api_client = self._connect_with_fallbacks(kubeconfig or settings.kubeconfig)
        self.core = client.CoreV1Api(self.api_client)
        self.batch = client.BatchV1Api(self.api_client)

    def _connect_with_fallbacks(self, kubeconfig: str | None) -> client.ApiClient:
        """
        Load cluster credentials from the first source that works.

        Order: explicit kubeconfig file, in-cluster service account,
        default kubeconfig (~/.kube/config).

        Returns:
            Configured ApiClient

        Raises:
            ConfigException: If no configuration source is usable
        """
        errors: list[str] = []

        if kubeconfig:
            try:
                configuration = client.Configuration()
                config.load_kube_config(config_file=kubeconfig, client_configuration=configuration)
                logger.info(f"Loaded Kubernetes configuration from {kubeconfig}")
                return client.ApiClient(configuration)
            except (ConfigException, OSError) as exc:
                errors.append(f"{kubeconfig}: {exc}")
                logger.warning(f"Failed to load kubeconfig {kubeconfig}: {exc}")

        try:
            configuration = client.Configuration()
            config.load_incluster_config(client_configuration=configuration)
            logger.info("Loaded in-cluster Kubernetes configuration")
            return client.ApiClient(configuration)
        except ConfigException as exc:
            errors.append(f"in-cluster: {exc}")
            logger.debug(f"In-cluster configuration unavailable: {exc}")

        try:
            configuration = client.Configuration()
            config.load_kube_config(client_configuration=configuration)
            logger.info("Loaded default kubeconfig")
            return client.ApiClient(configuration)
        except (ConfigException, OSError) as exc:
            errors.append(f"default kubeconfig: {exc}")

        message = "Failed to load Kubernetes configuration. Attempts: " + "; ".join(errors)
        logger.error(message)
        raise ConfigException(message)

    def list_pods(self, namespace: str = "") -> list[Any]:
        """
        List pods in a namespace, or in all namespaces when namespace is empty.

        Raises:
            ApiException: If the API server rejects or fails the request
        """
        if namespace:
            pods = self.core.list_namespaced_pod(namespace)
        else:
            pods = self.core.list_pod_for_all_namespaces()

        logger.info(f"Found {len(pods.items)} pods (namespace={namespace or '*'})")
        return pods.items

    def get_pod_image_pull_secrets(self, pod: Any) -> list[Any]:
        """
        Read the image pull secrets attached to a pod.

        Secrets that cannot be read are logged and skipped.
        """
        refs = pod.spec.image_pull_secrets or []
        namespace = pod.metadata.namespace
        secrets = []

        for ref in refs:
            try:
                secrets.append(self.core.read_namespaced_secret(ref.name, namespace))
            except ApiException as e:
                logger.warning(
                    f"Failed to read image pull secret. secret={ref.name}, namespace={namespace}: "
                    f"{e.status} {e.reason}"
                )
            except HTTPError as e:
                logger.warning(
                    f"Failed to read image pull secret. secret={ref.name}, namespace={namespace}: "
                    f"{e}"
                )

        return secrets

    def create_job(self, namespace: str, job: client.V1Job) -> client.V1Job:
        """
        Create a batch job.

        Raises:
            ApiException: If the job could not be created
        """
        created = self.batch.create_namespaced_job(namespace, job)
        logger.debug(f"Created job {created.metadata.name} in namespace {namespace}")
        return created

    def delete_job(self, namespace: str, name: str) -> None:
        """Delete a batch job together with its pods."""
        try:
            self.batch.delete_namespaced_job(
                name,
                namespace,
                body=client.V1DeleteOptions(propagation_policy="Background"),
            )
            logger.debug(f"Deleted job {name} in namespace {namespace}")
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"Job {name} already gone")
                return
            logger.error(
                f"Error deleting job {name} in namespace {namespace}: {e.status} {e.reason}"
            )

    def close(self):
        """Close the Kubernetes API client."""
        if hasattr(self, "api_client"):
            self.api_client.close()
            logger.info("Kubernetes client closed")
