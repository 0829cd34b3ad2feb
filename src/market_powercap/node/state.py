"""This module synchronizes the power manager state with the Kubernetes Node object.

The state is stored as annotations on the Node the controller runs on. The
actuation keys are rewritten on every adjustment cycle, while the lifecycle key
marks a node whose maximum power has already been recorded. The controller
never removes any of them.

All calls go through the official `kubernetes` client. Updates are patches
limited to the annotations, so keys written by other actors are left
untouched. Loading the cluster configuration, and refreshing the projected
service-account token, is left to the client.
"""

from typing import Dict, Optional

from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from market_powercap.config import Config
from market_powercap.util.exceptions import ConfigError, ConflictError, NodeStateError
from market_powercap.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

# Actuation keys
CURRENT_LIMIT_KEY = "rapl/pmax"
MAX_POWER_KEY = "rapl/max_power_uw"
LAST_UPDATE_KEY = "rapl/last-update"
PROVIDER_KEY = "rapl/provider"
MARKET_PERIOD_KEY = "rapl/market-period"
MARKET_VOLUME_KEY = "rapl/market-volume"
MARKET_PRICE_KEY = "rapl/market-price"

# Lifecycle keys
INITIALIZATION_KEY = "power-manager/initialized"
INITIALIZATION_VALUE = "market-powercap"


class NodeStateSynchronizer:
    """Reads and merges the power manager annotations of one Kubernetes node."""

    def __init__(self, node_name: str, api: Optional[client.CoreV1Api] = None) -> None:
        """Initializes the synchronizer.

        Args:
            node_name: The name of the Node object to annotate.
            api: The core API client, built from the loaded configuration by default.
        """
        self._node_name = node_name
        self._api = api or client.CoreV1Api()

    @classmethod
    def from_in_cluster(cls, config: Config) -> "NodeStateSynchronizer":
        """Builds a synchronizer authenticated with the pod service account.

        Outside a cluster the local kubeconfig is used instead.

        Args:
            config: The application configuration.

        Returns:
            A synchronizer bound to `config.node_name`.

        Raises:
            ConfigError: If no cluster configuration can be loaded.
        """
        try:
            kube_config.load_incluster_config()
        except ConfigException:
            logger.info("Not running in a cluster, loading the local kubeconfig")
            try:
                kube_config.load_kube_config()
            except ConfigException as err:
                raise ConfigError(f"no Kubernetes configuration available: {err}") from err

        return cls(config.node_name, client.CoreV1Api())

    def get(self) -> Dict[str, str]:
        """Returns the current annotations of the node.

        Raises:
            NodeStateError: If the node cannot be read.
        """
        try:
            node = self._api.read_node(self._node_name)
        except ApiException as err:
            raise NodeStateError(
                f"failed to get node {self._node_name}: {err.status} {err.reason}"
            ) from err
        except HTTPError as err:
            raise NodeStateError(f"failed to get node {self._node_name}: {err}") from err

        metadata = node.metadata
        annotations = metadata.annotations if metadata is not None else None
        return dict(annotations or {})

    def set(self, patch: Dict[str, str]) -> None:
        """Merges `patch` into the node annotations.

        Keys absent from `patch` are preserved. The update is not retried.

        Args:
            patch: The annotations to create or overwrite.

        Raises:
            ConflictError: If the API server rejects the update as conflicting.
            NodeStateError: If the update fails for any other reason.
        """
        body = {"metadata": {"annotations": {key: str(value) for key, value in patch.items()}}}
        try:
            self._api.patch_node(self._node_name, body)
        except ApiException as err:
            if err.status == 409:
                raise ConflictError(
                    f"concurrent modification of node {self._node_name}"
                ) from err
            raise NodeStateError(
                f"failed to update node {self._node_name}: {err.status} {err.reason}"
            ) from err
        except HTTPError as err:
            raise NodeStateError(f"failed to update node {self._node_name}: {err}") from err

    def is_initialized(self) -> bool:
        """Tells whether the node carries the initialization marker."""
        return INITIALIZATION_KEY in self.get()

    def mark_initialized(self) -> bool:
        """Sets the initialization marker unless it is already present.

        Returns:
            True if the marker was written, False if the node was already marked.
        """
        if self.is_initialized():
            logger.debug("Node %s already marked as initialized", self._node_name)
            return False

        self.set({INITIALIZATION_KEY: INITIALIZATION_VALUE})
        return True

    def get_max_power(self) -> int:
        """Returns the maximum power recorded on the node at initialization.

        Raises:
            NodeStateError: If the annotation is missing or not an integer.
        """
        value = self.get().get(MAX_POWER_KEY)
        if value is None:
            raise NodeStateError(f"max power annotation not found: {MAX_POWER_KEY}")

        try:
            return int(value)
        except ValueError:
            raise NodeStateError(f"invalid max power value: {value!r}") from None
