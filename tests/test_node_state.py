"""Tests for the Node annotation synchronizer."""

from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import MaxRetryError

from conftest import NODE_NAME, FakeCoreV1Api
from market_powercap.node import state
from market_powercap.node.state import (
    INITIALIZATION_KEY,
    MAX_POWER_KEY,
    NodeStateSynchronizer,
)
from market_powercap.util.exceptions import ConfigError, ConflictError, NodeStateError


def test_get_returns_annotations(node_state, kube_api):
    kube_api.annotations = {"rapl/pmax": "20000000", "other/key": "x"}

    assert node_state.get() == {"rapl/pmax": "20000000", "other/key": "x"}


def test_get_without_annotations():
    api = MagicMock()
    api.read_node.return_value = client.V1Node(metadata=client.V1ObjectMeta(name=NODE_NAME))

    assert NodeStateSynchronizer(NODE_NAME, api).get() == {}
    api.read_node.assert_called_once_with(NODE_NAME)


@pytest.mark.parametrize(
    "error",
    [
        ApiException(status=404, reason="Not Found"),
        ApiException(status=401, reason="Unauthorized"),
        MaxRetryError(None, "/api/v1/nodes/worker-1", "refused"),
    ],
)
def test_get_failure_is_a_node_state_error(error):
    api = MagicMock()
    api.read_node.side_effect = error

    with pytest.raises(NodeStateError):
        NodeStateSynchronizer(NODE_NAME, api).get()


def test_set_merges_without_removing_keys(node_state, kube_api):
    kube_api.annotations = {"other/key": "x", "rapl/pmax": "1"}

    node_state.set({"rapl/pmax": 2, "rapl/provider": "Static"})

    assert kube_api.annotations == {
        "other/key": "x",
        "rapl/pmax": "2",
        "rapl/provider": "Static",
    }


def test_set_patches_only_the_annotations():
    api = MagicMock()

    NodeStateSynchronizer(NODE_NAME, api).set({"rapl/pmax": "5"})

    api.patch_node.assert_called_once_with(
        NODE_NAME, {"metadata": {"annotations": {"rapl/pmax": "5"}}}
    )


def test_set_conflict(node_state, kube_api):
    kube_api.patch_status = 409

    with pytest.raises(ConflictError):
        node_state.set({"rapl/pmax": "5"})


def test_set_failure(node_state, kube_api):
    kube_api.patch_status = 500

    with pytest.raises(NodeStateError) as excinfo:
        node_state.set({"rapl/pmax": "5"})

    assert not isinstance(excinfo.value, ConflictError)


def test_set_connection_failure():
    api = MagicMock()
    api.patch_node.side_effect = MaxRetryError(None, "/api/v1/nodes/worker-1", "refused")

    with pytest.raises(NodeStateError):
        NodeStateSynchronizer(NODE_NAME, api).set({"rapl/pmax": "5"})


def test_mark_initialized_is_idempotent(node_state, kube_api):
    assert not node_state.is_initialized()

    assert node_state.mark_initialized() is True
    assert node_state.is_initialized()
    assert node_state.mark_initialized() is False

    assert kube_api.patches == [{INITIALIZATION_KEY: "market-powercap"}]


def test_get_max_power(node_state, kube_api):
    kube_api.annotations = {MAX_POWER_KEY: "35000000"}

    assert node_state.get_max_power() == 35_000_000


@pytest.mark.parametrize("annotations", [{}, {MAX_POWER_KEY: "35 W"}])
def test_get_max_power_missing_or_invalid(annotations):
    node_state = NodeStateSynchronizer(NODE_NAME, FakeCoreV1Api(annotations))

    with pytest.raises(NodeStateError):
        node_state.get_max_power()


def test_from_in_cluster_loads_the_service_account(config, monkeypatch):
    load_incluster = MagicMock()
    load_kubeconfig = MagicMock()
    monkeypatch.setattr(state.kube_config, "load_incluster_config", load_incluster)
    monkeypatch.setattr(state.kube_config, "load_kube_config", load_kubeconfig)

    synchronizer = NodeStateSynchronizer.from_in_cluster(config)

    load_incluster.assert_called_once_with()
    load_kubeconfig.assert_not_called()
    assert isinstance(synchronizer._api, client.CoreV1Api)
    assert synchronizer._node_name == config.node_name


def test_from_in_cluster_falls_back_to_kubeconfig(config, monkeypatch):
    load_kubeconfig = MagicMock()
    monkeypatch.setattr(
        state.kube_config,
        "load_incluster_config",
        MagicMock(side_effect=ConfigException("Service host/port is not set.")),
    )
    monkeypatch.setattr(state.kube_config, "load_kube_config", load_kubeconfig)

    NodeStateSynchronizer.from_in_cluster(config)

    load_kubeconfig.assert_called_once_with()


def test_from_in_cluster_without_any_configuration(config, monkeypatch):
    missing = MagicMock(side_effect=ConfigException("No configuration found."))
    monkeypatch.setattr(state.kube_config, "load_incluster_config", missing)
    monkeypatch.setattr(state.kube_config, "load_kube_config", missing)

    with pytest.raises(ConfigError):
        NodeStateSynchronizer.from_in_cluster(config)
