"""Shared fixtures for the power manager tests."""

import json
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import requests
from kubernetes import client
from kubernetes.client.rest import ApiException

from market_powercap.config import Config
from market_powercap.node.state import NodeStateSynchronizer
from market_powercap.providers.base import MarketDataPoint

PARIS = ZoneInfo("Europe/Paris")
EPEX_URL = "https://www.epexspot.com/en/market-results"
NODE_NAME = "worker-1"


def make_response(status_code: int, payload=None, url: str = EPEX_URL) -> requests.Response:
    """Builds a real `requests.Response` with a JSON body, as returned by market sites."""
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response._content = json.dumps(payload or {}).encode()
    return response


class FakeCoreV1Api:
    """In-memory stand-in for the Kubernetes core API, limited to Node calls.

    Node annotations are kept in `annotations`; every patch is recorded in
    `patches`. Setting `patch_status` makes the next patches fail with that code.
    """

    def __init__(self, annotations=None) -> None:
        self.annotations = dict(annotations or {})
        self.patches = []
        self.read_calls = 0
        self.patch_status = 200

    def read_node(self, name, **kwargs):
        self.read_calls += 1
        return client.V1Node(
            metadata=client.V1ObjectMeta(name=name, annotations=dict(self.annotations))
        )

    def patch_node(self, name, body, **kwargs):
        if self.patch_status != 200:
            raise ApiException(status=self.patch_status, reason="rejected")

        patch = body["metadata"]["annotations"]
        self.patches.append(dict(patch))
        self.annotations.update(patch)
        return self.read_node(name)


@pytest.fixture
def kube_api():
    return FakeCoreV1Api()


@pytest.fixture
def node_state(kube_api):
    return NodeStateSynchronizer(NODE_NAME, kube_api)


@pytest.fixture
def config(tmp_path):
    return Config(
        node_name=NODE_NAME,
        max_source=40_000_000,
        rapl_min_power=10_000_000,
        data_provider="static",
        data_dir=tmp_path / "market",
        timezone=PARIS,
        rapl_base_path=tmp_path / "intel-rapl",
    )


def write_rapl_tree(base: Path, domains) -> Path:
    """Creates a fake powercap tree.

    Args:
        base: The directory to use as RAPL base path.
        domains: Mapping of domain name to a mapping of file name to content.
    """
    base.mkdir(parents=True, exist_ok=True)
    for domain, files in domains.items():
        domain_path = base / domain
        domain_path.mkdir()
        for name, content in files.items():
            (domain_path / name).write_text(content)
    return base


@pytest.fixture
def rapl_tree(tmp_path):
    return write_rapl_tree(
        tmp_path / "intel-rapl",
        {
            "intel-rapl:0": {
                "constraint_0_power_limit_uw": "35000000\n",
                "constraint_0_max_power_uw": "35000000\n",
                "constraint_1_power_limit_uw": "30000000\n",
                "name": "package-0\n",
            },
            "intel-rapl:1": {
                "constraint_0_power_limit_uw": "25000000\n",
            },
        },
    )


@pytest.fixture
def scenario_data():
    return [
        MarketDataPoint("00:00-00:15", 66.3, 31.91),
        MarketDataPoint("12:00-12:15", 93.8, 42.15),
    ]


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 14, hour, minute, tzinfo=PARIS)
