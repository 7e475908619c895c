from functools import lru_cache

from .config import get_settings
from .connector import KubernetesConnector
from .services.k8s.client import KubeClient


@lru_cache(maxsize=1)
def _get_kube_client() -> KubeClient:
    return KubeClient(get_settings())


@lru_cache(maxsize=1)
def _get_connector() -> KubernetesConnector:
    return KubernetesConnector(_get_kube_client(), get_settings())


def get_connector() -> KubernetesConnector:
    return _get_connector()
