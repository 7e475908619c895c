from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from typing import Any, NamedTuple

import structlog
import yaml
from kubernetes import client, config
from kubernetes.client import ApiClient
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from ...config import Settings, get_settings
from ...exceptions import ConfigurationError, UpstreamFetchError
from ...schemas.graph import ResourceTypeId
from ...schemas.rbac import ClusterRole, ClusterRoleBinding, KubeObject, Role, RoleBinding
from .pagination import Page

logger = structlog.get_logger(__name__)


class _Apis(NamedTuple):
    core: client.CoreV1Api
    apps: client.AppsV1Api
    rbac: client.RbacAuthorizationV1Api


def _names(refs: Any) -> list[str]:
    return [r.name for r in (refs or []) if getattr(r, "name", None)]


def _namespace_attrs(obj: Any) -> dict[str, Any]:
    phase = getattr(getattr(obj, "status", None), "phase", None)
    return {"status.phase": phase} if phase else {}


def _secret_attrs(obj: Any) -> dict[str, Any]:
    # only the type; secret data never leaves the client
    return {"type": getattr(obj, "type", None) or ""}


def _service_account_attrs(obj: Any) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    if getattr(obj, "secrets", None):
        attrs["secrets"] = _names(obj.secrets)
    if getattr(obj, "image_pull_secrets", None):
        attrs["imagePullSecrets"] = _names(obj.image_pull_secrets)
    return attrs


def _pod_attrs(obj: Any) -> dict[str, Any]:
    return {
        "phase": getattr(getattr(obj, "status", None), "phase", None),
        "node_name": getattr(getattr(obj, "spec", None), "node_name", None),
    }


def _replica_attrs(obj: Any) -> dict[str, Any]:
    return {"replicas": getattr(getattr(obj, "spec", None), "replicas", None)}


def _no_attrs(obj: Any) -> dict[str, Any]:
    return {}


class _InventoryCall(NamedTuple):
    kind: str
    api: str
    method: str
    attributes: Callable[[Any], dict[str, Any]]


INVENTORY_CALLS: dict[ResourceTypeId, _InventoryCall] = {
    ResourceTypeId.NAMESPACE: _InventoryCall("Namespace", "core", "list_namespace", _namespace_attrs),
    ResourceTypeId.SERVICE_ACCOUNT: _InventoryCall(
        "ServiceAccount", "core", "list_service_account_for_all_namespaces", _service_account_attrs
    ),
    ResourceTypeId.SECRET: _InventoryCall("Secret", "core", "list_secret_for_all_namespaces", _secret_attrs),
    ResourceTypeId.CONFIGMAP: _InventoryCall("ConfigMap", "core", "list_config_map_for_all_namespaces", _no_attrs),
    ResourceTypeId.NODE: _InventoryCall("Node", "core", "list_node", _no_attrs),
    ResourceTypeId.POD: _InventoryCall("Pod", "core", "list_pod_for_all_namespaces", _pod_attrs),
    ResourceTypeId.DEPLOYMENT: _InventoryCall(
        "Deployment", "apps", "list_deployment_for_all_namespaces", _replica_attrs
    ),
    ResourceTypeId.STATEFULSET: _InventoryCall(
        "StatefulSet", "apps", "list_stateful_set_for_all_namespaces", _replica_attrs
    ),
    ResourceTypeId.DAEMONSET: _InventoryCall("DaemonSet", "apps", "list_daemon_set_for_all_namespaces", _no_attrs),
}


class KubeClient:
    """Async wrapper around the Kubernetes Python client returning typed pages.

    Every list call takes the upstream ``continue`` value and returns a
    :class:`Page` whose ``continue_token`` is None once the list is exhausted.
    Failures surface as :class:`UpstreamFetchError`; nothing is retried here.
    """

    def __init__(self, settings: Settings | None = None, api_client: ApiClient | None = None) -> None:
        self.settings = settings or get_settings()
        self._client_lock = asyncio.Lock()
        self._api_client = api_client
        self._apis: _Apis | None = _Apis(*self._make_apis(api_client)) if api_client else None
        self.cluster_display_name = self.settings.kube_context or "default"

        path = self.settings.kube_config_path
        if path and not os.path.exists(os.path.expanduser(path)):
            raise ConfigurationError(f"Kubeconfig file not found: {path}", details={"path": path})

    # ---------------------------
    # RBAC
    # ---------------------------

    async def list_role_bindings(self, continue_token: str | None = None) -> Page[RoleBinding]:
        return await self._list_page(
            "rolebindings",
            lambda apis: apis.rbac.list_role_binding_for_all_namespaces,
            RoleBinding.from_k8s_object,
            continue_token,
        )

    async def list_cluster_role_bindings(self, continue_token: str | None = None) -> Page[ClusterRoleBinding]:
        return await self._list_page(
            "clusterrolebindings",
            lambda apis: apis.rbac.list_cluster_role_binding,
            ClusterRoleBinding.from_k8s_object,
            continue_token,
        )

    async def list_roles(self, continue_token: str | None = None) -> Page[Role]:
        return await self._list_page(
            "roles",
            lambda apis: apis.rbac.list_role_for_all_namespaces,
            Role.from_k8s_object,
            continue_token,
        )

    async def list_cluster_roles(self, continue_token: str | None = None) -> Page[ClusterRole]:
        return await self._list_page(
            "clusterroles",
            lambda apis: apis.rbac.list_cluster_role,
            ClusterRole.from_k8s_object,
            continue_token,
        )

    async def get_role(self, namespace: str, name: str) -> Role:
        apis = await self._ensure_clients()
        obj = await self._call(
            "roles",
            lambda: apis.rbac.read_namespaced_role(name=name, namespace=namespace),
            name=name,
            namespace=namespace,
        )
        return Role.from_k8s_object(obj)

    async def get_cluster_role(self, name: str) -> ClusterRole:
        apis = await self._ensure_clients()
        obj = await self._call("clusterroles", lambda: apis.rbac.read_cluster_role(name=name), name=name)
        return ClusterRole.from_k8s_object(obj)

    # ---------------------------
    # Inventory
    # ---------------------------

    async def list_namespaces(self, continue_token: str | None = None, limit: int | None = None) -> Page[KubeObject]:
        return await self.list_objects(ResourceTypeId.NAMESPACE, continue_token, limit=limit)

    async def list_objects(
        self,
        type_id: ResourceTypeId,
        continue_token: str | None = None,
        limit: int | None = None,
    ) -> Page[KubeObject]:
        try:
            call = INVENTORY_CALLS[type_id]
        except KeyError:
            raise ValueError(f"No inventory list call for {type_id.value}") from None

        def _parse(obj: Any) -> KubeObject:
            return KubeObject.from_k8s_object(call.kind, obj, call.attributes(obj))

        return await self._list_page(
            type_id.value,
            lambda apis: getattr(getattr(apis, call.api), call.method),
            _parse,
            continue_token,
            limit=limit,
        )

    # ---------------------------
    # Plumbing
    # ---------------------------

    async def _list_page(
        self,
        resource: str,
        method: Callable[[_Apis], Callable[..., Any]],
        parse: Callable[[Any], Any],
        continue_token: str | None,
        limit: int | None = None,
    ) -> Page[Any]:
        apis = await self._ensure_clients()
        kwargs: dict[str, Any] = {"limit": limit or self.settings.page_size}
        if continue_token:
            kwargs["_continue"] = continue_token

        logger.debug("kubernetes.list_page", resource=resource, continue_token=continue_token)
        resp = await self._call(resource, lambda: method(apis)(**kwargs))

        items = [parse(obj) for obj in (getattr(resp, "items", None) or [])]
        next_token = getattr(getattr(resp, "metadata", None), "_continue", None) or None
        return Page(items=items, continue_token=next_token)

    async def _call(self, resource: str, fn: Callable[[], Any], **context: Any) -> Any:
        try:
            return await asyncio.to_thread(fn)
        except ApiException as exc:
            logger.warning(
                "kubernetes.request_failed",
                resource=resource,
                status=exc.status,
                reason=exc.reason,
                **context,
            )
            raise UpstreamFetchError(
                f"Kubernetes API request for {resource} failed: {exc.reason}",
                upstream_status=exc.status,
                details={"resource": resource, **context},
            ) from exc
        except Exception as exc:
            logger.warning("kubernetes.transport_error", resource=resource, error=str(exc), **context)
            raise UpstreamFetchError(
                f"Kubernetes API request for {resource} failed: {exc}",
                details={"resource": resource, **context},
            ) from exc

    async def _ensure_clients(self) -> _Apis:
        if self._apis:
            return self._apis

        async with self._client_lock:
            if self._apis:
                return self._apis

            api_client = await asyncio.to_thread(self._build_api_client)
            self._api_client = api_client
            self._apis = _Apis(*self._make_apis(api_client))
            return self._apis

    @staticmethod
    def _make_apis(api_client: ApiClient) -> tuple[Any, Any, Any]:
        return (
            client.CoreV1Api(api_client),
            client.AppsV1Api(api_client),
            client.RbacAuthorizationV1Api(api_client),
        )

    def _build_api_client(self) -> ApiClient:
        configuration = client.Configuration()
        try:
            if self.settings.kube_token:
                self._load_token_config(configuration)
                self.cluster_display_name = self.settings.kube_context or "token"
            elif self.settings.kubeconfig_data:
                data = yaml.safe_load(self.settings.kubeconfig_data)
                if not isinstance(data, dict):
                    raise ConfigException("kubeconfig_data is not a kubeconfig mapping")
                context_name = self.settings.kube_context or data.get("current-context")
                config.load_kube_config_from_dict(data, context=context_name, client_configuration=configuration)
                self.cluster_display_name = context_name or "default"
            elif self.settings.service_account_token_path:
                config.load_incluster_config(client_configuration=configuration)
                self.cluster_display_name = "in-cluster"
            else:
                config.load_kube_config(
                    config_file=self.settings.kube_config_path,
                    context=self.settings.kube_context,
                    client_configuration=configuration,
                )
                self.cluster_display_name = self.settings.kube_context or "default"
        except (ConfigException, yaml.YAMLError) as exc:
            logger.warning("kubernetes.config_missing", error=str(exc))
            raise ConfigurationError(f"Unable to load Kubernetes configuration: {exc}") from exc

        logger.info("kubernetes.client_configured", cluster=self.cluster_display_name, host=configuration.host)
        return ApiClient(configuration)

    def _load_token_config(self, configuration: client.Configuration) -> None:
        cluster_name = "rbacgraph"
        context_name = self.settings.kube_context or f"{cluster_name}-context"
        user_name = f"{cluster_name}-user"

        cluster_entry: dict[str, Any] = {"server": self.settings.kube_api_server}
        if self.settings.kube_ca_data:
            cluster_entry["certificate-authority-data"] = self.settings.kube_ca_data
        cluster_entry["insecure-skip-tls-verify"] = self.settings.kube_insecure_skip_tls_verify

        kubeconfig_dict = {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [{"name": cluster_name, "cluster": cluster_entry}],
            "contexts": [{"name": context_name, "context": {"cluster": cluster_name, "user": user_name}}],
            "current-context": context_name,
            "users": [{"name": user_name, "user": {"token": self.settings.kube_token}}],
            "preferences": {},
        }
        config.load_kube_config_from_dict(
            kubeconfig_dict,
            context=context_name,
            client_configuration=configuration,
        )
