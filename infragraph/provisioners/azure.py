"""
Azure resource catalog for the local provisioner: ARM ids, auto-naming,
endpoint outputs per resource kind, and built-in role definitions.
"""
import base64
import hashlib
import hmac
import uuid
from typing import Any, Callable, Dict, Optional

DEFAULT_SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"
DEFAULT_TENANT_ID = "11111111-0000-0000-0000-000000000000"
DEFAULT_LOCATION = "westeurope"

# Built-in role definition GUIDs used by the training stacks
BUILTIN_ROLES = {
    "Contributor": "b24988ac-6180-42a0-ab88-20f7382dd24c",
    "Storage Blob Data Contributor": "ba92f5b4-2d11-453d-a403-e96b0029c9fe",
    "Storage Queue Data Message Sender": "c6a89b2d-59bc-44d0-9896-0f6e12d7b80a",
    "Storage Queue Data Message Processor": "8a0f0c08-91a1-4084-bc3d-661d67233fed",
    "Azure Service Bus Data Sender": "69a216fc-b8fb-44d8-bc22-1f3c2cd27a39",
    "Azure Service Bus Data Receiver": "4f6d3b9b-027b-4f4c-9142-0e5a2a2247e0",
    "Azure Event Hubs Data Sender": "2b629674-e913-4c01-ae53-ef4638d8f975",
    "Azure Event Hubs Data Receiver": "a638d3c7-ab3a-418d-83e6-5f17a39d4fde",
    "EventGrid Data Sender": "d5a91429-5739-47e2-a06b-3470a27159e7",
    "Key Vault Administrator": "00482a5a-887f-4fb3-b363-3b7fe8e74483",
    "Key Vault Secrets Officer": "b86a8fe4-44ce-4948-aee5-eccb2c155cd7",
    "App Configuration Data Reader": "516239f1-63e1-4d78-a4de-a74fb236a071",
    "App Configuration Data Owner": "5ae67dd6-50cb-40e7-96ff-dc2bfa4b606b",
}

# kind -> ARM type path below the resource group; {placeholders} come from config
_ARM_TYPES = {
    "storage-account": "Microsoft.Storage/storageAccounts/{name}",
    "storage-queue": "Microsoft.Storage/storageAccounts/{account_name}/queueServices/default/queues/{name}",
    "blob-container": "Microsoft.Storage/storageAccounts/{account_name}/blobServices/default/containers/{name}",
    "blob": "Microsoft.Storage/storageAccounts/{account_name}/blobServices/default/containers/{container_name}/blobs/{name}",
    "servicebus-namespace": "Microsoft.ServiceBus/namespaces/{name}",
    "servicebus-queue": "Microsoft.ServiceBus/namespaces/{namespace_name}/queues/{name}",
    "eventhub-namespace": "Microsoft.EventHub/namespaces/{name}",
    "eventhub": "Microsoft.EventHub/namespaces/{namespace_name}/eventhubs/{name}",
    "consumer-group": "Microsoft.EventHub/namespaces/{namespace_name}/eventhubs/{event_hub_name}/consumergroups/{name}",
    "eventgrid-namespace": "Microsoft.EventGrid/namespaces/{name}",
    "eventgrid-topic": "Microsoft.EventGrid/namespaces/{namespace_name}/topics/{name}",
    "eventgrid-subscription": "Microsoft.EventGrid/namespaces/{namespace_name}/topics/{topic_name}/eventSubscriptions/{name}",
    "key-vault": "Microsoft.KeyVault/vaults/{name}",
    "app-configuration": "Microsoft.AppConfiguration/configurationStores/{name}",
    "app-configuration-key": "Microsoft.AppConfiguration/configurationStores/{config_store_name}/keyValues/{name}",
    "cosmosdb-account": "Microsoft.DocumentDB/databaseAccounts/{name}",
    "cosmosdb-database": "Microsoft.DocumentDB/databaseAccounts/{account_name}/sqlDatabases/{name}",
    "cosmosdb-container": "Microsoft.DocumentDB/databaseAccounts/{account_name}/sqlDatabases/{database_name}/containers/{name}",
    "app-service-plan": "Microsoft.Web/serverfarms/{name}",
    "web-app": "Microsoft.Web/sites/{name}",
    "web-app-slot": "Microsoft.Web/sites/{site_name}/slots/{name}",
    "container-group": "Microsoft.ContainerInstance/containerGroups/{name}",
    "managed-environment": "Microsoft.App/managedEnvironments/{name}",
    "container-app": "Microsoft.App/containerApps/{name}",
    "apim-service": "Microsoft.ApiManagement/service/{name}",
    "apim-api": "Microsoft.ApiManagement/service/{service_name}/apis/{name}",
}

# config key holding the physical name, per kind
_NAME_KEYS = {
    "resource-group": "resource_group_name",
    "storage-account": "account_name",
    "storage-queue": "queue_name",
    "blob-container": "container_name",
    "blob": "blob_name",
    "servicebus-namespace": "namespace_name",
    "servicebus-queue": "queue_name",
    "eventhub-namespace": "namespace_name",
    "eventhub": "event_hub_name",
    "consumer-group": "consumer_group_name",
    "eventgrid-namespace": "namespace_name",
    "eventgrid-topic": "topic_name",
    "eventgrid-subscription": "event_subscription_name",
    "key-vault": "vault_name",
    "app-configuration": "config_store_name",
    "app-configuration-key": "key_value_name",
    "cosmosdb-account": "account_name",
    "cosmosdb-database": "database_name",
    "cosmosdb-container": "container_name",
    "app-service-plan": "name",
    "web-app": "name",
    "web-app-slot": "slot",
    "container-group": "container_group_name",
    "managed-environment": "environment_name",
    "container-app": "container_app_name",
    "apim-service": "service_name",
    "apim-api": "api_id",
    "entra-application": "display_name",
}


def _digest(*parts: str) -> str:
    return hashlib.sha256("/".join(parts).encode("utf-8")).hexdigest()


def autoname(name: str) -> str:
    """Logical name plus a stable 7-char suffix, like engine auto-naming."""
    return f"{name.lower()}{_digest('autoname', name)[:7]}"


def physical_name(kind: str, name: str, config: Dict[str, Any]) -> str:
    key = _NAME_KEYS.get(kind)
    value = config.get(key) if key else None
    return str(value) if value else autoname(name)


def role_definition_id(subscription_id: str, role: str) -> str:
    """
    Expand a built-in role name or bare GUID to a full role definition id.
    Anything else (an id already, or an unknown custom role) is returned as-is.
    """
    guid = BUILTIN_ROLES.get(role)
    if guid is None:
        try:
            guid = str(uuid.UUID(role))
        except ValueError:
            return role
    return f"/subscriptions/{subscription_id}/providers/Microsoft.Authorization/roleDefinitions/{guid}"


def resource_id(kind: str, physical: str, config: Dict[str, Any], subscription_id: str) -> str:
    if kind == "resource-group":
        return f"/subscriptions/{subscription_id}/resourceGroups/{physical}"
    rg = config.get("resource_group_name", "default")
    template = _ARM_TYPES.get(kind)
    if template is None:
        # unknown kinds still get a unique, stable id
        template = "Local.Resources/" + kind + "/{name}"
    values = {k: v for k, v in config.items() if isinstance(v, (str, int, float))}
    values["name"] = physical
    try:
        path = template.format(**values)
    except KeyError:
        path = template.split("/")[0] + "/" + kind + "/" + physical
    return f"/subscriptions/{subscription_id}/resourceGroups/{rg}/providers/{path}"


def _account_key(physical: str) -> str:
    return base64.b64encode(bytes.fromhex(_digest("key", physical))).decode("ascii")


# ------------------------------------------------------------------ per-kind outputs

def _storage_account(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    key = _account_key(n)
    return {
        "primary_endpoints": {
            svc: f"https://{n}.{svc}.core.windows.net/" for svc in ("blob", "queue", "table", "file")
        },
        "primary_key": key,
        "connection_string": (
            f"DefaultEndpointsProtocol=https;AccountName={n};AccountKey={key};"
            "EndpointSuffix=core.windows.net"
        ),
    }


def _blob(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    account = config.get("account_name", "")
    container = config.get("container_name", "")
    return {"url": f"https://{account}.blob.core.windows.net/{container}/{n}"}


def _messaging_namespace(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    return {
        "fqdn": f"{n}.servicebus.windows.net",
        "service_bus_endpoint": f"https://{n}.servicebus.windows.net:443/",
    }


def _eventgrid_namespace(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    return {"endpoint": f"https://{n}.{location}.eventgrid.azure.net"}


def _eventgrid_topic(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    ns = config.get("namespace_name", n)
    return {"endpoint": f"https://{ns}.{location}.eventgrid.azure.net/topics/{n}"}


def _key_vault(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    props = dict(config.get("properties") or {})
    props["vault_uri"] = f"https://{n}.vault.azure.net/"
    return {"properties": props}


def _app_configuration(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    return {"endpoint": f"https://{n}.azconfig.io"}


def _cosmosdb_account(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    return {"document_endpoint": f"https://{n}.documents.azure.com:443/"}


def _web_app(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    return {"default_host_name": f"{n}.azurewebsites.net"}


def _web_app_slot(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    site = config.get("site_name", "")
    return {"default_host_name": f"{site}-{n}.azurewebsites.net"}


def _container_group(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    h = bytes.fromhex(_digest("ip", n)[:6])
    ip = dict(config.get("ip_address") or {})
    ip["ip"] = f"20.{h[0]}.{h[1]}.{h[2]}"
    label = ip.get("dns_name_label")
    if label:
        ip["fqdn"] = f"{label}.{location}.azurecontainer.io"
    return {"ip_address": ip}


def _managed_environment(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    return {"default_domain": f"{_digest('env', n)[:12]}.{location}.azurecontainerapps.io"}


def _container_app(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    domain = config.get("default_domain") or f"{_digest('env', n)[:12]}.{location}.azurecontainerapps.io"
    return {"latest_revision_fqdn": f"{n}.{domain}"}


def _apim_service(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    return {"gateway_url": f"https://{n}.azure-api.net"}


def _entra_application(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    return {
        "client_id": str(uuid.uuid5(uuid.NAMESPACE_URL, f"client/{n}")),
        "object_id": str(uuid.uuid5(uuid.NAMESPACE_URL, f"object/{n}")),
    }


def _service_sas(n: str, config: Dict[str, Any], location: str) -> Dict[str, Any]:
    """Deterministic service SAS for a container, signed with the account key."""
    account = config.get("account_name", "")
    resource = config.get("canonicalized_resource") or f"/blob/{account}/{config.get('container_name', '')}"
    permissions = config.get("permissions", "r")
    expiry = config.get("shared_access_expiry_time", "2035-01-01")
    key = base64.b64decode(config.get("account_key") or _account_key(account))
    to_sign = "\n".join([permissions, expiry, resource])
    sig = base64.b64encode(hmac.new(key, to_sign.encode("utf-8"), hashlib.sha256).digest()).decode("ascii")
    return {"service_sas_token": f"sv=2022-11-02&sr=c&sp={permissions}&se={expiry}&spr=https&sig={sig}"}


_SYNTHESIZERS: Dict[str, Callable[[str, Dict[str, Any], str], Dict[str, Any]]] = {
    "storage-account": _storage_account,
    "blob": _blob,
    "servicebus-namespace": _messaging_namespace,
    "eventhub-namespace": _messaging_namespace,
    "eventgrid-namespace": _eventgrid_namespace,
    "eventgrid-topic": _eventgrid_topic,
    "key-vault": _key_vault,
    "app-configuration": _app_configuration,
    "cosmosdb-account": _cosmosdb_account,
    "web-app": _web_app,
    "web-app-slot": _web_app_slot,
    "container-group": _container_group,
    "managed-environment": _managed_environment,
    "container-app": _container_app,
    "apim-service": _apim_service,
    "entra-application": _entra_application,
    "service-sas": _service_sas,
}


def synthesize(
    kind: str,
    name: str,
    config: Dict[str, Any],
    subscription_id: str = DEFAULT_SUBSCRIPTION_ID,
    location: Optional[str] = None,
) -> Dict[str, Any]:
    """Return the outputs the control plane would report for a resolved config."""
    location = str(config.get("location") or location or DEFAULT_LOCATION)
    physical = physical_name(kind, name, config)
    outputs: Dict[str, Any] = dict(config)
    outputs["location"] = location
    fn = _SYNTHESIZERS.get(kind)
    if fn:
        outputs.update(fn(physical, config, location))
    outputs["name"] = physical
    outputs["id"] = resource_id(kind, physical, config, subscription_id)
    return outputs
