from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from azure.identity import DefaultAzureCredential
from azure.mgmt.subscription import SubscriptionClient

from ..util.errors import map_azure_error

ENABLED_STATE = "Enabled"


@dataclass(frozen=True)
class AuthContext:
    """
    Holds the resolved credential and the subscription every listing call targets.
    """

    credential: Any
    subscription_id: str
    subscription_name: Optional[str]
    tenant_id: Optional[str]


class AuthError(RuntimeError):
    pass


def _is_credential_error(exc: BaseException) -> bool:
    return exc.__class__.__name__ in {"ClientAuthenticationError", "CredentialUnavailableError"}


def build_credential(tenant_id: Optional[str]) -> Any:
    """
    DefaultAzureCredential walks environment, managed identity, Azure CLI and
    other developer sessions. An explicit tenant is passed through to the
    credentials that accept one.
    """
    kwargs: Dict[str, Any] = {}
    if tenant_id:
        kwargs.update(
            {
                "interactive_browser_tenant_id": tenant_id,
                "shared_cache_tenant_id": tenant_id,
                "visual_studio_code_tenant_id": tenant_id,
                "additionally_allowed_tenants": [tenant_id],
            }
        )
    try:
        return DefaultAzureCredential(**kwargs)
    except Exception as e:
        raise AuthError(f"Failed to build Azure credential: {e}") from e


def list_subscriptions(credential: Any) -> List[Dict[str, str]]:
    """
    Return visible subscriptions as [{"id", "name", "state", "tenant_id"}], in API order.
    """
    client = SubscriptionClient(credential)
    out: List[Dict[str, str]] = []
    try:
        for sub in client.subscriptions.list():
            out.append(
                {
                    "id": str(getattr(sub, "subscription_id", "") or ""),
                    "name": str(getattr(sub, "display_name", "") or ""),
                    "state": str(getattr(sub, "state", "") or ""),
                    "tenant_id": str(getattr(sub, "tenant_id", "") or ""),
                }
            )
    except Exception as e:
        if _is_credential_error(e):
            raise AuthError(f"Authentication failed: {e}") from e
        mapped = map_azure_error(e, "Azure SDK error while listing subscriptions")
        if mapped:
            raise mapped from e
        raise
    return out


def _select_subscription(
    subscriptions: List[Dict[str, str]],
    subscription_id: Optional[str],
    tenant_id: Optional[str],
) -> Dict[str, str]:
    candidates = subscriptions
    if tenant_id:
        candidates = [s for s in candidates if not s["tenant_id"] or s["tenant_id"].lower() == tenant_id.lower()]
    if subscription_id:
        wanted = subscription_id.strip().lower()
        for sub in candidates:
            if sub["id"].lower() == wanted or sub["name"].lower() == wanted:
                return sub
        scope = f" in tenant {tenant_id}" if tenant_id else ""
        raise AuthError(f"Subscription {subscription_id} not found{scope} for the signed-in identity")
    for sub in candidates:
        if sub["state"] in ("", ENABLED_STATE):
            return sub
    raise AuthError("No enabled subscription is visible to the signed-in identity")


def resolve_auth(tenant_id: Optional[str], subscription_id: Optional[str]) -> AuthContext:
    """
    Authenticate and select the subscription to document.
    - tenant/subscription are optional; when absent the default session and the
      first enabled subscription are used.
    - Any failure raises AuthError (fatal for the run).
    """
    credential = build_credential(tenant_id)
    subscriptions = list_subscriptions(credential)
    selected = _select_subscription(subscriptions, subscription_id, tenant_id)
    return AuthContext(
        credential=credential,
        subscription_id=selected["id"],
        subscription_name=selected["name"] or None,
        tenant_id=tenant_id or selected["tenant_id"] or None,
    )
