import logging
from typing import Any, Dict, List, Optional, Sequence, Type

from .base import IPGeolocationProvider

logger = logging.getLogger(__name__)


class IpapiCoProvider(IPGeolocationProvider):
    """
    ipapi.co provider.

    - Success: the reply has no `error` field.
    - Without an IP the provider answers for the caller's own address.
    """

    name = "ipapi.co"
    BASE_URL = "https://ipapi.co"

    def __init__(self, timeout: Optional[float] = 5.0, http: Any = None, base_url: Optional[str] = None):
        super().__init__(timeout=timeout, http=http)
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    def build_url(self, ip: Optional[str]) -> str:
        if ip:
            return f"{self.base_url}/{ip}/json/"
        return f"{self.base_url}/json/"

    def is_success(self, raw: Dict[str, Any]) -> bool:
        return not raw.get("error")


class IpApiComProvider(IPGeolocationProvider):
    """ip-api.com provider. Success: `status == "success"`."""

    name = "ip-api.com"
    BASE_URL = "http://ip-api.com/json"

    def build_url(self, ip: Optional[str]) -> str:
        if ip:
            return f"{self.BASE_URL}/{ip}"
        return self.BASE_URL

    def is_success(self, raw: Dict[str, Any]) -> bool:
        return raw.get("status") == "success"


class IpWhoisAppProvider(IPGeolocationProvider):
    """ipwhois.app provider. Success: the `success` flag is true."""

    name = "ipwhois.app"
    BASE_URL = "https://ipwhois.app/json"

    def build_url(self, ip: Optional[str]) -> str:
        if ip:
            return f"{self.BASE_URL}/{ip}"
        return f"{self.BASE_URL}/"

    def is_success(self, raw: Dict[str, Any]) -> bool:
        return raw.get("success") is True


# Provider id -> variant. Adding a provider means adding an entry here and
# naming it in the configured order.
IP_PROVIDERS: Dict[str, Type[IPGeolocationProvider]] = {
    IpapiCoProvider.name: IpapiCoProvider,
    IpApiComProvider.name: IpApiComProvider,
    IpWhoisAppProvider.name: IpWhoisAppProvider,
}


def build_ip_providers(
    order: Sequence[str],
    timeout: Optional[float] = 5.0,
    http: Any = None,
) -> List[IPGeolocationProvider]:
    """
    Instantiate providers in the configured order.

    Unknown ids are a configuration error and raise ValueError.
    """
    providers: List[IPGeolocationProvider] = []
    for provider_id in order:
        try:
            provider_cls = IP_PROVIDERS[provider_id]
        except KeyError:
            raise ValueError(
                f"Unknown IP geolocation provider '{provider_id}'. "
                f"Known providers: {', '.join(IP_PROVIDERS)}"
            ) from None
        providers.append(provider_cls(timeout=timeout, http=http))
    logger.info(f"IP geolocation chain: {' -> '.join(p.name for p in providers)}")
    return providers
