"""
Fallback chain over IP geolocation providers.

Providers are tried strictly in order, one attempt each, sequentially.
There is no retry, no backoff and no fan-out: the first provider whose
call succeeds and whose reply passes its success predicate wins, and the
remaining providers are never called.
"""

import logging
from threading import Event
from typing import List, Optional, Sequence

from location_tracker.models.location import LocationRecord
from .base import ChainOutcome, IPGeolocationProvider
from .errors import AllProvidersExhausted, ProviderError, ResolutionCancelled

logger = logging.getLogger(__name__)


class FallbackChain:
    """
    Ordered chain of IP geolocation providers.

    An unreachable provider, a timeout, a reply that fails the provider's
    success predicate and a reply that cannot be normalized all count the
    same way: the failure is recorded and the next provider is tried.
    """

    def __init__(self, providers: Sequence[IPGeolocationProvider]):
        if not providers:
            raise ValueError("FallbackChain needs at least one provider")
        self.providers = list(providers)

    def attempt(self, provider: IPGeolocationProvider, ip: Optional[str]) -> LocationRecord:
        """Single attempt; raises ProviderError when this provider cannot answer."""
        raw = provider.fetch_raw(ip)
        if not provider.is_success(raw):
            raise ProviderError(provider.name, provider.failure_reason(raw))
        logger.debug(f"{provider.name} response: {raw}")
        return provider.normalize(raw)

    def run(self, ip: Optional[str] = None, cancel_event: Optional[Event] = None) -> ChainOutcome:
        failures: List[ProviderError] = []

        for provider in self.providers:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"IP lookup for {ip or 'caller'} cancelled before {provider.name}")
                raise ResolutionCancelled("Location request was cancelled")

            try:
                logger.info(f"Trying IP geolocation service: {provider.name}")
                record = self.attempt(provider, ip)
            except ProviderError as e:
                logger.warning(f"Service {provider.name} failed: {e.message}")
                failures.append(e)
                continue

            if cancel_event is not None and cancel_event.is_set():
                # Caller moved on while the request was in flight; drop the reply.
                raise ResolutionCancelled("Location request was cancelled")

            logger.info(f"IP location resolved using {provider.name}")
            return ChainOutcome(record=record, service_used=provider.name, failures=failures)

        logger.error(f"All IP geolocation services failed for {ip or 'caller'}")
        raise AllProvidersExhausted(failures)
