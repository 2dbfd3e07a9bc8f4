"""
Device position sources.

The device location capability lives outside this service (a browser's
geolocation API, a platform location daemon, ...). These adapters put
a PositionSource face on it so the resolver can request a position with
the usual high-accuracy / timeout / cached-age options.
"""

import concurrent.futures
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from location_tracker.models.location import Position, PositionOptions, ResolveRequest
from .base import PositionSource
from .errors import POSITION_ERRORS_BY_CODE, PositionError, PositionTimeout, PositionUnavailable

logger = logging.getLogger(__name__)


def _age_seconds(timestamp: datetime, now: datetime) -> float:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return (now - timestamp).total_seconds()


class ReportedPositionSource(PositionSource):
    """
    Position (or position error) already obtained by a client.

    Browser clients call navigator.geolocation themselves and report the
    outcome: either coordinates or the GeolocationPositionError code
    (1 permission denied, 2 position unavailable, 3 timeout).
    """

    def __init__(
        self,
        position: Optional[Position] = None,
        error_code: Optional[int] = None,
        error_message: Optional[str] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.position = position
        self.error_code = error_code
        self.error_message = error_message
        self.clock = clock

    @classmethod
    def from_request(cls, body: ResolveRequest) -> "ReportedPositionSource":
        """Out-of-range coordinates or accuracy are reported as an unavailable position."""
        position = None
        if body.latitude is not None and body.longitude is not None:
            try:
                position = Position(
                    latitude=body.latitude,
                    longitude=body.longitude,
                    accuracy=body.accuracy,
                    timestamp=body.timestamp,
                )
            except ValidationError as e:
                logger.warning(f"Rejected reported position: {e.errors()[0]['msg']}")
                return cls(
                    error_code=PositionUnavailable.code,
                    error_message=f"Reported position is invalid: {e.errors()[0]['msg']}",
                )
        return cls(position=position, error_code=body.error_code, error_message=body.error_message)

    def get_current_position(self, options: PositionOptions) -> Position:
        if self.error_code is not None:
            error_cls = POSITION_ERRORS_BY_CODE.get(self.error_code, PositionUnavailable)
            raise error_cls(self.error_message or f"GPS Error: code {self.error_code}")

        if self.position is None:
            raise PositionUnavailable("No position was reported by the device")

        if self.position.timestamp is not None:
            age = _age_seconds(self.position.timestamp, self.clock())
            if age > options.max_cached_age:
                raise PositionUnavailable(
                    f"Reported position is {age:.0f}s old (max {options.max_cached_age:.0f}s)"
                )
        return self.position


class CallablePositionSource(PositionSource):
    """
    Wraps a blocking platform call that returns a Position.

    The call runs on a worker thread so options.timeout can be enforced.
    A call that overruns is abandoned, not interrupted; its result is
    discarded once it finishes.
    """

    def __init__(self, locate: Callable[[PositionOptions], Position]):
        self.locate = locate

    def get_current_position(self, options: PositionOptions) -> Position:
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self.locate, options)
            try:
                return future.result(timeout=options.timeout)
            except concurrent.futures.TimeoutError:
                raise PositionTimeout(f"No position within {options.timeout:.0f}s") from None
            except PositionError:
                raise
            except Exception as e:
                logger.warning(f"Platform location request failed: {e}")
                raise PositionUnavailable(f"Location capability failed: {e}") from e
        finally:
            executor.shutdown(wait=False)
