"""Watcher bookkeeping for one adapter.

A watcher is an external subscriber identified by (service, path): the bus
name of the caller and the object path it asked to be called back on.  Every
registered watcher receives final measurements; a subset has also opted into
intermediate ones.

The registry only decides *who* is subscribed.  Turning peripheral
notifications on or off is left to the hooks fired when a set goes from empty
to non-empty or back.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from thermobridge.core.errors import AlreadyExistsError, DoesNotExistError, InvalidArgumentError
from thermobridge.core.log import LOG__MEASUREMENT, get_logger, print_and_log
from thermobridge.gatt.codec import Measurement

logger = get_logger(__name__)

__all__ = ["Watcher", "WatcherChannel", "WatcherRegistry"]


@dataclass(eq=False)
class Watcher:
    service: str
    path: str
    watch_id: Any = field(default=None, repr=False)

    @property
    def key(self):
        return (self.service, self.path)


class WatcherChannel(abc.ABC):
    """Delivery and liveness tracking for watchers."""

    @abc.abstractmethod
    def watch_disconnect(self, watcher: Watcher, callback: Callable[[Watcher], None]) -> Any:
        """Call *callback(watcher)* once the watcher's service leaves the bus."""

    @abc.abstractmethod
    def cancel_watch(self, handle: Any) -> None:
        """Cancel a subscription returned by :meth:`watch_disconnect`."""

    @abc.abstractmethod
    def deliver(self, watcher: Watcher, device_path: str, measurement: Measurement) -> None:
        """Send *measurement* to *watcher* without waiting for a reply."""


Hook = Optional[Callable[[], None]]


class WatcherRegistry:
    """Final and intermediate watcher sets of one adapter."""

    def __init__(
        self,
        channel: WatcherChannel,
        on_enable_final: Hook = None,
        on_disable_final: Hook = None,
        on_enable_intermediate: Hook = None,
        on_disable_intermediate: Hook = None,
    ):
        self.channel = channel
        self._on_enable_final = on_enable_final
        self._on_disable_final = on_disable_final
        self._on_enable_intermediate = on_enable_intermediate
        self._on_disable_intermediate = on_disable_intermediate
        self._final: Dict[tuple, Watcher] = {}
        self._intermediate: Dict[tuple, Watcher] = {}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def final_watchers(self) -> List[Watcher]:
        return list(self._final.values())

    @property
    def intermediate_watchers(self) -> List[Watcher]:
        return list(self._intermediate.values())

    @property
    def has_final_watchers(self) -> bool:
        return bool(self._final)

    @property
    def has_intermediate_watchers(self) -> bool:
        return bool(self._intermediate)

    def is_final(self, service: str, path: str) -> bool:
        return (service, path) in self._final

    def is_intermediate(self, service: str, path: str) -> bool:
        return (service, path) in self._intermediate

    @staticmethod
    def _check(service: str, path: str) -> None:
        if not service:
            raise InvalidArgumentError("service", "empty watcher service")
        if not path or not str(path).startswith("/"):
            raise InvalidArgumentError("path", f"invalid watcher path {path!r}")

    @staticmethod
    def _fire(hook: Hook) -> None:
        if hook is not None:
            hook()

    # ------------------------------------------------------------------
    # Final watchers
    # ------------------------------------------------------------------
    def register_final(self, service: str, path: str) -> Watcher:
        self._check(service, path)
        key = (service, path)
        if key in self._final:
            raise AlreadyExistsError(f"watcher {service}:{path}")

        watcher = Watcher(service, path)
        watcher.watch_id = self.channel.watch_disconnect(watcher, self.watcher_exit)
        was_empty = not self._final
        self._final[key] = watcher
        logger.debug("Thermometer watcher %s registered", path)

        if was_empty:
            self._fire(self._on_enable_final)
        return watcher

    def unregister_final(self, service: str, path: str) -> None:
        self._check(service, path)
        watcher = self._final.get((service, path))
        if watcher is None:
            raise DoesNotExistError(f"watcher {service}:{path}")
        self._remove(watcher)

    def _remove(self, watcher: Watcher) -> None:
        if watcher.key in self._intermediate:
            self._drop_intermediate(watcher.key)

        del self._final[watcher.key]
        if watcher.watch_id is not None:
            self.channel.cancel_watch(watcher.watch_id)
            watcher.watch_id = None
        logger.debug("Thermometer watcher %s unregistered", watcher.path)

        if not self._final:
            self._fire(self._on_disable_final)

    def watcher_exit(self, watcher: Watcher) -> None:
        """Disconnect callback: the watcher's service left the bus."""
        logger.info("Thermometer watcher %s disconnected", watcher.path)
        current = self._final.get(watcher.key)
        if current is not watcher:
            return
        self._remove(watcher)

    # ------------------------------------------------------------------
    # Intermediate watchers
    # ------------------------------------------------------------------
    def register_intermediate(self, service: str, path: str) -> Watcher:
        self._check(service, path)
        key = (service, path)
        watcher = self._final.get(key)
        if watcher is None:
            raise DoesNotExistError(f"watcher {service}:{path}")
        if key in self._intermediate:
            raise AlreadyExistsError(f"intermediate watcher {service}:{path}")

        was_empty = not self._intermediate
        self._intermediate[key] = watcher
        logger.debug("Intermediate measurement enabled for %s", path)

        if was_empty:
            self._fire(self._on_enable_intermediate)
        return watcher

    def unregister_intermediate(self, service: str, path: str) -> None:
        self._check(service, path)
        key = (service, path)
        if key not in self._intermediate:
            raise DoesNotExistError(f"intermediate watcher {service}:{path}")
        self._drop_intermediate(key)

    def _drop_intermediate(self, key) -> None:
        watcher = self._intermediate.pop(key)
        logger.debug("Intermediate measurement disabled for %s", watcher.path)
        if not self._intermediate:
            self._fire(self._on_disable_intermediate)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    def dispatch(self, device_path: str, measurement: Measurement) -> int:
        """Deliver *measurement* to every watcher of its kind.

        Returns the number of watchers the channel accepted the call for.
        """
        audience = self.final_watchers if measurement.is_final else self.intermediate_watchers
        delivered = 0
        for watcher in audience:
            try:
                self.channel.deliver(watcher, device_path, measurement)
            except Exception as exc:
                logger.warning("Delivery to watcher %s:%s failed: %s", watcher.service, watcher.path, exc)
                continue
            delivered += 1

        print_and_log(
            f"[measurement] {device_path} {measurement.kind} "
            f"{measurement.mantissa}e{measurement.exponent} {measurement.unit} -> {delivered} watcher(s)",
            LOG__MEASUREMENT,
        )
        return delivered

    def clear(self) -> None:
        """Forget every watcher without firing the enable/disable hooks."""
        for watcher in self._final.values():
            if watcher.watch_id is not None:
                self.channel.cancel_watch(watcher.watch_id)
                watcher.watch_id = None
        self._intermediate.clear()
        self._final.clear()
