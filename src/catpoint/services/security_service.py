"""
Catpoint Security Service - alarm status state machine

Manages alarm status transitions:
NO_ALARM → PENDING_ALARM → ALARM, back to NO_ALARM on disarm or when the
camera sees only a cat.

Key rules:
1. Sensor activation escalates one level per activation while armed
2. ALARM is sticky: sensor changes never lower or re-evaluate it
3. Deactivating the last active sensor clears PENDING_ALARM only
4. Disarm always clears; arming resets every sensor to inactive
5. A cat in ARMED_HOME raises ALARM; no cat and no active sensor clears
"""

from contextlib import contextmanager
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Iterator, List, Optional, Set

import structlog

from ..domain.enums import AlarmStatus, ArmingStatus
from ..domain.errors import InvalidArgumentError
from ..domain.models import Sensor
from ..hardware.cat_classifier import CatClassifier
from .repository import SecurityRepository
from .status_listener import StatusListener

logger = structlog.get_logger()


@dataclass
class SecurityServiceConfig:
    """Tunables for SecurityService."""
    # Percent, passed to the classifier unchanged
    cat_confidence_threshold: float = 50.0

    def __post_init__(self):
        if not 0.0 < self.cat_confidence_threshold <= 100.0:
            raise InvalidArgumentError(
                f"cat_confidence_threshold must be in (0, 100], got {self.cat_confidence_threshold}"
            )


class SecurityService:
    """Single authority for alarm and arming status.

    Thread-safe: every public operation holds one re-entrant lock for its
    whole read-modify-write-notify sequence and runs inside a repository
    transaction. Listener callbacks are queued while the operation runs and
    delivered once the transaction has committed, so a failing repository
    or classifier leaves neither persisted state nor notifications behind.
    """

    def __init__(
        self,
        repository: SecurityRepository,
        classifier: CatClassifier,
        config: Optional[SecurityServiceConfig] = None,
    ):
        if repository is None or classifier is None:
            raise InvalidArgumentError("repository and classifier are required")

        self.config = config or SecurityServiceConfig()
        self._repository = repository
        self._classifier = classifier

        self._listeners: Set[StatusListener] = set()
        self._lock = RLock()
        self._depth = 0
        self._deferred: List[Callable[[], None]] = []

        # Last camera verdict, used when arming ARMED_HOME
        self._cat_detected = False

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_status_listener(self, listener: StatusListener) -> None:
        if listener is None:
            raise InvalidArgumentError("listener must not be None")
        with self._lock:
            self._listeners.add(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        with self._lock:
            self._listeners.discard(listener)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_alarm_status(self) -> AlarmStatus:
        with self._lock:
            return self._repository.get_alarm_status()

    def get_arming_status(self) -> ArmingStatus:
        with self._lock:
            return self._repository.get_arming_status()

    def get_sensors(self) -> Set[Sensor]:
        with self._lock:
            return self._repository.get_sensors()

    def get_sensor(self, sensor_id: str) -> Optional[Sensor]:
        with self._lock:
            return self._find_sensor(sensor_id)

    def is_any_sensor_active(self) -> bool:
        with self._lock:
            return self._any_sensor_active()

    @property
    def last_cat_verdict(self) -> bool:
        return self._cat_detected

    # =========================================================================
    # Sensor Registration
    # =========================================================================

    def add_sensor(self, sensor: Sensor) -> None:
        _require_sensor(sensor)
        with self._operation():
            self._repository.add_sensor(sensor)
            logger.info("Sensor added", sensor_id=sensor.sensor_id, name=sensor.name)
            self._broadcast("sensor_status_changed")

    def remove_sensor(self, sensor: Sensor) -> None:
        _require_sensor(sensor)
        with self._operation():
            self._repository.remove_sensor(sensor)
            logger.info("Sensor removed", sensor_id=sensor.sensor_id, name=sensor.name)
            self._broadcast("sensor_status_changed")

    # =========================================================================
    # State Transitions
    # =========================================================================

    def handle_sensor_activated(self) -> None:
        """Escalate one level; ignored while disarmed, absorbed once ALARM."""
        with self._operation():
            if self._repository.get_arming_status() == ArmingStatus.DISARMED:
                logger.debug("Sensor activation ignored while disarmed")
                return

            current = self._repository.get_alarm_status()
            if current == AlarmStatus.NO_ALARM:
                self._set_alarm_status(AlarmStatus.PENDING_ALARM)
            elif current == AlarmStatus.PENDING_ALARM:
                self._set_alarm_status(AlarmStatus.ALARM)

    def handle_sensor_deactivated(self) -> None:
        """Clear PENDING_ALARM once no sensor is active."""
        with self._operation():
            current = self._repository.get_alarm_status()
            if current == AlarmStatus.PENDING_ALARM and not self._any_sensor_active():
                self._set_alarm_status(AlarmStatus.NO_ALARM)

    def change_sensor_activation_status(self, sensor: Sensor, active: bool) -> None:
        """Entry point for every sensor state change.

        The stored sensor decides whether anything changes: the caller's
        object may be stale (arming resets only stored sensors). No-op when
        the stored flag already matches. Otherwise the flag is stored and the
        activation/deactivation rules run, except while ALARM, which only
        records the flag. The caller's ``sensor`` object is brought in line
        with the stored flag once the change has been persisted.

        Raises:
            InvalidArgumentError: sensor is not registered
        """
        _require_sensor(sensor)
        if not isinstance(active, bool):
            raise InvalidArgumentError(f"active must be a bool, got {active!r}")

        with self._operation():
            stored = self._find_sensor(sensor.sensor_id)
            if stored is None:
                raise InvalidArgumentError(f"Unknown sensor: {sensor.sensor_id}")
            if stored.active == active:
                sensor.active = active
                return

            alarm_status = self._repository.get_alarm_status()
            self._repository.update_sensor(stored.model_copy(update={"active": active}))
            self._deferred.append(lambda: setattr(sensor, "active", active))
            logger.info("Sensor activation changed", sensor_id=sensor.sensor_id, active=active)

            if alarm_status != AlarmStatus.ALARM:
                if active:
                    self.handle_sensor_activated()
                else:
                    self.handle_sensor_deactivated()

            self._broadcast("sensor_status_changed")

    def set_arming_status(self, status: ArmingStatus) -> None:
        """Disarm clears the alarm; arming starts from all-inactive sensors."""
        status = _require_arming_status(status)

        with self._operation():
            if status == ArmingStatus.DISARMED:
                self._set_alarm_status(AlarmStatus.NO_ALARM)
            else:
                self._reset_sensors()
                if status == ArmingStatus.ARMED_HOME and self._cat_detected:
                    self._set_alarm_status(AlarmStatus.ALARM)

            self._repository.set_arming_status(status)
            logger.info("Arming status changed", arming_status=status.value)

    def process_image(self, image: Any) -> bool:
        """Classify a camera image and apply the verdict.

        Returns:
            The classifier verdict
        """
        if image is None:
            raise InvalidArgumentError("image must not be None")

        with self._operation():
            cat_present = bool(
                self._classifier.contains_cat(image, self.config.cat_confidence_threshold)
            )
            self.cat_detected(cat_present)
            return cat_present

    def cat_detected(self, cat_present: bool) -> None:
        """Apply a camera verdict. Listeners always hear about it."""
        if not isinstance(cat_present, bool):
            raise InvalidArgumentError(f"cat_present must be a bool, got {cat_present!r}")

        with self._operation():
            if cat_present and self._repository.get_arming_status() == ArmingStatus.ARMED_HOME:
                self._set_alarm_status(AlarmStatus.ALARM)
            elif not cat_present and not self._any_sensor_active():
                self._set_alarm_status(AlarmStatus.NO_ALARM)

            self._deferred.append(lambda: setattr(self, "_cat_detected", cat_present))
            self._broadcast("cat_detected", cat_present)

    # =========================================================================
    # Internal
    # =========================================================================

    @contextmanager
    def _operation(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            self._depth += 1
            try:
                with self._repository.transaction():
                    yield
            except BaseException:
                if outermost:
                    self._deferred = []
                raise
            finally:
                self._depth -= 1

            if outermost:
                deferred, self._deferred = self._deferred, []
                for action in deferred:
                    action()

    def _set_alarm_status(self, status: AlarmStatus) -> None:
        previous = self._repository.get_alarm_status()
        if previous == status:
            return

        self._repository.set_alarm_status(status)
        logger.info("Alarm status changed", from_status=previous.value, to_status=status.value)
        self._broadcast("notify", status)

    def _reset_sensors(self) -> None:
        sensors = self._repository.get_sensors()
        for sensor in sensors:
            self._repository.update_sensor(sensor.model_copy(update={"active": False}))
        if sensors:
            self._broadcast("sensor_status_changed")

    def _find_sensor(self, sensor_id: str) -> Optional[Sensor]:
        for sensor in self._repository.get_sensors():
            if sensor.sensor_id == sensor_id:
                return sensor
        return None

    def _any_sensor_active(self) -> bool:
        return any(sensor.active for sensor in self._repository.get_sensors())

    def _broadcast(self, callback: str, *args: Any) -> None:
        listeners = list(self._listeners)

        def deliver() -> None:
            for listener in listeners:
                try:
                    getattr(listener, callback)(*args)
                except Exception:
                    logger.exception(
                        "Status listener failed",
                        listener=type(listener).__name__,
                        callback=callback,
                    )

        self._deferred.append(deliver)


def _require_sensor(sensor: Sensor) -> None:
    if not isinstance(sensor, Sensor):
        raise InvalidArgumentError(f"Expected a Sensor, got {sensor!r}")


def _require_arming_status(status: ArmingStatus) -> ArmingStatus:
    if isinstance(status, ArmingStatus):
        return status
    try:
        return ArmingStatus(status)
    except ValueError:
        raise InvalidArgumentError(f"Unknown arming status: {status!r}") from None
