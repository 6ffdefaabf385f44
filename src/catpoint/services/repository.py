"""
Security Repository - 状态持久化

Stores the alarm status, arming status and sensor set:
- SecurityRepository: abstract contract consumed by SecurityService
- InMemorySecurityRepository: process-local state (default, tests)
- JsonFileSecurityRepository: same state mirrored to one JSON file

Every public SecurityService operation runs inside ``transaction()``.
The JSON repository writes the file once when the outermost transaction
exits and rolls its memory back if that write fails.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Set

import structlog
from pydantic import ValidationError

from ..domain.enums import AlarmStatus, ArmingStatus
from ..domain.errors import RepositoryError
from ..domain.models import RepositorySnapshot, Sensor

logger = structlog.get_logger()


# =============================================================================
# Repository 抽象基类
# =============================================================================

class SecurityRepository(ABC):
    """Persistence contract for the security core."""

    @abstractmethod
    def get_alarm_status(self) -> AlarmStatus:
        pass

    @abstractmethod
    def set_alarm_status(self, status: AlarmStatus) -> None:
        pass

    @abstractmethod
    def get_arming_status(self) -> ArmingStatus:
        pass

    @abstractmethod
    def set_arming_status(self, status: ArmingStatus) -> None:
        pass

    @abstractmethod
    def get_sensors(self) -> Set[Sensor]:
        """Return a copy of the sensor set; mutate through update_sensor."""
        pass

    @abstractmethod
    def add_sensor(self, sensor: Sensor) -> None:
        """Add a sensor, replacing any stored sensor with the same id."""
        pass

    @abstractmethod
    def remove_sensor(self, sensor: Sensor) -> None:
        pass

    @abstractmethod
    def update_sensor(self, sensor: Sensor) -> None:
        """Store the new state of an already registered sensor."""
        pass

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes into one unit. No-op by default."""
        yield


# =============================================================================
# In-memory Repository
# =============================================================================

class InMemorySecurityRepository(SecurityRepository):
    """Repository holding state in the current process only."""

    def __init__(self, snapshot: Optional[RepositorySnapshot] = None):
        snapshot = snapshot or RepositorySnapshot()
        self._alarm_status = snapshot.alarm_status
        self._arming_status = snapshot.arming_status
        self._sensors: Dict[str, Sensor] = {
            s.sensor_id: s.model_copy() for s in snapshot.sensors
        }

    def get_alarm_status(self) -> AlarmStatus:
        return self._alarm_status

    def set_alarm_status(self, status: AlarmStatus) -> None:
        self._alarm_status = status
        self._changed()

    def get_arming_status(self) -> ArmingStatus:
        return self._arming_status

    def set_arming_status(self, status: ArmingStatus) -> None:
        self._arming_status = status
        self._changed()

    def get_sensors(self) -> Set[Sensor]:
        return {s.model_copy() for s in self._sensors.values()}

    def add_sensor(self, sensor: Sensor) -> None:
        self._sensors[sensor.sensor_id] = sensor.model_copy()
        self._changed()

    def remove_sensor(self, sensor: Sensor) -> None:
        if self._sensors.pop(sensor.sensor_id, None) is not None:
            self._changed()

    def update_sensor(self, sensor: Sensor) -> None:
        if sensor.sensor_id not in self._sensors:
            raise RepositoryError(f"Unknown sensor: {sensor.sensor_id}")
        self._sensors[sensor.sensor_id] = sensor.model_copy()
        self._changed()

    def snapshot(self) -> RepositorySnapshot:
        return RepositorySnapshot(
            alarm_status=self._alarm_status,
            arming_status=self._arming_status,
            sensors=sorted(self._sensors.values()),
        )

    def _restore(self, snapshot: RepositorySnapshot) -> None:
        self._alarm_status = snapshot.alarm_status
        self._arming_status = snapshot.arming_status
        self._sensors = {s.sensor_id: s for s in snapshot.sensors}

    def _changed(self) -> None:
        """Hook called after every write."""
        pass


# =============================================================================
# JSON File Repository
# =============================================================================

class JsonFileSecurityRepository(InMemorySecurityRepository):
    """
    JSON 文件持久化

    特性:
    - 单文件快照 (RepositorySnapshot)
    - 写入临时文件后替换，避免半写文件
    - 事务内只写一次，失败时回滚内存状态
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._saved = self._load()
        super().__init__(self._saved)
        self._depth = 0
        self._dirty = False

    def _load(self) -> RepositorySnapshot:
        if not self.path.exists():
            logger.info("Repository file not found, starting empty", path=str(self.path))
            return RepositorySnapshot()

        try:
            return RepositorySnapshot.model_validate_json(
                self.path.read_text(encoding='utf-8')
            )
        except (OSError, ValidationError) as e:
            raise RepositoryError(f"Cannot load {self.path}: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth == 0:
            self._dirty = False
        self._depth += 1
        try:
            yield
            if self._depth == 1 and self._dirty:
                self._save()
        except BaseException:
            if self._depth == 1:
                self._rollback()
            raise
        finally:
            self._depth -= 1

    def _changed(self) -> None:
        if self._depth > 0:
            self._dirty = True
            return

        try:
            self._save()
        except RepositoryError:
            self._rollback()
            raise

    def _rollback(self) -> None:
        # Memory returns to the last state that reached the file
        self._restore(self._saved)
        self._dirty = False
        logger.warning("Repository changes rolled back", path=str(self.path))

    def _restore(self, snapshot: RepositorySnapshot) -> None:
        super()._restore(snapshot.model_copy(deep=True))

    def _save(self) -> None:
        snapshot = self.snapshot()
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(snapshot.model_dump_json(indent=2), encoding='utf-8')
            tmp_path.replace(self.path)
        except OSError as e:
            raise RepositoryError(f"Cannot write {self.path}: {e}") from e
        self._saved = snapshot.model_copy(deep=True)
        self._dirty = False
