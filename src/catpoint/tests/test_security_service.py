"""
Tests for SecurityService - 报警状态机测试
"""

import threading
from unittest.mock import MagicMock, Mock, call

import numpy as np
import pytest

from catpoint.domain.enums import AlarmStatus, ArmingStatus, SensorType
from catpoint.domain.errors import ClassifierError, InvalidArgumentError, RepositoryError
from catpoint.domain.models import Sensor
from catpoint.hardware.cat_classifier import CatClassifier
from catpoint.services.repository import InMemorySecurityRepository, SecurityRepository
from catpoint.services.security_service import SecurityService, SecurityServiceConfig
from catpoint.services.status_listener import StatusListener


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def repository():
    """Mock repository: armed home, no alarm, no sensors"""
    repo = MagicMock(spec=SecurityRepository)
    repo.get_arming_status.return_value = ArmingStatus.ARMED_HOME
    repo.get_alarm_status.return_value = AlarmStatus.NO_ALARM
    repo.get_sensors.return_value = set()
    return repo


@pytest.fixture
def classifier():
    return MagicMock(spec=CatClassifier)


@pytest.fixture
def service(repository, classifier):
    return SecurityService(repository, classifier)


@pytest.fixture
def listener():
    return Mock(spec=StatusListener)


@pytest.fixture
def image():
    return np.zeros((32, 32, 3), dtype=np.uint8)


def make_sensor(name="Front Door", active=False, sensor_type=SensorType.DOOR):
    return Sensor(name=name, sensor_type=sensor_type, active=active)


def register(repository, *sensors):
    """Back the mocked repository's sensor calls with a dict of stored copies"""
    stored = {s.sensor_id: s.model_copy() for s in sensors}
    repository.get_sensors.side_effect = lambda: {s.model_copy() for s in stored.values()}
    repository.update_sensor.side_effect = lambda s: stored.__setitem__(s.sensor_id, s.model_copy())
    return stored


# =============================================================================
# Sensor Activation
# =============================================================================

class TestSensorActivation:
    """Activation / deactivation rules against a mocked repository"""

    def test_armed_activation_from_no_alarm_goes_pending(self, service, repository):
        service.handle_sensor_activated()

        repository.set_alarm_status.assert_called_once_with(AlarmStatus.PENDING_ALARM)

    def test_armed_activation_from_pending_goes_alarm(self, service, repository):
        repository.get_alarm_status.return_value = AlarmStatus.PENDING_ALARM

        service.handle_sensor_activated()

        repository.set_alarm_status.assert_called_once_with(AlarmStatus.ALARM)

    def test_activation_absorbed_in_alarm(self, service, repository):
        repository.get_alarm_status.return_value = AlarmStatus.ALARM

        service.handle_sensor_activated()

        repository.set_alarm_status.assert_not_called()

    @pytest.mark.parametrize("arming", [ArmingStatus.ARMED_HOME, ArmingStatus.ARMED_AWAY])
    def test_both_armed_modes_escalate(self, service, repository, arming):
        repository.get_arming_status.return_value = arming

        service.handle_sensor_activated()

        repository.set_alarm_status.assert_called_once_with(AlarmStatus.PENDING_ALARM)

    def test_activation_ignored_while_disarmed(self, service, repository):
        repository.get_arming_status.return_value = ArmingStatus.DISARMED

        service.handle_sensor_activated()

        repository.set_alarm_status.assert_not_called()

    def test_pending_and_all_sensors_inactive_goes_no_alarm(self, service, repository):
        repository.get_alarm_status.return_value = AlarmStatus.PENDING_ALARM
        repository.get_sensors.return_value = {make_sensor(active=False)}

        service.handle_sensor_deactivated()

        repository.set_alarm_status.assert_called_once_with(AlarmStatus.NO_ALARM)

    def test_pending_kept_while_another_sensor_active(self, service, repository):
        repository.get_alarm_status.return_value = AlarmStatus.PENDING_ALARM
        repository.get_sensors.return_value = {make_sensor(active=True)}

        service.handle_sensor_deactivated()

        repository.set_alarm_status.assert_not_called()

    @pytest.mark.parametrize("status", [AlarmStatus.ALARM, AlarmStatus.NO_ALARM])
    def test_deactivation_leaves_other_states(self, service, repository, status):
        repository.get_alarm_status.return_value = status

        service.handle_sensor_deactivated()

        repository.set_alarm_status.assert_not_called()


class TestChangeSensorActivationStatus:
    """changeSensorActivationStatus entry point"""

    @pytest.mark.parametrize("active", [True, False])
    def test_alarm_is_sticky_but_flag_updates(self, service, repository, active):
        repository.get_alarm_status.return_value = AlarmStatus.ALARM
        sensor = make_sensor(active=not active)
        register(repository, sensor)

        service.change_sensor_activation_status(sensor, active)

        repository.set_alarm_status.assert_not_called()
        stored = repository.update_sensor.call_args.args[0]
        assert stored.sensor_id == sensor.sensor_id
        assert stored.active is active
        assert sensor.active is active

    def test_second_sensor_while_pending_goes_alarm(self, service, repository):
        repository.get_alarm_status.return_value = AlarmStatus.PENDING_ALARM
        sensor = make_sensor(active=False)
        register(repository, sensor)

        service.change_sensor_activation_status(sensor, True)

        repository.set_alarm_status.assert_called_once_with(AlarmStatus.ALARM)

    def test_deactivating_last_sensor_while_pending_goes_no_alarm(self, service, repository):
        repository.get_alarm_status.return_value = AlarmStatus.PENDING_ALARM
        sensor = make_sensor(active=True)
        register(repository, sensor)

        service.change_sensor_activation_status(sensor, False)

        repository.set_alarm_status.assert_called_once_with(AlarmStatus.NO_ALARM)

    @pytest.mark.parametrize("active", [True, False])
    def test_same_value_is_noop(self, service, repository, listener, active):
        sensor = make_sensor(active=active)
        register(repository, sensor)
        service.add_status_listener(listener)

        service.change_sensor_activation_status(sensor, active)

        repository.update_sensor.assert_not_called()
        repository.set_alarm_status.assert_not_called()
        listener.notify.assert_not_called()
        listener.sensor_status_changed.assert_not_called()

    def test_stored_flag_decides_noop(self, service, repository):
        """A stale caller object must not re-run escalation"""
        stored = make_sensor(active=True)
        register(repository, stored)
        stale = stored.model_copy(update={"active": False})

        service.change_sensor_activation_status(stale, True)

        repository.update_sensor.assert_not_called()
        repository.set_alarm_status.assert_not_called()
        assert stale.active is True

    def test_activation_while_disarmed_records_flag_only(self, service, repository):
        repository.get_arming_status.return_value = ArmingStatus.DISARMED
        sensor = make_sensor(active=False)
        register(repository, sensor)

        service.change_sensor_activation_status(sensor, True)

        repository.update_sensor.assert_called_once()
        repository.set_alarm_status.assert_not_called()
        assert sensor.active is True

    def test_listener_told_sensor_changed(self, service, repository, listener):
        sensor = make_sensor(active=False)
        register(repository, sensor)
        service.add_status_listener(listener)

        service.change_sensor_activation_status(sensor, True)

        listener.sensor_status_changed.assert_called_once_with()


# =============================================================================
# Arming
# =============================================================================

class TestArmingStatus:
    """setArmingStatus"""

    @pytest.mark.parametrize("status", list(AlarmStatus))
    def test_disarm_always_no_alarm(self, service, repository, status):
        repository.get_alarm_status.return_value = status

        service.set_arming_status(ArmingStatus.DISARMED)

        if status != AlarmStatus.NO_ALARM:
            repository.set_alarm_status.assert_called_once_with(AlarmStatus.NO_ALARM)
        repository.set_arming_status.assert_called_once_with(ArmingStatus.DISARMED)

    @pytest.mark.parametrize("arming", [ArmingStatus.ARMED_HOME, ArmingStatus.ARMED_AWAY])
    def test_arming_resets_all_sensors(self, service, repository, arming):
        sensors = {make_sensor("Door", active=True), make_sensor("Window", active=True)}
        repository.get_sensors.return_value = sensors

        service.set_arming_status(arming)

        stored = [c.args[0] for c in repository.update_sensor.call_args_list]
        assert {s.sensor_id for s in stored} == {s.sensor_id for s in sensors}
        assert all(s.active is False for s in stored)
        repository.set_arming_status.assert_called_once_with(arming)

    def test_arming_does_not_evaluate_alarm_for_reset(self, service, repository):
        repository.get_alarm_status.return_value = AlarmStatus.PENDING_ALARM
        repository.get_sensors.return_value = {make_sensor(active=True)}

        service.set_arming_status(ArmingStatus.ARMED_AWAY)

        repository.set_alarm_status.assert_not_called()

    def test_arming_home_after_cat_seen_goes_alarm(self, service, repository):
        repository.get_arming_status.return_value = ArmingStatus.DISARMED
        service.cat_detected(True)
        repository.set_alarm_status.assert_not_called()

        service.set_arming_status(ArmingStatus.ARMED_HOME)

        repository.set_alarm_status.assert_called_once_with(AlarmStatus.ALARM)

    def test_arming_away_after_cat_seen_stays(self, service, repository):
        repository.get_arming_status.return_value = ArmingStatus.DISARMED
        service.cat_detected(True)

        service.set_arming_status(ArmingStatus.ARMED_AWAY)

        repository.set_alarm_status.assert_not_called()

    def test_string_value_accepted(self, service, repository):
        service.set_arming_status("armed_away")

        repository.set_arming_status.assert_called_once_with(ArmingStatus.ARMED_AWAY)


# =============================================================================
# Camera / Cat Detection
# =============================================================================

class TestCatDetection:
    """processImage / catDetected"""

    def test_cat_while_armed_home_goes_alarm(self, service, repository, classifier, image):
        classifier.contains_cat.return_value = True

        assert service.process_image(image) is True

        classifier.contains_cat.assert_called_once_with(image, 50.0)
        repository.set_alarm_status.assert_called_once_with(AlarmStatus.ALARM)

    def test_no_cat_and_no_active_sensor_goes_no_alarm(self, service, repository, classifier, image):
        classifier.contains_cat.return_value = False
        repository.get_alarm_status.return_value = AlarmStatus.PENDING_ALARM

        assert service.process_image(image) is False

        repository.set_alarm_status.assert_called_once_with(AlarmStatus.NO_ALARM)

    def test_no_cat_with_active_sensor_unchanged(self, service, repository):
        repository.get_alarm_status.return_value = AlarmStatus.PENDING_ALARM
        repository.get_sensors.return_value = {make_sensor(active=True)}

        service.cat_detected(False)

        repository.set_alarm_status.assert_not_called()

    def test_cat_while_armed_away_unchanged(self, service, repository):
        repository.get_arming_status.return_value = ArmingStatus.ARMED_AWAY

        service.cat_detected(True)

        repository.set_alarm_status.assert_not_called()

    def test_configured_threshold_passed_through(self, repository, classifier, image):
        service = SecurityService(
            repository, classifier, SecurityServiceConfig(cat_confidence_threshold=75.0)
        )
        classifier.contains_cat.return_value = False

        service.process_image(image)

        classifier.contains_cat.assert_called_once_with(image, 75.0)

    def test_listener_always_told_about_verdict(self, service, repository, listener):
        repository.get_arming_status.return_value = ArmingStatus.ARMED_AWAY
        service.add_status_listener(listener)

        service.cat_detected(True)

        listener.cat_detected.assert_called_once_with(True)
        listener.notify.assert_not_called()
        assert service.last_cat_verdict is True

    def test_classifier_failure_propagates(self, service, repository, classifier, listener, image):
        classifier.contains_cat.side_effect = ClassifierError("service unavailable")
        service.add_status_listener(listener)

        with pytest.raises(ClassifierError, match="service unavailable"):
            service.process_image(image)

        repository.set_alarm_status.assert_not_called()
        listener.cat_detected.assert_not_called()


# =============================================================================
# Sensors & Listeners
# =============================================================================

class TestRegistration:
    """Sensor and listener registration"""

    def test_add_sensor_delegates(self, service, repository):
        sensor = make_sensor()

        service.add_sensor(sensor)

        repository.add_sensor.assert_called_once_with(sensor)
        repository.set_alarm_status.assert_not_called()

    def test_remove_sensor_delegates(self, service, repository):
        sensor = make_sensor()

        service.remove_sensor(sensor)

        repository.remove_sensor.assert_called_once_with(sensor)

    def test_is_any_sensor_active(self, service, repository):
        repository.get_sensors.return_value = {make_sensor("A"), make_sensor("B", active=True)}
        assert service.is_any_sensor_active() is True

        repository.get_sensors.return_value = {make_sensor("A")}
        assert service.is_any_sensor_active() is False

    def test_listener_notified_once_per_change(self, service, listener):
        service.add_status_listener(listener)
        service.add_status_listener(listener)

        service.handle_sensor_activated()

        listener.notify.assert_called_once_with(AlarmStatus.PENDING_ALARM)
        assert service.listener_count == 1

    def test_removed_listener_not_notified(self, service, listener):
        service.add_status_listener(listener)
        service.remove_status_listener(listener)

        service.handle_sensor_activated()

        listener.notify.assert_not_called()
        assert service.listener_count == 0

    def test_unchanged_status_not_notified(self, service, repository, listener):
        repository.get_arming_status.return_value = ArmingStatus.DISARMED
        service.add_status_listener(listener)

        service.set_arming_status(ArmingStatus.DISARMED)

        repository.set_alarm_status.assert_not_called()
        listener.notify.assert_not_called()

    def test_failing_listener_does_not_block_others(self, service):
        broken = Mock(spec=StatusListener)
        broken.notify.side_effect = RuntimeError("display gone")
        healthy = Mock(spec=StatusListener)
        service.add_status_listener(broken)
        service.add_status_listener(healthy)

        service.handle_sensor_activated()

        healthy.notify.assert_called_once_with(AlarmStatus.PENDING_ALARM)

    def test_repository_failure_propagates_without_notification(self, service, repository, listener):
        repository.set_alarm_status.side_effect = RepositoryError("disk full")
        service.add_status_listener(listener)

        with pytest.raises(RepositoryError):
            service.handle_sensor_activated()

        listener.notify.assert_not_called()


# =============================================================================
# Invalid Arguments
# =============================================================================

class TestInvalidArguments:
    """Bad arguments fail before anything is touched"""

    def test_none_sensor(self, service, repository):
        with pytest.raises(InvalidArgumentError):
            service.change_sensor_activation_status(None, True)
        with pytest.raises(InvalidArgumentError):
            service.add_sensor(None)
        repository.update_sensor.assert_not_called()
        repository.add_sensor.assert_not_called()

    def test_unregistered_sensor(self, service, repository, listener):
        service.add_status_listener(listener)

        with pytest.raises(InvalidArgumentError, match="Unknown sensor"):
            service.change_sensor_activation_status(make_sensor("Ghost"), True)

        repository.update_sensor.assert_not_called()
        repository.set_alarm_status.assert_not_called()
        listener.sensor_status_changed.assert_not_called()

    def test_non_bool_activation(self, service, repository):
        with pytest.raises(InvalidArgumentError):
            service.change_sensor_activation_status(make_sensor(), "yes")
        repository.update_sensor.assert_not_called()

    @pytest.mark.parametrize("status", ["armed_night", None, AlarmStatus.ALARM, 3])
    def test_unknown_arming_status(self, service, repository, status):
        with pytest.raises(InvalidArgumentError):
            service.set_arming_status(status)
        repository.set_arming_status.assert_not_called()

    def test_none_image(self, service, classifier):
        with pytest.raises(InvalidArgumentError):
            service.process_image(None)
        classifier.contains_cat.assert_not_called()

    def test_non_bool_cat_verdict(self, service):
        with pytest.raises(InvalidArgumentError):
            service.cat_detected(1)

    def test_threshold_out_of_range(self):
        with pytest.raises(InvalidArgumentError):
            SecurityServiceConfig(cat_confidence_threshold=0.0)
        with pytest.raises(InvalidArgumentError):
            SecurityServiceConfig(cat_confidence_threshold=150.0)

    def test_invalid_argument_is_value_error(self, service):
        with pytest.raises(ValueError):
            service.set_arming_status("bogus")


# =============================================================================
# Scenarios (in-memory repository)
# =============================================================================

class TestScenarios:
    """End-to-end sequences with real repository state"""

    @pytest.fixture
    def memory_service(self, classifier):
        return SecurityService(InMemorySecurityRepository(), classifier)

    def test_escalation_and_stickiness(self, memory_service, listener):
        door, window = make_sensor("Door"), make_sensor("Window", sensor_type=SensorType.WINDOW)
        memory_service.add_sensor(door)
        memory_service.add_sensor(window)
        memory_service.set_arming_status(ArmingStatus.ARMED_HOME)
        memory_service.add_status_listener(listener)

        memory_service.change_sensor_activation_status(door, True)
        assert memory_service.get_alarm_status() == AlarmStatus.PENDING_ALARM

        memory_service.change_sensor_activation_status(window, True)
        assert memory_service.get_alarm_status() == AlarmStatus.ALARM

        memory_service.change_sensor_activation_status(door, False)
        memory_service.change_sensor_activation_status(window, False)
        assert memory_service.get_alarm_status() == AlarmStatus.ALARM
        assert memory_service.is_any_sensor_active() is False

        memory_service.set_arming_status(ArmingStatus.DISARMED)
        assert memory_service.get_alarm_status() == AlarmStatus.NO_ALARM

        assert listener.notify.call_args_list == [
            call(AlarmStatus.PENDING_ALARM),
            call(AlarmStatus.ALARM),
            call(AlarmStatus.NO_ALARM),
        ]

    def test_pending_cleared_by_last_deactivation(self, memory_service):
        door = make_sensor("Door")
        memory_service.add_sensor(door)
        memory_service.set_arming_status(ArmingStatus.ARMED_AWAY)

        memory_service.change_sensor_activation_status(door, True)
        memory_service.change_sensor_activation_status(door, False)

        assert memory_service.get_alarm_status() == AlarmStatus.NO_ALARM

    def test_arming_clears_activity_recorded_while_disarmed(self, memory_service):
        door = make_sensor("Door")
        memory_service.add_sensor(door)
        memory_service.change_sensor_activation_status(door, True)
        assert memory_service.get_alarm_status() == AlarmStatus.NO_ALARM
        assert memory_service.is_any_sensor_active() is True

        memory_service.set_arming_status(ArmingStatus.ARMED_HOME)

        assert memory_service.is_any_sensor_active() is False
        assert memory_service.get_alarm_status() == AlarmStatus.NO_ALARM

        # door still reads active=True; the stored sensor was reset
        memory_service.change_sensor_activation_status(door, True)

        assert memory_service.get_sensor(door.sensor_id).active is True
        assert memory_service.get_alarm_status() == AlarmStatus.PENDING_ALARM
        assert door.active is True

    def test_unregistered_sensor_rejected(self, memory_service):
        memory_service.set_arming_status(ArmingStatus.ARMED_AWAY)

        with pytest.raises(InvalidArgumentError):
            memory_service.change_sensor_activation_status(make_sensor("Ghost"), True)

        assert memory_service.get_alarm_status() == AlarmStatus.NO_ALARM
        assert memory_service.get_sensors() == set()

    def test_cat_then_no_cat(self, memory_service):
        memory_service.set_arming_status(ArmingStatus.ARMED_HOME)

        memory_service.cat_detected(True)
        assert memory_service.get_alarm_status() == AlarmStatus.ALARM

        memory_service.cat_detected(False)
        assert memory_service.get_alarm_status() == AlarmStatus.NO_ALARM

    def test_concurrent_activations_keep_escalation(self, memory_service, listener):
        sensors = [make_sensor(f"Sensor {i}") for i in range(8)]
        for sensor in sensors:
            memory_service.add_sensor(sensor)
        memory_service.set_arming_status(ArmingStatus.ARMED_AWAY)
        memory_service.add_status_listener(listener)

        threads = [
            threading.Thread(target=memory_service.change_sensor_activation_status, args=(s, True))
            for s in sensors
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert memory_service.get_alarm_status() == AlarmStatus.ALARM
        assert listener.notify.call_args_list == [
            call(AlarmStatus.PENDING_ALARM),
            call(AlarmStatus.ALARM),
        ]
