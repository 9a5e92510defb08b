import pytest

from app.core.exceptions import InvalidTransitionError, ValidationError
from app.core.security import AuthorizationError, UserRole
from app.models.appointment import AppointmentStatus as S
from app.scheduling.lifecycle import (
    can_transition, check_transition, ensure_mutable, is_terminal, parse_status
)

class TestParseStatus:

    def test_known_values(self):
        assert parse_status("confirmed") == S.CONFIRMED
        assert parse_status(" NO_SHOW ") == S.NO_SHOW
        assert parse_status(S.COMPLETED) == S.COMPLETED

    @pytest.mark.parametrize("value", ["done", "", "rescheduled", None, 3])
    def test_unknown_values(self, value):
        assert parse_status(value) is None

class TestTransitions:

    @pytest.mark.parametrize("current,target", [
        (S.SCHEDULED, S.CONFIRMED),
        (S.SCHEDULED, S.COMPLETED),
        (S.SCHEDULED, S.NO_SHOW),
        (S.SCHEDULED, S.CANCELLED),
        (S.CONFIRMED, S.COMPLETED),
        (S.CONFIRMED, S.NO_SHOW),
        (S.CONFIRMED, S.CANCELLED),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        check_transition(current, target, UserRole.DOCTOR)

    @pytest.mark.parametrize("current", [S.COMPLETED, S.CANCELLED, S.NO_SHOW])
    def test_terminal_states_accept_nothing(self, current):
        assert is_terminal(current)
        for target in S:
            assert not can_transition(current, target)
            with pytest.raises(InvalidTransitionError):
                check_transition(current, target, UserRole.ADMIN)

    def test_confirmed_cannot_go_back_to_scheduled(self):
        with pytest.raises(InvalidTransitionError):
            check_transition(S.CONFIRMED, S.SCHEDULED, UserRole.DOCTOR)

    def test_recancel_message(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition(S.CANCELLED, S.CANCELLED, UserRole.PATIENT)
        assert exc_info.value.detail == "Appointment is already cancelled"

    def test_cancel_completed_message(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition(S.COMPLETED, S.CANCELLED, UserRole.DOCTOR)
        assert exc_info.value.detail == "Cannot cancel a completed appointment"

    def test_patient_may_cancel(self):
        check_transition(S.SCHEDULED, S.CANCELLED, UserRole.PATIENT)
        check_transition(S.CONFIRMED, S.CANCELLED, UserRole.PATIENT)

    @pytest.mark.parametrize("target", [S.CONFIRMED, S.COMPLETED, S.NO_SHOW])
    def test_patient_may_not_set_other_statuses(self, target):
        with pytest.raises(AuthorizationError):
            check_transition(S.SCHEDULED, target, UserRole.PATIENT)

class TestEnsureMutable:

    @pytest.mark.parametrize("status", [S.SCHEDULED, S.CONFIRMED])
    def test_active_appointments_are_mutable(self, status):
        ensure_mutable(status)

    @pytest.mark.parametrize("status", [S.COMPLETED, S.CANCELLED, S.NO_SHOW])
    def test_terminal_appointments_are_frozen(self, status):
        with pytest.raises(ValidationError) as exc_info:
            ensure_mutable(status)
        assert exc_info.value.status_code == 400
