from datetime import time

from fastapi import status

from app.core.security import UserRole
from tests.conftest import upcoming

DOCTORS_URL = "/api/v1/doctors"

class TestDoctorDirectory:

    def test_lists_only_bookable_doctors(self, client, make_user, make_doctor, auth_headers):
        patient = make_user(UserRole.PATIENT)
        bookable = make_doctor(duration_minutes=45)
        make_doctor(is_available=False)
        make_doctor(user_active=False)

        response = client.get(DOCTORS_URL, headers=auth_headers(patient))

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["message"] == "Doctors retrieved successfully"
        assert body["data"]["count"] == 1

        listed = body["data"]["doctors"][0]
        assert listed["id"] == bookable.id
        assert listed["durationMinutes"] == 45
        assert listed["consultationFee"] == 75.0
        assert listed["isAvailable"] is True

    def test_duration_falls_back_to_default(self, client, make_user, make_doctor, auth_headers):
        patient = make_user(UserRole.PATIENT)
        make_doctor(duration_minutes=None)

        doctors = client.get(DOCTORS_URL, headers=auth_headers(patient)).json()["data"]["doctors"]

        assert doctors[0]["durationMinutes"] == 30
        assert "specialtyName" not in doctors[0] or doctors[0]["specialtyName"] is None

    def test_requires_authentication(self, client):
        response = client.get(DOCTORS_URL)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

class TestTimeSlots:

    def test_lists_weekly_template(self, client, make_user, make_doctor, auth_headers):
        patient = make_user(UserRole.PATIENT)
        doctor = make_doctor(slots=[(3, time(13), time(17)), (1, time(9), time(12))])

        response = client.get(f"{DOCTORS_URL}/{doctor.id}/time-slots", headers=auth_headers(patient))

        slots = response.json()["data"]["timeSlots"]
        assert [(s["dayOfWeek"], s["startTime"], s["endTime"]) for s in slots] == [
            (1, "09:00", "12:00"),
            (3, "13:00", "17:00"),
        ]

    def test_unknown_doctor(self, client, make_user, auth_headers):
        patient = make_user(UserRole.PATIENT)

        response = client.get(f"{DOCTORS_URL}/9999/time-slots", headers=auth_headers(patient))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_doctor_adds_own_slot(self, client, make_doctor, auth_headers):
        doctor = make_doctor()

        response = client.post(
            f"{DOCTORS_URL}/{doctor.id}/time-slots",
            json={"dayOfWeek": 2, "startTime": "08:00", "endTime": "12:00"},
            headers=auth_headers(doctor.user)
        )

        assert response.status_code == status.HTTP_201_CREATED
        slot = response.json()["data"]["timeSlot"]
        assert (slot["dayOfWeek"], slot["startTime"], slot["endTime"]) == (2, "08:00", "12:00")

    def test_new_slot_makes_day_bookable(self, client, make_user, make_doctor, auth_headers):
        doctor = make_doctor()
        patient = make_user(UserRole.PATIENT)
        tuesday = upcoming(2)
        booking = {"doctorId": doctor.id, "appointmentDate": tuesday.isoformat(), "startTime": "10:00"}

        assert client.post(
            "/api/v1/appointments", json=booking, headers=auth_headers(patient)
        ).status_code == status.HTTP_400_BAD_REQUEST

        client.post(
            f"{DOCTORS_URL}/{doctor.id}/time-slots",
            json={"dayOfWeek": 2, "startTime": "09:00", "endTime": "17:00"},
            headers=auth_headers(doctor.user)
        )

        assert client.post(
            "/api/v1/appointments", json=booking, headers=auth_headers(patient)
        ).status_code == status.HTTP_201_CREATED

    def test_overlapping_slot_conflicts(self, client, make_doctor, auth_headers):
        doctor = make_doctor()

        response = client.post(
            f"{DOCTORS_URL}/{doctor.id}/time-slots",
            json={"dayOfWeek": 1, "startTime": "16:00", "endTime": "18:00"},
            headers=auth_headers(doctor.user)
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_touching_slot_is_allowed(self, client, make_doctor, auth_headers):
        doctor = make_doctor()

        response = client.post(
            f"{DOCTORS_URL}/{doctor.id}/time-slots",
            json={"dayOfWeek": 1, "startTime": "17:00", "endTime": "19:00"},
            headers=auth_headers(doctor.user)
        )

        assert response.status_code == status.HTTP_201_CREATED

    def test_reversed_window_is_rejected(self, client, make_doctor, auth_headers):
        doctor = make_doctor()

        response = client.post(
            f"{DOCTORS_URL}/{doctor.id}/time-slots",
            json={"dayOfWeek": 2, "startTime": "12:00", "endTime": "09:00"},
            headers=auth_headers(doctor.user)
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "validation_error"

    def test_day_of_week_out_of_range(self, client, make_doctor, auth_headers):
        doctor = make_doctor()

        response = client.post(
            f"{DOCTORS_URL}/{doctor.id}/time-slots",
            json={"dayOfWeek": 7, "startTime": "09:00", "endTime": "12:00"},
            headers=auth_headers(doctor.user)
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["field"] == "dayOfWeek"

    def test_other_doctor_cannot_edit_schedule(self, client, make_doctor, auth_headers):
        doctor = make_doctor()
        other = make_doctor()

        response = client.post(
            f"{DOCTORS_URL}/{doctor.id}/time-slots",
            json={"dayOfWeek": 2, "startTime": "09:00", "endTime": "12:00"},
            headers=auth_headers(other.user)
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["message"] == "You can only manage your own schedule"

    def test_admin_removes_slot(self, client, make_user, make_doctor, auth_headers):
        admin = make_user(UserRole.ADMIN)
        doctor = make_doctor()
        slot_id = doctor.time_slots[0].id

        response = client.delete(f"{DOCTORS_URL}/{doctor.id}/time-slots/{slot_id}", headers=auth_headers(admin))
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Time slot removed successfully"

        listed = client.get(f"{DOCTORS_URL}/{doctor.id}/time-slots", headers=auth_headers(admin)).json()
        assert listed["data"]["count"] == 0

    def test_remove_slot_of_another_doctor(self, client, make_doctor, auth_headers):
        doctor = make_doctor()
        other = make_doctor()

        response = client.delete(
            f"{DOCTORS_URL}/{doctor.id}/time-slots/{other.time_slots[0].id}",
            headers=auth_headers(doctor.user)
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

class TestAvailabilityToggle:

    def test_doctor_goes_unavailable(self, client, make_user, make_doctor, auth_headers):
        doctor = make_doctor()
        patient = make_user(UserRole.PATIENT)

        response = client.patch(
            f"{DOCTORS_URL}/{doctor.id}/availability",
            json={"isAvailable": False},
            headers=auth_headers(doctor.user)
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["doctor"]["isAvailable"] is False

        booking = {"doctorId": doctor.id, "appointmentDate": upcoming(1).isoformat(), "startTime": "09:00"}
        response = client.post("/api/v1/appointments", json=booking, headers=auth_headers(patient))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_patient_cannot_toggle(self, client, make_user, make_doctor, auth_headers):
        doctor = make_doctor()
        patient = make_user(UserRole.PATIENT)

        response = client.patch(
            f"{DOCTORS_URL}/{doctor.id}/availability",
            json={"isAvailable": False},
            headers=auth_headers(patient)
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
