"""Tests for the availability view and offered-slot calculation."""

import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from redis.exceptions import RedisError

from medislot.models.tables import Availability
from medislot.services.reservations import NotFound
from medislot.services.slots import calculate_day_slots, get_doctor_availability, get_offered_slots
from medislot.services.slots.calculator import parse_time_slots

from tests.conftest import DAY, HOME_SLOTS, NOW, VIDEO_SLOTS


def _availability(session_factory, doctor_id, config, now, **kwargs):
    with session_factory() as db:
        return get_doctor_availability(db, doctor_id, config, now, **kwargs)


class TestGetDoctorAvailability:
    def test_free_days(self, session_factory, config, doctor_id):
        days = _availability(session_factory, doctor_id, config, NOW)

        assert [(d["date"], d["type"]) for d in days] == [(DAY, "home-visit"), (DAY, "video")]
        video = days[1]
        assert video["time_slots"] == VIDEO_SLOTS
        assert video["booked_slots"] == []
        assert video["held_slots"] == []
        assert video["day_of_week"] == "Tuesday"
        assert video["is_available"] is True

    def test_type_filter(self, session_factory, config, doctor_id):
        days = _availability(session_factory, doctor_id, config, NOW, appointment_type="home-visit")
        assert [d["time_slots"] for d in days] == [HOME_SLOTS]

    def test_held_and_booked(self, manager, session_factory, config, doctor_id):
        hold = manager.block_slot(doctor_id, DAY, "10:00", "patient-1")
        manager.confirm_booking(hold.id, "patient-1")
        manager.block_slot(doctor_id, DAY, "10:30", "patient-2")

        video = _availability(session_factory, doctor_id, config, NOW, appointment_type="video")[0]
        assert video["time_slots"] == ["11:00"]
        assert video["booked_slots"] == ["10:00"]
        assert video["held_slots"] == ["10:30"]

    def test_expired_hold_reported_free(self, manager, session_factory, config, doctor_id):
        """Lazy expiry on read: no sweep needed for the slot to show as free."""
        manager.block_slot(doctor_id, DAY, "10:30", "patient-2")
        later = NOW + timedelta(minutes=10)

        video = _availability(session_factory, doctor_id, config, later, appointment_type="video")[0]
        assert "10:30" in video["time_slots"]
        assert video["held_slots"] == []

    def test_booking_of_other_type_blocks_time(self, manager, session_factory, config, doctor_id):
        with session_factory() as db:
            row = db.query(Availability).filter_by(doctor_id=doctor_id, type="home-visit").one()
            row.time_slots = json.dumps(["10:00", "14:00"])
            db.commit()
        manager.admin_book(doctor_id, DAY, "10:00", "patient-1", "video")

        home = _availability(session_factory, doctor_id, config, NOW, appointment_type="home-visit")[0]
        assert home["time_slots"] == ["14:00"]
        # booked_slots only lists the day's own type
        assert home["booked_slots"] == []

    def test_booked_day_without_schedule_is_shown(self, manager, session_factory, config, doctor_id):
        other_day = DAY + timedelta(days=3)
        manager.admin_book(doctor_id, other_day, "09:00", "patient-1")

        days = _availability(session_factory, doctor_id, config, NOW, appointment_type="video")
        booked_day = [d for d in days if d["date"] == other_day][0]
        assert booked_day["time_slots"] == []
        assert booked_day["booked_slots"] == ["09:00"]
        assert booked_day["is_available"] is False

    def test_for_patient_hides_lead_time_and_full_days(self, session_factory, config, doctor_id):
        with session_factory() as db:
            db.add(Availability(
                doctor_id=doctor_id,
                date=NOW.date(),
                type="video",
                time_slots=json.dumps(["08:30", "09:00"]),
            ))
            db.commit()

        doctor_view = _availability(session_factory, doctor_id, config, NOW, appointment_type="video")
        patient_view = _availability(
            session_factory, doctor_id, config, NOW, appointment_type="video", for_patient=True
        )

        assert [d["date"] for d in doctor_view] == [NOW.date(), DAY]
        assert [d["date"] for d in patient_view] == [DAY]

    def test_default_range(self, session_factory, config, doctor_id):
        with session_factory() as db:
            for offset in (-8, -7, 30, 31):
                db.add(Availability(
                    doctor_id=doctor_id,
                    date=NOW.date() + timedelta(days=offset),
                    type="video",
                    time_slots=json.dumps(["10:00"]),
                ))
            db.commit()

        dates = {d["date"] for d in _availability(session_factory, doctor_id, config, NOW)}
        assert NOW.date() + timedelta(days=-7) in dates
        assert NOW.date() + timedelta(days=30) in dates
        assert NOW.date() + timedelta(days=-8) not in dates
        assert NOW.date() + timedelta(days=31) not in dates

    def test_unknown_doctor(self, session_factory, config, doctor_id):
        with pytest.raises(NotFound):
            _availability(session_factory, doctor_id + 100, config, NOW)


class TestOfferedSlots:
    def test_unavailable_day_offers_nothing(self, session_factory, config, doctor_id):
        with session_factory() as db:
            row = db.query(Availability).filter_by(doctor_id=doctor_id, type="video").one()
            row.is_available = False
            db.commit()
            assert calculate_day_slots(db, doctor_id, DAY, "video", config) == []

    def test_expire_ts_is_slot_minus_lead_time(self, session_factory, config, doctor_id):
        with session_factory() as db:
            slots = calculate_day_slots(db, doctor_id, DAY, "home-visit", config)
        # 14:00 slot, 120 minutes lead time
        expected = NOW.replace(day=8, hour=12, minute=0).timestamp()
        assert slots == [("14:00", expected)]

    def test_cache_hit_skips_db(self, session_factory, config, doctor_id):
        redis = MagicMock()
        redis.exists.return_value = 1
        redis.zrangebyscore.return_value = [("09:00", 1.0), ("__empty__", 0.0)]

        with session_factory() as db:
            slots = get_offered_slots(db, doctor_id, DAY, "video", config, redis)
        assert slots == [("09:00", 1.0)]

    def test_cache_miss_stores_result(self, session_factory, config, doctor_id):
        redis = MagicMock()
        redis.exists.return_value = 0
        pipe = redis.pipeline.return_value

        with session_factory() as db:
            slots = get_offered_slots(db, doctor_id, DAY, "video", config, redis)

        assert [t for t, _ in slots] == VIDEO_SLOTS
        pipe.zadd.assert_called_once()
        pipe.expire.assert_called_once_with(f"slots:day:{doctor_id}:{DAY.isoformat()}:video", 86400)
        pipe.execute.assert_called_once()

    def test_cache_failure_falls_back_to_db(self, session_factory, config, doctor_id):
        redis = MagicMock()
        redis.exists.side_effect = RedisError("down")

        with session_factory() as db:
            slots = get_offered_slots(db, doctor_id, DAY, "video", config, redis)
        assert [t for t, _ in slots] == VIDEO_SLOTS


class TestParseTimeSlots:
    def test_normalizes_and_sorts(self):
        assert parse_time_slots('["11:00", "9:30", "11:00", "bad", 5]') == ["09:30", "11:00"]

    @pytest.mark.parametrize("raw", [None, "", "not json", '{"a": 1}'])
    def test_invalid_input(self, raw):
        assert parse_time_slots(raw) == []
