import asyncio
from datetime import timedelta

import pytest

from app.models.attendance import AttendanceEvent, CheckinRequest, LocationReport
from app.services import store
from app.services.checkin import (
    CheckinStage,
    CheckinValidator,
    KeyedLock,
    RejectionReason,
)
from app.services.geofence import LocationVerdict, verdict_from_report
from app.services.sessions import create_session, expire_session

ON_CAMPUS = LocationVerdict(accepted=True, distance=12.4)
OFF_CAMPUS = LocationVerdict(accepted=False, distance=5000, reason="You're 5000m from campus (must be within 200m)")


@pytest.fixture
def checker():
    return CheckinValidator(pinned_last=())


@pytest.fixture
async def session(stored_roster):
    return await create_session("2025-01-06", "CSL1020", "Programming", "XY12", len(stored_roster))


def _request(session, roll="2", name="Bob", code="XY12", **extra):
    return CheckinRequest(session_id=session.session_id, roll_number=roll, student_name=name, secret_code=code, **extra)


async def test_walkthrough_accept_then_duplicate(checker, session):
    outcome = await checker.check_in(_request(session, code="xy12"), ON_CAMPUS)
    assert outcome.accepted
    assert outcome.stage == CheckinStage.ACCEPTED
    assert outcome.event.student_id == "B"
    assert outcome.event.roll_number == 2
    assert outcome.event.father == "Father of Bob"

    again = await checker.check_in(_request(session), ON_CAMPUS)
    assert not again.accepted
    assert again.reason == RejectionReason.ALREADY_MARKED
    assert again.failed_at == CheckinStage.LOCATION_VERIFIED
    assert await store.count_events(session.session_id) == 1


async def test_name_is_compared_ignoring_case_and_padding(checker, session):
    outcome = await checker.check_in(_request(session, roll=" 1 ", name="  aMY "), ON_CAMPUS)
    assert outcome.accepted
    assert outcome.event.name == "Amy"


async def test_accepted_event_keeps_location(checker, session):
    report = LocationReport(latitude=31.6348, longitude=74.8244, accuracy=15)
    outcome = await checker.check_in(_request(session, location=report), verdict_from_report(report))
    assert outcome.accepted
    assert outcome.event.location.accuracy == 15
    assert outcome.event.location.distance is not None


@pytest.mark.parametrize("missing", ["session_id", "roll_number", "student_name", "secret_code"])
async def test_missing_fields(checker, session, missing):
    data = {"session_id": session.session_id, "roll_number": "2", "student_name": "Bob", "secret_code": "XY12"}
    data[missing] = "   "
    outcome = await checker.check_in(CheckinRequest(**data), ON_CAMPUS)
    assert outcome.reason == RejectionReason.MISSING_FIELDS
    assert outcome.failed_at == CheckinStage.RECEIVED


async def test_unknown_session(checker, stored_roster):
    outcome = await checker.check_in(
        CheckinRequest(session_id="nope", roll_number="1", student_name="Amy", secret_code="XY12"),
        ON_CAMPUS,
    )
    assert outcome.reason == RejectionReason.SESSION_NOT_FOUND


async def test_expired_by_clock(session):
    late = CheckinValidator(clock=lambda: session.expiry_time + timedelta(milliseconds=1), pinned_last=())
    outcome = await late.check_in(_request(session), ON_CAMPUS)
    assert outcome.reason == RejectionReason.SESSION_EXPIRED


async def test_expired_by_instructor(checker, session):
    await expire_session(session)
    outcome = await checker.check_in(_request(session), ON_CAMPUS)
    assert outcome.reason == RejectionReason.SESSION_EXPIRED


async def test_wrong_code(checker, session):
    outcome = await checker.check_in(_request(session, code="XY13"), ON_CAMPUS)
    assert outcome.reason == RejectionReason.INVALID_CODE
    assert outcome.failed_at == CheckinStage.RECEIVED


async def test_wrong_code_is_reported_before_bad_roll_number(checker, session):
    outcome = await checker.check_in(_request(session, roll="99", code="NOPE"), ON_CAMPUS)
    assert outcome.reason == RejectionReason.INVALID_CODE


@pytest.mark.parametrize("roll", ["0", "4", "-1", "1.5", "two"])
async def test_invalid_roll_number(checker, session, roll):
    outcome = await checker.check_in(_request(session, roll=roll), ON_CAMPUS)
    assert outcome.reason == RejectionReason.INVALID_ROLL_NUMBER
    assert outcome.failed_at == CheckinStage.CODE_CHECKED


async def test_name_mismatch_names_the_expected_student(checker, session):
    outcome = await checker.check_in(_request(session, roll="3", name="Bob"), ON_CAMPUS)
    assert outcome.reason == RejectionReason.NAME_MISMATCH
    assert outcome.failed_at == CheckinStage.IDENTITY_RESOLVED
    assert "Expected: Cid" in outcome.message


async def test_location_rejected(checker, session):
    outcome = await checker.check_in(_request(session), OFF_CAMPUS)
    assert outcome.reason == RejectionReason.LOCATION_REJECTED
    assert outcome.failed_at == CheckinStage.NAME_MATCHED
    assert "5000m" in outcome.message


async def test_no_location_is_rejected(checker, session):
    outcome = await checker.check_in(_request(session), None)
    assert outcome.reason == RejectionReason.LOCATION_REJECTED


async def test_rejections_write_nothing(checker, session):
    await checker.check_in(_request(session, code="BAD"), ON_CAMPUS)
    await checker.check_in(_request(session, name="Amy"), ON_CAMPUS)
    await checker.check_in(_request(session), OFF_CAMPUS)
    assert await AttendanceEvent.find_all().count() == 0


async def test_concurrent_attempts_for_one_student_accept_once(checker, session):
    outcomes = await asyncio.gather(
        checker.check_in(_request(session), ON_CAMPUS),
        checker.check_in(_request(session), ON_CAMPUS),
    )
    reasons = sorted(o.reason.value if o.reason else "ACCEPTED" for o in outcomes)
    assert reasons == ["ACCEPTED", "ALREADY_MARKED"]
    assert await store.count_events(session.session_id) == 1
    assert len(checker.lock) == 0


async def test_different_students_do_not_block_each_other(checker, session):
    outcomes = await asyncio.gather(
        checker.check_in(_request(session, roll="1", name="Amy"), ON_CAMPUS),
        checker.check_in(_request(session, roll="2", name="Bob"), ON_CAMPUS),
        checker.check_in(_request(session, roll="3", name="Cid"), ON_CAMPUS),
    )
    assert all(o.accepted for o in outcomes)
    assert await store.count_events(session.session_id) == 3


async def test_unique_index_backs_up_the_duplicate_check(session, stored_roster):
    # a validator with its own lock, as a second process would have
    first = CheckinValidator(pinned_last=(), lock=KeyedLock())
    assert (await first.check_in(_request(session), ON_CAMPUS)).accepted
    event = AttendanceEvent(
        session_id=session.session_id,
        student_id="B",
        roll_number=2,
        name="Bob",
        subject_code=session.subject_code,
        subject_name=session.subject_name,
        date=session.date,
    )
    assert await store.insert_event(event) is False


async def test_pinned_student_takes_the_last_roll_number(session):
    pinned = CheckinValidator(pinned_last=("A",))
    outcome = await pinned.check_in(_request(session, roll="3", name="Amy"), ON_CAMPUS)
    assert outcome.accepted
    assert outcome.event.roll_number == 3


async def test_expiry_during_insert_withdraws_the_checkin(checker, session, monkeypatch):
    insert = store.insert_event

    async def insert_then_expire(event):
        inserted = await insert(event)
        await expire_session(await store.get_session(session.session_id))
        return inserted

    monkeypatch.setattr(store, "insert_event", insert_then_expire)
    outcome = await checker.check_in(_request(session), ON_CAMPUS)
    assert not outcome.accepted
    assert outcome.reason == RejectionReason.SESSION_EXPIRED
    assert outcome.failed_at == CheckinStage.DUPLICATE_CHECKED
    assert await store.count_events(session.session_id) == 0
