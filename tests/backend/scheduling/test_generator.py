from datetime import date, datetime, timedelta

import pytest

from backend.core.errors import ValidationError
from backend.models.slot import Slot
from backend.models.weekly_template import WeeklyTemplateItem
from backend.scheduling.generator import generate_from_template, generate_slots


def _add_template_item(db, **fields) -> WeeklyTemplateItem:
    values = {
        'day_of_week': 1,
        'start_time': '16:00',
        'duration_minutes': 60,
        'price': 80,
        'location_type': 'onsite',
        'travel_minutes': 0,
    }
    values.update(fields)
    item = WeeklyTemplateItem(**values)
    db.add(item)
    db.commit()
    return item


def _all_slots(db) -> list[Slot]:
    return db.query(Slot).order_by(Slot.start_time.asc()).all()


def test_single_monday_in_range_yields_one_slot(db) -> None:
    _add_template_item(db, duration_minutes=90)

    result = generate_from_template(db, date(2026, 1, 4), date(2026, 1, 10))

    slots = _all_slots(db)
    assert result.count == 1
    assert len(slots) == 1
    assert slots[0].start_time == datetime(2026, 1, 5, 16, 0)
    assert slots[0].end_time - slots[0].start_time == timedelta(minutes=90)


def test_january_2026_has_one_slot_per_monday(db) -> None:
    _add_template_item(db)

    result = generate_from_template(db, date(2026, 1, 1), date(2026, 1, 31))

    slots = _all_slots(db)
    assert result.count == 4
    assert [slot.start_time.date() for slot in slots] == [
        date(2026, 1, 5), date(2026, 1, 12), date(2026, 1, 19), date(2026, 1, 26),
    ]
    for slot in slots:
        assert slot.start_time.time().strftime('%H:%M') == '16:00'
        assert slot.end_time.time().strftime('%H:%M') == '17:00'
        assert slot.is_booked is False
        assert slot.price == 80


def test_commute_item_keeps_travel_out_of_end_time(db) -> None:
    _add_template_item(db, start_time='14:00', location_type='commute', travel_minutes=30)

    generate_from_template(db, date(2026, 1, 5), date(2026, 1, 5))

    slot = _all_slots(db)[0]
    assert slot.end_time == datetime(2026, 1, 5, 15, 0)
    assert slot.travel_minutes == 30
    assert slot.leave_by == datetime(2026, 1, 5, 13, 30)


def test_fixed_student_pre_books_generated_slot(db, student) -> None:
    _add_template_item(db, student_id=student.id)
    now = datetime(2026, 1, 1, 12, 0)

    generate_from_template(db, date(2026, 1, 5), date(2026, 1, 5), now=now)

    slot = _all_slots(db)[0]
    assert slot.is_booked is True
    assert slot.student_id == student.id
    assert slot.booked_at == now
    assert slot.is_paid is False


def test_rerunning_template_generation_is_idempotent(db) -> None:
    _add_template_item(db)
    _add_template_item(db, day_of_week=3, start_time='10:00')

    first = generate_from_template(db, date(2026, 1, 1), date(2026, 1, 14))
    second = generate_from_template(db, date(2026, 1, 1), date(2026, 1, 14))

    assert first.count == 4
    assert second.count == 0
    assert second.skipped == 4
    assert len(_all_slots(db)) == 4


def test_template_generation_skips_holidays(db) -> None:
    _add_template_item(db)

    result = generate_from_template(db, date(2026, 1, 1), date(2026, 1, 31), holidays={date(2026, 1, 12)})

    assert result.count == 3
    assert date(2026, 1, 12) not in {slot.start_time.date() for slot in _all_slots(db)}


def test_template_generation_rejects_reversed_range(db) -> None:
    with pytest.raises(ValidationError):
        generate_from_template(db, date(2026, 1, 31), date(2026, 1, 1))


def test_generate_slots_fills_daily_window(db) -> None:
    result = generate_slots(db, date(2026, 1, 5), date(2026, 1, 5), '09:00', '12:00', 60)

    slots = _all_slots(db)
    assert result.count == 3
    assert [slot.start_time.hour for slot in slots] == [9, 10, 11]
    assert all(slot.end_time - slot.start_time == timedelta(minutes=60) for slot in slots)


def test_generate_slots_stops_before_passing_day_end(db) -> None:
    result = generate_slots(db, date(2026, 1, 5), date(2026, 1, 5), '09:00', '11:30', 60)

    assert result.count == 2
    assert _all_slots(db)[-1].end_time == datetime(2026, 1, 5, 11, 0)


def test_generate_slots_skips_sundays(db) -> None:
    # 2026-01-10 is a Saturday, 2026-01-11 a Sunday.
    result = generate_slots(db, date(2026, 1, 10), date(2026, 1, 11), '09:00', '10:00', 60)

    assert result.count == 1
    assert _all_slots(db)[0].start_time.date() == date(2026, 1, 10)


def test_generate_slots_avoids_template_lessons_and_existing_slots(db) -> None:
    _add_template_item(db, start_time='10:30', duration_minutes=60, location_type='commute', travel_minutes=30)
    db.add(Slot(start_time=datetime(2026, 1, 5, 12, 0), end_time=datetime(2026, 1, 5, 13, 0)))
    db.commit()

    result = generate_slots(db, date(2026, 1, 5), date(2026, 1, 5), '08:00', '13:00', 60)

    starts = [slot.start_time.hour for slot in _all_slots(db)]
    # 10:00 and 11:00 fall inside the 10:00-11:30 busy window, 12:00 already exists.
    assert starts == [8, 9, 12]
    assert result.count == 2
    assert result.skipped == 3


@pytest.mark.parametrize(
    ('start_time', 'end_time', 'duration'),
    [
        ('12:00', '09:00', 60),
        ('9am', '12:00', 60),
        ('09:00', '12:00', 0),
    ],
)
def test_generate_slots_rejects_invalid_window(db, start_time: str, end_time: str, duration: int) -> None:
    with pytest.raises(ValidationError):
        generate_slots(db, date(2026, 1, 5), date(2026, 1, 5), start_time, end_time, duration)


def test_generate_slots_skips_steps_partly_overlapping_a_manual_slot(db) -> None:
    db.add(Slot(start_time=datetime(2026, 1, 5, 10, 30), end_time=datetime(2026, 1, 5, 11, 30)))
    db.commit()

    result = generate_slots(db, date(2026, 1, 5), date(2026, 1, 5), '09:00', '12:00', 60)

    assert result.count == 1
    assert result.skipped == 2
    assert [(slot.start_time.hour, slot.start_time.minute) for slot in _all_slots(db)] == [(9, 0), (10, 30)]


def test_generate_slots_respects_travel_of_existing_commute_slot(db) -> None:
    db.add(Slot(
        start_time=datetime(2026, 1, 5, 11, 0),
        end_time=datetime(2026, 1, 5, 12, 0),
        location_type='commute',
        travel_minutes=30,
    ))
    db.commit()

    result = generate_slots(db, date(2026, 1, 5), date(2026, 1, 5), '09:00', '11:00', 60)

    # 10:00-11:00 runs into the 10:30 departure for the 11:00 lesson.
    assert result.count == 1
    assert result.skipped == 1


def test_template_generation_skips_partly_overlapping_slot(db) -> None:
    _add_template_item(db)
    db.add(Slot(start_time=datetime(2026, 1, 5, 16, 30), end_time=datetime(2026, 1, 5, 17, 30)))
    db.commit()

    result = generate_from_template(db, date(2026, 1, 5), date(2026, 1, 5))

    assert result.count == 0
    assert result.skipped == 1
    assert len(_all_slots(db)) == 1


def test_template_commute_item_skips_slot_inside_its_travel(db) -> None:
    _add_template_item(db, start_time='17:00', location_type='commute', travel_minutes=45)
    db.add(Slot(start_time=datetime(2026, 1, 5, 15, 30), end_time=datetime(2026, 1, 5, 16, 30)))
    db.commit()

    result = generate_from_template(db, date(2026, 1, 5), date(2026, 1, 5))

    assert result.count == 0
    assert result.skipped == 1


def test_template_generation_keeps_touching_slot(db) -> None:
    _add_template_item(db)
    db.add(Slot(start_time=datetime(2026, 1, 5, 17, 0), end_time=datetime(2026, 1, 5, 18, 0)))
    db.commit()

    result = generate_from_template(db, date(2026, 1, 5), date(2026, 1, 5))

    assert result.count == 1
    assert [slot.start_time.hour for slot in _all_slots(db)] == [16, 17]
