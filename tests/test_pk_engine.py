import pytest

from glp_tracker.core.pk_engine import (
    MS_PER_DAY,
    MS_PER_HOUR,
    DosingEvent,
    chart_window,
    compute_level,
    compute_substance_level,
    decay_fraction,
    format_chart_label,
    generate_curve,
    generate_substance_curves,
    levels_by_substance,
    traffic_phase,
    window_dates,
)

NOW = 1_760_000_000_000  # fixed "wall clock" in ms


def test_decay_is_one_at_zero_and_half_at_half_life():
    assert decay_fraction(0, 120) == 1.0
    assert decay_fraction(120, 120) == pytest.approx(0.5)
    assert decay_fraction(240, 120) == pytest.approx(0.25)


def test_decay_strictly_decreasing():
    values = [decay_fraction(h, 168) for h in range(0, 2000, 50)]
    assert all(a > b for a, b in zip(values, values[1:]))
    assert values[-1] > 0


def test_single_dose_level_after_one_half_life():
    events = [DosingEvent(NOW - 120 * MS_PER_HOUR, "tirz", 5.0)]
    assert compute_level(events, NOW, False, NOW) == pytest.approx(2.5)


def test_no_events_gives_zero():
    assert compute_level([], NOW, True, NOW) == 0.0


def test_superposition():
    a = DosingEvent(NOW - 10 * MS_PER_DAY, "tirz", 5.0)
    b = DosingEvent(NOW - 3 * MS_PER_DAY, "wegovy", 1.0)
    at = NOW - MS_PER_HOUR
    both = compute_level([a, b], at, False, NOW)
    assert both == pytest.approx(
        compute_level([a], at, False, NOW) + compute_level([b], at, False, NOW)
    )


def test_unknown_substance_is_skipped():
    events = [
        DosingEvent(NOW - MS_PER_DAY, "tirz", 5.0),
        DosingEvent(NOW - MS_PER_DAY, "mystery", 100.0),
    ]
    alone = compute_level(events[:1], NOW, False, NOW)
    assert compute_level(events, NOW, False, NOW) == pytest.approx(alone)


def test_future_gating():
    event_time = NOW + MS_PER_HOUR
    events = [DosingEvent(event_time, "tirz", 5.0)]

    assert compute_level(events, NOW, False, NOW) == 0.0
    # Not yet given at NOW even when future events are included
    assert compute_level(events, NOW, True, NOW) == 0.0

    later = event_time + MS_PER_HOUR
    assert compute_level(events, later, True, NOW) > 0.0
    assert compute_level(events, later, False, NOW) == 0.0


def test_legacy_id_contributes_like_current_id():
    ts = NOW - 2 * MS_PER_DAY
    legacy = [DosingEvent(ts, "sema", 1.0)]
    current = [DosingEvent(ts, "wegovy", 1.0)]

    level_legacy = compute_substance_level(legacy, "wegovy", NOW, False, NOW)
    level_current = compute_substance_level(current, "wegovy", NOW, False, NOW)
    assert level_legacy > 0
    assert level_legacy == pytest.approx(level_current)
    assert compute_substance_level(current, "sema", NOW, False, NOW) == pytest.approx(level_current)


def test_substance_filter_ignores_other_substances():
    events = [
        DosingEvent(NOW - MS_PER_DAY, "tirz", 5.0),
        DosingEvent(NOW - MS_PER_DAY, "saxenda", 3.0),
    ]
    tirz = compute_substance_level(events, "tirz", NOW, False, NOW)
    assert tirz == pytest.approx(compute_level(events[:1], NOW, False, NOW))
    assert compute_substance_level(events, "nope", NOW, False, NOW) == 0.0


def test_levels_by_substance_groups_normalised_ids():
    events = [
        DosingEvent(NOW - MS_PER_DAY, "sema", 1.0),
        DosingEvent(NOW - 2 * MS_PER_DAY, "wegovy", 1.0),
        DosingEvent(NOW - MS_PER_DAY, "unknown", 1.0),
    ]
    levels = levels_by_substance(events, NOW, False, NOW)
    assert list(levels) == ["wegovy"]
    assert levels["wegovy"] == pytest.approx(compute_level(events, NOW, False, NOW))


def test_curve_has_point_count_plus_one_samples():
    events = [DosingEvent(NOW - 5 * MS_PER_DAY, "tirz", 5.0)]
    start, end = NOW - 7 * MS_PER_DAY, NOW
    curve = generate_curve(events, start, end, 100, False, NOW)

    assert len(curve) == 101
    assert curve[0].time == start
    assert curve[-1].time == end
    assert curve[0].level == 0.0
    assert curve[-1].level == pytest.approx(compute_level(events, NOW, False, NOW))


def test_curve_zero_points_gives_single_start_sample():
    curve = generate_curve([], NOW - MS_PER_DAY, NOW, 0, False, NOW)
    assert len(curve) == 1
    assert curve[0].time == NOW - MS_PER_DAY


def test_curve_with_equal_bounds_repeats_time():
    curve = generate_curve([], NOW, NOW, 3, False, NOW)
    assert [p.time for p in curve] == [NOW] * 4


def test_curve_is_deterministic():
    events = [DosingEvent(NOW - 3 * MS_PER_DAY, "reta", 4.0)]
    first = generate_substance_curves(events, ["reta"], NOW - 7 * MS_PER_DAY, NOW, 20, True, NOW, tz="UTC")
    second = generate_substance_curves(events, ["reta"], NOW - 7 * MS_PER_DAY, NOW, 20, True, NOW, tz="UTC")
    assert [p.to_dict() for p in first] == [p.to_dict() for p in second]


def test_substance_curves_carry_levels_labels_and_future_flag():
    events = [
        DosingEvent(NOW - 2 * MS_PER_DAY, "tirz", 5.0),
        DosingEvent(NOW - 1 * MS_PER_DAY, "sema", 0.5),
    ]
    start, end = NOW - 2 * MS_PER_DAY, NOW + 2 * MS_PER_DAY
    curve = generate_substance_curves(events, ["tirz", "wegovy"], start, end, 4, False, NOW, tz="UTC")

    assert len(curve) == 5
    assert [p.is_future for p in curve] == [False, False, False, True, True]
    mid = curve[2]
    assert mid.time == NOW
    assert mid.levels["tirz"] == pytest.approx(compute_substance_level(events, "tirz", NOW, False, NOW))
    assert mid.levels["wegovy"] > 0
    assert mid.level == pytest.approx(mid.levels["tirz"] + mid.levels["wegovy"])

    row = mid.to_dict()
    assert set(row) == {"time", "level", "label", "is_future", "tirz", "wegovy"}


def test_substance_curves_do_not_double_count_aliases():
    events = [DosingEvent(NOW - MS_PER_DAY, "wegovy", 1.0)]
    curve = generate_substance_curves(events, ["sema", "wegovy"], NOW, NOW, 0, False, NOW, tz="UTC")
    point = curve[0]
    assert point.levels["sema"] == pytest.approx(point.levels["wegovy"])
    assert point.level == pytest.approx(point.levels["wegovy"])


def test_chart_label_is_day_month():
    assert format_chart_label(0, tz="UTC") == "1.1."
    assert format_chart_label(NOW, tz="UTC") == "9.10."


def test_window_dates_pages_backwards():
    start, end = window_dates("week", 0, NOW)
    assert (start, end) == (NOW - 7 * MS_PER_DAY, NOW)
    start, end = window_dates("month", 2, NOW)
    assert end == NOW - 60 * MS_PER_DAY
    assert start == NOW - 90 * MS_PER_DAY
    with pytest.raises(KeyError):
        window_dates("decade", 0, NOW)


def test_chart_window_extends_past_planned_injections():
    events = [
        DosingEvent(NOW - MS_PER_DAY, "tirz", 5.0),
        DosingEvent(NOW + 3 * MS_PER_DAY, "tirz", 5.0),
    ]
    start, end = chart_window(events, "month", 0, NOW, include_future=True)
    assert start == NOW - 30 * MS_PER_DAY
    assert end == NOW + 4 * MS_PER_DAY

    assert chart_window(events, "month", 0, NOW, include_future=False) == window_dates("month", 0, NOW)
    assert chart_window(events, "month", 1, NOW, include_future=True) == window_dates("month", 1, NOW)


def test_traffic_phase_thresholds():
    def phase(hours_ago):
        return traffic_phase([DosingEvent(NOW - hours_ago * MS_PER_HOUR, "tirz", 5.0)], NOW)

    assert traffic_phase([], NOW) == "none"
    assert phase(1) == "peak"
    assert phase(47.9) == "peak"
    assert phase(48) == "cruise"
    assert phase(119) == "cruise"
    assert phase(120) == "washout"
    # A planned injection does not reset the phase
    planned = [
        DosingEvent(NOW - 200 * MS_PER_HOUR, "tirz", 5.0),
        DosingEvent(NOW + MS_PER_HOUR, "tirz", 5.0),
    ]
    assert traffic_phase(planned, NOW) == "washout"
