from models.schema import AttendanceSettings
from utils.config import Settings, build_processing_config


def test_defaults_when_settings_missing():
    config = build_processing_config(None, Settings())

    assert config.late_in_grace is None
    assert config.early_out_grace is None
    assert config.default_grace == 15
    assert config.duplicate_in_grace == 15
    assert config.proximity_tolerance == 180
    assert config.ambiguity_threshold == 30
    assert config.out_time_tolerance == 60
    assert config.max_shifts_per_day == 3


def test_null_fields_fall_back_to_defaults():
    config = build_processing_config(AttendanceSettings(late_in_grace=20, ambiguity_threshold=None), Settings())

    assert config.late_in_grace == 20
    assert config.ambiguity_threshold == 30


def test_zero_is_a_real_value():
    config = build_processing_config(AttendanceSettings(late_in_grace=0, duplicate_in_grace=0), Settings())

    assert config.late_in_grace == 0
    assert config.duplicate_in_grace == 0


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("PROXIMITY_TOLERANCE_MIN", "120")
    monkeypatch.setenv("MAX_SHIFTS_PER_DAY", "2")

    config = build_processing_config(AttendanceSettings(), Settings())
    assert config.proximity_tolerance == 120
    assert config.max_shifts_per_day == 2
