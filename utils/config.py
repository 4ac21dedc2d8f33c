from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from models.schema import AttendanceSettings


class Settings(BaseSettings):
    # Matching & grace defaults
    default_grace_minutes: int = Field(default=15, alias="DEFAULT_GRACE_MINUTES")
    proximity_tolerance_min: int = Field(default=180, alias="PROXIMITY_TOLERANCE_MIN")
    ambiguity_threshold_min: int = Field(default=30, alias="AMBIGUITY_THRESHOLD_MIN")
    out_time_tolerance_min: int = Field(default=60, alias="OUT_TIME_TOLERANCE_MIN")
    preferred_max_difference_min: int = Field(default=35, alias="PREFERRED_MAX_DIFFERENCE_MIN")

    # Segmentation
    max_shifts_per_day: int = Field(default=3, alias="MAX_SHIFTS_PER_DAY")
    new_shift_gap_min: int = Field(default=60, alias="NEW_SHIFT_GAP_MIN")
    overnight_lookahead_hours: int = Field(default=12, alias="OVERNIGHT_LOOKAHEAD_HOURS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        populate_by_name = True


settings = Settings()


class ProcessingConfig(BaseModel):
    """Resolved numbers for a single processing run."""
    model_config = ConfigDict(frozen=True)

    late_in_grace: Optional[int] = None
    early_out_grace: Optional[int] = None
    default_grace: int = 15
    duplicate_in_grace: int = 15
    proximity_tolerance: int = 180
    ambiguity_threshold: int = 30
    out_time_tolerance: int = 60
    preferred_max_difference: int = 35
    max_shifts_per_day: int = 3
    new_shift_gap: int = 60
    overnight_lookahead_hours: int = 12


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def build_processing_config(
    attendance_settings: Optional[AttendanceSettings] = None,
    defaults: Optional[Settings] = None,
) -> ProcessingConfig:
    """
    Resolve the nullable settings record against the deployment defaults.

    The global late-in/early-out graces stay None when absent so the shift's own
    grace period can apply.
    """
    source = attendance_settings or AttendanceSettings()
    defaults = defaults or settings
    return ProcessingConfig(
        late_in_grace=source.late_in_grace,
        early_out_grace=source.early_out_grace,
        default_grace=defaults.default_grace_minutes,
        duplicate_in_grace=_first(source.duplicate_in_grace, defaults.default_grace_minutes),
        proximity_tolerance=_first(source.proximity_tolerance, defaults.proximity_tolerance_min),
        ambiguity_threshold=_first(source.ambiguity_threshold, defaults.ambiguity_threshold_min),
        out_time_tolerance=_first(source.out_time_tolerance, defaults.out_time_tolerance_min),
        preferred_max_difference=defaults.preferred_max_difference_min,
        max_shifts_per_day=_first(source.max_shifts_per_day, defaults.max_shifts_per_day),
        new_shift_gap=defaults.new_shift_gap_min,
        overnight_lookahead_hours=defaults.overnight_lookahead_hours,
    )
