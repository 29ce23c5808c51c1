from datetime import datetime, time, date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

import config


class PunchKind(str, Enum):
    ENTRANCE = "entrada"
    EXIT = "saida"


class DayStatus(str, Enum):
    OK = "OK"
    PAR_INCOMPLETO = "PAR_INCOMPLETO"
    SEM_REGISTRO = "SEM_REGISTRO"


class LunchPolicy(str, Enum):
    # skip the fixed deduction when the break was already punched
    NATURAL_BREAK = "natural_break"
    ALWAYS = "always"


class DuplicateEntrancePolicy(str, Enum):
    REPLACE = "replace"
    FLAG = "flag"


class RawPunch(BaseModel):
    employee_id: str
    kind: PunchKind
    timestamp: datetime
    company_id: Optional[str] = None
    id: Optional[str] = None


class PunchEvent(BaseModel):
    employee_id: str
    kind: PunchKind
    timestamp: datetime
    company_id: Optional[str] = None


class WorkInterval(BaseModel):
    entrance: datetime
    exit: datetime
    minutes: int


class TimesheetConfig(BaseModel):
    model_config = ConfigDict(validate_default=True)

    lunch_threshold_minutes: int = Field(default=config.LUNCH_THRESHOLD_MINUTES, ge=0)
    lunch_deduction_minutes: int = Field(default=config.LUNCH_DEDUCTION_MINUTES, ge=0)
    expected_minutes_per_day: int = Field(default=config.EXPECTED_MINUTES_PER_DAY, ge=0)
    lunch_policy: LunchPolicy = LunchPolicy.NATURAL_BREAK
    duplicate_entrance_policy: DuplicateEntrancePolicy = DuplicateEntrancePolicy.REPLACE
    # Monday is 0, as in date.weekday()
    work_weekdays: List[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4, 5, 6])
    shift_start: Optional[time] = None
    lateness_tolerance_minutes: int = Field(default=config.LATENESS_TOLERANCE_MINUTES, ge=0)

    @field_validator("work_weekdays")
    @classmethod
    def check_weekdays(cls, value: List[int]) -> List[int]:
        for weekday in value:
            if weekday < 0 or weekday > 6:
                raise ValueError(f"weekday out of range: {weekday}")
        return sorted(set(value))


class DaySummary(BaseModel):
    day: date
    status: DayStatus
    events: List[PunchEvent] = []
    pairs: List[WorkInterval] = []
    anomalies: List[PunchEvent] = []
    gross_minutes: int = 0
    lunch_deduction_minutes: int = 0
    lunch_applied: bool = False
    net_minutes: int = 0
    expected_minutes: int = 0
    overtime_minutes: int = 0
    lateness_minutes: int = 0
    shortfall_minutes: int = 0
    absence_minutes: int = 0
    balance_minutes: int = 0


class MonthSummary(BaseModel):
    employee_id: str
    year: int
    month: int
    days: List[DaySummary] = []
    total_minutes: int = 0
    worked_days: int = 0
    bank_balance_minutes: int = 0
    expected_minutes: int = 0
    overtime_minutes: int = 0
    lateness_minutes: int = 0
    shortfall_minutes: int = 0
    absence_minutes: int = 0
    anomaly_days: int = 0


class BatchItem(BaseModel):
    employee_id: str
    summary: Optional[MonthSummary] = None
    error: Optional[str] = None
    detail: Optional[str] = None


class BatchRequest(BaseModel):
    colaboradores: List[str]
    ano: int
    mes: int
    configuracao: Optional[TimesheetConfig] = None
