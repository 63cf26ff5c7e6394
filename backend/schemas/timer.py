from pydantic import BaseModel, computed_field
from datetime import datetime
from typing import List, Optional

from utils.countdown import format_hms, format_step_label


class TimerCreate(BaseModel):
    sample_id: str = ""
    instrument: str = ""
    mode: str = ""


class TimerOut(BaseModel):
    id: int
    sample_id: str
    instrument: Optional[str] = None
    mode: str
    step: int
    total_secs: int
    remaining_secs: int
    status: str
    start_time: datetime
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }

    @computed_field
    @property
    def step_label(self) -> str:
        return format_step_label(self.total_secs)

    @computed_field
    @property
    def remaining_display(self) -> str:
        return format_hms(self.remaining_secs)


class TimerTable(BaseModel):
    # clients may count down locally from remaining_secs as of synced_at
    synced_at: datetime
    refresh_interval_seconds: int
    rows: List[TimerOut]


class RegisterResponse(BaseModel):
    message: str
    sample_id: str
    timers: List[TimerOut]


class DeleteConfirmation(BaseModel):
    id: int
    sample_id: str
    title: str
    prompt: str


class DeleteResponse(BaseModel):
    status: str = "deleted"
    id: int
    sample_id: str
    message: str


class ModeOption(BaseModel):
    mode: str
    durations_secs: List[int]
    step_labels: List[str]


class TimerOptions(BaseModel):
    instruments: List[str]
    modes: List[ModeOption]
    refresh_interval_seconds: int


class ReconcileSummary(BaseModel):
    checked: int = 0
    updated: int = 0
    completed: int = 0
    failed: int = 0
    completed_ids: List[int] = []
