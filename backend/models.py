from datetime import datetime

from sqlalchemy import Column, Integer, DateTime, Text, func

from database import Base
from constants.timer_config import TimerStatus

# ==========================================================
#  SQLALCHEMY MODELS (Database Tables)
# ==========================================================

class TimerDB(Base):
    """One countdown step of a sample's stability test batch."""

    __tablename__ = "timers"

    id = Column(Integer, primary_key=True, autoincrement=True)

    sample_id = Column(Text, index=True)
    instrument = Column(Text)
    mode = Column(Text)

    step = Column(Integer)               # 1-based position in the mode's sequence
    total_secs = Column(Integer)         # fixed at creation
    remaining_secs = Column(Integer)     # derived from start_time, floored at 0

    status = Column(Text, index=True, default=TimerStatus.ACTIVE.value)

    start_time = Column(DateTime)
    end_time = Column(DateTime, nullable=True)   # first write wins
    # assigned by SQLite (UTC text), same as rows from older data directories
    created_at = Column(DateTime, server_default=func.current_timestamp())


class SchemaVersionDB(Base):
    __tablename__ = "schema_version"

    id = Column(Integer, primary_key=True)
    version = Column(Integer, nullable=False)
    applied_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
