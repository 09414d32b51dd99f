from sqlalchemy import Column, Integer, String, DateTime, LargeBinary
from datetime import datetime
from touchwood.database import Base


class StateRecord(Base):
    __tablename__ = "state_records"

    key = Column(String, primary_key=True, index=True)
    value = Column(LargeBinary, nullable=False)   # JSON envelope bytes
    version = Column(Integer, default=1)          # Envelope schema version at write time
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
