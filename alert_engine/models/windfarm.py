from sqlalchemy import Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from alert_engine.core.database import Base


class Windfarm(Base):
    __tablename__ = "windfarms"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # Capacity and technical info
    nameplate_capacity_mw = Column(Float, nullable=True)
    status = Column(
        String(100), nullable=True
    )  # "operational" | "decommissioned" | "under_installation" | "expanded"

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Windfarm(id={self.id}, code='{self.code}', name='{self.name}')>"
