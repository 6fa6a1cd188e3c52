from sqlalchemy import Column, Integer, String

from app.core.database import Base


class DailyVisit(Base):
    __tablename__ = "daily_visits"

    date_key = Column(String(10), primary_key=True)  # YYYY-MM-DD
    count = Column(Integer, default=0, nullable=False)
