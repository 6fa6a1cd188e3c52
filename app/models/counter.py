from sqlalchemy import Column, DateTime, Integer, String, func

from app.core.database import Base


class Counter(Base):
    __tablename__ = "counters"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # UPDATE ... WHERE version = :lido; escritor concorrente => StaleDataError no flush
    __mapper_args__ = {"version_id_col": version}
