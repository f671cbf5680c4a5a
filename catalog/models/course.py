from sqlalchemy import Column, Integer, String, Text, Float, DateTime, Index, CheckConstraint
from sqlalchemy.sql import func

from catalog.db.database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Filter dimensions
    branch = Column(String(100), nullable=True)
    technology = Column(String(100), nullable=True)
    program = Column(String(100), nullable=True)
    price = Column(Float, nullable=False, default=0)

    duration = Column(String(50), nullable=True)
    tags = Column(String(500), nullable=True)  # comma-separated

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_courses_price_non_negative"),
        Index("ix_courses_branch", "branch"),
        Index("ix_courses_technology", "technology"),
        Index("ix_courses_program", "program"),
        Index("ix_courses_price", "price"),
        Index("ix_courses_title", "title"),
    )
