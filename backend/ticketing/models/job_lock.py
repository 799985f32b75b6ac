"""
Durable lease rows for periodic jobs.

A job may run on an instance only while that instance holds an unexpired
lease row for the job name. The lease expires on its own, so a crashed
holder blocks other instances for at most one lease period.
"""

from sqlalchemy import Column, String

from ticketing.db.base import Base, UTCDateTime


class JobLock(Base):
    __tablename__ = "job_locks"

    name = Column(String(64), primary_key=True)
    holder = Column(String(64), nullable=False)
    locked_until = Column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<JobLock(name={self.name}, holder={self.holder}, until={self.locked_until})>"
