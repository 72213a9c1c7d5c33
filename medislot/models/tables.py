from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
    true,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class Doctors(Base):
    __tablename__ = 'doctors'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    specialization = Column(Text)
    consultation_fee = Column(Float, nullable=False, server_default=text('0'))
    is_active = Column(Boolean, nullable=False, server_default=true())
    created_at = Column(DateTime, nullable=False, server_default=text('CURRENT_TIMESTAMP'))

    availability = relationship('Availability', back_populates='doctor')
    bookings = relationship('Bookings', back_populates='doctor')


class Availability(Base):
    __tablename__ = 'availability'
    __table_args__ = (
        UniqueConstraint('doctor_id', 'date', 'type'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(ForeignKey('doctors.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    type = Column(Text, nullable=False, server_default=text("'video'"))
    time_slots = Column(Text, nullable=False, server_default=text("'[]'"))
    is_available = Column(Boolean, nullable=False, server_default=true())
    updated_at = Column(DateTime, nullable=False, server_default=text('CURRENT_TIMESTAMP'))

    doctor = relationship('Doctors', back_populates='availability')


class SlotStates(Base):
    """Current occupant of a (doctor, date, time) slot; one row per key."""
    __tablename__ = 'slot_states'
    __table_args__ = (
        UniqueConstraint('doctor_id', 'date', 'time'),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(ForeignKey('doctors.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'free'"))
    version = Column(Integer, nullable=False)
    hold_id = Column(Text)
    booking_id = Column(Integer)
    updated_at = Column(DateTime)

    # UPDATE ... WHERE version = :old; a lost race raises StaleDataError
    __mapper_args__ = {"version_id_col": version}


class Holds(Base):
    __tablename__ = 'holds'
    __table_args__ = (
        Index(
            'uq_holds_active_slot',
            'doctor_id', 'date', 'time',
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(Text, primary_key=True)
    doctor_id = Column(ForeignKey('doctors.id', ondelete='CASCADE'), nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Text, nullable=False)
    type = Column(Text, nullable=False, server_default=text("'video'"))
    holder_id = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'active'"))
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    closed_at = Column(DateTime)
    booking_id = Column(Integer)


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index(
            'uq_bookings_occupied_slot',
            'doctor_id', 'date', 'time',
            unique=True,
            sqlite_where=text("status IN ('confirmed', 'completed')"),
            postgresql_where=text("status IN ('confirmed', 'completed')"),
        ),
    )

    id = Column(Integer, primary_key=True)
    appointment_number = Column(Text, nullable=False, unique=True)
    doctor_id = Column(ForeignKey('doctors.id', ondelete='CASCADE'), nullable=False)
    patient_id = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Text, nullable=False)
    type = Column(Text, nullable=False, server_default=text("'video'"))
    status = Column(Text, nullable=False, server_default=text("'confirmed'"))
    source = Column(Text, nullable=False, server_default=text("'hold'"))
    hold_id = Column(Text)
    patient_name = Column(Text)
    date_of_birth = Column(Text)
    gender = Column(Text)
    problem = Column(Text)
    notes = Column(Text)
    consultation_fee = Column(Float)
    cancel_reason = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    doctor = relationship('Doctors', back_populates='bookings')
