from sqlalchemy import CheckConstraint, Column, Float, ForeignKey, Index, Integer, Text, UniqueConstraint, text

from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class Courts(Base):
    __tablename__ = 'courts'

    venue_id = Column(Integer, nullable=False, index=True)
    owner_id = Column(Integer, nullable=False)
    name = Column(Text, nullable=False)
    sport = Column(Text, nullable=False)
    price_per_hour = Column(Float, nullable=False)
    # {"enabled": bool, "price_per_hour": float, "hours": [{"start": "HH:MM", "end": "HH:MM"}]}
    peak_hour_pricing = Column(Text, nullable=False, server_default=text("'{}'"))
    # {"monday": {"is_open": bool, "hours": [{"start": ..., "end": ...}]}, ...}
    availability = Column(Text, nullable=False, server_default=text("'{}'"))
    # {"is_under_maintenance": bool, "start": iso, "end": iso, "reason": str}
    maintenance = Column(Text, nullable=False, server_default=text("'{}'"))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    time_slots = relationship('TimeSlots', back_populates='court')

    __table_args__ = (
        CheckConstraint('price_per_hour >= 0', name='ck_courts_price_non_negative'),
    )


class TimeSlots(Base):
    __tablename__ = 'time_slots'

    court_id = Column(ForeignKey('courts.id', ondelete='CASCADE'), nullable=False)
    venue_id = Column(Integer, nullable=False)
    date = Column(Text, nullable=False)  # YYYY-MM-DD
    start_time = Column(Text, nullable=False)  # HH:MM
    end_time = Column(Text, nullable=False)  # HH:MM
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Float, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'available'"))
    id = Column(Integer, primary_key=True)
    original_price = Column(Float)
    booking_ref = Column(Text)
    hold_expires_at = Column(Text)  # ISO datetime, NULL once payment is confirmed
    is_recurring = Column(Integer, nullable=False, server_default=text('0'))

    # Dynamic pricing inputs
    is_peak_hour = Column(Integer, nullable=False, server_default=text('0'))
    is_discounted = Column(Integer, nullable=False, server_default=text('0'))
    discount_percentage = Column(Float)
    discount_reason = Column(Text)
    surge_active = Column(Integer, nullable=False, server_default=text('0'))
    surge_multiplier = Column(Float, nullable=False, server_default=text('1'))
    surge_reason = Column(Text)

    block_reason = Column(Text)
    block_type = Column(Text)
    last_modified_by = Column(Integer)

    # Booking restrictions
    min_advance_hours = Column(Float, nullable=False, server_default=text('0'))
    max_advance_hours = Column(Float, nullable=False, server_default=text('720'))
    allowed_user_types = Column(Text, nullable=False, server_default=text("'[]'"))
    minimum_age = Column(Integer)
    maximum_capacity = Column(Integer)

    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    court = relationship('Courts', back_populates='time_slots')

    __table_args__ = (
        UniqueConstraint('court_id', 'date', 'start_time', 'end_time', name='uq_time_slots_court_window'),
        CheckConstraint('end_time > start_time', name='ck_time_slots_end_after_start'),
        CheckConstraint('duration > 0', name='ck_time_slots_duration_positive'),
        CheckConstraint('price >= 0', name='ck_time_slots_price_non_negative'),
        CheckConstraint(
            "status IN ('available', 'booked', 'blocked', 'maintenance')",
            name='ck_time_slots_status',
        ),
        CheckConstraint(
            "(status = 'booked') = (booking_ref IS NOT NULL)",
            name='ck_time_slots_booking_ref',
        ),
        CheckConstraint(
            'discount_percentage IS NULL OR (discount_percentage >= 0 AND discount_percentage <= 100)',
            name='ck_time_slots_discount_range',
        ),
        CheckConstraint('surge_multiplier >= 1', name='ck_time_slots_surge_min'),
        CheckConstraint(
            "block_type IS NULL OR block_type IN ('owner', 'maintenance', 'event', 'admin')",
            name='ck_time_slots_block_type',
        ),
        Index('ix_time_slots_court_date_start', 'court_id', 'date', 'start_time'),
        Index('ix_time_slots_venue_date_status', 'venue_id', 'date', 'status'),
        Index('ix_time_slots_date_status', 'date', 'status'),
        Index('ix_time_slots_booking_ref', 'booking_ref'),
    )
