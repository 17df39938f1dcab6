# backend/spabooker/models/entities.py
"""
Database tables.

Timestamps are stored as naive UTC datetimes; the scheduling engine
treats naive values as UTC.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Table,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata

Money = Numeric(10, 2)


class Locations(Base):
    __tablename__ = 'locations'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    city = Column(Text)
    is_active = Column(Boolean, nullable=False, server_default=text('1'))

    rooms = relationship('Rooms', back_populates='location')
    services = relationship('Services', back_populates='location')


class Clients(Base):
    __tablename__ = 'clients'

    id = Column(Integer, primary_key=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text)
    email = Column(Text, unique=True)
    phone = Column(Text)

    bookings = relationship('Bookings', back_populates='client')
    memberships = relationship('UserMemberships', back_populates='client')


class Services(Base):
    __tablename__ = 'services'

    id = Column(Integer, primary_key=True)
    location_id = Column(ForeignKey('locations.id', ondelete='SET NULL'))
    name = Column(Text, nullable=False)
    description = Column(Text)
    duration_minutes = Column(Integer, nullable=False, server_default=text('60'))
    base_price = Column(Money, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=text('1'))
    credit_eligible = Column(Boolean, nullable=False, server_default=text('1'))

    location = relationship('Locations', back_populates='services')
    bookings = relationship('Bookings', back_populates='service')


class Therapists(Base):
    __tablename__ = 'therapists'

    id = Column(Integer, primary_key=True)
    display_name = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, server_default=text('1'))

    bookings = relationship('Bookings', back_populates='therapist')


t_therapist_services = Table(
    'therapist_services', metadata,
    Column('therapist_id', ForeignKey('therapists.id', ondelete='CASCADE'), nullable=False),
    Column('service_id', ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
    Column('is_active', Boolean, nullable=False, server_default=text('1')),
    UniqueConstraint('therapist_id', 'service_id')
)


class TherapistAvailability(Base):
    __tablename__ = 'therapist_availability'

    id = Column(Integer, primary_key=True)
    therapist_id = Column(ForeignKey('therapists.id', ondelete='CASCADE'), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Monday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    specific_date = Column(Date)  # overrides the weekly rows for that date
    is_available = Column(Boolean, nullable=False, server_default=text('1'))
    notes = Column(Text)


class Rooms(Base):
    __tablename__ = 'rooms'
    __table_args__ = (
        UniqueConstraint('location_id', 'name'),
    )

    id = Column(Integer, primary_key=True)
    location_id = Column(ForeignKey('locations.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    display_order = Column(Integer)
    is_active = Column(Boolean, nullable=False, server_default=text('1'))

    location = relationship('Locations', back_populates='rooms')
    bookings = relationship('Bookings', back_populates='room')
    capabilities = relationship('RoomServiceCapabilities', back_populates='room')


class RoomServiceCapabilities(Base):
    __tablename__ = 'room_service_capabilities'
    __table_args__ = (
        UniqueConstraint('room_id', 'service_id'),
    )

    id = Column(Integer, primary_key=True)
    room_id = Column(ForeignKey('rooms.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id', ondelete='CASCADE'), nullable=False)

    room = relationship('Rooms', back_populates='capabilities')


class Bookings(Base):
    __tablename__ = 'bookings'

    id = Column(Integer, primary_key=True)
    client_id = Column(ForeignKey('clients.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    therapist_id = Column(ForeignKey('therapists.id'))
    room_id = Column(ForeignKey('rooms.id'))
    location_id = Column(ForeignKey('locations.id'))
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'pending'"))
    service_price = Column(Money, nullable=False, server_default=text('0'))
    total_price = Column(Money, nullable=False, server_default=text('0'))
    deposit_amount = Column(Money, nullable=False, server_default=text('0'))
    discount_applied = Column(Money, nullable=False, server_default=text('0'))
    used_membership_credits = Column(Boolean, nullable=False, server_default=text('0'))
    credits_used = Column(Numeric(10, 2), nullable=False, server_default=text('0'))
    gift_certificate_code = Column(Text)
    payment_reference = Column(Text)
    notes = Column(Text)
    cancellation_reason = Column(Text)
    reschedule_reason = Column(Text)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    client = relationship('Clients', back_populates='bookings')
    service = relationship('Services', back_populates='bookings')
    therapist = relationship('Therapists', back_populates='bookings')
    room = relationship('Rooms', back_populates='bookings')


class BlockedTimes(Base):
    __tablename__ = 'blocked_times'

    id = Column(Integer, primary_key=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    therapist_id = Column(ForeignKey('therapists.id', ondelete='CASCADE'))  # NULL + room NULL = whole location
    room_id = Column(ForeignKey('rooms.id', ondelete='CASCADE'))
    location_id = Column(ForeignKey('locations.id', ondelete='CASCADE'))
    reason = Column(Text)


class UserMemberships(Base):
    __tablename__ = 'user_memberships'

    id = Column(Integer, primary_key=True)
    client_id = Column(ForeignKey('clients.id', ondelete='CASCADE'), nullable=False)
    plan_name = Column(Text)
    status = Column(Text, nullable=False, server_default=text("'active'"))
    current_credits = Column(Numeric(10, 2), nullable=False, server_default=text('0'))
    updated_at = Column(DateTime)

    client = relationship('Clients', back_populates='memberships')
    credit_transactions = relationship('MembershipCreditTransactions', back_populates='membership')


class MembershipCreditTransactions(Base):
    __tablename__ = 'membership_credit_transactions'

    id = Column(Integer, primary_key=True)
    membership_id = Column(ForeignKey('user_memberships.id', ondelete='CASCADE'), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    type = Column(Text, nullable=False)
    description = Column(Text)
    related_booking_id = Column(ForeignKey('bookings.id', ondelete='SET NULL'))
    created_at = Column(DateTime)

    membership = relationship('UserMemberships', back_populates='credit_transactions')


class GiftCertificates(Base):
    __tablename__ = 'gift_certificates'

    id = Column(Integer, primary_key=True)
    code = Column(Text, nullable=False, unique=True)
    original_amount = Column(Money, nullable=False)
    remaining_balance = Column(Money, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'Active'"))
    is_active = Column(Boolean, nullable=False, server_default=text('1'))
    expires_at = Column(DateTime)
    restricted_to_location_id = Column(ForeignKey('locations.id', ondelete='SET NULL'))
    updated_at = Column(DateTime)

    transactions = relationship('GiftCertificateTransactions', back_populates='gift_certificate')


class GiftCertificateTransactions(Base):
    __tablename__ = 'gift_certificate_transactions'

    id = Column(Integer, primary_key=True)
    gift_certificate_id = Column(ForeignKey('gift_certificates.id', ondelete='CASCADE'), nullable=False)
    type = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    balance_before = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    description = Column(Text)
    related_booking_id = Column(ForeignKey('bookings.id', ondelete='SET NULL'))
    created_at = Column(DateTime)

    gift_certificate = relationship('GiftCertificates', back_populates='transactions')
