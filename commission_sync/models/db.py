"""SQLAlchemy database models for exchanges, links and commission data"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, Date, DateTime, JSON,
    ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

LINK_STATUS_PENDING = 'pending'
LINK_STATUS_VERIFIED = 'verified'
LINK_STATUS_REJECTED = 'rejected'

TOKEN_STATUS_ACTIVE = 'active'
TOKEN_STATUS_FAILED = 'failed'

class Exchange(Base):
    """External trading platform we collect affiliate commissions from"""
    __tablename__ = 'exchanges'

    id = Column(Integer, primary_key=True)
    code = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    # Fraction in [0, 1]; NULL falls back to DEFAULT_EXCHANGE_RATE
    default_commission_rate = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

class Tier(Base):
    """Reward level assigned to users"""
    __tablename__ = 'tiers'

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)

class ExchangeTier(Base):
    """Per-exchange commission deduction for a tier"""
    __tablename__ = 'exchange_tiers'
    __table_args__ = (UniqueConstraint('exchange_id', 'tier_id', name='uq_exchange_tier'),)

    id = Column(Integer, primary_key=True)
    exchange_id = Column(Integer, ForeignKey('exchanges.id'), nullable=False)
    tier_id = Column(Integer, ForeignKey('tiers.id'), nullable=False)
    commission_rate = Column(Float, nullable=False)

class Profile(Base):
    """Internal user"""
    __tablename__ = 'profiles'

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    current_tier_id = Column(Integer, ForeignKey('tiers.id'), nullable=True)

class UserExchangeLink(Base):
    """
    Binds an external account on an exchange to an internal user.
    Created by the onboarding flow; only verified links are reconciled.
    """
    __tablename__ = 'user_exchange_links'
    __table_args__ = (UniqueConstraint('exchange_id', 'exchange_uid', name='uq_link_exchange_uid'),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('profiles.id'), nullable=False, index=True)
    exchange_id = Column(Integer, ForeignKey('exchanges.id'), nullable=False)
    exchange_uid = Column(String, nullable=False)
    status = Column(String, nullable=False, default=LINK_STATUS_PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)

class CrawlerToken(Base):
    """Credential used to authenticate against an exchange's affiliate API"""
    __tablename__ = 'crawler_tokens'

    id = Column(Integer, primary_key=True)
    exchange_id = Column(Integer, ForeignKey('exchanges.id'), nullable=False, index=True)
    token = Column(String, nullable=False)
    status = Column(String, nullable=False, default=TOKEN_STATUS_ACTIVE)
    last_used_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)

class DailyCommission(Base):
    """
    One row per external account, exchange and date.
    Pending rows (today) carry only pending amounts; finalized rows
    (past dates) carry only committed amounts.
    """
    __tablename__ = 'daily_commissions'
    __table_args__ = (
        UniqueConstraint('exchange_uid', 'exchange_id', 'date', name='uq_daily_commission_key'),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('profiles.id'), nullable=True, index=True)
    link_id = Column(Integer, ForeignKey('user_exchange_links.id'), nullable=True)
    exchange_id = Column(Integer, ForeignKey('exchanges.id'), nullable=False)
    exchange_uid = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    raw_commissions = Column(Float, nullable=False, default=0.0)
    raw_commissions_pending = Column(Float, nullable=False, default=0.0)
    commissions = Column(Float, nullable=False, default=0.0)
    commissions_pending = Column(Float, nullable=False, default=0.0)
    trading_amount = Column(Float, nullable=False, default=0.0)
    deposits = Column(Float, nullable=False, default=0.0)
    taker_amount = Column(Float, nullable=False, default=0.0)
    maker_amount = Column(Float, nullable=False, default=0.0)
    is_finalized = Column(Boolean, nullable=False, default=False)
    raw_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

class Transaction(Base):
    """
    Realized commission credited to a user.
    Append-only; at most one per user, exchange and date.
    """
    __tablename__ = 'transactions'
    __table_args__ = (
        UniqueConstraint('user_id', 'exchange_id', 'transaction_date', name='uq_transaction_user_day'),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('profiles.id'), nullable=False, index=True)
    link_id = Column(Integer, ForeignKey('user_exchange_links.id'), nullable=True)
    exchange_id = Column(Integer, ForeignKey('exchanges.id'), nullable=False)
    raw_volume = Column(Float, nullable=False, default=0.0)
    commission_amount = Column(Float, nullable=False)
    rate_applied = Column(Float, nullable=False, default=0.0)
    transaction_date = Column(Date, nullable=False)
    raw_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
