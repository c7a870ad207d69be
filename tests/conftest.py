"""Shared fixtures: in-memory database and seeded exchange data"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from commission_sync.models.crawl import CrawlerCredential
from commission_sync.models.db import (
    Base, Exchange, Tier, ExchangeTier, Profile, UserExchangeLink, CrawlerToken,
    LINK_STATUS_VERIFIED, LINK_STATUS_PENDING
)
from commission_sync.processor import CommissionProcessor
from helpers import ScriptedCrawler, TODAY, EXCHANGE_ID, BRONZE_USER, NO_TIER_USER, PENDING_USER

@pytest.fixture
def session():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()

@pytest.fixture
def seeded(session):
    """Bybit with a 20% default rate and a Bronze tier at 10%"""
    session.add_all([
        Exchange(id=EXCHANGE_ID, code='BYBIT', name='Bybit', default_commission_rate=0.20, is_active=True),
        Exchange(id=2, code='OKX', name='OKX', default_commission_rate=None, is_active=True),
        Exchange(id=3, code='BYBIT_OLD', name='Retired', default_commission_rate=0.10, is_active=False),
        Tier(id=1, name='Bronze'),
        Tier(id=2, name='Silver'),
    ])
    session.flush()
    session.add_all([
        ExchangeTier(exchange_id=EXCHANGE_ID, tier_id=1, commission_rate=0.10),
        Profile(id=BRONZE_USER, email='bronze@example.com', current_tier_id=1),
        Profile(id=NO_TIER_USER, email='plain@example.com', current_tier_id=None),
        Profile(id=PENDING_USER, email='pending@example.com', current_tier_id=1),
    ])
    session.flush()
    session.add_all([
        UserExchangeLink(id=100, user_id=BRONZE_USER, exchange_id=EXCHANGE_ID,
                         exchange_uid='1001', status=LINK_STATUS_VERIFIED),
        UserExchangeLink(id=101, user_id=NO_TIER_USER, exchange_id=EXCHANGE_ID,
                         exchange_uid='1002', status=LINK_STATUS_VERIFIED),
        UserExchangeLink(id=102, user_id=PENDING_USER, exchange_id=EXCHANGE_ID,
                         exchange_uid='1003', status=LINK_STATUS_PENDING),
        CrawlerToken(id=1, exchange_id=EXCHANGE_ID, token='secret-token', status='active'),
    ])
    session.commit()
    return session

@pytest.fixture
def credential():
    return CrawlerCredential(token='secret-token', exchange_id=EXCHANGE_ID)

@pytest.fixture
def make_processor(seeded):
    """Build a processor whose crawler serves the given pages"""
    def _make(pages=None, today=TODAY, crawler=None, **kwargs):
        crawler = crawler or ScriptedCrawler(pages or [])
        return CommissionProcessor(
            seeded,
            crawler_factory=lambda code: crawler,
            today=lambda: today,
            **kwargs
        )
    return _make
