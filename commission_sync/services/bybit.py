# commission_sync/services/bybit.py
"""Bybit affiliate API integration"""
import json
import logging
from typing import Any, Dict, Union

import requests

from commission_sync.config import settings, CrawlSettings
from commission_sync.exceptions import CrawlError, TransientCrawlError
from commission_sync.models.commission import RawActivityRecord
from commission_sync.models.crawl import AuthenticationFailure, PageResult
from commission_sync.services.crawler import CrawlAdapter

logger = logging.getLogger(__name__)

INVALID_TOKEN_CODE = 30101

def _to_float(value: Any) -> float:
    if value in (None, ''):
        return 0.0
    return float(value)

class BybitCrawler(CrawlAdapter):
    """Crawls the Bybit affiliate portal's daily client commission list"""

    code = 'BYBIT'

    def __init__(self, crawl_settings: CrawlSettings = None, api_url: str = None):
        super().__init__(crawl_settings)
        self.api_url = api_url or settings.BYBIT_API_URL

    def _headers(self, token: str, target_date: str) -> Dict[str, str]:
        return {
            'accept': 'application/json, text/plain, */*',
            'authorization': f'Bearer {token}',
            'content-type': 'application/json',
            'origin': 'https://affiliates.bybit.com',
            'referer': (
                'https://affiliates.bybit.com/v2/affiliate-portal/clients'
                f'?start_date={target_date}&end_date={target_date}'
            )
        }

    def _payload(self, target_date: str, page: int, page_size: int) -> Dict[str, Any]:
        return {
            'coin': 'All',
            'symbol': '',
            'symbol_type': 0,
            'start_date': target_date,
            'end_date': target_date,
            'page_size': page_size,
            'business_type': 0,
            'page': page,
            'sort_type': 1,
            'sort_status': 0,
            'user_engagement': '',
            'user_asset_stats': '',
            'vip_level': ''
        }

    def _post(self, headers: Dict[str, str], payload: Dict[str, Any]) -> requests.Response:
        """Send the request directly or through the configured proxy"""
        timeout = self.crawl_settings.timeout_seconds
        if self.crawl_settings.proxy_url:
            proxy_payload = {
                'url': self.api_url,
                'headers': headers,
                'method': 'POST',
                'body': json.dumps(payload)
            }
            proxy_headers = {
                'Content-Type': 'application/json',
                'x-api-key': self.crawl_settings.proxy_api_key or ''
            }
            return requests.post(self.crawl_settings.proxy_url, json=proxy_payload,
                                 headers=proxy_headers, timeout=timeout)

        return requests.post(self.api_url, json=payload, headers=headers, timeout=timeout)

    def fetch_page(self, auth_token: str, target_date: str, page: int = 1,
                   page_size: int = 100) -> Union[PageResult, AuthenticationFailure]:
        """Fetch one page of client commissions for a date"""
        logger.info(f"Fetching Bybit commissions for {target_date}, page {page}")
        try:
            response = self._post(self._headers(auth_token, target_date),
                                  self._payload(target_date, page, page_size))
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientCrawlError(f"Bybit crawl failed: {e}") from e
        except requests.RequestException as e:
            raise CrawlError(f"Bybit crawl failed: {e}") from e

        if response.status_code == 401:
            return AuthenticationFailure(message="Bybit rejected the crawler token", page=page)
        if response.status_code >= 500:
            raise TransientCrawlError(f"Bybit crawl failed: HTTP {response.status_code}")
        if response.status_code != 200:
            raise CrawlError(f"Bybit crawl failed: HTTP {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            raise CrawlError(f"Invalid JSON in Bybit response: {response.text}") from e
        if not isinstance(body, dict):
            raise CrawlError(f"Unexpected Bybit response: {response.text}")

        ret_code = body.get('ret_code')
        if ret_code == INVALID_TOKEN_CODE:
            return AuthenticationFailure(message=body.get('ret_msg') or "Bybit crawler token is invalid", page=page)
        if ret_code != 0:
            raise CrawlError(f"Bybit API error: {body.get('ret_msg') or 'Unknown error'}")

        result = body.get('result') or {}
        return PageResult(
            records=result.get('data') or [],
            total_count=int(result.get('total') or 0),
            page=int(result.get('page') or page)
        )

    def record_id(self, raw: Dict[str, Any]) -> str:
        return str(raw.get('user_id', 'unknown'))

    def transform(self, raw: Dict[str, Any]) -> RawActivityRecord:
        """Map a Bybit client record to a RawActivityRecord"""
        return RawActivityRecord(
            external_account_id=str(raw['user_id']),
            commission=_to_float(raw.get('commissions')),
            pending_commission=_to_float(raw.get('pending_commissions')),
            trading_volume=_to_float(raw.get('trading_amount')),
            deposit_volume=_to_float(raw.get('deposits')),
            taker_volume=_to_float(raw.get('taker_amount')),
            maker_volume=_to_float(raw.get('maker_amount')),
            raw_data=raw
        )
