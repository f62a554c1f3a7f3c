"""QuickBooks Online API client for customers and estimates."""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from opsconsole.exceptions import ConfigurationError, UpstreamError
from opsconsole.services.quickbooks_connection_service import CredentialResolver, QuickBooksCredentials
from opsconsole.services.quickbooks_payloads import (
    CustomerInput, EstimateInput, PayloadError, QuickBooksCustomer, QuickBooksEstimate,
)

logger = logging.getLogger(__name__)

MAX_QUERY_RESULTS = 1000
MAX_CUSTOMER_SEARCH_RESULTS = 100


@dataclass
class MalformedEstimate:
    """An estimate row from a bulk query that could not be narrowed."""
    id: str
    error: str


def escape_query_value(value: str) -> str:
    """Escape backslashes and single quotes for a QuickBooks query literal."""
    return value.replace('\\', '\\\\').replace("'", "\\'")


def escape_like_value(value: str) -> str:
    """Escape a value for a LIKE pattern (literal % and _ as well)."""
    return (
        value.replace('\\', '\\\\')
        .replace('%', '\\%')
        .replace('_', '\\_')
        .replace("'", "\\'")
    )


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(low, int(value)), high)


class QuickBooksClient:
    """
    Thin typed layer over the QuickBooks Online v3 REST API.

    Credentials are resolved on every call so an expired connection is
    detected before the request is sent.

    Raises (every method):
        ConfigurationError: not configured, expired token, or 401 from QuickBooks.
        UpstreamError: network failure, non-2xx response or unexpected payload.
    """

    def __init__(self, credential_resolver: Callable[[], QuickBooksCredentials], base_url: str,
                 timeout: int = 15, minor_version: Optional[str] = None):
        self.credential_resolver = credential_resolver
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.minor_version = minor_version

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
                 params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        credentials = self.credential_resolver()
        url = f"{self.base_url}/{credentials.realm_id}{path}"

        headers = {
            'Authorization': f'Bearer {credentials.access_token}',
            'Accept': 'application/json',
        }
        if body is not None:
            headers['Content-Type'] = 'application/json'

        query_params = dict(params or {})
        if self.minor_version:
            query_params['minorversion'] = self.minor_version

        try:
            response = requests.request(
                method, url, json=body, params=query_params or None,
                headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"[QB] {method} {path} failed: {e}")
            raise UpstreamError(f'QuickBooks request failed: {e}')

        if response.status_code == 401:
            logger.error(f"[QB] {method} {path} unauthorized: {response.text}")
            raise ConfigurationError('QuickBooks rejected the access token. Reconnect QuickBooks.')

        if not response.ok:
            logger.error(f"[QB] {method} {path} returned {response.status_code}: {response.text}")
            raise UpstreamError(
                f'QuickBooks API {response.status_code}: {response.text}',
                upstream_status=response.status_code,
                upstream_body=response.text,
            )

        try:
            return response.json()
        except ValueError:
            raise UpstreamError(
                'QuickBooks returned a non-JSON response',
                upstream_status=response.status_code,
                upstream_body=response.text,
            )

    def _query(self, statement: str) -> Dict[str, Any]:
        data = self._request('GET', '/query', params={'query': statement})
        query_response = data.get('QueryResponse') if isinstance(data, dict) else None
        return query_response if isinstance(query_response, dict) else {}

    @staticmethod
    def _entity(data: Dict[str, Any], key: str) -> Dict[str, Any]:
        entity = data.get(key) if isinstance(data, dict) else None
        if not isinstance(entity, dict):
            raise UpstreamError(f'QuickBooks response is missing {key}')
        return entity

    # -------------------------------------------------------------- customers

    def search_customers_by_display_name(self, display_name: str) -> List[QuickBooksCustomer]:
        """Exact DisplayName match, at most 10 results."""
        escaped = escape_query_value(display_name.strip())
        rows = self._query(f"select * from Customer where DisplayName='{escaped}' maxresults 10")
        return self._parse_customers(rows.get('Customer') or [])

    def search_customers(self, term: str, max_results: int = 20) -> List[QuickBooksCustomer]:
        """Partial DisplayName match."""
        term = (term or '').strip()
        if not term:
            return []
        limit = _clamp(max_results, 1, MAX_CUSTOMER_SEARCH_RESULTS)
        escaped = escape_like_value(term)
        rows = self._query(f"select * from Customer where DisplayName like '%{escaped}%' maxresults {limit}")
        return self._parse_customers(rows.get('Customer') or [])

    def create_customer(self, customer: CustomerInput) -> QuickBooksCustomer:
        logger.info(f"[QB] Creating customer '{customer.display_name}'")
        data = self._request('POST', '/customer', body=customer.to_payload())
        try:
            return QuickBooksCustomer.from_dict(self._entity(data, 'Customer'))
        except PayloadError as e:
            raise UpstreamError(f'Unexpected QuickBooks customer payload: {e}')

    @staticmethod
    def _parse_customers(rows) -> List[QuickBooksCustomer]:
        try:
            return [QuickBooksCustomer.from_dict(row) for row in rows]
        except PayloadError as e:
            raise UpstreamError(f'Unexpected QuickBooks customer payload: {e}')

    # -------------------------------------------------------------- estimates

    def create_estimate(self, estimate: EstimateInput) -> QuickBooksEstimate:
        data = self._request('POST', '/estimate', body=estimate.to_payload())
        created = self._parse_estimate(self._entity(data, 'Estimate'))
        logger.info(f"[QB] Estimate created: {created.id} (DocNumber={created.doc_number})")
        return created

    def get_estimate(self, estimate_id: str) -> QuickBooksEstimate:
        data = self._request('GET', f'/estimate/{estimate_id}')
        return self._parse_estimate(self._entity(data, 'Estimate'))

    def update_estimate(self, estimate_id: str, sync_token: str, estimate: EstimateInput) -> QuickBooksEstimate:
        """Full update; sync_token must come from a get_estimate issued just before."""
        body = estimate.to_payload()
        body['Id'] = estimate_id
        body['SyncToken'] = sync_token
        data = self._request('POST', '/estimate', body=body)
        updated = self._parse_estimate(self._entity(data, 'Estimate'))
        logger.info(f"[QB] Estimate updated: {updated.id} (SyncToken={updated.sync_token})")
        return updated

    def query_estimates(self, max_results: int = 100,
                        start_position: Optional[int] = None) -> List[Union[QuickBooksEstimate, MalformedEstimate]]:
        """
        Bulk read of estimates.

        Rows that cannot be narrowed come back as MalformedEstimate so one bad
        row does not hide the others.
        """
        limit = _clamp(max_results, 1, MAX_QUERY_RESULTS)
        statement = f"select * from Estimate maxresults {limit}"
        if start_position is not None and start_position > 0:
            statement += f" startposition {int(start_position)}"

        rows = self._query(statement).get('Estimate') or []
        estimates = []
        for row in rows:
            try:
                estimates.append(QuickBooksEstimate.from_dict(row))
            except PayloadError as e:
                row_id = row.get('Id') if isinstance(row, dict) else None
                logger.warning(f"[QB] Skipping malformed estimate {row_id}: {e}")
                estimates.append(MalformedEstimate(id=str(row_id or 'unknown'), error=str(e)))
        return estimates

    @staticmethod
    def _parse_estimate(data: Dict[str, Any]) -> QuickBooksEstimate:
        try:
            return QuickBooksEstimate.from_dict(data)
        except PayloadError as e:
            raise UpstreamError(f'Unexpected QuickBooks estimate payload: {e}')


def build_quickbooks_client(session, config) -> QuickBooksClient:
    """Client wired to the stored connection (or static config) for this session."""
    return QuickBooksClient(
        credential_resolver=CredentialResolver.from_config(session, config),
        base_url=config['QUICKBOOKS_API_BASE_URL'],
        timeout=config.get('QUICKBOOKS_HTTP_TIMEOUT', 15),
        minor_version=config.get('QUICKBOOKS_MINOR_VERSION'),
    )
