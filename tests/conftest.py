import pytest
import os
import tempfile

# Throw-away SQLite database for the whole test run
_db_fd, _db_path = tempfile.mkstemp(prefix='opsconsole-test-', suffix='.db')
os.close(_db_fd)
os.environ['DATABASE_URL'] = f'sqlite:///{_db_path}'

from config import Config
from opsconsole import create_app
from opsconsole.database import Base, create_all, drop_all, get_session
from opsconsole.services.quickbooks_payloads import QuickBooksCustomer, QuickBooksEstimate
from opsconsole.services.quote_service import QuoteStore


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = f'sqlite:///{_db_path}'
    SQLALCHEMY_ECHO = False
    QUICKBOOKS_REALM_ID = ''
    QUICKBOOKS_ACCESS_TOKEN = ''
    SENTRY_DSN = None


class FakeQuickBooksClient:
    """In-memory stand-in for QuickBooksClient that records every call."""

    def __init__(self):
        self.calls = []
        self.customers = []
        self.estimates = {}
        self.query_results = []
        self.error = None
        self._next_id = 100

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if self.error is not None:
            raise self.error

    def _new_id(self):
        self._next_id += 1
        return str(self._next_id)

    def call_names(self):
        return [call[0] for call in self.calls]

    def search_customers_by_display_name(self, display_name):
        self._record('search_customers_by_display_name', display_name)
        return [c for c in self.customers if c.display_name == display_name]

    def search_customers(self, term, max_results=20):
        self._record('search_customers', term, max_results)
        matches = [c for c in self.customers if term.lower() in (c.display_name or '').lower()]
        return matches[:max_results]

    def create_customer(self, customer_input):
        self._record('create_customer', customer_input)
        customer = QuickBooksCustomer(id=self._new_id(), display_name=customer_input.display_name, sync_token='0')
        self.customers.append(customer)
        return customer

    def create_estimate(self, estimate_input):
        self._record('create_estimate', estimate_input)
        estimate = QuickBooksEstimate(id=self._new_id(), sync_token='0', doc_number=estimate_input.doc_number)
        self.estimates[estimate.id] = estimate
        return estimate

    def get_estimate(self, estimate_id):
        self._record('get_estimate', estimate_id)
        return self.estimates.get(estimate_id) or QuickBooksEstimate(id=estimate_id, sync_token='3')

    def update_estimate(self, estimate_id, sync_token, estimate_input):
        self._record('update_estimate', estimate_id, sync_token, estimate_input)
        estimate = QuickBooksEstimate(
            id=estimate_id,
            sync_token=str(int(sync_token) + 1),
            doc_number=estimate_input.doc_number,
        )
        self.estimates[estimate_id] = estimate
        return estimate

    def query_estimates(self, max_results=100, start_position=None):
        self._record('query_estimates', max_results)
        return list(self.query_results)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app(TestConfig)
    create_all()
    yield app
    drop_all()
    if os.path.exists(_db_path):
        os.remove(_db_path)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every table is emptied after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.remove()


@pytest.fixture(scope='function')
def store(session):
    return QuoteStore(session)


@pytest.fixture(scope='function')
def fake_qb(app):
    """FakeQuickBooksClient wired into the app in place of the real client."""
    fake = FakeQuickBooksClient()
    original = app.extensions['quickbooks_client_factory']
    app.extensions['quickbooks_client_factory'] = lambda session, config: fake
    yield fake
    app.extensions['quickbooks_client_factory'] = original


@pytest.fixture(scope='function')
def quote_items():
    """Two items: 3 x 10.00 and 1 x 5.00 (subtotal 35)."""
    return [
        {'product_id': None, 'product_name': 'Widget', 'sku': 'W-1', 'quantity': 3,
         'unit_price': 10.0, 'total_price': 30.0},
        {'product_id': None, 'product_name': 'Gadget', 'sku': None, 'quantity': 1,
         'unit_price': 5.0, 'total_price': 5.0},
    ]
