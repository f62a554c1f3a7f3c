"""Quotes blueprint: quote CRUD plus QuickBooks push and pull."""
from flask import Blueprint, request, jsonify, current_app
from typing import Any, Dict
from opsconsole.database import get_session
from opsconsole.exceptions import ConfigurationError, ConflictError, OpsError, ValidationError
from opsconsole.services.alert_service import trigger_quote_alerts
from opsconsole.services.quote_service import QuoteStore, parse_quote_fields, parse_quote_items
from opsconsole.services.quote_sync_service import QuoteReconciler, error_kind, push_quote_and_record
from opsconsole.blueprints.metrics import record_pull, record_push

quotes_bp = Blueprint('quotes', __name__, url_prefix='/quotes')


def _get_store(session) -> QuoteStore:
    return QuoteStore(session, max_number_attempts=current_app.config.get('QUOTE_NUMBER_MAX_ATTEMPTS', 5))


def _get_reconciler(session, store: QuoteStore) -> QuoteReconciler:
    """Reconciler wired with the client factory registered on the app (tests swap it)."""
    factory = current_app.extensions['quickbooks_client_factory']
    return QuoteReconciler(factory(session, current_app.config), store)


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return body


def _run_alert_checks(session) -> None:
    trigger_quote_alerts(session, window_days=current_app.config.get('QUOTE_EXPIRY_ALERT_DAYS', 7))


def _push_with_warning(session, store: QuoteStore, quote_id: str):
    """Push after a local write; returns a warning string instead of raising."""
    try:
        result = push_quote_and_record(_get_reconciler(session, store), store, quote_id)
    except OpsError as e:
        current_app.logger.warning(f"[QUOTES] Push after save failed for {quote_id}: {e.message}")
        record_push(error_kind(e))
        return f'Quote saved locally but QuickBooks sync failed: {e.message}'
    except Exception as e:
        current_app.logger.exception(f"[QUOTES] Push after save failed for {quote_id}")
        record_push('upstream')
        return f'Quote saved locally but QuickBooks sync failed: {e}'

    record_push('created' if result.created else 'updated')
    return None


@quotes_bp.route('', methods=['GET'])
def list_quotes():
    """List quotes newest first, optionally filtered by ?status= and ?q=."""
    store = _get_store(get_session())
    status = request.args.get('status', '').strip().upper() or None
    search = request.args.get('q', '').strip() or None
    quotes = store.list(status=status, search=search)
    return jsonify([quote.to_dict() for quote in quotes])


@quotes_bp.route('', methods=['POST'])
def create_quote():
    """
    Create a quote with its items.

    Totals are computed server-side. With syncToQuickBooks=true the quote is
    pushed after it is saved; a push failure is reported as a warning.
    """
    session = get_session()
    store = _get_store(session)
    body = _json_body()

    fields = parse_quote_fields(body)
    items = parse_quote_items(body.get('quoteItems'))
    quote = store.create(fields, items)

    warning = None
    if body.get('syncToQuickBooks') is True:
        warning = _push_with_warning(session, store, quote.id)

    _run_alert_checks(session)

    data = store.get(quote.id).to_dict()
    if warning:
        data['warning'] = warning
    return jsonify(data), 201


@quotes_bp.route('/<quote_id>', methods=['GET'])
def get_quote(quote_id):
    store = _get_store(get_session())
    return jsonify(store.get(quote_id).to_dict())


@quotes_bp.route('/<quote_id>', methods=['PATCH'])
def update_quote(quote_id):
    """
    Partial update.

    quoteItems, when present, replaces the whole item set. Discount changes
    without items are recomputed against the stored items.
    """
    session = get_session()
    store = _get_store(session)
    body = _json_body()

    # 404 before validation errors on unknown ids
    store.get(quote_id)

    patch = parse_quote_fields(body, partial=True)
    items = None
    if body.get('quoteItems') is not None:
        items = parse_quote_items(body['quoteItems'])

    quote = store.update(quote_id, patch, items)

    warning = None
    if body.get('syncToQuickBooks') is True:
        warning = _push_with_warning(session, store, quote.id)

    _run_alert_checks(session)

    data = store.get(quote_id).to_dict()
    if warning:
        data['warning'] = warning
    return jsonify(data)


@quotes_bp.route('/<quote_id>', methods=['DELETE'])
def delete_quote(quote_id):
    store = _get_store(get_session())
    store.delete(quote_id)
    return jsonify({'ok': True, 'id': quote_id})


@quotes_bp.route('/<quote_id>/push-to-quickbooks', methods=['POST'])
def push_to_quickbooks(quote_id):
    """Create or update the QuickBooks estimate for a quote."""
    session = get_session()
    store = _get_store(session)
    store.get(quote_id)

    try:
        result = push_quote_and_record(_get_reconciler(session, store), store, quote_id)
    except ConfigurationError as e:
        current_app.logger.warning(f"[QUOTES] Push of {quote_id} needs reconnect: {e.message}")
        record_push('configuration')
        return jsonify({'ok': False, 'error': e.message, 'errorKind': 'configuration'}), 401
    except ConflictError as e:
        current_app.logger.error(f"[QUOTES] Push of {quote_id} created a remote estimate that was left unlinked: {e.message}")
        record_push('conflict')
        return jsonify({'ok': False, 'error': e.message, 'errorKind': 'conflict'}), 409
    except OpsError as e:
        current_app.logger.error(f"[QUOTES] Push of {quote_id} failed: {e.message}")
        record_push('upstream')
        return jsonify({'ok': False, 'error': e.message, 'errorKind': 'upstream'}), 502
    except Exception as e:
        current_app.logger.exception(f"[QUOTES] Push of {quote_id} failed")
        record_push('upstream')
        return jsonify({'ok': False, 'error': str(e), 'errorKind': 'upstream'}), 502

    record_push('created' if result.created else 'updated')
    return jsonify({
        'ok': True,
        'created': result.created,
        'quickbooksEstimateId': result.quickbooks_estimate_id,
        'quote': store.get(quote_id).to_dict(),
    })


@quotes_bp.route('/sync-from-quickbooks', methods=['POST'])
def sync_from_quickbooks():
    """Pull estimates from QuickBooks into local quotes."""
    session = get_session()
    store = _get_store(session)
    page_size = current_app.config.get('QUICKBOOKS_ESTIMATE_PAGE_SIZE', 100)

    result = _get_reconciler(session, store).sync_from_quickbooks(max_results=page_size)
    record_pull(result)

    if result.ok:
        _run_alert_checks(session)
    return jsonify(result.to_dict()), result.status_code
