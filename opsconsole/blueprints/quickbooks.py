"""QuickBooks connection status and customer lookup."""
from flask import Blueprint, request, jsonify, current_app
from opsconsole.database import get_session
from opsconsole.exceptions import ValidationError
from opsconsole.services.quickbooks_connection_service import connection_status

quickbooks_bp = Blueprint('quickbooks', __name__, url_prefix='/quickbooks')


@quickbooks_bp.route('/connection', methods=['GET'])
def get_connection():
    """Connection summary; tokens are never returned."""
    return jsonify(connection_status(get_session(), current_app.config))


@quickbooks_bp.route('/customers', methods=['GET'])
def search_customers():
    """Partial display-name search: ?q=<term>&limit=<n> (limit clamped to 1..100)."""
    term = request.args.get('q', '').strip()
    if not term:
        return jsonify({'customers': []})

    try:
        limit = int(request.args.get('limit', 20))
    except ValueError:
        raise ValidationError('limit must be an integer', field='limit')

    factory = current_app.extensions['quickbooks_client_factory']
    client = factory(get_session(), current_app.config)
    customers = client.search_customers(term, max_results=limit)

    return jsonify({
        'customers': [
            {
                'id': customer.id,
                'displayName': customer.display_name,
                'email': customer.email,
                'phone': customer.phone,
            }
            for customer in customers
        ]
    })
