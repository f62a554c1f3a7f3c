"""Alerts blueprint (JSON)."""
from flask import Blueprint, request, jsonify, current_app
from opsconsole.database import get_session
from opsconsole.exceptions import ValidationError
from opsconsole.services.alert_service import (
    check_quote_expiration_alerts,
    delete_alert,
    list_alerts,
    update_alert,
)

alerts_bp = Blueprint('alerts', __name__, url_prefix='/alerts')


@alerts_bp.route('', methods=['GET'])
def get_alerts():
    """Unresolved alerts by default; ?resolved=true&type=&severity=&limit=."""
    alerts = list_alerts(
        get_session(),
        resolved=request.args.get('resolved'),
        type=request.args.get('type') or None,
        severity=request.args.get('severity') or None,
        limit=request.args.get('limit'),
    )
    return jsonify([alert.to_dict() for alert in alerts])


@alerts_bp.route('/check', methods=['POST'])
def run_checks():
    session = get_session()
    count = check_quote_expiration_alerts(
        session, window_days=current_app.config.get('QUOTE_EXPIRY_ALERT_DAYS', 7)
    )
    return jsonify({'ok': True, 'alerts': count})


@alerts_bp.route('/<alert_id>', methods=['PATCH'])
def patch_alert(alert_id):
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    alert = update_alert(get_session(), alert_id, body)
    return jsonify(alert.to_dict())


@alerts_bp.route('/<alert_id>', methods=['DELETE'])
def remove_alert(alert_id):
    delete_alert(get_session(), alert_id)
    return jsonify({'ok': True, 'id': alert_id})
