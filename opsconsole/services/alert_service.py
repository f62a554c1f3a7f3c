"""
Service for operational alerts (quotes nearing or past expiry).
"""
import logging
import math
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from opsconsole.exceptions import NotFoundError, ValidationError
from opsconsole.models import Alert, AlertSeverity, AlertType, Quote, QuoteStatus
from opsconsole.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500


def create_alert(session: Session, type: str, severity: str, title: str, message: str,
                 entity_type: Optional[str] = None, entity_id: Optional[str] = None) -> Alert:
    """
    Create an alert, or refresh the open one for the same (type, entity).

    A refreshed alert gets the new title/message/severity, becomes unread again
    and moves to the top of the list (created_at = now).
    """
    existing = None
    if entity_type and entity_id:
        existing = session.query(Alert).filter(
            and_(
                Alert.type == type,
                Alert.entity_type == entity_type,
                Alert.entity_id == entity_id,
                Alert.resolved.is_(False),
            )
        ).first()

    try:
        if existing is not None:
            existing.title = title
            existing.message = message
            existing.severity = severity
            existing.read = False
            existing.created_at = utcnow()
            alert = existing
        else:
            alert = Alert(
                type=type,
                severity=severity,
                title=title,
                message=message,
                entity_type=entity_type,
                entity_id=entity_id,
            )
            session.add(alert)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return alert


def check_quote_expiration_alerts(session: Session, now=None, window_days: int = 7) -> int:
    """
    Raise alerts for SENT quotes expiring within window_days and for quotes past validUntil.

    Returns:
        int: number of alerts created or refreshed
    """
    if now is None:
        now = utcnow()
    window_end = now + timedelta(days=window_days)
    count = 0

    expiring = session.query(Quote).filter(
        Quote.status == QuoteStatus.SENT.value,
        Quote.valid_until.isnot(None),
        Quote.valid_until >= now,
        Quote.valid_until <= window_end,
    ).all()

    for quote in expiring:
        days_left = math.ceil((quote.valid_until - now).total_seconds() / 86400)
        severity = AlertSeverity.CRITICAL if days_left <= 1 else AlertSeverity.WARNING
        create_alert(
            session,
            type=AlertType.QUOTE_EXPIRED.value,
            severity=severity.value,
            title=f'Quote Expiring: {quote.quote_number}',
            message=f'Quote {quote.quote_number} for {quote.customer_name} expires in {days_left} day(s).',
            entity_type='quote',
            entity_id=quote.id,
        )
        count += 1

    expired = session.query(Quote).filter(
        Quote.status != QuoteStatus.EXPIRED.value,
        Quote.valid_until.isnot(None),
        Quote.valid_until < now,
    ).all()

    for quote in expired:
        create_alert(
            session,
            type=AlertType.QUOTE_EXPIRED.value,
            severity=AlertSeverity.CRITICAL.value,
            title=f'Quote Expired: {quote.quote_number}',
            message=f'Quote {quote.quote_number} for {quote.customer_name} has expired.',
            entity_type='quote',
            entity_id=quote.id,
        )
        count += 1

    if count:
        logger.info(f"[ALERTS] Quote expiration check raised {count} alert(s)")
    return count


def trigger_quote_alerts(session: Session, window_days: int = 7) -> None:
    """Run the quote expiration check after a quote mutation; failures are logged, never raised."""
    try:
        check_quote_expiration_alerts(session, window_days=window_days)
    except Exception as e:
        session.rollback()
        logger.warning(f"[ALERTS] Quote expiration check failed: {e}")


def _parse_bool(value: Optional[str], field: str) -> Optional[bool]:
    if value is None or value == '':
        return None
    lowered = value.strip().lower()
    if lowered in ('true', '1', 'yes'):
        return True
    if lowered in ('false', '0', 'no'):
        return False
    raise ValidationError(f'{field} must be true or false', field=field)


def list_alerts(session: Session, resolved: Optional[str] = None, type: Optional[str] = None,
                severity: Optional[str] = None, limit: Optional[str] = None) -> List[Alert]:
    """Alerts newest first; unresolved only unless resolved=true is asked for."""
    resolved_flag = _parse_bool(resolved, 'resolved')
    query = session.query(Alert).filter(Alert.resolved.is_(bool(resolved_flag)))

    if type:
        query = query.filter(Alert.type == type)
    if severity:
        if severity not in [s.value for s in AlertSeverity]:
            raise ValidationError('Invalid severity', field='severity')
        query = query.filter(Alert.severity == severity)

    if limit in (None, ''):
        max_rows = DEFAULT_LIST_LIMIT
    else:
        try:
            max_rows = int(limit)
        except (TypeError, ValueError):
            raise ValidationError('limit must be an integer', field='limit')
        max_rows = min(max(1, max_rows), MAX_LIST_LIMIT)

    return query.order_by(Alert.created_at.desc()).limit(max_rows).all()


def get_alert(session: Session, alert_id: str) -> Alert:
    alert = session.get(Alert, alert_id)
    if not alert:
        raise NotFoundError(f'Alert {alert_id} not found')
    return alert


def update_alert(session: Session, alert_id: str, changes: Dict[str, Any]) -> Alert:
    """Apply read/resolved flags; resolving stamps resolved_at, un-resolving clears it."""
    alert = get_alert(session, alert_id)

    for key in ('read', 'resolved'):
        if key in changes and not isinstance(changes[key], bool):
            raise ValidationError(f'{key} must be a boolean', field=key)

    try:
        if 'read' in changes:
            alert.read = changes['read']
        if 'resolved' in changes:
            alert.resolved = changes['resolved']
            alert.resolved_at = utcnow() if changes['resolved'] else None
        session.commit()
    except Exception:
        session.rollback()
        raise
    return alert


def delete_alert(session: Session, alert_id: str) -> None:
    alert = get_alert(session, alert_id)
    try:
        session.delete(alert)
        session.commit()
    except Exception:
        session.rollback()
        raise
