from datetime import datetime
from typing import Any, Dict, Optional
from flask import Blueprint, request, jsonify, current_app
from api.middleware.auth_middleware import AuthMiddleware
from core.clock import parse_time
from core.dependency_container import get_service
from core.exceptions import NotFoundError, ValidationError
from core.types import ChatID, SubscriptionStatus
from data.models import Subscription, User
from data.user_repository import SQLITE_INTEGER_MAX, SQLITE_INTEGER_MIN, UserRepository

user_bp = Blueprint('users', __name__)

SUBSCRIPTION_FIELDS = ('subscription_status', 'duration', 'start_subscription', 'end_subscription')

def get_user_repository() -> UserRepository:
    """Returns the process-wide repository from the dependency container."""
    return get_service('user_repository')

def _request_timeout() -> Optional[float]:
    return current_app.config.get('REQUEST_TIMEOUT')

def _json_body() -> Any:
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError('body', request.get_data(as_text=True)[:64], 'request body must be valid JSON')
    return data

def _parse_timestamp(field: str, value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValidationError(field, value, 'must be an ISO-8601 timestamp')
    try:
        return parse_time(value)
    except ValueError:
        raise ValidationError(field, value, 'must be an ISO-8601 timestamp') from None

def _parse_subscription(data: Dict[str, Any], now: datetime) -> Subscription:
    """Builds a subscription from its wire form, filling absent fields with creation defaults."""
    subscription = Subscription(start_date=now)
    if 'subscription_status' in data:
        try:
            subscription.status = SubscriptionStatus.parse(data['subscription_status'])
        except ValueError:
            raise ValidationError('subscription_status', data['subscription_status'], "must be 'active' or 'inactive'") from None
    if 'duration' in data:
        if not isinstance(data['duration'], str) or not data['duration'].strip():
            raise ValidationError('duration', data['duration'], 'must be a non-empty string')
        subscription.duration = data['duration']
    if 'start_subscription' in data:
        subscription.start_date = _parse_timestamp('start_subscription', data['start_subscription'])
    if 'end_subscription' in data:
        subscription.end_date = _parse_timestamp('end_subscription', data['end_subscription'])
    return subscription

def _parse_chat_id(value: Any) -> ChatID:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError('chat_id', value, 'must be an integer')
    if not SQLITE_INTEGER_MIN <= value <= SQLITE_INTEGER_MAX:
        raise ValidationError('chat_id', value, 'must fit in a signed 64-bit integer')
    return value

@user_bp.route('/', methods=['POST'])
@AuthMiddleware.require_auth
def create_user():
    """
    Create a new user with its subscription.

    Request body:
    {
        "username": "string",
        "chat_id": int (optional),
        "traffic": float (optional),
        "subscription": {...} (optional)
    }
    """
    data = _json_body()
    if not isinstance(data, dict) or 'username' not in data:
        return jsonify({
            'error': 'Missing required field',
            'message': 'Username is required'
        }), 400

    user_repo = get_user_repository()
    subscription = None
    if data.get('subscription') is not None:
        if not isinstance(data['subscription'], dict):
            raise ValidationError('subscription', data['subscription'], 'must be an object')
        subscription = _parse_subscription(data['subscription'], user_repo.clock.now())

    user = User(
        username=data['username'],
        chat_id=_parse_chat_id(data.get('chat_id', 0)),
        traffic=data.get('traffic', 0.0),
        subscription=subscription
    )
    created = user_repo.create_user(user, timeout=_request_timeout())
    return jsonify(created.to_dict()), 201

@user_bp.route('/<username>', methods=['GET'])
@AuthMiddleware.require_auth
def get_user(username: str):
    """Get a user and its subscription."""
    user = get_user_repository().get_user(username, timeout=_request_timeout())
    if user is None:
        raise NotFoundError(username)
    return jsonify(user.to_dict()), 200

@user_bp.route('/<username>', methods=['PUT'])
@AuthMiddleware.require_auth
def update_user_subscription(username: str):
    """
    Replace a user's subscription.

    Request body:
    {
        "subscription": {
            "subscription_status": "active" | "inactive",
            "duration": "string",
            "start_subscription": "ISO-8601",
            "end_subscription": "ISO-8601"
        }
    }
    """
    data = _json_body()
    payload = data.get('subscription', data) if isinstance(data, dict) else None
    if not isinstance(payload, dict):
        raise ValidationError('subscription', payload, 'must be an object')

    missing = [name for name in SUBSCRIPTION_FIELDS if name not in payload]
    if missing:
        return jsonify({
            'error': 'Missing required field',
            'message': f"Subscription fields required: {', '.join(missing)}"
        }), 400

    user_repo = get_user_repository()
    subscription = _parse_subscription(payload, user_repo.clock.now())
    user_repo.update_user_subscription(username, subscription, timeout=_request_timeout())

    updated = user_repo.get_user(username, timeout=_request_timeout())
    if updated is None:
        raise NotFoundError(username)
    return jsonify(updated.to_dict()), 200

@user_bp.route('/<username>', methods=['DELETE'])
@AuthMiddleware.require_auth
def delete_user(username: str):
    """Delete a user together with its subscription."""
    if not get_user_repository().delete_user(username, timeout=_request_timeout()):
        raise NotFoundError(username)
    return '', 204

@user_bp.route('/<username>/subscription', methods=['GET'])
@AuthMiddleware.require_auth
def subscription_status(username: str):
    """Get the subscription status string of a user."""
    status = get_user_repository().subscription_status(username, timeout=_request_timeout())
    return jsonify(status.value), 200

@user_bp.route('/<username>/exists', methods=['GET'])
@AuthMiddleware.require_auth
def user_exists(username: str):
    """Check whether a user exists."""
    return jsonify(get_user_repository().user_exists(username, timeout=_request_timeout())), 200

@user_bp.route('/<username>/traffic', methods=['PUT'])
@AuthMiddleware.require_auth
def update_user_traffic(username: str):
    """
    Set the traffic used by a user, in megabytes.

    Request body: a bare number, or {"traffic": float}
    """
    data = _json_body()
    traffic = data.get('traffic') if isinstance(data, dict) else data

    if not get_user_repository().update_user_traffic(username, traffic, timeout=_request_timeout()):
        raise NotFoundError(username)
    return jsonify({'message': 'Traffic updated successfully'}), 200
