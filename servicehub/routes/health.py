from datetime import datetime

from flask import Blueprint, jsonify
from sqlalchemy import text

from servicehub.models import db

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health():
    """Liveness check including a database round trip"""
    db.session.execute(text('SELECT 1'))
    return jsonify({
        'success': True,
        'status': 'healthy',
        'timestamp': datetime.utcnow().isoformat()
    }), 200
