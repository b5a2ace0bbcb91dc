from flask import Blueprint, jsonify
from flask_login import current_user, login_required

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Resta Um live game server is running', 'status': 'healthy'})

@main.route('/api/me', methods=['GET'])
@login_required
def me():
    return jsonify({'success': True, 'user': current_user.to_dict()})
