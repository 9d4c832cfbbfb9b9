from flask import Blueprint, jsonify
from geoquiz import games
from geoquiz.models import SessionState

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the geoquiz game server!'})


@main.route('/health')
def health():
    sessions = games.registry.sessions()
    active = sum(1 for s in sessions if s.state != SessionState.FINISHED)
    return jsonify({'ok': True, 'sessions': len(sessions), 'active': active})
