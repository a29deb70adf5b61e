from flask import Blueprint, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user

from darter import db
from darter.api.validation import Fields, json_body
from darter.errors import Conflict, Unauthorized
from darter.models import User

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Darter Assistant server!'})


def _credentials():
    fields = Fields(json_body())
    username = fields.string('username', max_length=64)
    password = fields.string('password', min_length=6, max_length=128)
    fields.raise_if_errors()
    return username, password


@main.route('/register', methods=['POST'])
def register():
    username, password = _credentials()
    if User.query.filter_by(username=username).first():
        raise Conflict('Username already exists', code='USERNAME_TAKEN')

    user = User(username=username)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    login_user(user, remember=True)
    current_app.logger.info(f"[auth] registered user={user.id}")
    return jsonify({'data': user.to_dict()}), 201


@main.route('/login', methods=['POST'])
def login():
    username, password = _credentials()
    user = User.query.filter_by(username=username).first()
    if user and user.check_password(password):
        login_user(user, remember=True)
        return jsonify({'data': user.to_dict()})
    current_app.logger.info(f"[auth] failed login username={username}")
    raise Unauthorized('Invalid username or password', code='INVALID_CREDENTIALS')


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'data': {'logged_out': True}})


@main.route('/me', methods=['GET'])
def me():
    if not current_user.is_authenticated:
        raise Unauthorized('Not logged in')
    return jsonify({'data': current_user.to_dict()})
