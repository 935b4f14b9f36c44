from flask import Blueprint, request, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from dartmaster import db
from dartmaster.models import User, utcnow

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the DartMaster API!'})

@main.route('/health')
def health():
    return jsonify({'status': 'ok', 'timestamp': utcnow().isoformat()})

@main.route('/api/version')
def version():
    if current_app.testing:
        environment = 'testing'
    else:
        environment = 'development' if current_app.debug else 'production'
    return jsonify({'version': current_app.config.get('API_VERSION', '1.0.0'), 'environment': environment})

@main.route('/api/auth/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    if not all([username, email, password]):
        return jsonify({'error': 'Username, email and password are required'}), 400

    if User.query.filter((User.username == username) | (User.email == email)).first():
        return jsonify({'error': 'Username or email already exists'}), 400

    user = User(username=username, email=email, full_name=(data.get('full_name') or '').strip())
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    login_user(user)
    current_app.logger.info(f"[register] user={user.id} username={username}")

    return jsonify({'message': 'User created successfully', 'user': user.to_dict()}), 201

@main.route('/api/auth/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if not user or not user.check_password(data.get('password') or ''):
        current_app.logger.warning(f"[login-failed] username={data.get('username')}")
        return jsonify({'error': 'Invalid username or password'}), 401
    if not user.is_active:
        return jsonify({'error': 'User account is inactive'}), 403

    user.last_login = utcnow()
    db.session.commit()
    login_user(user, remember=True)
    current_app.logger.info(f"[login] user={user.id}")
    return jsonify({'message': 'Logged in successfully.', 'user': user.to_dict()})

@main.route('/api/auth/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})

@main.route('/api/auth/me')
@login_required
def me():
    return jsonify(current_user.to_dict())

@main.route('/api/users/<int:user_id>')
@login_required
def get_user(user_id):
    user = db.get_or_404(User, user_id)
    return jsonify(user.to_dict())

@main.route('/api/users/<int:user_id>', methods=['PUT'])
@login_required
def update_user(user_id):
    user = db.get_or_404(User, user_id)
    if user.id != current_user.id:
        return jsonify({'error': 'You can only update your own profile'}), 403
    data = request.get_json(silent=True) or {}
    full_name = data.get('full_name')
    if full_name is not None:
        user.full_name = str(full_name).strip()
    db.session.commit()
    return jsonify(user.to_dict())
