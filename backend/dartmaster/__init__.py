from datetime import timedelta

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from sqlalchemy.exc import SQLAlchemyError
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from dartmaster.main import main
    flask_app.register_blueprint(main)

    from dartmaster.api.tournaments import tournaments
    flask_app.register_blueprint(tournaments, url_prefix='/api/tournaments')

    from dartmaster.api.matches import matches
    flask_app.register_blueprint(matches, url_prefix='/api/matches')

    from dartmaster.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    from dartmaster.services.errors import ServiceError

    @flask_app.errorhandler(ServiceError)
    def handle_service_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(SQLAlchemyError)
    def handle_store_error(exc):
        db.session.rollback()
        flask_app.logger.exception(f"[store-error] {exc.__class__.__name__}")
        return jsonify({'error': 'Internal server error'}), 500

    from dartmaster.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from dartmaster.models import (
            Match, MatchParticipant, Tournament, TournamentParticipant, MATCH_LIVE, TOURNAMENT_ACTIVE, utcnow,
        )
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users: one admin and two players
            admin = User(username='admin', email='admin@example.com', full_name='Admin', role='admin')
            admin.set_password('password')
            db.session.add(admin)
            players = []
            for name in ['player1', 'player2']:
                user = User(username=name, email=f'{name}@example.com', full_name=name.title())
                user.set_password('password')
                db.session.add(user)
                players.append(user)
            db.session.flush()

            tournament = Tournament(
                name='Club Night', status=TOURNAMENT_ACTIVE, match_format='501',
                start_date=utcnow() + timedelta(days=1), max_players=16, admin_id=admin.id,
            )
            db.session.add(tournament)
            db.session.flush()
            match = Match(tournament_id=tournament.id, status=MATCH_LIVE, actual_start=utcnow())
            db.session.add(match)
            db.session.flush()
            for user in players:
                db.session.add(TournamentParticipant(tournament_id=tournament.id, user_id=user.id))
                db.session.add(MatchParticipant(match_id=match.id, user_id=user.id))

            db.session.commit()
            click.echo('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
