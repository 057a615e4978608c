from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

from bookmarkhub.services.auth_client import AuthClient


db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
auth_client = AuthClient()
