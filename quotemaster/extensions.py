"""
Extension singletons for QuoteMaster.

Bound to the app in create_app(); models and services import them from here
so nothing needs the app object at import time.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
