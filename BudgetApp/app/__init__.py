from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

app = Flask(__name__)
app.config.from_prefixed_env() #get config data from environment variables beginning with "FLASK_"

# Defaults for anything not supplied through the environment
app.config.setdefault('SQLALCHEMY_DATABASE_URI', 'sqlite:///budget.db')
app.config.setdefault('DEVICE_DATABASE_URI', 'sqlite:///device.db')
app.config.setdefault('BASE_CURRENCY', 'USD')
app.config.setdefault('LOG_LEVEL', 'DEBUG')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

from BudgetApp.app import common

common.logging_initiate()

db = SQLAlchemy(app)

# Flask-Migrate setup
migrate = Migrate(app, db)

# Import models so Alembic sees them
from BudgetApp.app import accounting_db


@app.cli.command('init-db')
def init_db():
    """Create the server ledger tables without going through Alembic."""
    db.create_all()
    common.logger.info('Ledger tables created for ' + app.config['SQLALCHEMY_DATABASE_URI'])
