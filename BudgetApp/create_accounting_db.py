# run this from the project root once FLASK_ env vars are exported
'''
(venv) $ export FLASK_SQLALCHEMY_DATABASE_URI=sqlite:////var/www/BudgetApp/budget.db
(venv) $ export FLASK_DEVICE_DATABASE_URI=sqlite:////var/www/BudgetApp/device.db
(venv) $ python -m BudgetApp.create_accounting_db
'''
from BudgetApp.app import app, db, accounting_db, common
from BudgetApp.app.device import create_device_engine, init_device_store

with app.app_context():
	db.create_all()
	common.logger.info('Server ledger tables ready')

engine = create_device_engine()
init_device_store(engine)
engine.dispose()
common.logger.info('Device store ready at ' + app.config['DEVICE_DATABASE_URI'])
