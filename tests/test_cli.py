from BudgetApp.app import app, db
from BudgetApp.app.models.transaction import Transaction


def test_init_db_creates_tables():
    runner = app.test_cli_runner()
    result = runner.invoke(args=["init-db"])
    assert result.exit_code == 0

    with app.app_context():
        assert db.session.query(Transaction).count() == 0
        db.drop_all()
