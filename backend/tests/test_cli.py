"""
Flask CLI commands for bootstrap and staff accounts.
"""

from bakery.models import Unit, User


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=['system', 'init', '--admin-password', 'Password123'])
    second = runner.invoke(args=['system', 'init', '--admin-password', 'Password123'])

    assert first.exit_code == 0
    assert second.exit_code == 0
    assert 'already exists' in second.output
    assert db_session.query(User).filter_by(username='admin', role='admin').count() == 1
    assert db_session.query(Unit).filter_by(value='kg').count() == 1


def test_users_create_and_deactivate(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'users', 'create',
        '--username', 'lucie',
        '--email', 'lucie@boulangerie.test',
        '--password', 'Baguette77',
        '--role', 'employe_production',
    ])
    assert result.exit_code == 0
    assert 'lucie' in runner.invoke(args=['users', 'list']).output

    result = runner.invoke(args=['users', 'deactivate', 'lucie'])
    assert result.exit_code == 0
    assert db_session.query(User).filter_by(username='lucie').one().is_active is False


def test_users_create_rejects_weak_password(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'users', 'create',
        '--username', 'lucie',
        '--email', 'lucie@boulangerie.test',
        '--password', 'faible',
        '--role', 'employe_production',
    ])

    assert result.exit_code != 0
    assert db_session.query(User).count() == 0
