from branchpos.models import Branch, User


def test_seed_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed", "--branch", "Seed Branch", "--email", "Owner@Seed.test"])
    assert result.exit_code == 0, result.output
    assert "Created OWNER user: owner@seed.test" in result.output

    result = runner.invoke(args=["system", "seed", "--branch", "Seed Branch", "--email", "owner@seed.test"])
    assert result.exit_code == 0, result.output
    assert "Using existing user" in result.output

    assert db_session.query(Branch).filter_by(name="Seed Branch").count() == 1
    assert db_session.query(User).filter_by(role="OWNER").count() == 1


def test_inventory_alerts_command(app, db_session, ledger, product, branch, user):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["inventory", "alerts"])
    assert "No low-stock products" in result.output

    ledger.apply_movement(product.id, branch.id, "IN", 3, user.id)
    result = runner.invoke(args=["inventory", "alerts", "--branch-id", str(branch.id)])
    assert result.exit_code == 0, result.output
    assert "Main Branch: Test Product" in result.output
    assert "3 < 10" in result.output
