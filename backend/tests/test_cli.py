# Overview: Pytest coverage for the flask CLI command groups.

from noor_pos.models import Category, DocumentSequence, Product


CSV = (
    "Item Details,BCN,P1 / DSN,MRP,Sale Price,Unit,Cl. Qty\n"
    "SAREE - Silk,C1,D1,1000,900,Pcs,3\n"
    "SUIT - Cotton,C2,,500,500,Pcs,1\n"
    "LEHENGA - Bad,C3,,abc,1,Pcs,1\n"
)


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0
    assert "PASS Created categories: LEHENGA, RM DRESS, SAREE, SUIT" in first.output
    assert "PASS Categories already present" in second.output
    assert db_session.query(Category).count() == 4
    assert db_session.query(Category).filter_by(name="RM DRESS").one().slug == "rm-dress"
    assert db_session.query(DocumentSequence).filter_by(document_type="INVOICE").one().next_number == 1


def test_reset_db_requires_confirmation(app, db_session, make_product):
    make_product()
    runner = app.test_cli_runner()

    aborted = runner.invoke(args=["system", "reset-db"], input="n\n")
    assert aborted.exit_code != 0
    assert db_session.query(Product).count() == 1

    done = runner.invoke(args=["system", "reset-db", "--yes"])
    assert done.exit_code == 0
    assert db_session.query(Product).count() == 0


def test_imports_run(app, db_session, categories, tmp_path):
    sheet = tmp_path / "stock.csv"
    sheet.write_text(CSV, encoding="utf-8")

    result = app.test_cli_runner().invoke(args=["imports", "run", str(sheet), "--operator-id", "cli", "--batch-size", "1"])

    assert result.exit_code == 0, result.output
    assert "  50%" in result.output
    assert "  100%" in result.output
    assert "WARN 1 invalid rows skipped" in result.output
    assert "PASS Imported stock.csv: 2 created, 0 updated, 0 errors" in result.output
    assert db_session.query(Product).filter_by(sku="C1").one().category_id == categories["SAREE"].id


def test_imports_run_with_nothing_valid(app, db_session, tmp_path):
    sheet = tmp_path / "empty.csv"
    sheet.write_text("Item Details,BCN,MRP,Sale Price,Cl. Qty\n", encoding="utf-8")

    result = app.test_cli_runner().invoke(args=["imports", "run", str(sheet)])

    assert result.exit_code != 0
    assert "There are no valid products to import." in result.output


def test_low_stock(app, db_session, make_product):
    make_product("LOW-1", name="Cotton Suit", stock=2)
    make_product("FULL-1", stock=40)

    result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])

    assert "LOW-1" in result.output
    assert "FULL-1" not in result.output


def test_low_stock_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])
    assert "No low-stock products." in result.output


def test_reports_export_to_file(app, db_session, customer, tmp_path):
    target = tmp_path / "customers.csv"

    result = app.test_cli_runner().invoke(args=["reports", "export", "customers", "--output", str(target)])

    assert result.exit_code == 0
    content = target.read_text(encoding="utf-8")
    assert content.startswith('"ID","Name"')
    assert "Asha Verma" in content


def test_reports_export_rejects_bad_window(app, db_session):
    result = app.test_cli_runner().invoke(args=["reports", "export", "sales", "--days", "-3"])
    assert result.exit_code != 0
    assert "days must be a positive integer" in result.output
