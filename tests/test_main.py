import json

import pytest

import main
from database import Database


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "database": {"name": str(tmp_path / "pos.db")},
        "tax_rate": 11,
        "receipt": {"show_ppn11": True},
        "logging": {"file": str(tmp_path / "logs" / "pos.log")},
    }))
    return str(path)


@pytest.fixture
def seeded(tmp_path, config_path):
    db = Database(str(tmp_path / "pos.db"))
    product_id = db.add_product("8991001", "Kopi Bubuk", "50000", 3)
    db.close()
    return product_id


def test_load_config_creates_default(tmp_path):
    path = tmp_path / "config.json"
    config = main.load_config(str(path))

    assert path.exists()
    assert config["tax_rate"] == 11
    assert config["receipt"]["show_amount"] is True


def test_load_config_merges_with_defaults(config_path):
    config = main.load_config(config_path)

    assert config["receipt"]["show_ppn11"] is True
    assert config["receipt"]["show_amount"] is True
    assert config["logging"]["level"] == "INFO"
    assert config["sale_number_prefix"] == "INV"


def test_parse_line_arg():
    assert main.parse_line_arg("12:3") == (12, 3)
    assert main.parse_line_arg("7") == (7, 1)


def test_checkout_command(config_path, seeded, capsys, tmp_path):
    code = main.main(["--config", config_path, "checkout", f"{seeded}:2", "--paid", "120000",
                      "--cashier", "kasir-1"])

    out = capsys.readouterr().out
    assert code == 0
    assert "Sale INV-" in out
    assert "Change: Rp9,000.00" in out

    db = Database(str(tmp_path / "pos.db"))
    try:
        assert db.lookup(seeded).stock_quantity == 1
        assert db.count_rows("stock_movements") == 1
    finally:
        db.close()


def test_checkout_command_reports_failure(config_path, seeded, capsys):
    code = main.main(["--config", config_path, "checkout", f"{seeded}:2", "--paid", "100"])

    assert code == 1
    assert "Insufficient payment" in capsys.readouterr().err


def test_checkout_command_over_stock(config_path, seeded, capsys):
    code = main.main(["--config", config_path, "checkout", f"{seeded}:4", "--paid", "999999"])

    assert code == 1
    assert "Not enough stock" in capsys.readouterr().err


def test_breakdown_command(config_path, seeded, capsys):
    code = main.main(["--config", config_path, "breakdown", f"{seeded}:1"])

    out = capsys.readouterr().out
    assert code == 0
    assert "On receipt:" in out
    receipt_part = out.split("On receipt:")[1]
    assert "ppn11" in receipt_part
    assert "dpp11" not in receipt_part


def test_import_products_command(config_path, tmp_path, capsys):
    csv_path = tmp_path / "products.csv"
    csv_path.write_text("barcode,name,unit_price,quantity_in_stock\n0001,Teh,20000,5\n")

    code = main.main(["--config", config_path, "import-products", str(csv_path)])

    assert code == 0
    assert "Imported 1 product(s)" in capsys.readouterr().out


@pytest.mark.parametrize("paid", ["nan", "inf"])
def test_checkout_command_rejects_non_finite_payment(config_path, seeded, capsys, tmp_path, paid):
    code = main.main(["--config", config_path, "checkout", f"{seeded}:1", "--paid", paid])

    assert code == 1
    assert "payment_received must be a finite number" in capsys.readouterr().err
    db = Database(str(tmp_path / "pos.db"))
    try:
        assert db.count_rows("sales") == 0
        assert db.lookup(seeded).stock_quantity == 3
    finally:
        db.close()


def test_checkout_command_rejects_bad_discount_rate(config_path, seeded, capsys):
    code = main.main(["--config", config_path, "checkout", f"{seeded}:1", "--paid", "100000",
                      "--discount-rate", "8"])

    assert code == 1
    assert "discount_rate must be between 0 and 1" in capsys.readouterr().err
