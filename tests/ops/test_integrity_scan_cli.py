import json

from app.stockledger.db.models import StockTotal
from app.stockledger.services.vouchers import VoucherCoordinator
from app.ops.integrity_scan import run_scan
from tests.voucher_helpers import line


def test_integrity_scan_no_findings(db_session, capsys):
    VoucherCoordinator(db_session).post_incoming("admin", "Jaipur", [line(quantity=5)])

    database_url = db_session.get_bind().url.render_as_string(hide_password=False)
    exit_code = run_scan("json", False, database_url=database_url)
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert exit_code == 0
    assert payload["summary"]["critical"] == 0


def test_integrity_scan_critical_exit(db_session, capsys):
    VoucherCoordinator(db_session).post_incoming("admin", "Jaipur", [line(quantity=5)])
    total = db_session.query(StockTotal).one()
    total.total_quantity = 50
    db_session.commit()

    database_url = db_session.get_bind().url.render_as_string(hide_password=False)
    exit_code = run_scan("json", True, database_url=database_url)
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert exit_code == 1
    assert payload["summary"]["critical"] >= 1
    assert {finding["check_id"] for finding in payload["findings"]} >= {"total_equals_locations"}


def test_integrity_scan_text_format(db_session, capsys):
    database_url = db_session.get_bind().url.render_as_string(hide_password=False)
    exit_code = run_scan("text", True, database_url=database_url)
    captured = capsys.readouterr()
    assert exit_code == 0
    assert captured.out.startswith("Stock Ledger Integrity Report")
