"""
Integration tests for the command-line interface.
"""
import pytest
from click.testing import CliRunner

from main import cli


@pytest.fixture
def cli_env(temp_dir, monkeypatch):
    """Point every CLI path at the temp dir and sign in as a main admin."""
    monkeypatch.setenv("PO_DB_PATH", str(temp_dir / "out" / "po.db"))
    monkeypatch.setenv("PO_QUEUE_CACHE", str(temp_dir / "out" / "queue.json"))
    monkeypatch.setenv("PO_OUTPUT_DIR", str(temp_dir / "out"))
    monkeypatch.setenv("PO_EXPORT_DIR", str(temp_dir / "out" / "export"))
    monkeypatch.setenv("CONFIG_DIR", str(temp_dir / "config"))
    monkeypatch.setenv("PO_ACTOR_NAME", "Priya")
    monkeypatch.setenv("PO_ACTOR_ROLE", "main_admin")
    monkeypatch.delenv("MAIL_API_URL", raising=False)
    return temp_dir


@pytest.fixture
def run(cli_env):
    runner = CliRunner()

    def _run(*args):
        return runner.invoke(cli, list(args))

    return _run


@pytest.mark.integration
class TestCli:

    def test_check(self, run):
        result = run("check")
        assert result.exit_code == 0
        assert "Priya (main_admin)" in result.output

    def test_full_flow(self, run, cli_env):
        assert run("vendors", "add", "Acme Traders").exit_code == 0
        assert run("products", "add", "Paper", "--vendor", "V001", "--code", "P-PAPER",
                   "--po-quantity", "5").exit_code == 0

        result = run("queue", "add", "P-PAPER")
        assert "Queued 1 product(s)" in result.output

        result = run("generate")
        assert result.exit_code == 0
        assert "PO-0001" in result.output

        assert run("approve", "PO-0001").exit_code == 0
        assert "approved" in run("pos", "list").output

        result = run("export", "PO-0001", "--format", "text", "--location", "Desk")
        assert result.exit_code == 0
        exported = cli_env / "out" / "export" / "PO-0001.txt"
        assert "PURCHASE ORDER PO-0001" in exported.read_text(encoding="utf-8")
        assert "Desk" in run("pos", "logs", "PO-0001").output

    def test_vendor_import(self, run, sample_vendors_csv):
        result = run("vendors", "import", str(sample_vendors_csv))
        assert result.exit_code == 0
        assert "Added 3 vendor(s)" in result.output
        assert "acme traders" in result.output

    def test_store_errors_exit_1(self, run):
        result = run("generate")
        assert result.exit_code == 1
        assert "Error: No items in queue" in result.output

    def test_role_is_enforced(self, run):
        result = run("--role", "approval_admin", "vendors", "add", "Acme")
        assert result.exit_code == 1
        assert "does not have permission" in result.output

    def test_delete_needs_confirmation(self, run):
        run("vendors", "add", "Acme")
        run("products", "add", "Paper", "--vendor", "V001", "--code", "P-PAPER")
        run("queue", "add", "P-PAPER")
        run("generate")
        result = run("pos", "delete", "PO-0001", "--yes")
        assert result.exit_code == 0
        assert "PO-0001" in run("pos", "next-number").output

    def _two_vendor_pos(self, run):
        run("vendors", "add", "Acme Traders", "--contact-email", "orders@acme.test", "--phone", "+91 98765 43210")
        run("vendors", "add", "Best Supplies")
        run("products", "add", "Paper", "--vendor", "V001", "--code", "P-PAPER")
        run("products", "add", "Toner", "--vendor", "V002", "--code", "P-TONER")
        run("queue", "add", "P-PAPER", "P-TONER")
        assert run("generate").exit_code == 0

    def test_bulk_export(self, run, cli_env):
        self._two_vendor_pos(run)
        result = run("export", "PO-0001", "PO-0002", "--format", "text", "--location", "Warehouse")
        assert result.exit_code == 0
        for po_number in ("PO-0001", "PO-0002"):
            exported = cli_env / "out" / "export" / f"{po_number}.txt"
            assert f"PURCHASE ORDER {po_number}" in exported.read_text(encoding="utf-8")
        assert "Warehouse" in run("pos", "logs", "PO-0002").output

    def test_output_needs_single_po(self, run, cli_env):
        self._two_vendor_pos(run)
        result = run("export", "PO-0001", "PO-0002", "--output", str(cli_env / "both.html"))
        assert result.exit_code == 2
        assert run("pos", "logs").output == ""

    def test_bulk_delete_reports_failures(self, run):
        self._two_vendor_pos(run)
        result = run("pos", "delete", "PO-0001", "PO-0404", "--yes")
        assert result.exit_code == 1
        assert "✓ Deleted PO-0001" in result.output
        assert "PO-0404" in result.output
        assert "PO-0001" not in run("pos", "list").output

    def test_send_by_vendor_checks_addresses(self, run):
        self._two_vendor_pos(run)
        result = run("send", "PO-0001", "PO-0002")
        assert result.exit_code == 1
        assert "Best Supplies" in result.output

    def test_whatsapp(self, run):
        self._two_vendor_pos(run)
        result = run("whatsapp", "PO-0001")
        assert result.exit_code == 0
        assert "*PO Number:* PO-0001" in result.output
        assert "https://wa.me/919876543210?text=" in result.output

    def test_products_for_vendor(self, run):
        self._two_vendor_pos(run)
        result = run("products", "list", "--vendor", "V002")
        assert "Toner" in result.output
        assert "Paper" not in result.output
