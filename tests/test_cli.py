from decimal import Decimal

import httpx
import pytest
from typer.testing import CliRunner

from invoice_builder import cli
from invoice_builder.cli import app
from invoice_builder.payment import StripeCheckoutClient
from invoice_builder.schemas import PaymentStatus
from invoice_builder.storage import InvoiceStore

from tests.conftest import make_invoice

runner = CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


def invoke(data_dir, *args):
    return runner.invoke(app, ["--data-dir", str(data_dir), *args])


class TestNew:

    def test_creates_invoice(self, data_dir) -> None:
        result = invoke(
            data_dir, "new", "--customer", "Jane Doe", "--email", "jane@example.com",
            "--item", "Widget:3:9.99", "--item", "Mug:2:5:Kitchen:Ceramic", "--tax-rate", "10",
        )
        assert result.exit_code == 0, result.output
        assert "Saved invoice" in result.output
        (inv,) = InvoiceStore.open(data_dir).load()
        assert inv.customer == "Jane Doe"
        assert [item.product for item in inv.items] == ["Widget", "Mug"]
        assert inv.items[1].category == "Kitchen"
        assert inv.subtotal == Decimal("39.97")
        assert inv.total_amount == Decimal("43.967")
        assert inv.created_at is not None

    def test_bad_item_format(self, data_dir) -> None:
        result = invoke(data_dir, "new", "--customer", "Jane", "--item", "Widget")
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_missing_product_name(self, data_dir) -> None:
        result = invoke(data_dir, "new", "--customer", "Jane", "--item", ":1:2")
        assert result.exit_code == 1
        assert "customer name and all product details" in result.output
        assert InvoiceStore.open(data_dir).load() == []

    def test_quantity_below_one_is_clamped(self, data_dir) -> None:
        result = invoke(data_dir, "new", "--customer", "Jane", "--item", "Widget:0:4")
        assert result.exit_code == 0, result.output
        (inv,) = InvoiceStore.open(data_dir).load()
        assert inv.items[0].quantity == 1


def test_list_empty_store(data_dir) -> None:
    result = invoke(data_dir, "list")
    assert result.exit_code == 0
    assert "No saved invoices yet" in result.output


class TestBrowse:

    @pytest.fixture(autouse=True)
    def seeded(self, data_dir) -> None:
        InvoiceStore.open(data_dir).save([make_invoice("TEST-202610-001"), make_invoice("TEST-202610-002")])

    def test_list(self, data_dir) -> None:
        result = invoke(data_dir, "list")
        assert result.exit_code == 0
        assert "TEST-202610-001" in result.output
        assert "TEST-202610-002" in result.output

    def test_list_prints_summary(self, data_dir) -> None:
        result = invoke(data_dir, "list")
        assert "Paid: 0" in result.output
        assert "Pending: 0" in result.output
        assert "Total revenue: $59.94" in result.output

    def test_pay_closes_checkout_client(self, data_dir, monkeypatch) -> None:
        http = httpx.Client(
            base_url="https://stripe.test/v1",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"id": "cs_live_3", "client_secret": "sec"})
            ),
        )
        monkeypatch.setattr(
            cli, "checkout_client_from_settings", lambda settings: StripeCheckoutClient("sk_test_1", client=http)
        )
        result = invoke(data_dir, "pay", "TEST-202610-001")
        assert result.exit_code == 0, result.output
        assert "cs_live_3" in result.output
        assert http.is_closed
        assert InvoiceStore.open(data_dir).get("TEST-202610-001").checkout_session_id == "cs_live_3"

    def test_show(self, data_dir) -> None:
        result = invoke(data_dir, "show", "TEST-202610-002")
        assert result.exit_code == 0
        assert '"invoiceNumber": "TEST-202610-002"' in result.output

    def test_show_missing(self, data_dir) -> None:
        result = invoke(data_dir, "show", "NOPE")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_delete(self, data_dir) -> None:
        assert "has been deleted" in invoke(data_dir, "delete", "TEST-202610-001").output
        assert "not found" in invoke(data_dir, "delete", "TEST-202610-001").output
        assert [inv.invoice_number for inv in InvoiceStore.open(data_dir).load()] == ["TEST-202610-002"]

    def test_render_html(self, data_dir, tmp_path) -> None:
        out = tmp_path / "out"
        result = invoke(data_dir, "render", "TEST-202610-001", "--output-dir", str(out), "--html")
        assert result.exit_code == 0, result.output
        assert (out / "Invoice_TEST-202610-001.html").exists()
        assert InvoiceStore.open(data_dir).get("TEST-202610-001").status == PaymentStatus.SENT

    def test_status_without_session(self, data_dir) -> None:
        result = invoke(data_dir, "status", "TEST-202610-001")
        assert result.exit_code == 1
        assert "no checkout session" in result.output


class TestImportCsv:

    def test_import(self, data_dir, tmp_path) -> None:
        path = tmp_path / "orders.csv"
        path.write_text("Customer Name,Product Name,Quantity,Price Per Unit\nJane Doe,Widget,3,9.99\nx,y\n",
                        encoding="utf-8")
        result = invoke(data_dir, "import-csv", str(path))
        assert result.exit_code == 0, result.output
        assert "dropped 1" in result.output
        assert "Successfully imported 1 invoices." in result.output
        assert len(InvoiceStore.open(data_dir).load()) == 1

    def test_mapping_override(self, data_dir, tmp_path) -> None:
        path = tmp_path / "orders.csv"
        path.write_text("Client,Item,Qty,Amount\nAcme,Gear,2,50\n", encoding="utf-8")
        result = invoke(
            data_dir, "import-csv", str(path),
            "--map", "customer=Client", "--map", "product=Item", "--map", "quantity=Qty", "--map", "pricePerUnit=Amount",
        )
        assert result.exit_code == 0, result.output
        (inv,) = InvoiceStore.open(data_dir).load()
        assert inv.customer == "Acme"
        assert inv.total_amount == Decimal("100")

    def test_unknown_mapping_field(self, data_dir, tmp_path) -> None:
        path = tmp_path / "orders.csv"
        path.write_text("Customer Name,Product Name,Quantity,Price Per Unit\nJane,Widget,1,1\n", encoding="utf-8")
        result = invoke(data_dir, "import-csv", str(path), "--map", "colour=Customer Name")
        assert result.exit_code == 1
        assert InvoiceStore.open(data_dir).load() == []


class TestSettings:

    def test_update_and_show(self, data_dir) -> None:
        assert invoke(data_dir, "settings", "--currency", "eur", "--prefix", "INV").exit_code == 0
        settings = InvoiceStore.open(data_dir).load_settings()
        assert settings.currency.code == "EUR"
        assert settings.invoice_prefix == "INV"
        assert "Prefix: INV" in invoke(data_dir, "settings").output

    def test_unknown_currency(self, data_dir) -> None:
        result = invoke(data_dir, "settings", "--currency", "XYZ")
        assert result.exit_code == 1
        assert "Unknown currency" in result.output
