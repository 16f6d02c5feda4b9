"""
Pytest configuration and shared fixtures for the PO manager test suite.
"""
import os
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
os.chdir(PROJECT_ROOT)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for test files."""
    tmp_path = tempfile.mkdtemp(prefix="postore_test_")
    yield Path(tmp_path)
    shutil.rmtree(tmp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path, monkeypatch) -> "Config":
    """Provide a test configuration with isolated directories and no settings overlay."""
    monkeypatch.setenv("CONFIG_DIR", str(temp_dir / "config"))
    from config import Config

    config = Config()
    config.output_dir = temp_dir / "output"
    config.export_dir = temp_dir / "output" / "export"
    config.db_path = temp_dir / "output" / "po_manager.db"
    config.queue_cache_path = temp_dir / "output" / ".po_queue.json"
    config.mail_api_url = None
    config.mail_api_headers_json = None
    config.mail_cc_email = None
    config.ensure_output_dir()
    return config


@pytest.fixture
def records(test_config) -> "RecordStore":
    """Provide an empty record store."""
    from postore.database import RecordStore
    return RecordStore(test_config.db_path)


@pytest.fixture
def actor() -> "Actor":
    from models.actor import Actor
    return Actor(id="u-1", name="Priya", role="main_admin")


@pytest.fixture
def store(test_config, records, actor) -> Generator["POStore", None, None]:
    """Provide a POStore over an empty record store, signed in as *actor*."""
    from postore.store import POStore
    s = POStore(test_config, records=records, actor=actor)
    yield s
    s.close()


@pytest.fixture
def seeded_store(store) -> "POStore":
    """
    A store with two vendors and four products:

      V001 Acme Traders   ← Paper (po_quantity 5), Pens (po_quantity 10)
      V002 Best Supplies  ← Toner (po_quantity 2)
      (no vendor)         ← Loose Item
    """
    acme = store.add_vendor({"name": "Acme Traders", "contact_person_email": "orders@acme.test"})
    best = store.add_vendor({"name": "Best Supplies"})
    store.add_product({"name": "Paper", "display_id": "P-PAPER", "vendor_id": acme.id,
                       "po_quantity": 5, "current_stock": 2, "reorder_level": 10})
    store.add_product({"name": "Pens", "display_id": "P-PENS", "vendor_id": acme.id,
                       "po_quantity": 10, "current_stock": 50, "reorder_level": 10})
    store.add_product({"name": "Toner", "display_id": "P-TONER", "vendor_id": best.id,
                       "po_quantity": 2, "unit": "boxes"})
    store.add_product({"name": "Loose Item", "display_id": "P-LOOSE"})
    return store


@pytest.fixture
def sample_vendors_csv(temp_dir: Path) -> Path:
    """Create a sample vendors CSV file with one in-file duplicate."""
    csv_path = temp_dir / "vendors.csv"
    content = """Vendor Name,GST Number,Address,Phone,Contact Person,Contact Email
Acme Traders,29ABCDE1234F1Z5,"12 Market Rd, Pune",020 5555 0101,Ravi,ravi@acme.test
Best Supplies,,,,,
 acme traders ,,,,,
Cobalt Stationers,,,,,"""
    csv_path.write_text(content, encoding="utf-8")
    return csv_path


@pytest.fixture
def sample_products_csv(temp_dir: Path) -> Path:
    """Create a sample products CSV file referencing vendors by code and name."""
    csv_path = temp_dir / "products.csv"
    content = """Product Name,SKU,Brand,Category,Vendor,Unit,Stock,Reorder Level,PO Quantity
Paper,P-PAPER,Navneet,Stationery,V001,pcs,2,10,5
Toner,P-TONER,HP,Printing,Best Supplies,boxes,0,1,2
"""
    csv_path.write_text(content, encoding="utf-8")
    return csv_path


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API tests")
    config.addinivalue_line("markers", "slow: Slow tests")
