import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="pharmapos-tests-")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DB_PATH"] = os.path.join(_TMP, "pharmacy.db")
os.environ["EXPORT_DIR"] = os.path.join(_TMP, "exports")
os.environ["SMTP_HOST"] = ""
os.environ["TZ_OFFSET_HOURS"] = "8"

import pytest  # noqa: E402

from pharmapos.config import settings  # noqa: E402
from pharmapos.db import sqlite as db  # noqa: E402
from pharmapos.services.auth import hash_secret  # noqa: E402

ADMIN_PASSWORD = "admin123"
MANAGER_PASSWORD = "manager123"
PHARMACIST_PIN = "1234"


@pytest.fixture(autouse=True)
def fresh_db():
    if os.path.exists(settings.db_path):
        os.remove(settings.db_path)
    db.init_db()
    yield settings.db_path


@pytest.fixture
def seeded():
    main = db.add_branch("Main")
    annex = db.add_branch("Annex")
    meds = db.add_category("Medicine")

    db.add_user("ADM001", "Alice Admin", hash_secret(ADMIN_PASSWORD), "admin", email="alice@example.com", branch_id=main)
    db.add_user("MGR001", "Mark Manager", hash_secret(MANAGER_PASSWORD), "manager", email="mark@example.com", branch_id=annex)
    db.add_user("OLD001", "Olga Old", hash_secret("old"), "manager", email="olga@example.com", is_active=False)

    staff_id = db.add_pharmacist("Pia Pharmacist", PHARMACIST_PIN, main)
    db.add_pharmacist("Ivan Inactive", "9999", main, is_active=False)

    paracetamol = db.add_product("Paracetamol 500mg", "100", brand_name="Biogesic", barcode="111", category_id=meds, critical=10)
    amoxicillin = db.add_product("Amoxicillin 250mg", "50", barcode="222", category_id=meds, critical=5)
    vitamin_c = db.add_product("Vitamin C", "12.50", brand_name="Ceelin", barcode="333", critical=3)
    retired = db.add_product("Retired syrup", "80", barcode="444", critical=100, is_active=False)

    db.set_branch_stock(main, paracetamol, 40)
    db.set_branch_stock(main, amoxicillin, 2)
    db.set_branch_stock(annex, amoxicillin, 4)
    db.set_branch_stock(annex, paracetamol, 8)
    db.set_branch_stock(main, vitamin_c, 100)
    db.set_branch_stock(main, retired, 0)

    return {
        "branches": {"main": main, "annex": annex},
        "staff_id": staff_id,
        "products": {
            "paracetamol": paracetamol,
            "amoxicillin": amoxicillin,
            "vitamin_c": vitamin_c,
            "retired": retired,
        },
    }
