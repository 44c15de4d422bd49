import io

import pytest

from db.models import Brand, Category, Product
from main import create_app

PRODUCTS = (
    "product_code,name,pack_size,unit_sale_price,brand\n"
    "P-001,Paracetamol 500mg,10,1.50,\n"
    "P-002,Ibuprofen 200mg,-5,2.00,\n"
    "P-003,Cetirizine 10mg,30,0.80,\n"
)


def _commit(client, entity, token, **body):
    body.setdefault("insert_valid_only", True)
    body.setdefault("delimiter", ",")
    return client.post(f"/api/{entity}/import/commit", json={"token": token, **body})


def test_validate_returns_token_and_samples(upload):
    """Validation counts rows and returns samples without writing."""
    response = upload("products", PRODUCTS)

    assert response.status_code == 200
    data = response.get_json()
    assert len(data["token"]) == 32
    assert data["entity"] == "product"
    assert (data["total"], data["valid"], data["invalid"]) == (3, 2, 1)
    assert data["valid_samples"][0]["data"]["unit_sale_price"] == "1.50"
    assert data["invalid_samples"][0]["errors"] == {
        "pack_size": "pack_size must be a positive integer",
    }


def test_partial_commit_then_reuse(client, upload, count_rows):
    """A token commits once; a second attempt is a conflict."""
    token = upload("products", PRODUCTS).get_json()["token"]

    response = _commit(client, "products", token)
    assert response.status_code == 200
    data = response.get_json()
    assert data["outcome"] == "committed_partial"
    assert (data["inserted_count"], data["skipped_count"]) == (2, 1)
    assert data["skipped_rows"][0]["row"] == 2
    assert count_rows(Product) == 2

    again = _commit(client, "products", token)
    assert again.status_code == 409
    assert "already been used" in again.get_json()["message"]
    assert count_rows(Product) == 2


def test_abort_commit_rejects_bad_rows(client, upload, count_rows):
    token = upload("products", PRODUCTS).get_json()["token"]

    response = _commit(client, "products", token, insert_valid_only=False)

    assert response.status_code == 422
    data = response.get_json()
    assert data["inserted_count"] == 0
    assert data["errors"][0]["row"] == 2
    assert count_rows(Product) == 0


def test_create_missing_refs_over_http(client, upload, count_rows):
    text = "product_code,name,pack_size,brand\nX-1,One,1,Nova\nX-2,Two,1,nova\n"
    token = upload("products", text, create_missing_refs=True).get_json()["token"]

    response = _commit(client, "products", token, create_missing_refs=True)

    assert response.status_code == 200
    assert response.get_json()["created_refs"] == {"brand": ["Nova"]}
    assert count_rows(Brand) == 1


def test_option_mismatch_is_unprocessable(client, upload):
    token = upload("products", PRODUCTS).get_json()["token"]

    response = _commit(client, "products", token, create_missing_refs=True)

    assert response.status_code == 422
    assert _commit(client, "products", token).status_code == 200


def test_tab_delimiter_spelled_as_escape(client, upload, count_rows):
    text = "name\tphone\nAcme\t555-0100\n"
    validated = upload("suppliers", text, delimiter="\\t")
    assert validated.status_code == 200
    assert validated.get_json()["delimiter"] == "\t"

    token = validated.get_json()["token"]
    wrong = _commit(client, "suppliers", token, delimiter=",")
    assert wrong.status_code == 422

    assert _commit(client, "suppliers", token, delimiter="tab").status_code == 200


@pytest.mark.parametrize("token, status", [
    ("", 404),
    ("deadbeef" * 4, 404),
])
def test_commit_with_unknown_token(client, token, status):
    assert _commit(client, "products", token).status_code == status


def test_commit_with_expired_token(tmp_path):
    app = create_app({
        "DB_URL": f"sqlite:///{tmp_path / 'expiry.sqlite'}",
        "SWEEP_SECONDS": 0,
        "TOKEN_TTL_MINUTES": 0,
    })
    client = app.test_client()
    data = {"file": (io.BytesIO(b"name\nAcme\n"), "brands.csv"), "delimiter": ","}
    token = client.post("/api/brands/import/validate", data=data,
                        content_type="multipart/form-data").get_json()["token"]

    response = _commit(client, "brands", token)

    assert response.status_code == 410


def test_unknown_entity(client, upload):
    assert upload("widgets", "name\nA\n").status_code == 404
    assert client.get("/api/widgets/import/template").status_code == 404


def test_missing_upload(client):
    response = client.post("/api/products/import/validate", data={"delimiter": ","},
                           content_type="multipart/form-data")

    assert response.status_code == 400
    assert "file" in response.get_json()["message"]


def test_bad_delimiter_is_rejected(upload):
    assert upload("products", PRODUCTS, delimiter="::").status_code == 400


def test_missing_required_columns_invalidate_rows(upload):
    response = upload("products", "name,brand\nOne,Acme\n")

    assert response.status_code == 200
    data = response.get_json()
    assert (data["total"], data["valid"], data["invalid"]) == (1, 0, 1)
    assert data["invalid_samples"][0]["errors"] == {
        "product_code": "product_code is required",
        "pack_size": "pack_size is required",
    }


def test_header_only_file_without_required_columns(upload):
    response = upload("products", "product_code,name\n")

    assert response.status_code == 200
    assert response.get_json()["total"] == 0


def test_oversized_upload(app, client):
    app.config["MAX_CONTENT_LENGTH"] = 64
    data = {"file": (io.BytesIO(b"name\n" + b"x" * 200), "big.csv")}

    response = client.post("/api/categories/import/validate", data=data,
                           content_type="multipart/form-data")

    assert response.status_code == 413


def test_template_download(client):
    response = client.get("/api/categories/import/template")

    assert response.status_code == 200
    assert response.mimetype == "text/csv"
    assert "categories_import_template.csv" in response.headers["Content-Disposition"]
    assert response.get_data(as_text=True) == "name\n"


def test_categories_flow_with_singular_slug(client, upload, count_rows):
    token = upload("category", "name\nVitamins\nvitamins\n").get_json()["token"]

    response = _commit(client, "categories", token)

    assert response.status_code == 200
    assert response.get_json()["message"] == "Imported 1 category(s); skipped 1 row(s)."
    assert count_rows(Category) == 1
