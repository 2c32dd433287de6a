import io

import pytest

from map_engine.store import Store

from .conftest import SIGNUP_FORM, make_pdf


def _locations(app, email=SIGNUP_FORM["email"]):
    with app.app_context():
        store = Store()
        user = store.users.get_by_email(email)
        return {loc.name: loc.id for loc in store.locations.get_by_user_id(user.id)}


def _scene_heights(client):
    resp = client.get("/api/scene")
    assert resp.status_code == 200
    return {b["name"]: b["size"][1] for b in resp.get_json()["buildings"]}


@pytest.mark.parametrize("path", ["/dashboard", "/neighborhood", "/upload", "/api/scene"])
def test_gated_routes_redirect_anonymous_visitors(client, path):
    resp = client.get(path)
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")


def test_public_pages(client):
    assert b"Sign in" in client.get("/").data
    assert client.get("/signup").status_code == 200
    assert client.get("/banking").status_code == 200
    assert client.get("/health").get_json() == {"status": "healthy"}


def test_signup_creates_user_and_seed_locations(app, signed_in):
    assert set(_locations(app)) == {"Corner Market", "Joe's Diner"}
    page = signed_in.get("/dashboard")
    assert page.status_code == 200
    assert b"Corner Market" in page.data
    assert b"$1,250.00" in page.data
    assert signed_in.get("/").status_code == 302


def test_signup_rejects_bad_input(app, client):
    form = dict(SIGNUP_FORM, password="123", email="short@example.com")
    resp = client.post("/signup", data=form)
    assert resp.status_code == 400
    assert b"at least 6 characters" in resp.data
    with app.app_context():
        assert Store().users.get_by_email("short@example.com") is None


def test_signup_rejects_duplicate_email(signed_in):
    signed_in.post("/logout")
    resp = signed_in.post("/signup", data=dict(SIGNUP_FORM, email="ADA@example.com"))
    assert resp.status_code == 400
    assert b"already exists" in resp.data


def test_login_logout(signed_in):
    signed_in.post("/logout")
    assert signed_in.get("/dashboard").status_code == 302

    bad = signed_in.post("/login", data={"email": SIGNUP_FORM["email"], "password": "wrong-one"})
    assert bad.status_code == 400
    assert b"Invalid credentials." in bad.data

    good = signed_in.post("/login", data={"email": SIGNUP_FORM["email"], "password": SIGNUP_FORM["password"]})
    assert good.status_code == 302
    assert signed_in.get("/dashboard").status_code == 200


def test_spending_grows_the_building(app, signed_in):
    resp = signed_in.post("/dashboard", data={"action": "add_location", "name": "Book Nook", "category": "Retail"})
    assert resp.status_code == 302
    location_id = _locations(app)["Book Nook"]
    assert _scene_heights(signed_in)["Book Nook"] == 1.0

    resp = signed_in.post(
        "/dashboard",
        data={
            "action": "edit_location",
            "location_id": location_id,
            "name": "Book Nook",
            "category": "Retail",
            "amount": "42.50",
            "transaction_date": "2024-03-05",
            "description": "novels",
        },
    )
    assert resp.status_code == 302

    with app.app_context():
        assert Store().amounts.get_total_by_location_id(location_id) == 42.5
    assert _scene_heights(signed_in)["Book Nook"] == pytest.approx(1.0 + 42.5 * 0.1)

    detail = signed_in.get(f"/api/locations/{location_id}/amounts").get_json()
    assert detail["total_spent"] == 42.5
    assert detail["amounts"][0]["transaction_date"] == "2024-03-05"


def test_delete_amount(app, signed_in):
    location_id = _locations(app)["Corner Market"]
    signed_in.post(
        "/dashboard",
        data={"action": "edit_location", "location_id": location_id, "amount": "10", "transaction_date": "2024-03-01"},
    )
    amount_id = signed_in.get(f"/api/locations/{location_id}/amounts").get_json()["amounts"][0]["id"]

    resp = signed_in.post(
        "/dashboard", data={"action": "delete_amount", "location_id": location_id, "amount_id": amount_id}
    )
    assert resp.status_code == 302
    assert signed_in.get(f"/api/locations/{location_id}/amounts").get_json()["amounts"] == []


def test_dashboard_reports_errors_inline(app, signed_in):
    location_id = _locations(app)["Corner Market"]
    for form, message in (
        ({"amount": "lots"}, b"Amount must be a valid number."),
        ({"amount": "-3"}, b"Amount must be greater than zero."),
        ({"amount": "5", "transaction_date": "someday"}, b"Date must be a valid date."),
    ):
        resp = signed_in.post(
            "/dashboard",
            data=dict(form, action="edit_location", location_id=location_id, name="Renamed", category="Retail"),
        )
        assert resp.status_code == 200
        assert message in resp.data

    with app.app_context():
        store = Store()
        row = store.locations.get_by_id(location_id)
        assert (row.name, row.category) == ("Corner Market", "Groceries")
        assert store.amounts.get_by_location_id(location_id) == []

    resp = signed_in.post("/dashboard", data={"action": "add_location", "name": "", "category": "Retail"})
    assert b"Missing required field(s): name" in resp.data


def test_other_users_locations_are_hidden(app, signed_in):
    location_id = _locations(app)["Corner Market"]
    signed_in.post("/logout")
    signed_in.post("/signup", data=dict(SIGNUP_FORM, email="eve@example.com"))

    assert signed_in.get(f"/api/locations/{location_id}/amounts").status_code == 404
    resp = signed_in.post(
        "/dashboard", data={"action": "edit_location", "location_id": location_id, "amount": "5"}
    )
    assert b"not found" in resp.data


def test_scene_layout_override(signed_in):
    resp = signed_in.get("/api/scene?layout=row&palette=cycle")
    xs = sorted(b["position"][0] for b in resp.get_json()["buildings"])
    assert xs == [-1.5, 1.5]


def test_parse_pdf_endpoint(client, statement_pdf):
    missing = client.post("/api/parse-pdf", data={}, content_type="multipart/form-data")
    assert missing.status_code == 400
    assert missing.get_json() == {"error": "No PDF file uploaded"}

    ok = client.post(
        "/api/parse-pdf",
        data={"pdf": (io.BytesIO(statement_pdf), "march.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    body = ok.get_json()
    assert ok.status_code == 200
    assert body["success"] is True
    assert body["data"]["numpages"] == 1
    assert body["data"]["metadata"]["title"] == "March Statement"
    assert "BLUE BOTTLE" in body["data"]["text"]

    broken = client.post(
        "/api/parse-pdf",
        data={"pdf": (io.BytesIO(b"garbage"), "x.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    assert broken.status_code == 500
    assert broken.get_json()["error"] == "Failed to parse PDF"
    assert "details" in broken.get_json()


def test_upload_preview_download_remove(app, signed_in, statement_pdf):
    resp = signed_in.post(
        "/upload",
        data={"statement": (io.BytesIO(statement_pdf), "march.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 302
    detail_url = resp.headers["Location"]

    detail = signed_in.get(detail_url)
    assert detail.status_code == 200
    assert b"completed" in detail.data
    assert b"/storage/" in detail.data

    upload_id = detail_url.split("/uploads/")[1].split("?")[0]
    preview = signed_in.get(f"/uploads/{upload_id}/preview")
    assert preview.status_code == 302
    signed = signed_in.get(preview.headers["Location"])
    assert signed.status_code == 200
    assert signed.data == statement_pdf
    assert signed_in.get("/storage/not-a-token").status_code == 403

    download = signed_in.get(f"/uploads/{upload_id}/download")
    assert download.data == statement_pdf
    assert "attachment" in download.headers["Content-Disposition"]

    assert b"march.pdf" in signed_in.get("/upload").data

    assert signed_in.post(f"/uploads/{upload_id}/remove").status_code == 302
    assert signed_in.get(f"/uploads/{upload_id}/download").status_code == 404
    with app.app_context():
        assert Store().uploads.get_by_id(upload_id).storage_path is None


def test_upload_rejects_large_and_non_pdf_files(app, signed_in):
    big = signed_in.post(
        "/upload",
        data={"statement": (io.BytesIO(b"x" * (11 * 1024 * 1024)), "big.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    assert big.status_code == 400
    assert b"File size must be less than 10MB" in big.data

    text = signed_in.post(
        "/upload",
        data={"statement": (io.BytesIO(b"hello"), "notes.txt", "text/plain")},
        content_type="multipart/form-data",
    )
    assert b"Please select a PDF file" in text.data

    with app.app_context():
        store = Store()
        user = store.users.get_by_email(SIGNUP_FORM["email"])
        assert store.uploads.get_by_user_id(user.id) == []


def test_failed_extraction_is_listed(signed_in):
    resp = signed_in.post(
        "/upload",
        data={"statement": (io.BytesIO(make_pdf([])[:40]), "cut.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400
    assert b"Failed to process PDF file. Please try again." in resp.data
    assert b"failed" in resp.data


def test_session_and_upload_apis(client, statement_pdf):
    assert client.get("/api/session").get_json() == {"state": "anonymous", "user": None}

    client.post("/signup", data=SIGNUP_FORM)
    body = client.get("/api/session").get_json()
    assert body["state"] == "authenticated"
    assert body["user"]["email"] == SIGNUP_FORM["email"]
    assert "password_hash" not in body["user"]

    client.post(
        "/upload",
        data={"statement": (io.BytesIO(statement_pdf), "march.pdf", "application/pdf")},
        content_type="multipart/form-data",
    )
    uploads = client.get("/api/uploads").get_json()["uploads"]
    assert [(u["file_name"], u["status"]) for u in uploads] == [("march.pdf", "completed")]

    detail = client.get(f"/api/uploads/{uploads[0]['id']}").get_json()
    assert detail["upload"]["analysis_results"]["mode"] == "local"
    assert detail["transactions"] == []
    assert client.get("/api/uploads/unknown").status_code == 404
