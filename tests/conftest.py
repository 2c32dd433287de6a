from __future__ import annotations

import copy
import json
from types import SimpleNamespace
from typing import List, Optional

import pytest

from map_engine.config import AppConfig
from map_engine.store import Store
from map_engine.webapp import create_app

SAMPLE_ANALYSIS = {
    "locations": [
        {
            "name": "Blue Bottle Coffee",
            "totalSpent": "$42.50",
            "transactions": [
                {"date": "2024-03-02T08:15:00Z", "time": "08:15", "amount": "$12.50", "description": "Latte"},
                {"date": "2024-03-09", "amount": 30, "description": "Beans"},
            ],
            "city": "Oakland",
            "state": "CA",
        },
        {
            "name": "Shell",
            "totalSpent": 55.0,
            "transactions": [{"date": "2024-03-05", "amount": "55.00"}],
        },
    ],
    "summary": {
        "totalSpent": 97.5,
        "transactionCount": 3,
        "dateRange": {"start": "2024-03-02", "end": "2024-03-09"},
    },
}

SIGNUP_FORM = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "password": "secret123",
    "bank": "First Analytical",
    "current_balance": "1,250.00",
    "address": "12 Engine Row",
    "location_name_0": "Corner Market",
    "location_category_0": "Groceries",
    "location_name_1": "Joe's Diner",
    "location_category_1": "Restaurant",
}


def make_pdf(lines: List[str], title: Optional[str] = None) -> bytes:
    """Build a one-page PDF showing ``lines`` in Helvetica."""

    def esc(text: str) -> str:
        return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")

    ops = ["BT", "/F1 12 Tf", "14 TL", "72 720 Td"]
    ops += [f"({esc(line)}) Tj T*" for line in lines]
    ops.append("ET")
    stream = "\n".join(ops).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    if title:
        objects.append(b"<< /Title (" + esc(title).encode("latin-1") + b") >>")

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += str(number).encode() + b" 0 obj\n" + body + b"\nendobj\n"
    xref_at = len(out)
    out += b"xref\n0 " + str(len(objects) + 1).encode() + b"\n"
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()
    trailer = b"<< /Size " + str(len(objects) + 1).encode() + b" /Root 1 0 R"
    if title:
        trailer += b" /Info 6 0 R"
    trailer += b" >>"
    out += b"trailer\n" + trailer + b"\nstartxref\n" + str(xref_at).encode() + b"\n%%EOF\n"
    return bytes(out)


class FakeMessages:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.reply, Exception):
            raise self.reply
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


class FakeAIClient:
    """Stands in for ``anthropic.Anthropic``; replies with a fixed text."""

    def __init__(self, reply=""):
        self.messages = FakeMessages(reply)


@pytest.fixture
def sample_analysis():
    return copy.deepcopy(SAMPLE_ANALYSIS)


@pytest.fixture
def statement_pdf():
    return make_pdf(
        [
            "Statement period 03/01/2024 - 03/31/2024",
            "03/02 BLUE BOTTLE COFFEE 12.50",
            "03/05 SHELL 55.00",
            "03/09 BLUE BOTTLE COFFEE 30.00",
        ],
        title="March Statement",
    )


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        secret_key="test-secret",
        storage_root=str(tmp_path / "storage"),
    )


@pytest.fixture
def ai_client():
    return FakeAIClient("```json\n" + json.dumps(SAMPLE_ANALYSIS) + "\n```")


@pytest.fixture
def app(config, ai_client):
    app = create_app(config, ai_client=ai_client)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    with app.app_context():
        yield Store()


@pytest.fixture
def user(store):
    from werkzeug.security import generate_password_hash

    return store.users.create(
        {
            "email": "grace@example.com",
            "first_name": "Grace",
            "last_name": "Hopper",
            "bank": "Navy Federal",
            "password_hash": generate_password_hash("compiler"),
        }
    )


@pytest.fixture
def signed_in(client):
    resp = client.post("/signup", data=SIGNUP_FORM)
    assert resp.status_code == 302
    return client
