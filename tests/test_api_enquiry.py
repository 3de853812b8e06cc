import config
import mailer


def enquiry_body(*products, **fields):
    return {
        "products": [{"product": p["id"], "quantity": 2} for p in products],
        "name": "Priya",
        "email": "Priya@Example.com",
        "phone": "+91 98765 43210",
        "country": "India",
        "message": "Need a quote for 2 units",
        **fields,
    }


def test_submit_enquiry_allocates_numbers(client, make_product, sent):
    product = make_product()

    first = client.post("/api/enquiry", json=enquiry_body(product))
    second = client.post("/api/enquiry", json=enquiry_body(product))

    assert first.status_code == 201
    enquiry = first.json()["enquiry"]
    assert enquiry["enquiry_number"] == "Enquiry_1"
    assert enquiry["status"] == "pending"
    assert enquiry["priority"] == "medium"
    assert enquiry["email"] == "priya@example.com"
    assert enquiry["products"][0]["product"]["sku"] == "HYD-100"
    assert second.json()["enquiry"]["enquiry_number"] == "Enquiry_2"


def test_new_quote_notification_goes_to_active_admins(client, admin, make_product, sent):
    product = make_product(sale_price=1000)
    client.post("/api/enquiry", json=enquiry_body(product))

    assert len(sent) == 1
    notification = sent[0]
    assert notification.kind is mailer.NotificationKind.NEW_QUOTE
    assert notification.recipients == ["admin@example.com"]
    assert "Enquiry_1" in notification.subject
    assert "2,000.00" in notification.body


def test_mail_failure_does_not_fail_the_enquiry(client, admin, make_product, monkeypatch):
    def broken_smtp(*args, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(config, "SMTP_HOST", "smtp.example.com")
    monkeypatch.setattr(config, "MAIL_FROM", "shop@example.com")
    monkeypatch.setattr(mailer.smtplib, "SMTP", broken_smtp)
    product = make_product()

    response = client.post("/api/enquiry", json=enquiry_body(product))

    assert response.status_code == 201
    assert response.json()["enquiry"]["enquiry_number"] == "Enquiry_1"


def test_enquiry_needs_existing_products(client, make_product, sent):
    product = make_product()
    ghost = {"id": "0123456789abcdef01234567"}

    response = client.post("/api/enquiry", json=enquiry_body(product, ghost))

    assert response.status_code == 404
    assert "0123456789abcdef01234567" in response.json()["error"]
    assert client.post("/api/enquiry", json=enquiry_body()).status_code == 422


def test_enquiry_admin_workflow(client, admin_headers, user_headers, make_product, sent):
    product = make_product()
    enquiry = client.post("/api/enquiry", json=enquiry_body(product)).json()["enquiry"]
    client.post("/api/enquiry", json=enquiry_body(product, priority="high"))

    assert client.get("/api/enquiry", headers=user_headers).status_code == 403
    listed = client.get("/api/enquiry", headers=admin_headers).json()
    assert listed["total"] == 2
    assert listed["enquiries"][0]["enquiry_number"] == "Enquiry_2"

    url = f"/api/enquiry/{enquiry['id']}/status"
    responded = client.put(
        url, json={"status": "responded", "response_message": "Quote sent"}, headers=admin_headers
    ).json()["enquiry"]
    assert responded["status"] == "responded"
    assert responded["responded_at"] is not None

    pending = client.get("/api/enquiry", params={"status": "pending"}, headers=admin_headers).json()
    assert [e["enquiry_number"] for e in pending["enquiries"]] == ["Enquiry_2"]

    assert client.put(url, json={"status": "lost"}, headers=admin_headers).status_code == 422
    assert client.delete(f"/api/enquiry/{enquiry['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/enquiry/{enquiry['id']}", headers=admin_headers).status_code == 404


def test_contact_messages(client, admin_headers):
    created = client.post("/api/contacts", json={
        "name": "Ravi",
        "email": "ravi@example.com",
        "subject": "Dealership",
        "message": "Do you ship to Pune?",
    })
    assert created.status_code == 201
    contact = created.json()["contact"]
    assert contact["status"] == "new"

    client.put(f"/api/contacts/{contact['id']}/status", json={"status": "replied"}, headers=admin_headers)
    listed = client.get("/api/contacts", params={"status": "replied"}, headers=admin_headers).json()
    assert [c["subject"] for c in listed["contacts"]] == ["Dealership"]
    assert client.get("/api/contacts").status_code == 401
