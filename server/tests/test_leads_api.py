from conftest import create_student, login


def _add_lead(client, headers, name="Nour Khaled", phone="01223344556", **extra) -> dict:
    response = client.post("/leads", json={"name": name, "phone": phone, **extra}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["lead"]


def test_sales_manages_leads(client, sales):
    lead = _add_lead(client, sales, source="Facebook")
    assert lead["status"] == "NEW"
    assert lead["source"] == "Facebook"
    assert lead["lastContactedAt"] is None

    listed = client.get("/leads", headers=sales).json()["leads"]
    assert [item["id"] for item in listed] == [lead["id"]]

    response = client.put("/leads", json={"id": lead["id"], "status": "CONTACTED", "notes": "called"}, headers=sales)
    assert response.status_code == 200
    body = response.json()
    assert body["outcome"] == "updated"
    assert body["student"] is None
    assert body["lead"]["lastContactedAt"] is not None
    assert body["lead"]["notes"] == "called"

    assert client.delete(f"/leads/{lead['id']}", headers=sales).status_code == 200
    assert client.get(f"/leads/{lead['id']}", headers=sales).status_code == 404


def test_students_cannot_reach_crm(client, admin):
    student = create_student(client, admin)
    me = login(client, student["phone"], student["phone"])
    assert client.get("/leads", headers=me).status_code == 403
    assert client.post("/leads", json={"name": "x", "phone": "1"}, headers=me).status_code == 403


def test_lead_defaults_and_validation(client, teacher):
    lead = _add_lead(client, teacher)
    assert lead["source"] == "Direct"
    assert lead["notes"] == ""
    assert client.post("/leads", json={"name": "No phone"}, headers=teacher).status_code == 400
    assert client.put("/leads", json={"id": lead["id"], "status": "WON"}, headers=teacher).status_code == 400
    assert client.put("/leads", json={"status": "LOST"}, headers=teacher).status_code == 400


def test_conversion_needs_confirmation(client, sales, admin):
    lead = _add_lead(client, sales)

    declined = client.put("/leads", json={"id": lead["id"], "status": "CONVERTED", "notes": "later"}, headers=sales)
    assert declined.status_code == 200
    assert declined.json()["outcome"] == "declined"
    stored = client.get(f"/leads/{lead['id']}", headers=sales).json()["lead"]
    assert stored["status"] == "NEW"
    assert stored["notes"] == ""
    assert client.get("/students", headers=admin).json()["students"] == []

    created = client.put(
        "/leads",
        json={"id": lead["id"], "status": "CONVERTED", "confirmConversion": True},
        headers=sales,
    )
    body = created.json()
    assert body["outcome"] == "created"
    assert body["lead"]["status"] == "CONVERTED"
    assert body["student"]["phone"] == lead["phone"]
    assert body["student"]["plan"] == "HALF"

    students = client.get("/students", headers=admin).json()["students"]
    assert [s["id"] for s in students] == [body["student"]["id"]]

    # converted leads are closed
    assert client.put("/leads", json={"id": lead["id"], "notes": "again"}, headers=sales).status_code == 409


def test_conversion_links_existing_student(client, admin, teacher):
    student = create_student(client, admin, phone="01556677889")
    lead = _add_lead(client, teacher, name="Hany", phone="01556677889")

    response = client.put("/leads", json={"id": lead["id"], "status": "CONVERTED"}, headers=teacher)
    body = response.json()
    assert body["outcome"] == "linked"
    assert body["student"]["id"] == student["id"]
    assert len(client.get("/students", headers=admin).json()["students"]) == 1


def test_dashboard_crm_figures(client, admin, sales):
    first = _add_lead(client, sales, phone="1")
    second = _add_lead(client, sales, phone="2")
    _add_lead(client, sales, phone="3")
    client.put("/leads", json={"id": first["id"], "status": "CONVERTED", "confirmConversion": True}, headers=sales)
    client.put("/leads", json={"id": second["id"], "status": "INTERESTED"}, headers=sales)

    crm = client.get("/dashboard", headers=sales).json()["crm"]
    assert crm == {"totalLeads": 3, "newLeads": 1, "interested": 1, "converted": 1, "conversionRate": 33}

    financial = client.get("/dashboard", headers=admin).json()["financial"]
    assert financial["totalStudents"] == 1
    assert financial["totalExpected"] == 6000
