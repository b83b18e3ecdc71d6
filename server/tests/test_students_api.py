import base64

from conftest import PDF_URL, PROOF_URL, create_student, login


def _dashboard(client, headers) -> dict:
    response = client.get("/dashboard", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def test_payment_proof_round_trip(client, admin):
    student = create_student(client, admin, plan="HALF")
    assert student["installments"]["inst1"] == {"status": "UNPAID", "proofUrl": None, "paidAt": None}
    assert _dashboard(client, admin)["financial"]["totalCollected"] == 3000

    me = login(client, student["phone"], student["phone"])
    response = client.put(
        "/students",
        json={"id": student["id"], "installments": {"inst1": {"status": "PENDING", "proofUrl": PROOF_URL}}},
        headers=me,
    )
    assert response.status_code == 200, response.text
    assert response.json()["student"]["installments"]["inst1"]["status"] == "PENDING"
    assert _dashboard(client, admin)["financial"]["pendingReviews"] == 1

    response = client.put(
        "/students",
        json={"id": student["id"], "installments": {"inst1": {"status": "PAID"}}},
        headers=admin,
    )
    assert response.status_code == 200, response.text
    inst1 = response.json()["student"]["installments"]["inst1"]
    assert inst1["status"] == "PAID"
    assert inst1["proofUrl"] == PROOF_URL
    assert inst1["paidAt"]

    financial = _dashboard(client, admin)["financial"]
    assert financial["totalCollected"] == 4000
    assert financial["totalRemaining"] == 2000
    assert financial["pendingReviews"] == 0

    entries = client.get("/audit", params={"entityId": student["id"]}, headers=admin).json()["entries"]
    assert [entry["action"] for entry in entries] == ["installment.accept"]
    assert entries[0]["actorId"] == "admin"


def test_student_sees_only_own_record(client, admin):
    mine = create_student(client, admin, phone="01001234567")
    other = create_student(client, admin, name="Mariam", phone="01007654321")
    me = login(client, mine["phone"], mine["phone"])

    listed = client.get("/students", headers=me).json()["students"]
    assert [s["id"] for s in listed] == [mine["id"]]
    assert client.get(f"/students/{mine['id']}", headers=me).status_code == 200
    assert client.get(f"/students/{other['id']}", headers=me).status_code == 403
    assert client.get(f"/students/{other['id']}/financials", headers=me).status_code == 403


def test_student_update_restrictions(client, admin):
    student = create_student(client, admin)
    me = login(client, student["phone"], student["phone"])

    renamed = client.put("/students", json={"id": student["id"], "name": "Hacker"}, headers=me)
    assert renamed.status_code == 403

    self_paid = client.put(
        "/students",
        json={"id": student["id"], "installments": {"inst2": {"status": "PAID"}}},
        headers=me,
    )
    assert self_paid.status_code == 403

    no_proof = client.put(
        "/students",
        json={"id": student["id"], "installments": {"inst2": {"status": "PENDING"}}},
        headers=me,
    )
    assert no_proof.status_code == 400

    stored = client.get(f"/students/{student['id']}", headers=admin).json()["student"]
    assert stored["name"] == student["name"]
    assert stored["installments"]["inst2"]["status"] == "UNPAID"


def test_staff_cannot_upload_for_student(client, admin, teacher):
    student = create_student(client, admin)
    response = client.post(
        f"/students/{student['id']}/installments/inst1/proof",
        json={"proofUrl": PROOF_URL},
        headers=teacher,
    )
    assert response.status_code == 403


def test_proof_must_be_small_image(client, admin):
    student = create_student(client, admin)
    me = login(client, student["phone"], student["phone"])
    url = f"/students/{student['id']}/installments/inst1/proof"

    assert client.post(url, json={"proofUrl": PDF_URL}, headers=me).status_code == 400
    assert client.post(url, json={"proofUrl": "https://example.com/receipt.png"}, headers=me).status_code == 400
    big = "data:image/jpeg;base64," + base64.b64encode(b"x" * 4096).decode()
    assert client.post(url, json={"proofUrl": big}, headers=me).status_code == 400
    assert client.post(url, json={"proofUrl": PROOF_URL}, headers=me).status_code == 200


def test_review_endpoints(client, admin, teacher):
    student = create_student(client, admin)
    me = login(client, student["phone"], student["phone"])
    base = f"/students/{student['id']}/installments/inst2"

    # nothing to review yet
    assert client.post(f"{base}/review", json={"decision": "accept"}, headers=teacher).status_code == 409

    client.post(f"{base}/proof", json={"proofUrl": PROOF_URL}, headers=me)
    assert client.post(f"{base}/review", json={"decision": "accept"}, headers=me).status_code == 403
    assert client.post(f"{base}/review", json={"decision": "maybe"}, headers=teacher).status_code == 400

    rejected = client.post(f"{base}/review", json={"decision": "reject"}, headers=teacher)
    assert rejected.status_code == 200
    assert rejected.json()["student"]["installments"]["inst2"]["status"] == "REJECTED"
    assert rejected.json()["student"]["installments"]["inst2"]["proofUrl"] == PROOF_URL

    # a fresh upload reopens the review
    client.post(f"{base}/proof", json={"proofUrl": PROOF_URL}, headers=me)
    accepted = client.post(f"{base}/review", json={"decision": "accept"}, headers=teacher)
    assert accepted.json()["student"]["installments"]["inst2"]["status"] == "PAID"

    actions = [entry["action"] for entry in client.get("/audit", headers=admin).json()["entries"]]
    assert actions == ["installment.accept", "installment.reject"]


def test_override_is_admin_only(client, admin, teacher):
    student = create_student(client, admin)
    base = f"/students/{student['id']}/installments/inst3"

    assert client.post(f"{base}/override", json={"status": "PAID"}, headers=teacher).status_code == 403
    assert client.post(f"{base}/override", json={"status": "PENDING"}, headers=admin).status_code == 400

    paid = client.post(f"{base}/override", json={"status": "PAID"}, headers=admin)
    assert paid.status_code == 200
    assert paid.json()["student"]["installments"]["inst3"]["status"] == "PAID"

    unpaid = client.post(f"{base}/override", json={"status": "UNPAID"}, headers=admin)
    assert unpaid.json()["student"]["installments"]["inst3"] == {"status": "UNPAID", "proofUrl": None, "paidAt": None}

    entry = client.get("/audit", headers=admin).json()["entries"][0]
    assert entry["action"] == "installment.override"
    assert entry["detail"] == {"slot": "inst3", "from": "PAID", "to": "UNPAID"}


def test_override_refuses_pending_slot(client, admin):
    student = create_student(client, admin)
    me = login(client, student["phone"], student["phone"])
    base = f"/students/{student['id']}/installments/inst1"
    client.post(f"{base}/proof", json={"proofUrl": PROOF_URL}, headers=me)

    assert client.post(f"{base}/override", json={"status": "PAID"}, headers=admin).status_code == 409


def test_failed_put_writes_nothing(client, admin):
    student = create_student(client, admin)
    response = client.put(
        "/students",
        json={
            "id": student["id"],
            "name": "Renamed",
            "installments": {"inst1": {"status": "PAID"}, "inst2": {"status": "REJECTED"}},
        },
        headers=admin,
    )
    # inst2 was never PENDING
    assert response.status_code == 409
    stored = client.get(f"/students/{student['id']}", headers=admin).json()["student"]
    assert stored["name"] == student["name"]
    assert stored["installments"]["inst1"]["status"] == "UNPAID"
    assert client.get("/audit", headers=admin).json()["entries"] == []


def test_staff_field_updates(client, teacher):
    student = create_student(client, teacher)
    response = client.put(
        "/students",
        json={"id": student["id"], "name": "Youssef A.", "plan": "FULL"},
        headers=teacher,
    )
    assert response.status_code == 200
    assert response.json()["student"]["plan"] == "FULL"

    figures = client.get(f"/students/{student['id']}/financials", headers=teacher).json()["financials"]
    assert figures == {"paid": 6000, "pending": 0, "remaining": 0, "isFullyPaid": True}


def test_validation_errors(client, admin):
    assert client.post("/students", json={"name": "No phone"}, headers=admin).status_code == 400
    assert client.put("/students", json={"id": "not-a-uuid", "name": "x"}, headers=admin).status_code == 400
    assert client.post("/students", json={"name": "a", "phone": "1", "plan": "MONTHLY"}, headers=admin).status_code == 400


def test_role_gates(client, admin, sales):
    student = create_student(client, admin)
    assert client.get("/students", headers=sales).status_code == 403
    assert client.post("/students", json={"name": "a", "phone": "1"}, headers=sales).status_code == 403
    assert client.get("/dashboard", headers=sales).status_code == 200
    assert client.get("/students").status_code == 401

    me = login(client, student["phone"], student["phone"])
    assert client.get("/dashboard", headers=me).status_code == 403
    assert client.get("/audit", headers=sales).status_code == 403


def test_delete_student_cascades(client, admin):
    student = create_student(client, admin)
    me = login(client, student["phone"], student["phone"])

    response = client.delete(f"/students/{student['id']}", headers=admin)
    assert response.status_code == 200
    assert client.get(f"/students/{student['id']}", headers=admin).status_code == 404
    # the student's account and sessions went with it
    assert client.get("/auth", headers=me).status_code == 401
    assert client.delete(f"/students/{student['id']}", headers=admin).status_code == 404
    assert client.delete("/students/42", headers=admin).status_code == 400


def test_paid_slot_cannot_be_reopened(client, admin, teacher):
    student = create_student(client, admin)
    me = login(client, student["phone"], student["phone"])
    base = f"/students/{student['id']}/installments/inst1"
    client.post(f"{base}/proof", json={"proofUrl": PROOF_URL}, headers=me)
    client.post(f"{base}/review", json={"decision": "accept"}, headers=teacher)
    assert _dashboard(client, admin)["financial"]["totalCollected"] == 4000

    assert client.post(f"{base}/proof", json={"proofUrl": PROOF_URL}, headers=me).status_code == 409
    again = client.put(
        "/students",
        json={"id": student["id"], "installments": {"inst1": {"status": "PENDING", "proofUrl": PROOF_URL}}},
        headers=me,
    )
    assert again.status_code == 409

    inst1 = client.get(f"/students/{student['id']}", headers=me).json()["student"]["installments"]["inst1"]
    assert inst1["status"] == "PAID"
    assert inst1["paidAt"]
    assert _dashboard(client, admin)["financial"]["totalCollected"] == 4000


def test_rejected_slot_needs_a_fresh_proof(client, admin, teacher):
    student = create_student(client, admin)
    me = login(client, student["phone"], student["phone"])
    base = f"/students/{student['id']}/installments/inst2"
    client.post(f"{base}/proof", json={"proofUrl": PROOF_URL}, headers=me)
    client.post(f"{base}/review", json={"decision": "reject"}, headers=teacher)

    for slot in ({"status": "PENDING"}, {"status": "PENDING", "proofUrl": PROOF_URL}):
        response = client.put("/students", json={"id": student["id"], "installments": {"inst2": slot}}, headers=me)
        assert response.status_code == 400
    stored = client.get(f"/students/{student['id']}", headers=me).json()["student"]["installments"]["inst2"]
    assert stored["status"] == "REJECTED"

    fresh = "data:image/png;base64," + base64.b64encode(b"\x89PNG second receipt").decode()
    response = client.put(
        "/students",
        json={"id": student["id"], "installments": {"inst2": {"status": "PENDING", "proofUrl": fresh}}},
        headers=me,
    )
    assert response.status_code == 200, response.text
    assert response.json()["student"]["installments"]["inst2"] == {"status": "PENDING", "proofUrl": fresh, "paidAt": None}
