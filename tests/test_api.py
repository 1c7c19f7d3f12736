"""HTTP surface tests against the seeded three-doctor system."""

SLOT = "slot-doc-1-0900"


def book(client, name="Asha Rao", category="WALK_IN", doctor_id="doc-1", slot=SLOT):
    body = {"patient_name": name, "category": category, "doctor_id": doctor_id}
    if slot:
        body["preferred_slot_id"] = slot
    return client.post("/api/tokens", json=body)


class TestSystemEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_overview(self, client):
        book(client)
        data = client.get("/api/system/overview").json()
        assert data["total_doctors"] == 3
        assert data["total_tokens"] == 1
        assert data["tokens_by_status"]["ALLOCATED"] == 1
        cardio = next(d for d in data["doctors"] if d["id"] == "doc-1")
        assert cardio["slots_utilization"][0]["load"] == "1/10"

    def test_reset_drops_tokens(self, client):
        book(client)
        assert client.post("/api/system/reset").json()["success"]
        assert client.get("/api/tokens").json() == []


class TestTokenEndpoints:
    def test_create_token(self, client):
        response = book(client)
        assert response.status_code == 201
        data = response.json()
        assert data["success"]
        assert data["token"]["status"] == "ALLOCATED"
        assert data["slot"] == {"slot_id": SLOT, "current_load": 1, "max_capacity": 10}

    def test_waitlisted_is_not_an_error(self, client):
        for i in range(10):
            book(client, name=f"Patient {i}", category="FOLLOW_UP")
        response = book(client, name="Late Comer")
        assert response.status_code == 200
        data = response.json()
        assert not data["success"]
        assert data["queue_position"] == 1
        assert data["token"]["status"] == "WAITLISTED"

    def test_paid_priority_bump(self, client):
        for i in range(10):
            book(client, name=f"Walker {i}")
        data = book(client, name="Paying Patient", category="PAID_PRIORITY").json()
        assert data["success"]
        assert data["bumped_token"]["patient_name"] == "Walker 9"
        assert data["bumped_token"]["bump_count"] == 1

    def test_validation(self, client):
        assert book(client, name="A").status_code == 422
        assert book(client, category="VIP").status_code == 422

    def test_unknown_doctor_and_slot(self, client):
        assert book(client, doctor_id="doc-404", slot=None).status_code == 404
        response = book(client, slot="slot-missing")
        assert response.status_code == 404
        assert not response.json()["success"]

    def test_emergency(self, client):
        response = client.post(
            "/api/tokens/emergency",
            json={"patient_name": "Ravi Kumar", "doctor_id": "doc-2", "severity": "critical"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["success"]
        assert data["severity"] == "critical"
        assert data["token"]["category"] == "EMERGENCY"
        assert data["token"]["priority"] == 100

    def test_emergency_with_no_open_slot(self, client):
        client.post("/api/system/doctor-unavailable", json={"doctor_id": "doc-3", "reason": "Sick"})
        response = client.post(
            "/api/tokens/emergency",
            json={"patient_name": "Ravi Kumar", "doctor_id": "doc-3", "severity": "high"},
        )
        assert response.status_code == 200
        data = response.json()
        assert not data["success"]
        assert data["severity"] == "high"
        assert data["token"]["status"] == "WAITLISTED"
        assert data["token"]["slot_id"] is None

        stored = client.get(f"/api/tokens/{data['token']['id']}")
        assert stored.status_code == 200
        assert stored.json()["slot"] is None

    def test_cancel_lifecycle(self, client):
        token_id = book(client).json()["token"]["id"]

        first = client.request("DELETE", f"/api/tokens/{token_id}", json={"reason": "Travel"})
        assert first.status_code == 200
        assert first.json()["success"]
        assert first.json()["reason"] == "Travel"
        assert first.json()["token"]["status"] == "CANCELLED"

        again = client.delete(f"/api/tokens/{token_id}")
        assert again.status_code == 200
        assert not again.json()["success"]

    def test_cancel_completed_conflicts(self, client):
        token_id = book(client).json()["token"]["id"]
        completed = client.post(f"/api/tokens/{token_id}/complete")
        assert completed.json()["status"] == "COMPLETED"
        assert client.delete(f"/api/tokens/{token_id}").status_code == 409

    def test_no_show_promotes(self, client):
        ids = [book(client, name=f"Patient {i}").json()["token"]["id"] for i in range(10)]
        waiting = book(client, name="Waiting Patient").json()["token"]["id"]

        data = client.post(f"/api/tokens/{ids[0]}/no-show").json()
        assert data["token"]["status"] == "NO_SHOW"
        assert data["promoted_token"]["id"] == waiting

    def test_unknown_token(self, client):
        assert client.get("/api/tokens/nope").status_code == 404
        assert client.delete("/api/tokens/nope").status_code == 404
        assert client.post("/api/tokens/nope/no-show").status_code == 404
        assert client.post("/api/tokens/nope/complete").status_code == 404

    def test_token_detail(self, client):
        token_id = book(client).json()["token"]["id"]
        data = client.get(f"/api/tokens/{token_id}").json()
        assert data["doctor"]["name"] == "Dr. Rajesh Kumar"
        assert data["slot"] == {"id": SLOT, "time": "09:00 - 10:00", "status": "AVAILABLE"}

    def test_list_filters_and_stats(self, client):
        book(client, doctor_id="doc-1", slot=None)
        book(client, doctor_id="doc-2", slot=None, category="ONLINE_BOOKING")

        assert len(client.get("/api/tokens").json()) == 2
        assert len(client.get("/api/tokens", params={"doctor_id": "doc-2"}).json()) == 1
        assert len(client.get("/api/tokens", params={"status": "CANCELLED"}).json()) == 0

        stats = client.get("/api/tokens/stats/summary").json()
        assert stats["total"] == 2
        assert stats["by_category"]["ONLINE_BOOKING"] == 1
        assert stats["total_bumps"] == 0


class TestDoctorAndSlotEndpoints:
    def test_doctors(self, client):
        doctors = client.get("/api/doctors").json()
        assert [d["id"] for d in doctors] == ["doc-1", "doc-2", "doc-3"]
        assert client.get("/api/doctors/doc-404").status_code == 404

    def test_doctor_slots(self, client):
        data = client.get("/api/doctors/doc-3/slots").json()
        assert data["doctor"]["specialization"] == "Orthopedics"
        assert data["total_slots"] == 8
        assert data["slots"][0]["start_time"] == "08:00"
        assert data["slots"][0]["utilization_percentage"] == 0.0

    def test_slot_detail_and_availability(self, client):
        book(client)
        detail = client.get(f"/api/slots/{SLOT}").json()
        assert detail["slot"]["waitlist_count"] == 0
        assert detail["slot"]["utilization"] == "1/10"
        assert len(detail["allocated_tokens"]) == 1

        availability = client.get(f"/api/slots/{SLOT}/availability").json()
        assert availability["available"]
        assert availability["spots_left"] == 9
        assert client.get("/api/slots/slot-missing").status_code == 404

    def test_all_slots(self, client):
        assert len(client.get("/api/slots").json()) == 24


class TestElasticEndpoints:
    def test_doctor_delay(self, client):
        response = client.post(
            "/api/system/doctor-delay",
            json={"doctor_id": "doc-1", "delay_minutes": 20, "from_slot_id": SLOT},
        )
        assert response.status_code == 200
        # floor((10 + 10) * 0.9)
        assert response.json()["merged_capacity"] == 18

    def test_doctor_delay_validation(self, client):
        response = client.post(
            "/api/system/doctor-delay",
            json={"doctor_id": "doc-1", "delay_minutes": 0, "from_slot_id": SLOT},
        )
        assert response.status_code == 422
        response = client.post(
            "/api/system/doctor-delay",
            json={"doctor_id": "doc-2", "delay_minutes": 10, "from_slot_id": SLOT},
        )
        assert response.status_code == 404

    def test_redistribute(self, client):
        book(client)
        data = client.post("/api/system/redistribute-slot", json={"slot_id": SLOT}).json()
        assert data == {
            "redistributed": 1,
            "failed": 0,
            "details": ["Asha Rao: 09:00 -> 10:00"],
        }
        slot = client.get(f"/api/slots/{SLOT}/availability").json()
        assert slot["status"] == "CLOSED"
        assert not slot["available"]

    def test_doctor_unavailable(self, client):
        data = client.post(
            "/api/system/doctor-unavailable", json={"doctor_id": "doc-2", "reason": "Conference"}
        ).json()
        assert data["affected_slots"] == 8
        assert data["affected_patients"] == 0
        assert "Conference" in data["redistribution_plan"][0]
