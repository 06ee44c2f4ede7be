SNAPSHOT = {
    "kpis": [
        {
            "id": 1,
            "name": "Günlük Sipariş Sayısı",
            "category": "Operasyon",
            "target": 500,
            "actual": 510,
            "unit": None,
            "status": "success",
            "percentage": 102,
        },
        {
            "id": 2,
            "name": "Fire Oranı",
            "category": "Mutfak",
            "target": 2,
            "actual": 3,
            "unit": "%",
            "status": "success",
            "percentage": 150,
        },
    ],
    "sentBy": "Admin",
    "sentAt": "2026-01-15T21:00:00+03:00",
}


def _report_payload(report_date: str, **overrides) -> dict:
    payload = {
        "reportDate": report_date,
        "snapshot": SNAPSHOT,
        "totalKpis": 2,
        "successfulKpis": 2,
        "successRate": 100,
    }
    payload.update(overrides)
    return payload


def test_create_report_stores_snapshot_verbatim(client) -> None:
    resp = client.post("/api/reports/daily", json=_report_payload("2026-01-15T18:00:00+00:00"))
    assert resp.status_code == 201
    created = resp.json()
    assert created["snapshot"] == SNAPSHOT
    assert created["totalKpis"] == 2
    assert created["successRate"] == 100

    listed = client.get("/api/reports/daily").json()
    assert len(listed) == 1
    assert listed[0]["id"] == created["id"]
    assert listed[0]["snapshot"] == SNAPSHOT


def test_aggregates_are_not_recomputed(client) -> None:
    resp = client.post(
        "/api/reports/daily",
        json=_report_payload("2026-01-15T18:00:00+00:00", successfulKpis=0, successRate=0),
    )
    assert resp.status_code == 201
    assert resp.json()["successfulKpis"] == 0
    assert resp.json()["successRate"] == 0


def test_report_date_defaults_to_now(client) -> None:
    payload = _report_payload("unused")
    del payload["reportDate"]
    resp = client.post("/api/reports/daily", json=payload)
    assert resp.status_code == 201
    assert resp.json()["reportDate"] is not None


def test_list_reports_oldest_first_with_limit(client) -> None:
    for day in ("2026-01-17", "2026-01-15", "2026-01-16"):
        client.post("/api/reports/daily", json=_report_payload(f"{day}T18:00:00+00:00"))

    listed = client.get("/api/reports/daily").json()
    dates = [report["reportDate"][:10] for report in listed]
    assert dates == ["2026-01-15", "2026-01-16", "2026-01-17"]

    limited = client.get("/api/reports/daily", params={"limit": 2}).json()
    assert [report["reportDate"][:10] for report in limited] == ["2026-01-15", "2026-01-16"]

    assert client.get("/api/reports/daily", params={"limit": 0}).status_code == 400


def test_admin_reports_lists_all(client) -> None:
    for day in range(10, 14):
        client.post("/api/reports/daily", json=_report_payload(f"2026-01-{day}T18:00:00+00:00"))
    resp = client.get("/api/admin/reports")
    assert resp.status_code == 200
    assert len(resp.json()) == 4


def test_create_report_validates_payload(client) -> None:
    resp = client.post(
        "/api/reports/daily",
        json=_report_payload("2026-01-15T18:00:00+00:00", successRate=140),
    )
    assert resp.status_code == 400
    resp = client.post("/api/reports/daily", json={"snapshot": SNAPSHOT})
    assert resp.status_code == 400


def test_delete_report(client) -> None:
    created = client.post(
        "/api/reports/daily", json=_report_payload("2026-01-15T18:00:00+00:00")
    ).json()
    assert client.delete(f"/api/reports/daily/{created['id']}").status_code == 204
    assert client.get("/api/reports/daily").json() == []

    resp = client.delete(f"/api/reports/daily/{created['id']}")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Daily report not found"}


def test_report_survives_kpi_changes(client) -> None:
    kpi = client.post(
        "/api/kpis",
        json={"name": "Servis Hızı", "category": "Müşteri Deneyimi", "target": 120, "actual": 135, "period": "Günlük"},
    ).json()
    report = client.post(
        "/api/reports/daily", json=_report_payload("2026-01-15T18:00:00+00:00")
    ).json()

    client.post("/api/kpis/reset")
    client.delete(f"/api/kpis/{kpi['id']}")

    stored = client.get("/api/reports/daily").json()[0]
    assert stored["id"] == report["id"]
    assert stored["snapshot"] == SNAPSHOT
