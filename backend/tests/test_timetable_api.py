BASE = "/api/schools/school-1"


def _lesson(**overrides):
    payload = {
        "section_id": "sec-10a",
        "subject_id": "sub-math",
        "staff_id": "staff-alice",
        "room_id": "room-r1",
        "day_of_week": 0,
        "start_time": "09:00",
        "end_time": "10:00",
    }
    payload.update(overrides)
    return payload


def test_create_and_read_entry(client, school):
    created = client.post(f"{BASE}/timetable", json=_lesson())
    assert created.status_code == 201
    body = created.json()
    assert body["start_time"] == "09:00"
    assert body["school_id"] == school.id

    fetched = client.get(f"{BASE}/timetable/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == body["id"]

    listed = client.get(f"{BASE}/timetable", params={"staff_id": "staff-alice"})
    assert [item["id"] for item in listed.json()] == [body["id"]]
    assert client.get(f"{BASE}/timetable", params={"day_of_week": 1}).json() == []


def test_room_busy_then_override(client, school):
    first = client.post(f"{BASE}/timetable", json=_lesson()).json()
    clash = _lesson(section_id="sec-10b", subject_id="sub-science", staff_id="staff-bob", start_time="09:30", end_time="10:30")

    rejected = client.post(f"{BASE}/timetable", json=clash)
    assert rejected.status_code == 409
    error = rejected.json()
    assert error["code"] == "CONFLICT"
    assert [reason["code"] for reason in error["details"]["reasons"]] == ["ROOM_BUSY"]
    assert error["details"]["reasons"][0]["entry_id"] == first["id"]

    replaced = client.post(f"{BASE}/timetable", json={**clash, "override_conflict": True})
    assert replaced.status_code == 200
    assert client.get(f"{BASE}/timetable/{first['id']}").status_code == 404
    entries = client.get(f"{BASE}/timetable").json()
    assert [item["id"] for item in entries] == [replaced.json()["id"]]


def test_update_and_delete_entry(client, school):
    entry = client.post(f"{BASE}/timetable", json=_lesson()).json()
    client.post(f"{BASE}/timetable", json=_lesson(section_id="sec-10b", staff_id="staff-carol", room_id="room-r2", start_time="11:00", end_time="12:00"))

    moved = client.put(f"{BASE}/timetable/{entry['id']}", json={"start_time": "09:30", "end_time": "10:30", "room_id": None})
    assert moved.status_code == 200
    assert (moved.json()["start_time"], moved.json()["room_id"]) == ("09:30", None)

    blocked = client.put(f"{BASE}/timetable/{entry['id']}", json={"staff_id": "staff-carol", "start_time": "11:00", "end_time": "12:00"})
    assert blocked.status_code == 409
    assert blocked.json()["details"]["codes"] == ["STAFF_BUSY"]

    assert client.put(f"{BASE}/timetable/missing", json={"day_of_week": 2}).status_code == 404

    deleted = client.delete(f"{BASE}/timetable/{entry['id']}")
    assert deleted.status_code == 200
    assert client.delete(f"{BASE}/timetable/{entry['id']}").status_code == 404


def test_update_with_override_replaces_the_occupant(client, school):
    occupant = client.post(f"{BASE}/timetable", json=_lesson()).json()
    moving = client.post(
        f"{BASE}/timetable",
        json=_lesson(section_id="sec-10b", subject_id="sub-science", staff_id="staff-bob", room_id="room-r2", start_time="11:00", end_time="12:00"),
    ).json()
    move = {"room_id": "room-r1", "start_time": "09:00", "end_time": "10:00"}

    rejected = client.put(f"{BASE}/timetable/{moving['id']}", json=move)
    assert rejected.status_code == 409
    assert rejected.json()["details"]["codes"] == ["ROOM_BUSY"]

    moved = client.put(f"{BASE}/timetable/{moving['id']}", json={**move, "override_conflict": True})
    assert moved.status_code == 200
    assert (moved.json()["id"], moved.json()["room_id"], moved.json()["start_time"]) == (moving["id"], "room-r1", "09:00")
    assert client.get(f"{BASE}/timetable/{occupant['id']}").status_code == 404
    assert [item["id"] for item in client.get(f"{BASE}/timetable").json()] == [moving["id"]]


def test_invalid_payloads_return_validation_errors(client, school):
    reversed_times = client.post(f"{BASE}/timetable", json=_lesson(start_time="10:00", end_time="09:00"))
    assert reversed_times.status_code == 422
    assert reversed_times.json()["code"] == "VALIDATION"

    off_grid = client.post(f"{BASE}/timetable", json=_lesson(end_time="09:45"))
    assert off_grid.status_code == 422
    assert off_grid.json()["code"] == "VALIDATION"

    unknown = client.post(f"{BASE}/timetable", json=_lesson(staff_id="staff-nobody"))
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "NOT_FOUND"

    assert client.get("/api/schools/no-school/timetable").status_code == 404


def test_suggest_slot(client, school):
    client.post(f"{BASE}/timetable", json=_lesson(start_time="08:00", end_time="09:00"))

    response = client.post(
        f"{BASE}/timetable/suggest",
        json={"duration_minutes": 60, "staff_id": "staff-alice", "preferred_room_id": "room-r1"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "day_of_week": 0,
        "start_time": "09:00",
        "end_time": "10:00",
        "room_id": "room-r1",
        "staff_id": "staff-alice",
    }

    exhausted = client.post(f"{BASE}/timetable/suggest", json={"duration_minutes": 600})
    assert exhausted.status_code == 404
    assert exhausted.json()["code"] == "NO_SLOT_AVAILABLE"


def test_generate_and_list_runs(client, school):
    created = client.post(
        f"{BASE}/requirements",
        json={"section_id": "sec-10a", "subject_id": "sub-math", "periods_per_week": 3, "duration_minutes": 60},
    )
    assert created.status_code == 201

    response = client.post(f"{BASE}/timetable/generate", json={"target_section_ids": ["sec-10a"]})
    assert response.status_code == 200
    body = response.json()
    assert body["placed_count"] == 3
    assert body["unsatisfied"] == []
    assert len({item["day_of_week"] for item in body["placements"]}) == 3

    again = client.post(f"{BASE}/timetable/generate", json={})
    assert again.status_code == 200
    assert again.json()["placed_count"] == 0

    runs = client.get(f"{BASE}/timetable/runs").json()
    assert len(runs) == 2
    assert {run["status"] for run in runs} == {"succeeded"}
    assert body["run_id"] in {run["id"] for run in runs}


def test_empty_target_list_generates_every_section(client, school):
    for section_id in ("sec-10a", "sec-10b"):
        client.post(
            f"{BASE}/requirements",
            json={"section_id": section_id, "subject_id": "sub-science", "periods_per_week": 1, "duration_minutes": 60},
        )

    response = client.post(f"{BASE}/timetable/generate", json={"target_section_ids": []})
    assert response.status_code == 200
    body = response.json()
    assert body["placed_count"] == 2
    assert sorted(item["section_id"] for item in body["placements"]) == ["sec-10a", "sec-10b"]
    assert client.get(f"{BASE}/timetable/runs").json()[0]["options"]["target_section_ids"] is None


def test_partial_generation_is_still_ok(client, school):
    client.post(
        f"{BASE}/requirements",
        json={"section_id": "sec-10a", "subject_id": "sub-science", "periods_per_week": 3, "duration_minutes": 600},
    )
    response = client.post(f"{BASE}/timetable/generate", json={})
    # 600 minutes is on the grid but longer than the school day.
    assert response.status_code == 200
    assert response.json()["unsatisfied"][0]["missing"] == 3
    assert response.json()["unsatisfied"][0]["inferred"] is False


def test_generate_rejects_bad_window(client, school):
    response = client.post(
        f"{BASE}/timetable/generate",
        json={"preferred_start_time": "12:00", "preferred_end_time": "10:00"},
    )
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION"
