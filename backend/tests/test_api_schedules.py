from sqlalchemy import select

from campsched.models.activity_log import ActivityLog
from campsched.models.resource_lock import ResourceLock
from campsched.models.user import UserRole

DAY = "2026-07-01"

CAMP_SETTINGS = {
    "slot_minutes": 30,
    "day_start": "9:00 am",
    "day_end": "12:00 pm",
    "divisions": {
        "Juniors": {"bunks": ["Bunk 1", "Bunk 2"]},
        "Seniors": {"bunks": ["Bunk 3", "Bunk 4"]},
    },
    "resources": {
        "Field X": {"activities": ["Soccer"]},
        "Field Y": {"activities": ["Kickball"]},
        "Art Room": {},
    },
}

DAY_STRUCTURE = {
    "blocks": [
        {"division": "Juniors", "event": "Activity", "start_time": "9:00 am", "end_time": "9:30 am"},
        {"division": "Seniors", "event": "Activity", "start_time": "9:00 am", "end_time": "9:30 am"},
        {"division": "Juniors", "event": "Lunch", "start_time": "11:00 am", "end_time": "12:00 pm", "type": "fixed"},
    ]
}


def as_user(user_id):
    return {"X-User-Id": user_id}


def set_up_camp(client, owner_id):
    response = client.put("/api/settings/camp", json=CAMP_SETTINGS, headers=as_user(owner_id))
    assert response.status_code == 200
    response = client.put(f"/api/days/{DAY}/structure", json=DAY_STRUCTURE, headers=as_user(owner_id))
    assert response.status_code == 200
    return response.json()


def edit_payload(**overrides):
    payload = {
        "bunk": "Bunk 1",
        "start_time": "9:00 am",
        "end_time": "9:30 am",
        "activity": "Kickball",
        "resource_name": "Field Y",
    }
    payload.update(overrides)
    return payload


def test_two_schedulers_share_one_day(client, make_user, session_factory):
    owner = make_user("Olive Owner", UserRole.owner)
    alex = make_user("Alex", UserRole.scheduler, ["Juniors"])
    blair = make_user("Blair", UserRole.scheduler, ["Seniors"])

    structure = set_up_camp(client, owner)
    assert structure["version"] == 1
    assert [slot["start"] for slot in structure["slots"]] == [
        "9:00 AM", "9:30 AM", "10:00 AM", "10:30 AM", "11:00 AM", "11:30 AM",
    ]

    juniors = client.post(f"/api/days/{DAY}/generate", headers=as_user(alex))
    assert juniors.status_code == 200
    body = juniors.json()
    assert body["version"] == 2
    assert body["success"] is True
    assert body["placed"] == 2
    assert body["updated_bunks"] == ["Bunk 1", "Bunk 2"]

    seniors = client.post(f"/api/days/{DAY}/generate", headers=as_user(blair))
    assert seniors.status_code == 200
    body = seniors.json()
    assert body["version"] == 3
    assert body["success"] is False
    assert body["preserved_bunks"] == ["Bunk 1", "Bunk 2"]
    assert [failure["bunk"] for failure in body["failures"]] == ["Bunk 4"]

    day = client.get(f"/api/days/{DAY}", headers=as_user(alex)).json()
    assignments = day["assignments"]
    assert assignments["Bunk 1"][0]["field"] == "Art Room"
    assert assignments["Bunk 2"][0]["field"] == "Field X"
    assert assignments["Bunk 3"][0]["field"] == "Field Y"
    assert assignments["Bunk 4"][0]["_noAlternative"] is True
    assert assignments["Bunk 1"][4]["_activity"] == "Lunch"
    assert assignments["Bunk 1"][5]["continuation"] is True

    check = client.post(
        f"/api/days/{DAY}/conflicts/check",
        json={"bunk": "Bunk 1", "start_time": "9:00 am", "end_time": "9:30 am", "resource_name": "Field Y"},
        headers=as_user(alex),
    )
    assert check.status_code == 200
    assert check.json()["non_editable"] == ["Bunk 3"]
    assert check.json()["foreign_locked_slots"] == [0]

    undecided = client.post(f"/api/days/{DAY}/edits", json=edit_payload(), headers=as_user(alex))
    assert undecided.status_code == 409
    assert undecided.json()["details"]["report"]["non_editable"] == ["Bunk 3"]

    notified = client.post(f"/api/days/{DAY}/edits", json=edit_payload(resolution="notify"), headers=as_user(alex))
    assert notified.status_code == 200
    body = notified.json()
    assert body["mode"] == "notify"
    assert body["version"] == 4
    assert [notice["bunk"] for notice in body["notices"]] == ["Bunk 3"]

    inbox = client.get("/api/notifications", headers=as_user(blair)).json()
    assert [item["notification_type"] for item in inbox] == ["double_booking"]
    assert inbox[0]["payload"]["caused_by_bunk"] == "Bunk 1"
    assert client.get("/api/notifications", headers=as_user(alex)).json() == []

    bypassed = client.post(f"/api/days/{DAY}/edits", json=edit_payload(resolution="bypass"), headers=as_user(alex))
    assert bypassed.status_code == 200
    body = bypassed.json()
    assert body["mode"] == "bypass"
    assert body["bypassed"] is True
    assert body["touched_bunks"] == ["Bunk 1", "Bunk 3"]
    assert body["reassigned"][0]["bunk"] == "Bunk 3"
    assert body["reassigned"][0]["to_resource"] == "Art Room"

    day = client.get(f"/api/days/{DAY}", headers=as_user(blair)).json()
    assert day["version"] == 5
    assert day["assignments"]["Bunk 1"][0]["field"] == "Field Y"
    assert day["assignments"]["Bunk 1"][0]["_pinned"] is True
    assert day["assignments"]["Bunk 1"][0]["_locked"] is True
    assert day["assignments"]["Bunk 3"][0]["field"] == "Art Room"
    assert day["assignments"]["Bunk 3"][0]["_autoReassigned"] is True

    inbox = client.get("/api/notifications", params={"notification_type": "reassignment"}, headers=as_user(blair))
    assert len(inbox.json()) == 1

    db = session_factory()
    try:
        actions = [row.action for row in db.execute(select(ActivityLog).order_by(ActivityLog.created_at)).scalars()]
        assert actions.count("schedule.bypass") == 1
        assert actions.count("schedule.edit") == 1
        bypass = db.execute(select(ActivityLog).where(ActivityLog.action == "schedule.bypass")).scalar_one()
        assert bypass.day == DAY
        assert bypass.details["changed_bunks"] == ["Bunk 1", "Bunk 3"]
        locks = list(db.execute(select(ResourceLock).where(ResourceLock.day == DAY)).scalars())
        assert [(lock.resource_name, lock.slot_index, lock.bunk) for lock in locks] == [("Field Y", 0, "Bunk 1")]
    finally:
        db.close()


def test_scheduler_cannot_edit_other_division_without_bypass(client, make_user):
    owner = make_user("Olive Owner", UserRole.owner)
    alex = make_user("Alex", UserRole.scheduler, ["Juniors"])
    set_up_camp(client, owner)

    response = client.post(f"/api/days/{DAY}/edits", json=edit_payload(bunk="Bunk 3"), headers=as_user(alex))
    assert response.status_code == 403
    assert response.json()["details"] == {"bunk": "Bunk 3", "division": "Seniors"}


def test_role_and_identity_checks(client, make_user):
    owner = make_user("Olive Owner", UserRole.owner)
    viewer = make_user("Vic", UserRole.viewer)
    idle = make_user("Ida", UserRole.scheduler)
    alex = make_user("Alex", UserRole.scheduler, ["Juniors"])
    set_up_camp(client, owner)

    assert client.post(f"/api/days/{DAY}/generate", headers=as_user(viewer)).status_code == 403
    assert client.post(f"/api/days/{DAY}/generate").status_code == 401
    assert client.post(f"/api/days/{DAY}/generate", headers=as_user("nobody")).status_code == 401

    idle_response = client.post(f"/api/days/{DAY}/generate", headers=as_user(idle))
    assert idle_response.status_code == 403
    assert idle_response.json()["message"] == "You have no divisions assigned to schedule."

    assert client.put("/api/settings/camp", json=CAMP_SETTINGS, headers=as_user(alex)).status_code == 403
    assert client.put(f"/api/days/{DAY}/structure", json=DAY_STRUCTURE, headers=as_user(alex)).status_code == 403
    assert client.post(f"/api/days/{DAY}/finalize", headers=as_user(alex)).status_code == 403
    assert client.get("/api/days/not-a-day", headers=as_user(alex)).status_code == 400


def test_generate_without_structure_is_rejected(client, make_user):
    owner = make_user("Olive Owner", UserRole.owner)
    client.put("/api/settings/camp", json=CAMP_SETTINGS, headers=as_user(owner))

    response = client.post(f"/api/days/{DAY}/generate", headers=as_user(owner))
    assert response.status_code == 400
    assert client.get(f"/api/days/{DAY}", headers=as_user(owner)).json()["version"] == 0


def test_finalize_feeds_rotation_history(client, make_user):
    owner = make_user("Olive Owner", UserRole.owner)
    set_up_camp(client, owner)
    assert client.post(f"/api/days/{DAY}/generate", headers=as_user(owner)).status_code == 200

    finalized = client.post(f"/api/days/{DAY}/finalize", headers=as_user(owner))
    assert finalized.status_code == 200
    assert finalized.json() == {"day": DAY, "bunks": 4, "rows_updated": 3}

    missing = client.post("/api/days/2026-08-01/finalize", headers=as_user(owner))
    assert missing.status_code == 404

    # Yesterday's activities are now penalized, so the next day rotates.
    set_up = client.put("/api/days/2026-07-02/structure", json=DAY_STRUCTURE, headers=as_user(owner))
    assert set_up.status_code == 200
    assert client.post("/api/days/2026-07-02/generate", headers=as_user(owner)).status_code == 200
    next_day = client.get("/api/days/2026-07-02", headers=as_user(owner)).json()["assignments"]
    assert next_day["Bunk 1"][0]["field"] != "Art Room"


def test_merge_saved_versions(client, make_user):
    owner = make_user("Olive Owner", UserRole.owner)
    set_up_camp(client, owner)
    payload = {
        "versions": [
            {
                "label": "seniors",
                "saved_at": "2026-07-01T10:00:00",
                "assignments": {"Bunk 3": [{"field": "Field Y", "_activity": "Kickball"}]},
            },
            {
                "label": "juniors",
                "saved_at": "2026-07-01T09:00:00",
                "assignments": {
                    "Bunk 1": [{"field": "Art Room", "_activity": "Art Room"}],
                    "Bunk 3": [{"field": "Field X", "_activity": "Soccer"}],
                },
                "touched_bunks": ["Bunk 1"],
            },
        ]
    }

    response = client.post(f"/api/days/{DAY}/versions/merge", json=payload, headers=as_user(owner))
    assert response.status_code == 200
    assert response.json() == {"day": DAY, "version": 2, "bunk_count": 2, "bunks": ["Bunk 1", "Bunk 3"]}

    day = client.get(f"/api/days/{DAY}", headers=as_user(owner)).json()
    assert day["assignments"]["Bunk 3"][0]["field"] == "Field Y"
    assert len(day["blocks"]) == 3
