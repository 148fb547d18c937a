from sqlalchemy import func, select

from unisphere.database import async_session_maker
from unisphere.main import app
from unisphere.models.chat_message import ChatMessage
from unisphere.models.community import Community
from unisphere.models.file import File
from unisphere.models.user import Role
from unisphere.repositories.communities import CommunityRepository, ParticipantRepository


def count_rows(seed, model, *criteria):
    async def _count():
        async with async_session_maker() as db:
            result = await db.execute(select(func.count()).select_from(model).where(*criteria))
            return result.scalar_one()

    return seed.run(_count)


def test_get_community_detail(client, seed):
    lead = seed.user()
    member = seed.user()
    community = seed.community(lead, members=[member])

    response = client.get(f"/api/v1/communities/{community.id}", headers=seed.headers(member))

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == community.id
    assert data["leadId"] == lead.id
    assert data["participantCount"] == 2
    assert sorted(p["userId"] for p in data["participants"]) == sorted([lead.id, member.id])


def test_unknown_community_is_404(client, seed):
    user = seed.user()
    response = client.get("/api/v1/communities/999", headers=seed.headers(user))
    assert response.status_code == 404
    assert response.json() == {"error": "community not found", "code": "NotFound"}


def test_join_twice_conflicts(client, seed):
    lead = seed.user()
    joiner = seed.user()
    community = seed.community(lead)

    first = client.post(f"/api/v1/communities/{community.id}/join", headers=seed.headers(joiner))
    second = client.post(f"/api/v1/communities/{community.id}/join", headers=seed.headers(joiner))

    assert first.status_code == 204
    assert second.status_code == 409
    assert second.json()["code"] == "Conflict"


def test_leave_then_leave_again(client, seed):
    lead = seed.user()
    member = seed.user()
    community = seed.community(lead, members=[member])

    first = client.post(f"/api/v1/communities/{community.id}/leave", headers=seed.headers(member))
    second = client.post(f"/api/v1/communities/{community.id}/leave", headers=seed.headers(member))

    assert first.status_code == 204
    assert second.status_code == 409


def test_lead_cannot_leave(client, seed):
    lead = seed.user()
    community = seed.community(lead)

    response = client.post(f"/api/v1/communities/{community.id}/leave", headers=seed.headers(lead))

    assert response.status_code == 409
    detail = client.get(f"/api/v1/communities/{community.id}", headers=seed.headers(lead)).json()
    assert [p["userId"] for p in detail["participants"]] == [lead.id]


def test_list_includes_participant_counts(client, seed):
    lead = seed.user()
    small = seed.community(lead)
    big = seed.community(lead, members=[seed.user(), seed.user()])

    response = client.get("/api/v1/communities", headers=seed.headers(lead))

    assert response.status_code == 200
    counts = {c["id"]: c["participantCount"] for c in response.json()}
    assert counts == {small.id: 1, big.id: 3}


def test_create_makes_caller_the_lead(client, seed):
    user = seed.user()

    response = client.post(
        "/api/v1/communities",
        json={"name": "Robotics Club", "abbreviation": "ROBO"},
        headers=seed.headers(user),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["leadId"] == user.id
    assert data["participantCount"] == 1

    joined = client.get("/api/v1/communities/joined", headers=seed.headers(user)).json()
    assert [c["id"] for c in joined] == [data["id"]]


def test_create_with_taken_abbreviation(client, seed):
    user = seed.user()
    payload = {"name": "Chess", "abbreviation": "CHESS"}
    assert client.post("/api/v1/communities", json=payload, headers=seed.headers(user)).status_code == 201

    response = client.post("/api/v1/communities", json=payload, headers=seed.headers(user))
    assert response.status_code == 409


def test_joined_lists_only_callers_communities(client, seed):
    lead = seed.user()
    member = seed.user()
    mine = seed.community(lead, members=[member])
    seed.community(lead)

    response = client.get("/api/v1/communities/joined", headers=seed.headers(member))

    assert [c["id"] for c in response.json()] == [mine.id]


def test_only_lead_or_admin_can_delete(client, seed):
    lead = seed.user()
    member = seed.user()
    community = seed.community(lead, members=[member])

    response = client.delete(f"/api/v1/communities/{community.id}", headers=seed.headers(member))
    assert response.status_code == 403
    assert response.json() == {"error": "permission denied", "code": "Forbidden"}

    admin = seed.user(role=Role.ADMIN)
    assert client.delete(f"/api/v1/communities/{community.id}", headers=seed.headers(admin)).status_code == 204


def test_delete_removes_messages_and_uploaded_files(client, seed):
    lead = seed.user()
    community = seed.community(lead)
    seed.messages(community, lead, 3)
    upload = client.post(
        f"/api/v1/communities/{community.id}/chat/file",
        files={"file": ("notes.pdf", b"%PDF-1.4 test", "application/pdf")},
        headers=seed.headers(lead),
    )
    assert upload.status_code == 201
    blob = upload.json()["file"]["fileUrl"].removeprefix("http://testserver/uploads/")

    response = client.delete(f"/api/v1/communities/{community.id}", headers=seed.headers(lead))

    assert response.status_code == 204
    assert count_rows(seed, Community, Community.id == community.id) == 0
    assert count_rows(seed, ChatMessage, ChatMessage.community_id == community.id) == 0
    assert not app.state.storage.exists(blob)


def test_participant_counts(seed):
    lead = seed.user()
    one = seed.community(lead)
    three = seed.community(lead, members=[seed.user(), seed.user()])

    async def _counts():
        async with async_session_maker() as db:
            participants = ParticipantRepository(db)
            return (
                await participants.count(three.id),
                await participants.count_many([one.id, three.id, 999]),
                await participants.count_many([]),
            )

    single, many, empty = seed.run(_counts)
    assert single == 3
    assert many == {one.id: 1, three.id: 3}
    assert empty == {}


def upload_photo(client, seed, community, user, name="logo.png", data=b"\x89PNG\r\n\x1a\nlogo", content_type="image/png"):
    return client.post(
        f"/api/v1/communities/{community.id}/profile-photo",
        files={"photo": (name, data, content_type)},
        headers=seed.headers(user),
    )


def test_profile_photo_replace_and_delete(client, seed):
    lead = seed.user()
    community = seed.community(lead)

    first = upload_photo(client, seed, community, lead)
    assert first.status_code == 200
    old_blob = first.json()["fileUrl"].removeprefix("http://testserver/uploads/")
    assert old_blob.startswith(f"community_profile_photo_{community.id}/")

    second = upload_photo(client, seed, community, lead, name="new.jpg", content_type="image/jpeg")
    assert second.status_code == 200
    new_blob = second.json()["fileUrl"].removeprefix("http://testserver/uploads/")
    assert not app.state.storage.exists(old_blob)
    assert app.state.storage.exists(new_blob)

    detail = client.get(f"/api/v1/communities/{community.id}", headers=seed.headers(lead)).json()
    assert detail["profilePhotoFileId"] == second.json()["id"]

    assert client.delete(f"/api/v1/communities/{community.id}/profile-photo", headers=seed.headers(lead)).status_code == 204
    assert not app.state.storage.exists(new_blob)
    assert client.delete(f"/api/v1/communities/{community.id}/profile-photo", headers=seed.headers(lead)).status_code == 404


def test_profile_photo_must_be_an_image_uploaded_by_the_lead(client, seed):
    lead = seed.user()
    member = seed.user()
    community = seed.community(lead, members=[member])

    assert upload_photo(client, seed, community, lead, name="doc.pdf", content_type="application/pdf").status_code == 400
    assert upload_photo(client, seed, community, member).status_code == 403


def test_failed_photo_link_removes_uploaded_file(client, seed, monkeypatch):
    lead = seed.user()
    community = seed.community(lead)
    real_set = CommunityRepository.set_profile_photo

    async def link_missing_file(self, community_id, file_id):
        return await real_set(self, community_id, 999999)

    monkeypatch.setattr(CommunityRepository, "set_profile_photo", link_missing_file)

    response = upload_photo(client, seed, community, lead)

    assert response.status_code == 404
    assert count_rows(seed, File) == 0
    assert not list(app.state.storage.root.glob(f"community_profile_photo_{community.id}/*"))


def update_community(client, seed, community, user, **changes):
    payload = {"name": community.name, "abbreviation": community.abbreviation, "leadId": community.lead_id, **changes}
    return client.put(f"/api/v1/communities/{community.id}", json=payload, headers=seed.headers(user))


def test_reassigned_lead_can_leave(client, seed):
    lead = seed.user()
    member = seed.user()
    community = seed.community(lead, members=[member])

    response = update_community(client, seed, community, lead, leadId=member.id, name="Renamed")

    assert response.status_code == 200
    assert response.json()["leadId"] == member.id
    assert response.json()["name"] == "Renamed"
    assert response.json()["participantCount"] == 2
    assert client.post(f"/api/v1/communities/{community.id}/leave", headers=seed.headers(lead)).status_code == 204
    assert client.post(f"/api/v1/communities/{community.id}/leave", headers=seed.headers(member)).status_code == 409


def test_new_lead_becomes_a_member(client, seed):
    lead = seed.user()
    newcomer = seed.user()
    community = seed.community(lead)

    response = update_community(client, seed, community, lead, leadId=newcomer.id)

    assert response.status_code == 200
    assert response.json()["participantCount"] == 2
    check = client.get(
        f"/api/v1/communities/{community.id}/participants/check",
        params={"userId": newcomer.id},
        headers=seed.headers(lead),
    )
    assert check.json() == {"isParticipant": True}


def test_update_rules(client, seed):
    lead = seed.user()
    member = seed.user()
    community = seed.community(lead, members=[member])
    other = seed.community(lead)

    assert update_community(client, seed, community, member, leadId=member.id).status_code == 403
    assert update_community(client, seed, community, lead, leadId=999999).status_code == 404
    assert update_community(client, seed, community, lead, abbreviation=other.abbreviation).status_code == 409
    assert update_community(client, seed, community, lead, name="   ").status_code == 400

    admin = seed.user(role=Role.ADMIN)
    assert update_community(client, seed, community, admin, name="Admin edit").status_code == 200


def test_participant_list_and_check(client, seed):
    lead = seed.user()
    member = seed.user()
    outsider = seed.user()
    community = seed.community(lead, members=[member])

    listed = client.get(f"/api/v1/communities/{community.id}/participants", headers=seed.headers(outsider))

    assert listed.status_code == 200
    assert [p["userId"] for p in listed.json()] == [lead.id, member.id]
    assert listed.json()[1]["lastName"] == member.last_name

    def check(user_id):
        return client.get(
            f"/api/v1/communities/{community.id}/participants/check",
            params={"userId": user_id},
            headers=seed.headers(outsider),
        )

    assert check(member.id).json() == {"isParticipant": True}
    assert check(outsider.id).json() == {"isParticipant": False}
    assert check(999999).status_code == 404
    assert check(0).status_code == 400
    assert client.get("/api/v1/communities/999/participants", headers=seed.headers(lead)).status_code == 404
