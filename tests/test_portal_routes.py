"""
Route tests for portal shares (editor side) and the client portal.

Covers:
  1. Enabling, revoking and reactivating a share
  2. Default-deny visibility and facet toggles through the API
  3. Download gate re-evaluated against payment status
  4. Approval transitions (visitor approve / request changes, editor deliver)
  5. Portal comments and editor notes
  6. Per-track distribution and visitor actions
"""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from mixroom.db.models import PortalApprovalEvent, Release


@pytest.fixture
async def portal(client, users, owner_headers, client_headers):
    """A release with two tracks (two versions on the first) and an enabled share.

    Track 1 and its version 1 are surfaced; track 2 and version 2 are not.
    """
    resp = await client.post(
        "/api/v1/releases", json={"title": "Night Drive", "artist": "Nova"}, headers=owner_headers,
    )
    release_id = resp.json()["releaseId"]
    await client.patch(
        f"/api/v1/releases/{release_id}",
        json={"globalDirection": "Warm and wide", "distributor": "DistroCo", "feeTotal": 900},
        headers=owner_headers,
    )

    t1 = (await client.post(f"/api/v1/releases/{release_id}/tracks", json={"title": "Intro"}, headers=owner_headers)).json()
    t2 = (await client.post(f"/api/v1/releases/{release_id}/tracks", json={"title": "Drive"}, headers=owner_headers)).json()
    v1 = (await client.post(f"/api/v1/tracks/{t1['trackId']}/versions", json={"fileUrl": "s3://v1.wav"}, headers=owner_headers)).json()
    v2 = (await client.post(f"/api/v1/tracks/{t1['trackId']}/versions", json={"fileUrl": "s3://v2.wav"}, headers=owner_headers)).json()

    share = await client.post(f"/api/v1/releases/{release_id}/share", headers=owner_headers)
    assert share.status_code == 200, share.text

    await client.put(
        f"/api/v1/releases/{release_id}/share/tracks/{t1['trackId']}",
        json={"visible": True, "downloadEnabled": True},
        headers=owner_headers,
    )
    await client.put(
        f"/api/v1/releases/{release_id}/share/versions/{v1['versionId']}",
        json={"visible": True},
        headers=owner_headers,
    )

    await client.post(
        f"/api/v1/releases/{release_id}/members",
        json={"userId": users.client, "role": "client"},
        headers=owner_headers,
    )
    await client.post(f"/api/v1/releases/{release_id}/members/accept", headers=client_headers)

    return SimpleNamespace(
        release_id=release_id,
        token=share.json()["shareToken"],
        track1=t1["trackId"],
        track2=t2["trackId"],
        version1=v1["versionId"],
        version2=v2["versionId"],
    )


# =============================================================================
# 1. Share lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_enable_share_defaults(client, owner_headers, portal):
    resp = await client.get(f"/api/v1/releases/{portal.release_id}/share", headers=owner_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["active"] is True
    assert len(data["shareToken"]) >= 32
    assert data["showDirection"] is False
    assert data["requirePaymentForDownload"] is False
    assert data["portalStatus"] == "in_review"


@pytest.mark.asyncio
async def test_enable_is_idempotent(client, owner_headers, portal):
    resp = await client.post(f"/api/v1/releases/{portal.release_id}/share", headers=owner_headers)
    assert resp.json()["shareToken"] == portal.token


@pytest.mark.asyncio
async def test_revoked_share_is_not_found(client, owner_headers, portal):
    resp = await client.delete(f"/api/v1/releases/{portal.release_id}/share", headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["active"] is False

    assert (await client.get(f"/api/v1/portal/{portal.token}")).status_code == 404
    resp = await client.post(f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/approve")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_reactivation_issues_fresh_token(client, owner_headers, portal):
    await client.delete(f"/api/v1/releases/{portal.release_id}/share", headers=owner_headers)
    resp = await client.post(f"/api/v1/releases/{portal.release_id}/share", headers=owner_headers)
    new_token = resp.json()["shareToken"]

    assert new_token != portal.token
    assert (await client.get(f"/api/v1/portal/{portal.token}")).status_code == 404
    assert (await client.get(f"/api/v1/portal/{new_token}")).status_code == 200


@pytest.mark.asyncio
async def test_client_member_cannot_manage_share(client, client_headers, portal):
    resp = await client.patch(
        f"/api/v1/releases/{portal.release_id}/share", json={"showSpecs": True}, headers=client_headers,
    )
    assert resp.status_code == 403
    resp = await client.delete(f"/api/v1/releases/{portal.release_id}/share", headers=client_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_share_setting_for_foreign_track_is_404(client, owner_headers, portal):
    other = await client.post("/api/v1/releases", json={"title": "Other"}, headers=owner_headers)
    track = await client.post(
        f"/api/v1/releases/{other.json()['releaseId']}/tracks", json={"title": "X"}, headers=owner_headers,
    )
    resp = await client.put(
        f"/api/v1/releases/{portal.release_id}/share/tracks/{track.json()['trackId']}",
        json={"visible": True},
        headers=owner_headers,
    )
    assert resp.status_code == 404


# =============================================================================
# 2. Visibility
# =============================================================================


@pytest.mark.asyncio
async def test_portal_view_is_default_deny(client, portal):
    resp = await client.get(f"/api/v1/portal/{portal.token}")
    assert resp.status_code == 200
    view = resp.json()

    assert view["release"]["title"] == "Night Drive"
    assert [t["id"] for t in view["tracks"]] == [portal.track1]
    assert [v["id"] for v in view["tracks"][0]["versions"]] == [portal.version1]
    assert view["globalDirection"] is None
    assert view["payment"] is None
    assert view["distribution"] is None


@pytest.mark.asyncio
async def test_facet_toggles(client, owner_headers, portal):
    resp = await client.patch(
        f"/api/v1/releases/{portal.release_id}/share",
        json={"showDirection": True, "showDistribution": True},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["globalDirection"] == "Warm and wide"
    assert view["distribution"]["distributor"] == "DistroCo"
    assert view["payment"] is None


@pytest.mark.asyncio
async def test_hiding_a_track_removes_it(client, owner_headers, portal):
    await client.put(
        f"/api/v1/releases/{portal.release_id}/share/tracks/{portal.track1}",
        json={"visible": False},
        headers=owner_headers,
    )
    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["tracks"] == []


# =============================================================================
# 3. Download gate
# =============================================================================


@pytest.mark.asyncio
async def test_download_gate_follows_payment_status(client, db_session, owner_headers, portal):
    await client.patch(
        f"/api/v1/releases/{portal.release_id}/share",
        json={"requirePaymentForDownload": True},
        headers=owner_headers,
    )
    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["tracks"][0]["downloadEnabled"] is False

    # Billing marks the release paid; nothing else changes
    release = await db_session.get(Release, portal.release_id)
    release.payment_status = "paid"
    await db_session.flush()

    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["tracks"][0]["downloadEnabled"] is True


# =============================================================================
# 4. Approval transitions
# =============================================================================


@pytest.mark.asyncio
async def test_visitor_approves_track(client, db_session, portal):
    resp = await client.post(
        f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/approve",
        json={"actorName": "Dana"},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["approvalStatus"] == "approved"
    assert data["portalStatus"] == "approved"

    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["portalStatus"] == "approved"
    assert view["tracks"][0]["approvalDate"] is not None

    events = (await db_session.execute(
        PortalApprovalEvent.__table__.select()
    )).all()
    assert [(e.event_type, e.actor_name) for e in events] == [("approve", "Dana")]


@pytest.mark.asyncio
async def test_approve_twice_is_invalid_transition(client, portal):
    url = f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/approve"
    assert (await client.post(url)).status_code == 200
    resp = await client.post(url)
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_transition"


@pytest.mark.asyncio
async def test_hidden_track_cannot_be_approved(client, portal):
    resp = await client.post(f"/api/v1/portal/{portal.token}/tracks/{portal.track2}/approve")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_request_changes_requires_note(client, portal):
    resp = await client.post(
        f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/request-changes",
        json={"note": "   "},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_request_changes_files_feedback(client, portal):
    resp = await client.post(
        f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/request-changes",
        json={"note": "Vocals too quiet in the chorus"},
    )
    assert resp.status_code == 200
    assert resp.json()["approvalStatus"] == "changes_requested"
    assert resp.json()["portalStatus"] == "in_review"

    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    comments = view["tracks"][0]["comments"]
    assert [(c["author"], c["content"]) for c in comments] == [("Client", "Vocals too quiet in the chorus")]

    # changes_requested → approved is allowed
    resp = await client.post(f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/approve")
    assert resp.json()["approvalStatus"] == "approved"


@pytest.mark.asyncio
async def test_editor_delivers_only_approved_tracks(client, owner_headers, portal):
    deliver = f"/api/v1/releases/{portal.release_id}/share/tracks/{portal.track1}/deliver"

    resp = await client.post(deliver, headers=owner_headers)
    assert resp.status_code == 409

    await client.post(f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/approve")
    resp = await client.post(deliver, json={"note": "Masters sent"}, headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["approvalStatus"] == "delivered"
    assert resp.json()["portalStatus"] == "delivered"

    # Delivered is terminal
    assert (await client.post(deliver, headers=owner_headers)).status_code == 409
    resp = await client.post(
        f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/request-changes",
        json={"note": "One more tweak"},
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_client_member_cannot_deliver(client, client_headers, portal):
    await client.post(f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/approve")
    resp = await client.post(
        f"/api/v1/releases/{portal.release_id}/share/tracks/{portal.track1}/deliver",
        headers=client_headers,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_visibility_upsert_keeps_approval_status(client, owner_headers, portal):
    await client.post(f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/approve")
    resp = await client.put(
        f"/api/v1/releases/{portal.release_id}/share/tracks/{portal.track1}",
        json={"downloadEnabled": False},
        headers=owner_headers,
    )
    assert resp.json() == {
        "trackId": portal.track1,
        "visible": True,
        "downloadEnabled": False,
        "approvalStatus": "approved",
    }


# =============================================================================
# 5. Comments
# =============================================================================


@pytest.mark.asyncio
async def test_comment_on_visible_version(client, portal):
    resp = await client.post(
        f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/comments",
        json={"audioVersionId": portal.version1, "content": "Love the intro", "timecodeSeconds": 3.14159},
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["timecodeSeconds"] == 3.14
    assert data["author"] == "Client"


@pytest.mark.asyncio
async def test_comment_on_hidden_version_is_404(client, portal):
    resp = await client.post(
        f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/comments",
        json={"audioVersionId": portal.version2, "content": "?"},
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_delete_own_comment_only(client, portal):
    resp = await client.post(
        f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/comments",
        json={"audioVersionId": portal.version1, "content": "Kick is muddy", "authorName": "Dana"},
    )
    comment_id = resp.json()["id"]
    url = f"/api/v1/portal/{portal.token}/comments/{comment_id}"

    resp = await client.delete(url, params={"authorName": "Sam"})
    assert resp.status_code == 403

    resp = await client.delete(url, params={"authorName": "Dana"})
    assert resp.status_code == 204

    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["tracks"][0]["comments"] == []


@pytest.mark.asyncio
async def test_editor_notes_show_display_name_only(client, users, owner_headers, portal):
    resp = await client.post(
        f"/api/v1/tracks/{portal.track1}/notes",
        json={"content": "Printed with bus comp"},
        headers=owner_headers,
    )
    assert resp.status_code == 201

    resp = await client.get(f"/api/v1/portal/{portal.token}")
    comments = resp.json()["tracks"][0]["comments"]
    assert [(c["author"], c["source"]) for c in comments] == [("Owner", "editor")]
    assert users.owner not in resp.text


@pytest.mark.asyncio
async def test_visitor_cannot_delete_editor_note(client, users, owner_headers, portal):
    resp = await client.post(
        f"/api/v1/tracks/{portal.track1}/notes",
        json={"content": "Printed with bus comp", "authorName": "Sam"},
        headers=owner_headers,
    )
    note_id = resp.json()["noteId"]
    url = f"/api/v1/portal/{portal.token}/comments/{note_id}"

    for author in ("Sam", users.owner, None):
        params = {"authorName": author} if author else {}
        resp = await client.delete(url, params=params)
        assert resp.status_code == 403

    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert [c["id"] for c in view["tracks"][0]["comments"]] == [note_id]


# =============================================================================
# 6. Per-track distribution and visitor actions
# =============================================================================


@pytest.mark.asyncio
async def test_track_distribution_behind_toggle(client, owner_headers, client_headers, portal):
    url = f"/api/v1/tracks/{portal.track1}/distribution"
    resp = await client.put(url, json={"isrc": "USABC2600001", "explicitLyrics": True}, headers=client_headers)
    assert resp.status_code == 403

    resp = await client.put(url, json={"isrc": "USABC2600001", "explicitLyrics": True}, headers=owner_headers)
    assert resp.status_code == 200
    resp = await client.put(url, json={"producer": "Kim"}, headers=owner_headers)
    assert resp.json()["isrc"] == "USABC2600001"
    assert resp.json()["producer"] == "Kim"

    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["tracks"][0]["distribution"] is None

    await client.patch(
        f"/api/v1/releases/{portal.release_id}/share",
        json={"showDistribution": True},
        headers=owner_headers,
    )
    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    dist = view["tracks"][0]["distribution"]
    assert dist["isrc"] == "USABC2600001"
    assert dist["explicitLyrics"] is True
    assert dist["producer"] == "Kim"


@pytest.mark.asyncio
async def test_track_distribution_defaults_for_members(client, client_headers, portal):
    resp = await client.get(f"/api/v1/tracks/{portal.track1}/distribution", headers=client_headers)
    assert resp.status_code == 200
    assert resp.json()["isrc"] is None
    assert resp.json()["coverSong"] is False


@pytest.mark.asyncio
async def test_allowed_actions_follow_approval(client, portal):
    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["tracks"][0]["allowedActions"] == ["approve", "request_changes"]

    await client.post(f"/api/v1/portal/{portal.token}/tracks/{portal.track1}/approve")
    view = (await client.get(f"/api/v1/portal/{portal.token}")).json()
    assert view["tracks"][0]["allowedActions"] == []
