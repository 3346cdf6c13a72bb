from __future__ import annotations

from uuid import uuid4

from app.db.models.entitlements import ENTITLEMENT_STATUS_COMPLETED, ENTITLEMENT_STATUS_FAILED
from tests.api.conftest import ADMIN_HEADERS, FAN_HEADERS


def _store_audio(api, song) -> None:
    api.services.storage.objects[song.audio_key] = (b"RIFF" * 8, "audio/wav")


def test_anonymous_and_unpaid_requests_are_rejected(api) -> None:
    song = api.store.add_song()
    _store_audio(api, song)

    anonymous_stream = api.client.get(f"/stream/{song.id}", follow_redirects=False)
    anonymous_download = api.client.post(f"/download/{song.id}", json={"asset_kind": "song"})
    unpaid_download = api.client.post(f"/download/{song.id}", json={"asset_kind": "song"}, headers=FAN_HEADERS)

    assert anonymous_stream.status_code == 401
    assert anonymous_stream.json()["detail"]["code"] == "E_AUTH_REQUIRED"
    assert anonymous_download.status_code == 401
    assert unpaid_download.status_code == 403
    assert unpaid_download.json()["detail"]["code"] == "E_PURCHASE_REQUIRED"
    assert api.services.storage.sign_calls == []


def test_album_purchase_unlocks_member_songs(api) -> None:
    album = api.store.add_album(tracks=2)
    api.store.add_entitlement(user_id="user_fan", asset=album, status=ENTITLEMENT_STATUS_COMPLETED)
    members = [item for item in api.store.assets.values() if item.album_id == album.id]
    for member in members:
        _store_audio(api, member)

    stream = api.client.post(f"/stream/{members[0].id}", headers=FAN_HEADERS)
    album_stream = api.client.post(f"/stream/{album.id}", headers=FAN_HEADERS)
    download = api.client.post(f"/download/{album.id}", json={"asset_kind": "album"}, headers=FAN_HEADERS)

    assert stream.status_code == 200
    assert album_stream.status_code == 400
    assert album_stream.json()["detail"]["code"] == "E_ALBUM_NOT_STREAMABLE"
    assert download.status_code == 200
    links = download.json()["download_links"]
    assert [link["track_number"] for link in links] == [1, 2]
    assert download.json()["expires_in"] == links[0]["expires_in"]


def test_missing_audio_object_reports_file_missing(api) -> None:
    song = api.store.add_song()
    api.store.add_entitlement(user_id="user_fan", asset=song, status=ENTITLEMENT_STATUS_COMPLETED)

    response = api.client.post(f"/stream/{song.id}", headers=FAN_HEADERS)

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "E_FILE_MISSING"


def test_download_kind_mismatch_and_foreign_entitlement(api) -> None:
    song = api.store.add_song()
    _store_audio(api, song)
    api.store.add_entitlement(user_id="user_fan", asset=song, status=ENTITLEMENT_STATUS_COMPLETED)
    foreign = api.store.add_entitlement(user_id="user_other", asset=song, status=ENTITLEMENT_STATUS_COMPLETED)

    wrong_kind = api.client.post(f"/download/{song.id}", json={"asset_kind": "album"}, headers=FAN_HEADERS)
    wrong_entitlement = api.client.post(
        f"/download/{song.id}",
        json={"asset_kind": "song", "entitlement_id": str(foreign.id)},
        headers=FAN_HEADERS,
    )
    unknown = api.client.post(f"/download/{uuid4()}", json={"asset_kind": "song"}, headers=FAN_HEADERS)

    assert wrong_kind.status_code == 400
    assert wrong_kind.json()["detail"]["code"] == "E_ASSET_KIND_MISMATCH"
    assert wrong_entitlement.status_code == 403
    assert unknown.status_code == 404
    assert unknown.json()["detail"]["code"] == "E_ASSET_NOT_FOUND"


def test_revoke_requires_admin_and_removes_access(api) -> None:
    song = api.store.add_song()
    _store_audio(api, song)
    entitlement = api.store.add_entitlement(user_id="user_fan", asset=song, status=ENTITLEMENT_STATUS_COMPLETED)

    forbidden = api.client.request(
        "DELETE",
        f"/download/{song.id}",
        json={"target_user_id": "user_fan"},
        headers=FAN_HEADERS,
    )
    revoked = api.client.request(
        "DELETE",
        f"/download/{song.id}",
        json={"target_user_id": "user_fan", "reason": "chargeback"},
        headers=ADMIN_HEADERS,
    )
    after = api.client.post(f"/stream/{song.id}", headers=FAN_HEADERS)

    assert forbidden.status_code == 403
    assert forbidden.json()["detail"]["code"] == "E_ADMIN_REQUIRED"
    assert revoked.status_code == 200
    assert revoked.json()["modified_count"] == 1
    assert entitlement.status == ENTITLEMENT_STATUS_FAILED
    assert entitlement.revocation_reason == "chargeback"
    assert after.status_code == 403
