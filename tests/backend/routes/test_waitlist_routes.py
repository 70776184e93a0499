import pytest
from fastapi import HTTPException

from backend.models.waitlist import WaitlistEntry
from backend.routes import waitlist_routes
from backend.services import notifications


def test_public_waitlist_request_is_stored_and_announced(client, db) -> None:
    events = []
    notifications.subscribe(notifications.WAITLIST_REQUEST, events.append)

    response = client.post(
        '/api/waitlist',
        json={'name': ' Ola ', 'email': 'Ola@Example.com', 'message': 'Matura prep, Tuesdays'},
    )

    assert response.status_code == 201
    assert response.json()['name'] == 'Ola'
    assert response.json()['email'] == 'ola@example.com'
    assert db.query(WaitlistEntry).count() == 1
    assert len(events) == 1
    assert events[0].payload['name'] == 'Ola'


def test_waitlist_contact_fields_are_optional() -> None:
    data = waitlist_routes.CreateWaitlistEntryRequest(name='Ola')

    assert data.email is None
    assert data.phone is None


def test_waitlist_name_is_required() -> None:
    with pytest.raises(ValueError):
        waitlist_routes.CreateWaitlistEntryRequest(name='   ')


def test_waitlist_listing_is_admin_only(client, admin, student, auth_headers) -> None:
    client.post('/api/waitlist', json={'name': 'Ola'})
    client.post('/api/waitlist', json={'name': 'Kuba'})

    assert client.get('/api/waitlist', headers=auth_headers(student)).status_code == 403

    response = client.get('/api/waitlist', headers=auth_headers(admin))
    assert response.status_code == 200
    assert {entry['name'] for entry in response.json()} == {'Ola', 'Kuba'}


def test_delete_waitlist_entry(db, admin) -> None:
    entry = waitlist_routes.create_waitlist_entry(
        waitlist_routes.CreateWaitlistEntryRequest(name='Ola'),
        db=db,
    )

    waitlist_routes.delete_waitlist_entry(entry.id, db=db, admin=admin)

    assert db.query(WaitlistEntry).count() == 0
    with pytest.raises(HTTPException) as exc_info:
        waitlist_routes.delete_waitlist_entry(entry.id, db=db, admin=admin)
    assert exc_info.value.status_code == 404
