import pytest
from fastapi import HTTPException

from backend.auth import jwt_handler
from backend.routes import auth_routes

TEST_PASSWORD = 'secret-pass'


def test_login_returns_token_for_valid_credentials(db, student) -> None:
    response = auth_routes.login(auth_routes.LoginRequest(username=' Anna ', password=TEST_PASSWORD), db=db)

    assert response.token_type == 'bearer'
    assert response.user.username == 'anna'
    assert jwt_handler.decode_access_token(response.access_token)['sub'] == 'anna'


def test_login_rejects_wrong_password(db, student, caplog) -> None:
    with pytest.raises(HTTPException) as exc_info:
        auth_routes.login(auth_routes.LoginRequest(username='anna', password='wrong-pass'), db=db)

    assert exc_info.value.status_code == 401
    assert 'Failed login attempt for anna' in caplog.text


def test_login_rejects_unknown_user(db) -> None:
    with pytest.raises(HTTPException) as exc_info:
        auth_routes.login(auth_routes.LoginRequest(username='ghost', password=TEST_PASSWORD), db=db)

    assert exc_info.value.status_code == 401


def test_register_creates_student_and_ignores_tutor_fields(client) -> None:
    body = {
        'username': 'Marta',
        'password': 'secret-pass',
        'name': 'Marta',
        'email': 'marta@example.com',
        'defaultPrice': 1,
        'adminNotes': 'self-written note',
    }

    response = client.post('/auth/register', json=body)

    assert response.status_code == 201
    payload = response.json()
    assert payload['tokenType'] == 'bearer'
    assert payload['user']['username'] == 'marta'
    assert payload['user']['role'] == 'student'
    assert payload['user']['defaultPrice'] is None
    assert payload['user']['adminNotes'] is None


def test_register_rejects_taken_username(client, student) -> None:
    body = {'username': 'anna', 'password': 'secret-pass', 'name': 'Anna', 'email': 'anna@example.com'}

    assert client.post('/auth/register', json=body).status_code == 409


def test_register_rejects_short_password(client) -> None:
    body = {'username': 'marta', 'password': '123', 'name': 'Marta', 'email': 'marta@example.com'}

    assert client.post('/auth/register', json=body).status_code == 422


def test_me_returns_current_user(client, student, auth_headers) -> None:
    response = client.get('/auth/me', headers=auth_headers(student))

    assert response.status_code == 200
    assert response.json()['name'] == 'Anna Nowak'


def test_me_rejects_invalid_token(client) -> None:
    response = client.get('/auth/me', headers={'Authorization': 'Bearer not-a-token'})

    assert response.status_code == 401


def test_login_then_me_over_http(client, admin) -> None:
    login = client.post('/auth/login', json={'username': 'tutor', 'password': TEST_PASSWORD})
    assert login.status_code == 200

    token = login.json()['accessToken']
    me = client.get('/auth/me', headers={'Authorization': f'Bearer {token}'})

    assert me.json()['role'] == 'admin'
