from datetime import date, timedelta

from fastapi.testclient import TestClient

from studentadmin.main import app

client = TestClient(app)


def _headers(username, password):
    r = client.post('/auth/login', json={'username': username, 'password': password})
    assert r.status_code == 200
    return {'Authorization': f"Bearer {r.json()['access_token']}"}


def _admin():
    return _headers('admin', 'admin123')


def _setup_references(headers):
    grade = client.post('/grades', json={'grade': 'a', 'standard': 5}, headers=headers)
    assert grade.status_code == 201
    membership = client.post('/memberships', json={'membership_type': 'Premium'}, headers=headers)
    assert membership.status_code == 201
    chess = client.post('/activities', json={'name': 'Chess Club', 'activity_type': 'Indoor Activity'}, headers=headers)
    choir = client.post('/activities', json={'name': 'Choir', 'activity_type': 'Music'}, headers=headers)
    assert chess.status_code == choir.status_code == 201
    return grade.json(), membership.json(), chess.json(), choir.json()


def _student_payload(grade_id, membership_id, activity_ids, **overrides):
    payload = {
        'first_name': 'Ada',
        'last_name': 'Lovelace',
        'phone_no': '0123456789',
        'email': 'ada@example.com',
        'address': '12 St James Square',
        'dob': '2012-12-10',
        'grade_id': grade_id,
        'membership_id': membership_id,
        'activity_ids': activity_ids,
    }
    payload.update(overrides)
    return payload


def test_full_registration_and_update_flow(regular_user):
    admin = _admin()
    grade, membership, chess, choir = _setup_references(admin)
    assert grade['grade'] == 'A'
    assert membership['membership_type'] == 'Premium'
    assert membership['start_date'] == date.today().isoformat()

    # a USER-role caller may register students
    clerk = _headers('clerk', 'clerk123')
    r = client.post('/students', json=_student_payload(grade['id'], membership['id'], [chess['id']]), headers=clerk)
    assert r.status_code == 201
    student = r.json()
    assert student['grade']['id'] == grade['id']
    assert student['membership']['id'] == membership['id']
    assert [a['name'] for a in student['activities']] == ['Chess Club']

    r = client.put(
        f"/students/{student['id']}",
        json=_student_payload(grade['id'], membership['id'], [choir['id']], email='ada@lovelace.org'),
        headers=clerk,
    )
    assert r.status_code == 200
    assert r.json()['email'] == 'ada@lovelace.org'
    assert [a['id'] for a in r.json()['activities']] == [choir['id']]

    r = client.get(f"/students/{student['id']}/activities", headers=clerk)
    assert [a['name'] for a in r.json()] == ['Choir']

    # deletion is admin only and takes the membership with it
    assert client.delete(f"/students/{student['id']}", headers=clerk).status_code == 403
    assert client.delete(f"/students/{student['id']}", headers=admin).status_code == 200
    assert client.get(f"/memberships/{membership['id']}", headers=admin).status_code == 404
    assert client.get(f"/grades/{grade['id']}", headers=admin).status_code == 200


def test_registration_with_unknown_grade_persists_nothing():
    admin = _admin()
    _, membership, chess, _ = _setup_references(admin)
    r = client.post('/students', json=_student_payload(9999, membership['id'], [chess['id']]), headers=admin)
    assert r.status_code == 404
    body = r.json()
    assert body['error'] == 'not_found'
    assert body['kind'] == 'Grade'
    assert body['id'] == 9999
    assert client.get('/students', headers=admin).json() == []


def test_registration_with_unknown_activity_names_it():
    admin = _admin()
    grade, membership, chess, _ = _setup_references(admin)
    r = client.post('/students', json=_student_payload(grade['id'], membership['id'], [chess['id'], 4242]), headers=admin)
    assert r.status_code == 404
    assert r.json()['kind'] == 'Activity'
    assert r.json()['id'] == 4242


def test_update_of_unknown_student_is_404():
    admin = _admin()
    grade, membership, chess, _ = _setup_references(admin)
    r = client.put('/students/555', json=_student_payload(grade['id'], membership['id'], [chess['id']]), headers=admin)
    assert r.status_code == 404
    assert r.json()['kind'] == 'Student'


def test_invalid_student_input_is_rejected():
    admin = _admin()
    grade, membership, chess, _ = _setup_references(admin)
    bad = [
        _student_payload(grade['id'], membership['id'], []),
        _student_payload(grade['id'], membership['id'], [chess['id']], phone_no='12345'),
        _student_payload(grade['id'], membership['id'], [chess['id']], first_name='   '),
        _student_payload(grade['id'], membership['id'], [chess['id']], email='not-an-email'),
        _student_payload(grade['id'], membership['id'], [chess['id']], dob=(date.today() + timedelta(days=1)).isoformat()),
    ]
    for payload in bad:
        assert client.post('/students', json=payload, headers=admin).status_code == 422
    assert client.get('/students', headers=admin).json() == []


def test_user_role_cannot_manage_activities(regular_user):
    clerk = _headers('clerk', 'clerk123')
    r = client.post('/activities', json={'name': 'Chess Club', 'activity_type': 'Indoor Activity'}, headers=clerk)
    assert r.status_code == 403
    assert r.json()['error'] == 'forbidden'
    assert client.get('/activities', headers=clerk).status_code == 403
    assert client.post('/memberships', json={'membership_type': 'standard'}, headers=clerk).status_code == 403
    assert client.get('/grades', headers=clerk).status_code == 200


def test_duplicate_activity_over_http():
    admin = _admin()
    client.post('/activities', json={'name': 'Chess Club', 'activity_type': 'Indoor Activity'}, headers=admin)
    r = client.post('/activities', json={'name': 'chess club ', 'activity_type': 'Board Game'}, headers=admin)
    assert r.status_code == 409
    assert r.json()['error'] == 'duplicate_activity_name'
    r = client.post('/activities', json={'name': 'CHESS CLUB', 'activity_type': 'Outdoor Activity'}, headers=admin)
    assert r.status_code == 409
    assert r.json()['error'] == 'duplicate_activity_name_and_suffix'
    assert len(client.get('/activities', headers=admin).json()) == 1


def test_activity_update_over_http():
    admin = _admin()
    chess = client.post('/activities', json={'name': 'Chess Club', 'activity_type': 'Indoor Activity'}, headers=admin).json()
    choir = client.post('/activities', json={'name': 'Choir', 'activity_type': 'Music'}, headers=admin).json()
    r = client.put(f"/activities/{choir['id']}", json={'name': 'Chess Club', 'activity_type': 'Music'}, headers=admin)
    assert r.status_code == 409
    r = client.put(f"/activities/{chess['id']}", json={'name': 'Chess Society', 'activity_type': 'Indoor Activity'}, headers=admin)
    assert r.status_code == 200
    assert r.json()['name'] == 'Chess Society'
    assert client.put('/activities/999', json={'name': 'X', 'activity_type': 'Y'}, headers=admin).status_code == 404


def test_membership_endpoints():
    admin = _admin()
    r = client.post('/memberships', json={'membership_type': 'gold'}, headers=admin)
    assert r.status_code == 400
    assert r.json()['error'] == 'invalid_membership_type'

    created = client.post('/memberships', json={'membership_type': 'standard'}, headers=admin).json()
    r = client.put(f"/memberships/{created['id']}", json={'membership_type': 'platinum'}, headers=admin)
    assert r.status_code == 200
    assert r.json()['membership_type'] == 'Platinum'
    assert r.json()['expiry_date'] == created['expiry_date']

    r = client.put(
        f"/memberships/{created['id']}/dates",
        json={'start_date': '2024-01-01', 'expiry_date': '2023-01-01'},
        headers=admin,
    )
    assert r.status_code == 422
    r = client.put(
        f"/memberships/{created['id']}/dates",
        json={'start_date': '2024-01-01', 'expiry_date': '2025-01-01'},
        headers=admin,
    )
    assert r.status_code == 200
    assert r.json()['expiry_date'] == '2025-01-01'

    assert client.delete(f"/memberships/{created['id']}", headers=admin).status_code == 200
    assert client.get('/memberships', headers=admin).json() == []


def test_grade_endpoints():
    admin = _admin()
    grade = client.post('/grades', json={'grade': 'b', 'standard': 7}, headers=admin).json()
    r = client.put(f"/grades/{grade['id']}", json={'grade': 'c', 'standard': 8}, headers=admin)
    assert r.json() == {'id': grade['id'], 'grade': 'C', 'standard': 8}
    assert client.post('/grades', json={'grade': 'A', 'standard': 40}, headers=admin).status_code == 422
    assert client.delete(f"/grades/{grade['id']}", headers=admin).status_code == 200
    assert client.get(f"/grades/{grade['id']}", headers=admin).status_code == 404


def test_grade_and_membership_lookup_by_student(regular_user):
    admin = _admin()
    grade, membership, chess, _ = _setup_references(admin)
    student = client.post('/students', json=_student_payload(grade['id'], membership['id'], [chess['id']]), headers=admin).json()

    clerk = _headers('clerk', 'clerk123')
    r = client.get(f"/grades/byStudent/{student['id']}", headers=clerk)
    assert r.status_code == 200
    assert r.json() == grade
    r = client.get(f"/memberships/byStudent/{student['id']}", headers=clerk)
    assert r.status_code == 200
    assert r.json() == membership

    for path in ('/grades/byStudent/999', '/memberships/byStudent/999'):
        r = client.get(path, headers=clerk)
        assert r.status_code == 404
        assert r.json()['error'] == 'not_found'
        assert r.json()['kind'] == 'Student'
        assert r.json()['id'] == 999
    assert client.get(f"/grades/byStudent/{student['id']}").status_code == 401


def test_invalid_body_uses_domain_error_shape():
    admin = _admin()
    grade, membership, chess, _ = _setup_references(admin)
    r = client.post('/students', json=_student_payload(grade['id'], membership['id'], [chess['id']], phone_no='12345'), headers=admin)
    assert r.status_code == 422
    body = r.json()
    assert body['error'] == 'validation_failed'
    assert body['field'] == 'phone_no'
    assert body['detail'].startswith('phone_no: ')

    r = client.post('/grades', json={'standard': 3}, headers=admin)
    assert r.status_code == 422
    assert r.json()['field'] == 'grade'
