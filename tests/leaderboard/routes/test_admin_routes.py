import json
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta

import pytest

from leaderboard.auth import sessions
from leaderboard.core.clock import seoul_now
from leaderboard.models.logs import EvaluationLog, RequestLog
from leaderboard.models.notice import Notice
from leaderboard.models.score import Score
from leaderboard.models.session import UserSession
from leaderboard.models.user import User
from leaderboard.routes.admin_routes import resolve_ranking_range
from leaderboard.services.exports import SPREADSHEET_NS


@pytest.fixture
def admin(login_as):
    return login_as('20000001', role='admin', name='관리자')


def test_admin_routes_reject_anonymous_callers(client) -> None:
    response = client.get('/api/admin/users')

    assert response.status_code == 401
    assert response.json() == {'error': 'Unauthorized'}


def test_admin_routes_forbid_regular_users(client, login_as, db) -> None:
    user = login_as('20240001')

    response = client.get('/api/admin/users')

    assert response.status_code == 403
    assert response.json() == {'error': '접근 권한이 없습니다.'}
    entry = db.query(RequestLog).order_by(RequestLog.id.desc()).first()
    assert entry.source == f'user:{user.id}'
    assert json.loads(entry.metadata_json) == {'reason': 'forbidden'}


def test_list_users_normalizes_semester(client, admin, make_user) -> None:
    make_user('20240001', semester=202401)

    users = client.get('/api/admin/users').json()['users']

    assert [user['studentNumber'] for user in users] == ['20000001', '20240001']
    assert users[1]['semester'] == 2024


def test_update_user_applies_changes(client, admin, make_user, db) -> None:
    target = make_user('20240001')

    response = client.patch(
        '/api/admin/users',
        json={'id': target.id, 'name': '새이름', 'studentNumber': '20240009', 'role': 'admin', 'semester': 2023},
    )

    assert response.status_code == 200
    assert response.json()['user']['studentNumber'] == '20240009'
    db.expire_all()
    updated = db.query(User).filter(User.id == target.id).one()
    assert (updated.name, updated.role, updated.semester) == ('새이름', 'admin', 2023)


def test_deactivating_user_revokes_live_sessions(client, admin, make_user, db) -> None:
    target = make_user('20240001')
    token, _ = sessions.create_session(db, target.id)

    response = client.patch(
        '/api/admin/users',
        json={'id': target.id, 'name': '홍길동', 'studentNumber': '20240001', 'role': 'user', 'isActive': False},
    )

    assert response.status_code == 200
    assert response.json()['user']['isActive'] is False
    assert db.query(UserSession).filter(UserSession.user_id == target.id).count() == 0
    assert sessions.get_user_by_session_token(db, token) is None


@pytest.mark.parametrize(
    ('overrides', 'status_code', 'error'),
    [
        ({'id': 0}, 400, '유효한 사용자 ID가 필요합니다.'),
        ({'name': '  '}, 400, '이름을 입력해주세요.'),
        ({'studentNumber': '2024'}, 400, '학번은 8자리 숫자여야 합니다.'),
        ({'role': 'owner'}, 400, '역할 정보가 올바르지 않습니다.'),
        ({'semester': 1999}, 400, '년도는 4자리 숫자로 입력해주세요.'),
        ({'id': 9999}, 404, '사용자를 찾을 수 없습니다.'),
        ({'studentNumber': '20000001'}, 409, '중복된 학번입니다.'),
    ],
)
def test_update_user_rejections(client, admin, make_user, overrides, status_code, error) -> None:
    target = make_user('20240001')
    payload = {'id': target.id, 'name': '홍길동', 'studentNumber': '20240001', 'role': 'user', **overrides}

    response = client.patch('/api/admin/users', json=payload)

    assert response.status_code == status_code
    assert response.json() == {'error': error}


def test_admin_can_list_and_delete_any_score(client, admin, make_user, db) -> None:
    owner = make_user('20240001')
    record = Score(user_id=owner.id, project_number=2, score=77, evaluated_at=datetime(2024, 6, 1, 9, 0))
    db.add(record)
    db.commit()

    scores = client.get('/api/admin/scores').json()['scores']
    assert [(item['id'], item['studentNumber'], item['hasFile']) for item in scores] == [
        (record.id, '20240001', False)
    ]

    response = client.request('DELETE', '/api/admin/scores', json={'id': record.id})

    assert response.status_code == 200
    assert db.query(Score).count() == 0
    log_entry = db.query(EvaluationLog).one()
    assert log_entry.action == 'delete'
    assert log_entry.actor_user_id == admin.id
    assert log_entry.target_user_id == owner.id
    assert json.loads(log_entry.payload)['source'] == 'admin-delete'


def test_admin_delete_missing_score_writes_no_evaluation_log(client, admin, db) -> None:
    response = client.request('DELETE', '/api/admin/scores', json={'id': 42})

    assert response.status_code == 404
    assert db.query(EvaluationLog).count() == 0


@pytest.mark.parametrize('record_id', ['7', 7.5, False, 2**63])
def test_admin_delete_score_requires_integer_id(client, admin, record_id) -> None:
    response = client.request('DELETE', '/api/admin/scores', json={'id': record_id})

    assert response.status_code == 400
    assert response.json() == {'error': '유효한 기록 ID가 필요합니다.'}


def test_admin_rankings_default_to_recent_window(client, admin, make_user, db) -> None:
    recent_user = make_user('20240001')
    stale_user = make_user('20240002')
    now = seoul_now()
    db.add(Score(user_id=recent_user.id, project_number=1, score=60, evaluated_at=now - timedelta(days=1)))
    db.add(Score(user_id=stale_user.id, project_number=1, score=99, evaluated_at=now - timedelta(days=30)))
    db.commit()

    body = client.get('/api/admin/rankings').json()

    assert [row['studentNumber'] for row in body['rankings']] == ['20240001']
    assert body['projectNumber'] == 1
    assert body['from'].endswith('T00:00:00')
    assert body['to'].endswith('T23:59:59.999999')


def test_export_rankings_writes_one_sheet_per_project(client, admin, make_user, db) -> None:
    first = make_user('20240001', name='김철수')
    second = make_user('20230002', semester=2023)
    db.add_all(
        [
            Score(user_id=first.id, project_number=2, score=70, evaluated_at=datetime(2024, 5, 1, 9, 0)),
            Score(user_id=first.id, project_number=2, score=88.5, evaluated_at=datetime(2024, 5, 2, 9, 0)),
            Score(user_id=second.id, project_number=2, score=92, evaluated_at=datetime(2023, 5, 3, 14, 30)),
        ]
    )
    db.commit()

    response = client.get('/api/admin/rankings/export')

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('application/vnd.ms-excel')
    assert response.headers['content-disposition'].startswith('attachment; filename="project-all-rankings-')
    assert response.headers['content-disposition'].endswith('.xls"')

    root = ET.fromstring(response.content)
    worksheets = root.findall(f'{{{SPREADSHEET_NS}}}Worksheet')
    assert [sheet.get(f'{{{SPREADSHEET_NS}}}Name') for sheet in worksheets] == [
        '프로젝트 1',
        '프로젝트 2',
        '프로젝트 3',
        '프로젝트 4',
    ]
    rows = [
        [data.text for data in row.iter(f'{{{SPREADSHEET_NS}}}Data')]
        for row in worksheets[1].iter(f'{{{SPREADSHEET_NS}}}Row')
    ]
    assert rows[0][:4] == ['순위', '점수', '프로젝트', '학번']
    assert rows[1][:5] == ['1', '92.0', '2', '20230002', '홍길동']
    assert rows[2][:5] == ['2', '88.5', '2', '20240001', '김철수']
    assert rows[2][7:] == ['-', '2024-05-02 09:00']
    assert len(rows) == 3

    log_entry = db.query(RequestLog).order_by(RequestLog.id.desc()).first()
    assert log_entry.path == '/api/admin/rankings/export'
    assert json.loads(log_entry.metadata_json) == {
        'projects': [1, 2, 3, 4],
        'rowCounts': {'1': 0, '2': 2, '3': 0, '4': 0},
    }


def test_admin_rankings_reject_bad_input(client, admin) -> None:
    assert client.get('/api/admin/rankings', params={'project': '0'}).json() == {
        'error': '유효하지 않은 프로젝트 번호입니다.'
    }
    assert client.get('/api/admin/rankings', params={'from': 'yesterday'}).json() == {
        'error': '유효한 날짜 범위가 필요합니다.'
    }


def test_resolve_ranking_range_swaps_reversed_bounds() -> None:
    start, end = resolve_ranking_range('2024-03-10', '2024-03-01')

    assert start == datetime(2024, 3, 1, 0, 0)
    assert end == datetime(2024, 3, 10, 23, 59, 59, 999999)


def test_resolve_ranking_range_converts_utc_timestamps_to_seoul_dates() -> None:
    start, end = resolve_ranking_range('2024-02-29T16:00:00Z', '2024-03-01T10:00:00+09:00')

    assert start == datetime(2024, 3, 1, 0, 0)
    assert end == datetime(2024, 3, 1, 23, 59, 59, 999999)


def test_notice_lifecycle(client, admin, db) -> None:
    created = client.post('/api/admin/notices', json={'message': '  점검 예정입니다.  '})
    assert created.status_code == 201
    notice_id = created.json()['notice']['id']
    assert created.json()['notice']['message'] == '점검 예정입니다.'
    assert created.json()['notice']['isActive'] is True

    assert [notice['id'] for notice in client.get('/api/notices').json()['notices']] == [notice_id]

    updated = client.patch('/api/admin/notices', json={'id': notice_id, 'isActive': False})
    assert updated.json()['notice']['isActive'] is False
    assert client.get('/api/notices').json() == {'notices': []}
    assert len(client.get('/api/admin/notices').json()['notices']) == 1

    deleted = client.request('DELETE', '/api/admin/notices', json={'id': notice_id})
    assert deleted.json() == {'success': True}
    assert db.query(Notice).count() == 0


@pytest.mark.parametrize(
    ('method', 'payload', 'status_code', 'error'),
    [
        ('POST', {'message': '   '}, 400, '공지 내용을 입력해주세요.'),
        ('PATCH', {'id': 'x', 'message': 'hi'}, 400, '유효한 공지 ID가 필요합니다.'),
        ('PATCH', {'id': 1}, 400, '변경할 항목이 없습니다.'),
        ('PATCH', {'id': 404, 'message': 'hi'}, 404, '공지를 찾을 수 없습니다.'),
        ('DELETE', {'id': 404}, 404, '공지를 찾을 수 없습니다.'),
    ],
)
def test_notice_rejections(client, admin, method, payload, status_code, error) -> None:
    response = client.request(method, '/api/admin/notices', json=payload)

    assert response.status_code == status_code
    assert response.json() == {'error': error}


def test_request_logs_resolve_user_sources(client, admin) -> None:
    client.get('/api/notices')

    body = client.get('/api/admin/request-logs', params={'limit': 1}).json()

    assert body['hasMore'] is True
    assert body['nextBeforeId'] == body['logs'][0]['id']
    entry = body['logs'][0]
    assert entry['path'] == '/api/notices'
    assert entry['sourceType'] == 'ip'


def test_request_logs_include_user_details(client, admin) -> None:
    client.get('/api/admin/users')

    entry = client.get('/api/admin/request-logs').json()['logs'][0]

    assert entry['path'] == '/api/admin/users'
    assert entry['sourceType'] == 'user'
    assert entry['sourceUserId'] == admin.id
    assert entry['userStudentNumber'] == '20000001'
    assert entry['metadata'] == {'count': 1}


def test_evaluation_logs_list_actor_and_target(client, admin, make_user, db) -> None:
    owner = make_user('20240001', semester=202402)
    record = Score(user_id=owner.id, project_number=1, score=70, evaluated_at=datetime(2024, 6, 1, 9, 0))
    db.add(record)
    db.commit()
    client.request('DELETE', '/api/admin/scores', json={'id': record.id})

    logs = client.get('/api/admin/evaluation-logs').json()['logs']

    assert len(logs) == 1
    assert logs[0]['action'] == 'delete'
    assert logs[0]['actorPublicId'] == admin.public_id
    assert logs[0]['targetPublicId'] == owner.public_id
    assert logs[0]['targetYear'] == 2024
    assert logs[0]['payload']['source'] == 'admin-delete'
