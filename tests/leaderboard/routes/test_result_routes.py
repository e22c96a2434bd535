import json
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from leaderboard.core import config
from leaderboard.models.logs import EvaluationLog, RequestLog
from leaderboard.models.score import Score

NOTEBOOK = json.dumps({'cells': [{'cell_type': 'code', 'source': ['1 + 1']}]}).encode('utf-8')


def _submit(client, project_number='1', score='91.5', file_name='result.ipynb', content=NOTEBOOK):
    return client.post(
        '/api/my-results',
        data={'projectNumber': project_number, 'score': score},
        files={'attachment': (file_name, content, 'application/octet-stream')},
    )


def test_my_results_require_session(client) -> None:
    response = client.get('/api/my-results')

    assert response.status_code == 401
    assert response.json() == {'error': 'Unauthorized'}


def test_submit_result_stores_file_and_logs_creation(client, login_as, db, upload_root) -> None:
    user = login_as('20240001')

    response = _submit(client)

    assert response.status_code == 201
    result = response.json()['result']
    assert result['projectNumber'] == 1
    assert result['score'] == 91.5
    assert result['fileName'] == 'result.ipynb'
    assert result['fileType'] == 'application/json'
    assert result['hasFile'] is True

    record = db.query(Score).filter(Score.id == result['id']).one()
    assert record.user_id == user.id
    assert (upload_root / record.file_path).read_bytes() == NOTEBOOK

    log_entry = db.query(EvaluationLog).filter(EvaluationLog.score_id == record.id).one()
    assert log_entry.action == 'create'
    assert json.loads(log_entry.payload)['source'] == 'self-submit'


@pytest.mark.parametrize(
    ('project_number', 'score', 'error'),
    [
        ('5', '90', '프로젝트 번호가 올바르지 않습니다.'),
        ('abc', '90', '프로젝트 번호가 올바르지 않습니다.'),
        ('1', 'nan', '점수는 유효한 숫자여야 합니다.'),
        ('1', 'ninety', '점수는 유효한 숫자여야 합니다.'),
    ],
)
def test_submit_result_rejects_invalid_fields(client, login_as, db, project_number, score, error) -> None:
    login_as('20240001')

    response = _submit(client, project_number=project_number, score=score)

    assert response.status_code == 400
    assert response.json() == {'error': error}
    assert db.query(Score).count() == 0


def test_submit_result_removes_stored_file_when_insert_fails(
    client, login_as, db, upload_root, monkeypatch: pytest.MonkeyPatch
) -> None:
    login_as('20240001')
    original_commit = Session.commit

    def failing_commit(self):
        if any(isinstance(instance, Score) for instance in self.new):
            raise OperationalError('INSERT INTO scores', {}, Exception('disk I/O error'))
        return original_commit(self)

    monkeypatch.setattr(Session, 'commit', failing_commit)

    response = _submit(client)

    assert response.status_code == 500
    assert response.json() == {'error': '결과 저장 중 오류가 발생했습니다.'}
    assert [path for path in upload_root.rglob('*') if path.is_file()] == []
    assert db.query(Score).count() == 0
    assert db.query(EvaluationLog).count() == 0


def test_submit_result_reads_no_more_than_the_size_limit(
    client, login_as, db, upload_root, monkeypatch: pytest.MonkeyPatch
) -> None:
    login_as('20240001')
    monkeypatch.setattr(config, 'MAX_UPLOAD_BYTES', 16)

    response = _submit(client, file_name='big.py', content=b'x = 1\n' * 1000)

    assert response.status_code == 400
    assert response.json() == {'error': '파일 크기는 0MB 이하여야 합니다.'}
    assert json.loads(db.query(RequestLog).order_by(RequestLog.id.desc()).first().metadata_json) == {
        'reason': 'file_too_large',
        'fileSize': 17,
    }


def test_submit_result_rejects_disallowed_attachment(client, login_as, db, upload_root) -> None:
    login_as('20240001')

    response = _submit(client, file_name='result.txt', content=b'hello')

    assert response.status_code == 400
    assert db.query(Score).count() == 0
    assert not upload_root.exists() or not any(upload_root.rglob('*.txt'))


def test_list_my_results_filters_by_project(client, login_as) -> None:
    login_as('20240001')
    _submit(client, project_number='1', score='70')
    _submit(client, project_number='2', score='80', file_name='two.py', content=b'print(2)\n')

    all_results = client.get('/api/my-results').json()['results']
    project_two = client.get('/api/my-results', params={'project': '2'}).json()

    assert [item['projectNumber'] for item in all_results] == [1, 2]
    assert [item['score'] for item in project_two['results']] == [80]
    assert project_two['projectNumber'] == 2
    assert client.get('/api/my-results', params={'project': '9'}).status_code == 400


def test_delete_missing_result_answers_not_found_without_log(client, login_as, db) -> None:
    login_as('20240001')

    response = client.request('DELETE', '/api/my-results', json={'id': 999})

    assert response.status_code == 404
    assert response.json() == {'error': '삭제할 기록을 찾을 수 없습니다.'}
    assert db.query(EvaluationLog).filter(EvaluationLog.action == 'delete').count() == 0


@pytest.mark.parametrize('record_id', [0, -3, '5', 5.0, True, None, 2**63])
def test_delete_rejects_invalid_id(client, login_as, db, record_id) -> None:
    login_as('20240001')

    response = client.request('DELETE', '/api/my-results', json={'id': record_id})

    assert response.status_code == 400
    assert response.json() == {'error': '유효한 기록 ID가 필요합니다.'}


def test_delete_reports_failed_unlink_without_failing(
    client, login_as, db, upload_root, monkeypatch: pytest.MonkeyPatch
) -> None:
    login_as('20240001')
    score_id = _submit(client).json()['result']['id']
    stored_path = upload_root / db.query(Score).filter(Score.id == score_id).one().file_path

    def refuse_unlink(self, missing_ok=False):
        raise PermissionError('read-only volume')

    monkeypatch.setattr(Path, 'unlink', refuse_unlink)

    response = client.request('DELETE', '/api/my-results', json={'id': score_id})

    assert response.status_code == 200
    assert response.json() == {'success': True, 'cleanupWarning': 'unlink_failed'}
    assert stored_path.exists()
    log_entry = db.query(EvaluationLog).filter(EvaluationLog.action == 'delete').one()
    assert json.loads(log_entry.payload)['fileCleanup'] == 'unlink_failed'


def test_delete_own_result_removes_row_file_and_logs(client, login_as, db, upload_root) -> None:
    login_as('20240001')
    score_id = _submit(client).json()['result']['id']
    stored_path = upload_root / db.query(Score).filter(Score.id == score_id).one().file_path

    response = client.request('DELETE', '/api/my-results', json={'id': score_id})

    assert response.status_code == 200
    assert response.json() == {'success': True, 'cleanupWarning': None}
    assert db.query(Score).filter(Score.id == score_id).first() is None
    assert not stored_path.exists()
    log_entry = db.query(EvaluationLog).filter(EvaluationLog.action == 'delete').one()
    assert log_entry.score_id == score_id
    assert json.loads(log_entry.payload)['source'] == 'self-delete'


def test_delete_succeeds_when_attachment_already_gone(client, login_as, db, upload_root) -> None:
    login_as('20240001')
    score_id = _submit(client).json()['result']['id']
    (upload_root / db.query(Score).filter(Score.id == score_id).one().file_path).unlink()

    response = client.request('DELETE', '/api/my-results', json={'id': score_id})

    assert response.status_code == 200
    assert response.json()['cleanupWarning'] == 'file_missing'


def test_cannot_delete_another_users_result(client, login_as, make_user, db) -> None:
    owner = make_user('20240002')
    record = Score(user_id=owner.id, project_number=1, score=50, evaluated_at=datetime(2024, 1, 1, 9, 0))
    db.add(record)
    db.commit()
    login_as('20240001')

    response = client.request('DELETE', '/api/my-results', json={'id': record.id})

    assert response.status_code == 404
    assert db.query(Score).filter(Score.id == record.id).first() is not None


def test_download_result_file_for_owner(client, login_as) -> None:
    login_as('20240001')
    score_id = _submit(client, file_name='my result.ipynb').json()['result']['id']

    response = client.get(f'/api/my-results/{score_id}/file')

    assert response.status_code == 200
    assert response.content == NOTEBOOK
    assert response.headers['content-type'].startswith('application/json')
    assert response.headers['content-disposition'] == 'attachment; filename="my%20result.ipynb"'


def test_download_result_file_forbidden_for_other_user(client, login_as) -> None:
    login_as('20240001')
    score_id = _submit(client).json()['result']['id']
    client.cookies.clear()
    login_as('20240002')

    response = client.get(f'/api/my-results/{score_id}/file')

    assert response.status_code == 403
    assert response.json() == {'error': '접근 권한이 없습니다.'}


def test_download_result_file_errors(client, login_as, make_user, db) -> None:
    owner = make_user('20240002')
    record = Score(user_id=owner.id, project_number=1, score=50, evaluated_at=datetime(2024, 1, 1, 9, 0))
    db.add(record)
    db.commit()
    login_as('20240001')

    assert client.get('/api/my-results/abc/file').status_code == 400
    assert client.get(f'/api/my-results/{record.id}/file').json() == {'error': '파일을 찾을 수 없습니다.'}
