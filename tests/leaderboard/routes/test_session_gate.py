from leaderboard.core import config


def test_anonymous_page_navigation_redirects_to_login(client) -> None:
    response = client.get('/mypage/results', params={'project': '2'}, follow_redirects=False)

    assert response.status_code == 307
    assert response.headers['location'] == '/login?redirect=%2Fmypage%2Fresults%3Fproject%3D2'


def test_public_pages_are_not_redirected(client) -> None:
    assert client.get('/', follow_redirects=False).json() == {'status': 'Leaderboard API Running'}
    assert client.get('/login', follow_redirects=False).status_code == 404


def test_api_paths_answer_json_instead_of_redirect(client) -> None:
    response = client.get('/api/admin/scores', follow_redirects=False)

    assert response.status_code == 401
    assert response.json() == {'error': 'Unauthorized'}


def test_page_navigation_with_cookie_passes_through(client) -> None:
    client.cookies.set(config.SESSION_COOKIE_NAME, 'anything')

    response = client.get('/mypage', follow_redirects=False)

    assert response.status_code == 404
    assert response.json() == {'error': 'Not Found'}
