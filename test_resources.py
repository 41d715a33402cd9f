"""REST endpoints for the user's own data."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import SAMPLE_BOOK
from readingmemory.api.achievements import badge_progress
from readingmemory.api.streaks import advance_streak

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def user_book(db):
    db.put('users/u1/userBooks/b1', {'bookTitle': 'Kokoro', 'bookAuthor': 'Natsume Soseki', 'status': 'reading'})
    return 'users/u1/userBooks/b1'


# -----------------------------------------------------------------------------
# Auth / profile
# -----------------------------------------------------------------------------
def test_initialize_creates_user_once(client, db, headers):
    first = client.post('/api/v1/auth/initialize', headers=headers)
    db.clock += timedelta(days=1)
    second = client.post('/api/v1/auth/initialize', headers=headers)

    assert first.get_json() == {
        'initialized': True,
        'hasProfile': False,
        'message': 'User initialized, needs onboarding',
    }
    assert second.status_code == 200
    user = db.data('users/u1')
    assert user['email'] == 'u1@example.com'
    assert user['createdAt'] == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_onboarding_flow(client, db, headers):
    assert client.get('/api/v1/auth/onboarding-status', headers=headers).get_json() == {
        'needsOnboarding': True, 'hasProfile': False, 'hasGoals': False,
    }

    response = client.post('/api/v1/auth/complete-onboarding', headers=headers, json={
        'displayName': '  Reader  ',
        'favoriteGenres': ['novel'],
        'monthlyGoal': 3,
    })
    assert response.status_code == 200
    assert response.get_json()['success'] is True

    assert client.get('/api/v1/auth/onboarding-status', headers=headers).get_json() == {
        'needsOnboarding': False, 'hasProfile': True, 'hasGoals': True,
    }
    profile = db.data('userProfiles/u1')
    assert profile['displayName'] == 'Reader'
    assert profile['readingGoal'] == 3

    goals = [d for p, d in db.docs.items() if p.startswith('users/u1/goals/')]
    assert goals[0]['targetValue'] == 3
    assert goals[0]['period'] == 'monthly'
    streaks = [d for p, d in db.docs.items() if p.startswith('users/u1/streaks/')]
    assert streaks[0]['currentStreak'] == 0


@pytest.mark.parametrize('body', [
    {'displayName': '   ', 'favoriteGenres': [], 'monthlyGoal': 1},
    {'displayName': 'Reader', 'favoriteGenres': 'novel', 'monthlyGoal': 1},
    {'displayName': 'Reader', 'favoriteGenres': [], 'monthlyGoal': -1},
])
def test_onboarding_validation(client, db, headers, body):
    response = client.post('/api/v1/auth/complete-onboarding', headers=headers, json=body)

    assert response.status_code == 400
    assert db.data('userProfiles/u1') is None


def test_onboarding_without_goal(client, db, headers):
    client.post('/api/v1/auth/complete-onboarding', headers=headers, json={
        'displayName': 'Reader', 'favoriteGenres': [], 'monthlyGoal': 0,
    })

    assert not any(p.startswith('users/u1/goals/') for p in db.docs)


def test_profile_get_and_update(client, headers):
    assert client.get('/api/v1/profile', headers=headers).status_code == 404

    response = client.put('/api/v1/profile', headers=headers, json={'bio': 'Hello', 'isPublic': True})

    assert response.status_code == 200
    profile = response.get_json()['profile']
    assert profile['bio'] == 'Hello'
    assert profile['isPublic'] is True
    assert profile['createdAt'] == '2024-05-01T12:00:00.000Z'
    assert client.get('/api/v1/profile', headers=headers).get_json()['profile']['id'] == 'u1'


def test_profile_post_merges(client, db, headers):
    db.put('userProfiles/u1', {'id': 'u1', 'displayName': 'Reader', 'bio': 'old'})

    response = client.post('/api/v1/profile', headers=headers, json={'bio': 'new'})

    profile = response.get_json()['profile']
    assert profile['displayName'] == 'Reader'
    assert profile['bio'] == 'new'
    assert 'createdAt' not in profile
    assert client.post('/api/v1/profile', headers=headers, json={'readingGoal': -1}).status_code == 400


# -----------------------------------------------------------------------------
# Account deletion
# -----------------------------------------------------------------------------
def test_delete_account_removes_everything(client, db, fake_auth, bucket, headers, user_book):
    db.put('users/u1', {'id': 'u1'})
    db.put('userProfiles/u1', {'id': 'u1'})
    db.put(f'{user_book}/chats/c1', {'message': 'note'})
    db.put('users/u1/goals/g1', {'type': 'bookCount'})
    db.put('users/u2/goals/g9', {'type': 'bookCount'})
    db.put('images/i1', {'uploadedBy': 'u1', 'storagePath': 'images/i1.jpg'})
    db.put('images/i2', {'uploadedBy': 'u2', 'storagePath': 'images/i2.png'})
    bucket.names += ['images/i1.jpg', 'images/i2.png']

    response = client.delete('/api/v1/users/me', headers=headers)

    body = response.get_json()
    assert response.status_code == 200
    assert body['success'] is True
    assert body['errors'] == []
    assert body['deletedCollections'] == [
        'userBooks', 'goals', 'activities', 'achievements', 'streaks', 'users', 'userProfiles', 'images',
    ]
    assert not any(p.startswith('users/u1') or p == 'userProfiles/u1' for p in db.docs)
    assert 'users/u2/goals/g9' in db.docs
    assert 'images/i1' not in db.docs
    assert 'images/i2' in db.docs
    assert bucket.names == ['users/u2/avatar.jpg', 'images/i2.png']
    assert fake_auth.deleted == ['u1']


def test_delete_account_reports_auth_failure(client, fake_auth, headers):
    def fail(uid):
        raise RuntimeError('auth backend down')
    fake_auth.delete_user = fail

    body = client.delete('/api/v1/users/me', headers=headers).get_json()

    assert body['success'] is False
    assert body['errors'] == ['Failed to delete authentication account']


# -----------------------------------------------------------------------------
# Book search
# -----------------------------------------------------------------------------
def test_isbn_endpoint(client, headers, book_search):
    response = client.get('/api/v1/books/search/isbn/978-4101010014', headers=headers)

    assert response.status_code == 200
    assert response.get_json()['books'][0]['isbn'] == SAMPLE_BOOK['isbn']
    assert book_search.calls == [('isbn', '9784101010014')]


def test_isbn_endpoint_errors(client, headers, book_search):
    assert client.get('/api/v1/books/search/isbn/12345', headers=headers).status_code == 400
    assert client.get('/api/v1/books/search/isbn/9784101010014%20', headers=headers).status_code == 400
    assert client.get('/api/v1/books/search/isbn/9780000000002', headers=headers).status_code == 404
    assert client.get('/api/v1/books/search/isbn/9784101010014').status_code == 401


def test_query_endpoint(client, headers):
    assert client.get('/api/v1/books/search?q=kokoro', headers=headers).get_json()['books'][0]['title'] == 'Kokoro'
    assert client.get('/api/v1/books/search?q=', headers=headers).status_code == 400
    assert client.get('/api/v1/books/search?q=%20%20', headers=headers).status_code == 400


# -----------------------------------------------------------------------------
# Chats
# -----------------------------------------------------------------------------
def test_chat_lifecycle(client, db, headers, user_book):
    url = '/api/v1/books/b1/chats'

    created = client.post(url, headers=headers, json={'message': '  first note  ', 'pageNumber': 12})
    assert created.status_code == 201
    chat = created.get_json()['chat']
    assert chat['message'] == 'first note'
    assert chat['messageType'] == 'user'
    assert chat['isAI'] is False
    assert chat['pageNumber'] == 12
    assert chat['createdAt'] == '2024-05-01T12:00:00.000Z'

    db.clock += timedelta(minutes=1)
    client.post(url, headers=headers, json={'message': 'second', 'messageType': 'ai'})

    chats = client.get(url, headers=headers).get_json()['chats']
    assert [c['message'] for c in chats] == ['first note', 'second']

    page = client.get(f"{url}?startAfter={chat['id']}&limit=5", headers=headers).get_json()['chats']
    assert [c['message'] for c in page] == ['second']

    updated = client.put(f"{url}/{chat['id']}", headers=headers, json={'message': 'edited'})
    assert updated.get_json()['chat']['message'] == 'edited'
    assert updated.get_json()['chat']['pageNumber'] == 12

    assert client.delete(f"{url}/{chat['id']}", headers=headers).status_code == 204
    assert client.delete(f"{url}/{chat['id']}", headers=headers).status_code == 404


def test_chat_errors(client, headers, user_book):
    assert client.get('/api/v1/books/missing/chats', headers=headers).status_code == 404
    assert client.post('/api/v1/books/b1/chats', headers=headers, json={'message': '  '}).status_code == 400
    assert client.post('/api/v1/books/b1/chats', headers=headers,
                       json={'message': 'x', 'messageType': 'bot'}).status_code == 400
    assert client.get('/api/v1/books/b1/chats?limit=101', headers=headers).status_code == 400


# -----------------------------------------------------------------------------
# AI
# -----------------------------------------------------------------------------
def test_ai_response_endpoint(client, db, gemini, headers, user_book):
    response = client.post('/api/v1/users/u1/books/b1/ai-response', headers=headers, json={'message': 'hi'})

    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert db.data(f"{user_book}/chats/{body['chatId']}")['message'] == body['message']


@pytest.mark.parametrize('message', ['', '   ', '\n\t'])
def test_ai_response_rejects_blank_message(client, db, gemini, headers, user_book, message):
    response = client.post('/api/v1/users/u1/books/b1/ai-response', headers=headers, json={'message': message})

    assert response.status_code == 400
    assert response.get_json()['error']['details'][0]['field'] == 'message'
    assert gemini.chat_calls == []
    assert not any('/chats/' in p for p in db.docs)


def test_ai_response_message_is_trimmed(client, gemini, headers, user_book):
    client.post('/api/v1/users/u1/books/b1/ai-response', headers=headers, json={'message': '  hi  '})

    assert gemini.chat_calls[0][3] == 'hi'


def test_ai_endpoints_reject_other_users(client, gemini, headers, user_book):
    response = client.post('/api/v1/users/u2/books/b1/ai-response', headers=headers, json={'message': 'hi'})

    assert response.status_code == 403
    assert response.get_json()['error']['code'] == 'PERMISSION_DENIED'
    assert client.post('/api/v1/users/u2/books/b1/summary', headers=headers).status_code == 403
    assert gemini.chat_calls == []


def test_summary_endpoint(client, db, headers, user_book):
    db.put(f'{user_book}/chats/c1', {'message': 'Loved it', 'messageType': 'user', 'createdAt': BASE})

    response = client.post('/api/v1/users/u1/books/b1/summary', headers=headers)

    assert response.get_json() == {'success': True, 'summary': '- The reader enjoyed the book'}


# -----------------------------------------------------------------------------
# Activities
# -----------------------------------------------------------------------------
def test_activity_upsert_and_increment(client, db, headers):
    response = client.put('/api/v1/activities', headers=headers, json={'date': '2024-03-10T15:00:00Z', 'booksRead': 1})
    activity = response.get_json()
    assert activity['id'] == 'u1_2024-03-10'
    assert activity['date'] == '2024-03-10T00:00:00.000Z'
    assert activity['memosWritten'] == 0

    client.post('/api/v1/activities/increment', headers=headers, json={'type': 'memosWritten', 'value': 2, 'date': '2024-03-10'})
    client.post('/api/v1/activities/increment', headers=headers, json={'type': 'memosWritten', 'date': '2024-03-10'})

    activity = client.get('/api/v1/activities/2024-03-10', headers=headers).get_json()
    assert activity['memosWritten'] == 3
    assert activity['booksRead'] == 1


def test_activity_for_empty_day(client, headers):
    activity = client.get('/api/v1/activities/2024-02-01', headers=headers).get_json()

    assert activity == {
        'id': 'u1_2024-02-01',
        'userId': 'u1',
        'date': '2024-02-01T00:00:00.000Z',
        'booksRead': 0,
        'memosWritten': 0,
        'pagesRead': None,
        'readingMinutes': None,
    }
    assert client.get('/api/v1/activities/2024-2-1', headers=headers).status_code == 400


def test_activity_list_and_summary(client, db, headers):
    now = datetime.now(timezone.utc)
    for days, books, memos in ((1, 1, 0), (2, 0, 3), (3, 0, 0), (40, 5, 5)):
        day = now - timedelta(days=days)
        db.put(f'users/u1/activities/u1_{days}', {'date': day, 'booksRead': books, 'memosWritten': memos, 'pagesRead': 10})

    activities = client.get('/api/v1/activities?limit=2', headers=headers).get_json()['activities']
    assert [a['id'] for a in activities] == ['u1_1', 'u1_2']

    summary = client.get('/api/v1/activities/summary?period=week', headers=headers).get_json()
    assert summary['period'] == 'week'
    assert summary['summary']['totalBooksRead'] == 1
    assert summary['summary']['totalMemosWritten'] == 3
    assert summary['summary']['totalPagesRead'] == 30
    assert summary['summary']['activeDays'] == 2
    assert summary['summary']['averageMemosPerDay'] == 1.5

    assert client.get('/api/v1/activities/summary?period=decade', headers=headers).status_code == 400


# -----------------------------------------------------------------------------
# Goals
# -----------------------------------------------------------------------------
GOAL = {
    'type': 'bookCount',
    'targetValue': 4,
    'period': 'monthly',
    'startDate': '2024-01-01T00:00:00Z',
    'endDate': '2024-01-31T23:59:59Z',
}


def test_goal_lifecycle(client, headers):
    created = client.post('/api/v1/goals', headers=headers, json=GOAL)
    assert created.status_code == 201
    goal = created.get_json()['goal']
    assert goal['currentValue'] == 0
    assert goal['isActive'] is True
    assert goal['startDate'] == '2024-01-01T00:00:00.000Z'

    url = f"/api/v1/goals/{goal['id']}"
    client.patch(f'{url}/progress', headers=headers, json={'increment': 3})
    progressed = client.patch(f'{url}/progress', headers=headers, json={'increment': 1}).get_json()['goal']
    assert progressed['currentValue'] == 4

    assert client.put(url, headers=headers, json={'isActive': False}).get_json()['goal']['isActive'] is False
    assert client.get('/api/v1/goals?isActive=false', headers=headers).get_json()['goals'][0]['id'] == goal['id']
    assert client.get('/api/v1/goals?isActive=true', headers=headers).get_json()['goals'] == []

    stats = client.get('/api/v1/goals/statistics', headers=headers).get_json()['statistics']
    assert stats == {
        'totalGoals': 1,
        'activeGoals': 0,
        'completedGoals': 1,
        'averageProgress': 1.0,
        'completionRate': 1.0,
    }

    assert client.delete(url, headers=headers).status_code == 204
    assert client.get(url, headers=headers).status_code == 404


def test_goal_validation(client, headers):
    backwards = {**GOAL, 'startDate': '2024-02-01T00:00:00Z'}
    assert client.post('/api/v1/goals', headers=headers, json=backwards).status_code == 400
    assert client.post('/api/v1/goals', headers=headers, json={**GOAL, 'startDate': 'yesterday'}).status_code == 400

    goal = client.post('/api/v1/goals', headers=headers, json=GOAL).get_json()['goal']
    url = f"/api/v1/goals/{goal['id']}"
    assert client.put(url, headers=headers, json={'endDate': '2023-12-01T00:00:00Z'}).status_code == 400
    assert client.patch(f'{url}/progress', headers=headers, json={}).status_code == 400
    assert client.patch(f'{url}/progress', headers=headers, json={'setValue': -1}).status_code == 400
    assert client.patch('/api/v1/goals/missing/progress', headers=headers, json={'setValue': 1}).status_code == 404


# -----------------------------------------------------------------------------
# Achievements
# -----------------------------------------------------------------------------
def test_badge_progress_tiers():
    assert badge_progress(0, 0) == []
    assert badge_progress(12, 40) == [
        ('first_book', 1), ('books_10', 1), ('books_50', 12 / 50), ('memo_master', 0.4),
    ]
    assert dict(badge_progress(100, 150))['books_100'] == 1


def test_check_achievements(client, db, headers):
    db.put('users/u1/userBooks/b1', {'status': 'completed'})
    db.put('users/u1/userBooks/b2', {'status': 'reading'})
    db.put('users/u1/userBooks/b1/chats/c1', {'message': 'a'})
    db.put('users/u1/userBooks/b2/chats/c2', {'message': 'b'})

    body = client.post('/api/v1/achievements/check', headers=headers).get_json()

    assert body['checkedBadges'] == 3
    by_badge = {a['badgeId']: a for a in body['updatedAchievements']}
    assert by_badge['first_book']['isUnlocked'] is True
    assert by_badge['books_10']['progress'] == 0.1
    assert by_badge['memo_master']['progress'] == 0.02

    # Re-checking updates in place
    client.post('/api/v1/achievements/check', headers=headers)
    assert len([p for p in db.docs if p.startswith('users/u1/achievements/')]) == 3

    stats = client.get('/api/v1/achievements/statistics', headers=headers).get_json()['statistics']
    assert stats['unlockedCount'] == 1
    assert stats['lockedCount'] == 8
    assert stats['byTier'] == {'bronze': 1, 'silver': 0, 'gold': 0}


def test_badges_with_achievements(client, headers):
    client.patch('/api/v1/achievements/badge/streak_7/progress', headers=headers, json={'progress': 1})

    items = client.get('/api/v1/achievements/badges?category=streak', headers=headers).get_json()['badgesWithAchievements']
    assert [i['badge']['id'] for i in items] == ['streak_7', 'streak_30', 'streak_100']
    assert items[0]['achievement']['isUnlocked'] is True
    assert items[1]['achievement'] == {
        'id': None, 'badgeId': 'streak_30', 'userId': 'u1', 'unlockedAt': None, 'progress': 0, 'isUnlocked': False,
    }

    unlocked = client.get('/api/v1/achievements/badges?isUnlocked=true', headers=headers).get_json()
    assert [i['badge']['id'] for i in unlocked['badgesWithAchievements']] == ['streak_7']

    achievement_id = items[0]['achievement']['id']
    single = client.get(f'/api/v1/achievements/{achievement_id}', headers=headers).get_json()['achievement']
    assert single['unlockedAt'] == '2024-05-01T12:00:00.000Z'


def test_unlock_time_is_kept(client, db, headers):
    url = '/api/v1/achievements/badge/books_10/progress'
    client.patch(url, headers=headers, json={'progress': 0.5})
    assert client.patch(url, headers=headers, json={'progress': 0.5}).get_json()['achievement']['unlockedAt'] is None

    db.clock += timedelta(days=1)
    first = client.patch(url, headers=headers, json={'progress': 1}).get_json()['achievement']
    assert first['unlockedAt'] == '2024-05-02T12:00:00.000Z'

    db.clock += timedelta(days=1)
    again = client.patch(url, headers=headers, json={'progress': 1}).get_json()['achievement']
    assert again['unlockedAt'] == '2024-05-02T12:00:00.000Z'
    assert again['updatedAt'] == '2024-05-03T12:00:00.000Z'
    assert again['isUnlocked'] is True


def test_badge_progress_validation(client, headers):
    assert client.patch('/api/v1/achievements/badge/nope/progress', headers=headers, json={'progress': 0.5}).status_code == 404
    assert client.patch('/api/v1/achievements/badge/books_10/progress', headers=headers, json={'progress': 1.5}).status_code == 400
    assert client.get('/api/v1/achievements/badges?category=unknown', headers=headers).status_code == 400


# -----------------------------------------------------------------------------
# Streaks
# -----------------------------------------------------------------------------
def test_advance_streak():
    day1 = datetime(2024, 3, 1, 22, 0, tzinfo=timezone.utc)
    streak = {'currentStreak': 0, 'longestStreak': 0, 'lastActivityDate': None, 'streakDates': []}

    first = advance_streak(streak, day1)
    assert first['currentStreak'] == 1
    assert first['lastActivityDate'] == datetime(2024, 3, 1, tzinfo=timezone.utc)

    assert advance_streak(first, day1 + timedelta(hours=1)) is None

    second = advance_streak(first, day1 + timedelta(days=1))
    assert second['currentStreak'] == 2
    assert second['longestStreak'] == 2

    broken = advance_streak(second, day1 + timedelta(days=5))
    assert broken['currentStreak'] == 1
    assert broken['longestStreak'] == 2
    assert len(broken['streakDates']) == 3


def test_streak_dates_are_capped():
    streak = {
        'currentStreak': 365,
        'longestStreak': 365,
        'lastActivityDate': BASE + timedelta(days=364),
        'streakDates': [BASE + timedelta(days=i) for i in range(365)],
    }

    updated = advance_streak(streak, BASE + timedelta(days=365))

    assert len(updated['streakDates']) == 365
    assert updated['streakDates'][0] == BASE + timedelta(days=1)
    assert updated['currentStreak'] == 366


def test_record_and_reset_streak(client, headers):
    first = client.post('/api/v1/streaks/record', headers=headers, json={'type': 'reading', 'date': '2024-03-01'})
    streak = first.get_json()['streak']
    assert streak['currentStreak'] == 1

    again = client.post('/api/v1/streaks/record', headers=headers, json={'type': 'reading', 'date': '2024-03-01'})
    assert again.get_json()['streak']['message'] == 'Activity already recorded for this date'

    next_day = client.post('/api/v1/streaks/record', headers=headers, json={'type': 'reading', 'date': '2024-03-02'})
    assert next_day.get_json()['streak']['currentStreak'] == 2
    assert next_day.get_json()['streak']['id'] == streak['id']

    by_type = client.get('/api/v1/streaks/type/reading', headers=headers).get_json()
    assert by_type['lastActivityDate'] == '2024-03-02T00:00:00.000Z'

    reset = client.post(f"/api/v1/streaks/{streak['id']}/reset", headers=headers).get_json()['streak']
    assert reset['currentStreak'] == 0
    assert reset['longestStreak'] == 2
    assert reset['streakDates'] == []


def test_streak_lookups(client, headers):
    empty = client.get('/api/v1/streaks/type/chatMemo', headers=headers).get_json()
    assert empty['id'] is None
    assert empty['currentStreak'] == 0

    assert client.get('/api/v1/streaks/type/sleeping', headers=headers).status_code == 400
    assert client.get('/api/v1/streaks/missing', headers=headers).status_code == 404
    assert client.post('/api/v1/streaks/record', headers=headers, json={'type': 'napping'}).status_code == 400


def test_streak_statistics(client, headers):
    today = datetime.now(timezone.utc)
    yesterday = (today - timedelta(days=1)).strftime('%Y-%m-%d')
    client.post('/api/v1/streaks/record', headers=headers, json={'type': 'reading', 'date': yesterday})
    client.post('/api/v1/streaks/record', headers=headers, json={'type': 'chatMemo', 'date': yesterday})

    body = client.get('/api/v1/streaks/statistics?period=week', headers=headers).get_json()

    assert body['period'] == 'week'
    stats = body['statistics']
    assert stats['byType']['reading']['activeDays'] == 1
    assert stats['totalActiveDays'] == 1
    assert stats['currentActiveTypes'] == 2
    assert len(client.get('/api/v1/streaks', headers=headers).get_json()['streaks']) == 2
