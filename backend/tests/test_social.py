from uuid import uuid4

from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.persistence import post_key, user_key

client = TestClient(create_app(Settings(storage_backend="memory", gemini_api_key=None)))


def _user(name: str, onboarded: bool = True, xp: int = 0, tc: TestClient = client) -> tuple[str, dict[str, str]]:
    email = f"{name.lower().replace(' ', '.')}-{uuid4().hex[:6]}@example.com"
    token = tc.post("/signup", json={"email": email, "password": "Secret123!", "name": name}).json()["accessToken"]
    headers = {"Authorization": f"Bearer {token}"}
    tc.post("/update-profile", json={"isOnboarded": onboarded, "xpLevel": xp}, headers=headers)
    return email, headers


def test_friend_add_is_symmetric() -> None:
    a_email, a_headers = _user("Alpha")
    b_email, b_headers = _user("Bravo", xp=250)

    res = client.post("/friends/add", json={"friendEmail": b_email}, headers=a_headers)
    assert res.status_code == 200
    assert res.json()["friend"] == {"name": "Bravo", "email": b_email, "xp": 250, "level": 2}

    a_friends = client.get("/friends", headers=a_headers).json()["friends"]
    b_friends = client.get("/friends", headers=b_headers).json()["friends"]
    assert [f["email"] for f in a_friends] == [b_email]
    assert [f["email"] for f in b_friends] == [a_email]
    assert a_friends[0]["streak"] == 0


def test_friend_add_duplicate_unknown_and_self() -> None:
    a_email, a_headers = _user("Charlie")
    b_email, _ = _user("Delta")

    client.post("/friends/add", json={"friendEmail": b_email}, headers=a_headers)
    again = client.post("/friends/add", json={"friendEmail": b_email}, headers=a_headers)
    assert again.status_code == 400
    assert again.json()["error"] == "Already friends with this user"

    missing = client.post("/friends/add", json={"friendEmail": "nobody@example.com"}, headers=a_headers)
    assert missing.status_code == 404

    self_add = client.post("/friends/add", json={"friendEmail": a_email}, headers=a_headers)
    assert self_add.status_code == 400

    no_body = client.post("/friends/add", json={}, headers=a_headers)
    assert no_body.status_code == 400


def test_leaderboard_sorted_and_flags_current_user() -> None:
    tc = TestClient(create_app(Settings(storage_backend="memory", gemini_api_key=None)))
    _user("Low", xp=50, tc=tc)
    me_email, me_headers = _user("Me", xp=420, tc=tc)
    _user("High", xp=900, tc=tc)
    _user("Hidden", onboarded=False, xp=5000, tc=tc)

    board = tc.get("/leaderboard", headers=me_headers).json()["leaderboard"]
    assert [e["name"] for e in board] == ["High", "Me", "Low"]
    assert [e["rank"] for e in board] == [1, 2, 3]
    assert [e["xp"] for e in board] == sorted((e["xp"] for e in board), reverse=True)
    assert sum(e["isCurrentUser"] for e in board) == 1
    me = next(e for e in board if e["isCurrentUser"])
    assert me["email"] == me_email
    assert me["level"] == 4


def test_leaderboard_caps_at_fifty_and_excludes_non_onboarded_requester() -> None:
    tc = TestClient(create_app(Settings(storage_backend="memory", gemini_api_key=None)))
    for i in range(55):
        _user(f"Player {i}", xp=i * 10, tc=tc)
    _, outsider = _user("Outsider", onboarded=False, tc=tc)

    board = tc.get("/leaderboard", headers=outsider).json()["leaderboard"]
    assert len(board) == 50
    assert board[0]["xp"] == 540
    assert not any(e["isCurrentUser"] for e in board)


def test_user_search() -> None:
    tag = uuid4().hex[:6]
    _, me = _user(f"Seeker {tag}")
    target_email, _ = _user(f"Findable {tag}", xp=120)
    _user(f"Ghost {tag}", onboarded=False)

    short = client.get("/users/search", params={"q": "f"}, headers=me).json()["users"]
    assert short == []

    found = client.get("/users/search", params={"q": tag.upper()}, headers=me).json()["users"]
    assert found == [{"name": f"Findable {tag}", "email": target_email, "xp": 120, "level": 1}]

    by_email = client.get("/users/search", params={"q": target_email}, headers=me).json()["users"]
    assert [u["email"] for u in by_email] == [target_email]


def test_posts_create_and_list_newest_first() -> None:
    tc = TestClient(create_app(Settings(storage_backend="memory", gemini_api_key=None)))
    email, headers = _user("Poster", tc=tc)
    kv = tc.app.state.kv_store
    kv.set(post_key("old"), {"id": "old", "userId": "x", "userName": "X", "content": "old", "createdAt": "2020-01-01T00:00:00.000Z"})
    kv.set(post_key("undated"), {"id": "undated", "userId": "x", "userName": "X", "content": "undated"})

    res = tc.post("/community/posts", json={"content": "  Hit level 5!  "}, headers=headers)
    assert res.status_code == 200
    post = res.json()["post"]
    assert post["content"] == "Hit level 5!"
    assert post["type"] == "achievement"
    assert post["userName"] == "Poster"
    assert post["userId"] == email
    assert post["likes"] == 0 and post["comments"] == 0
    assert post["id"].startswith("post_") and post["id"].endswith(email)

    posts = tc.get("/community/posts", headers=headers).json()["posts"]
    assert [p["id"] for p in posts] == [post["id"], "old", "undated"]


def test_post_requires_content() -> None:
    _, headers = _user("Silent")
    for body in ({"content": "   "}, {}, {"content": 42}):
        res = client.post("/community/posts", json=body, headers=headers)
        assert res.status_code == 400


def test_invalid_stored_records_are_skipped() -> None:
    tc = TestClient(create_app(Settings(storage_backend="memory", gemini_api_key=None)))
    email, headers = _user("Survivor", xp=120, tc=tc)
    kv = tc.app.state.kv_store
    kv.set(user_key("broken@example.com"), {"email": "broken@example.com", "name": "Broken", "isOnboarded": True, "xpLevel": "lots"})
    kv.set(post_key("broken"), {"id": "broken", "userId": "x"})
    tc.post("/community/posts", json={"content": "still here"}, headers=headers)

    board = tc.get("/leaderboard", headers=headers)
    assert board.status_code == 200
    assert [entry["email"] for entry in board.json()["leaderboard"]] == [email]

    found = tc.get("/users/search", params={"q": "broken"}, headers=headers)
    assert found.status_code == 200
    assert found.json()["users"] == []

    posts = tc.get("/community/posts", headers=headers)
    assert posts.status_code == 200
    assert [p["content"] for p in posts.json()["posts"]] == ["still here"]
